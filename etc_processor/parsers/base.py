"""Base parser: shared records, errors, and field normalization helpers.

ETC usage exports come in two shapes:
- the detailed export (15 columns, several historical header spellings,
  or no header at all) parsed into UsageRecord
- the simplified summary shape (one date, one amount) in SimpleRecord

Files on disk are encoded in cp932 (the Windows superset of Shift-JIS).
Decoding happens here, at the boundary, so parsers only ever see text.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

LEGACY_ENCODING = "cp932"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1

# Two-digit years below the pivot belong to the 2000s, the rest to the 1900s
YEAR_PIVOT = 50


# ── Errors ──────────────────────────────────────────────


class ParseError(Exception):
    """The input as a whole could not be parsed."""


class EmptyInputError(ParseError):
    """The CSV source yielded zero rows."""


class NoDataRowsError(ParseError):
    """Rows exist, but none remain after the header / start offset."""


class CsvFormatError(ParseError):
    """The CSV token stream is malformed (quoting, field counts)."""


class InputSourceError(ParseError):
    """The source is missing, unreadable, or cannot be decoded."""


class RecordError(Exception):
    """A single field or record failed normalization or validation.

    Attributes:
        field: Name of the offending field, or "" when not field-specific.
    """

    field: str = ""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        if field is not None:
            self.field = field


class NumericFormatError(RecordError):
    """Amount / class text is not a valid integer."""


class DateFormatError(RecordError):
    """Date text is not three numeric slash-separated components."""


class MissingFieldError(RecordError):
    """A required field is empty."""


class InvalidDateError(RecordError):
    """A non-empty date on a record failed to parse."""


class UnresolvableDateError(RecordError):
    """Neither the exit nor the entry date of a record parses."""


class TooFewFieldsError(RecordError):
    """A positional row has fewer cells than the mapping needs."""


# ── Records ─────────────────────────────────────────────


@dataclass(frozen=True)
class UsageRecord:
    """One row of a detailed ETC usage export, normalized but not date-typed.

    Dates and times stay as text; they are validated lazily by
    validate_record() and resolved by convert_to_simple().
    """
    entry_date: str = ""
    entry_time: str = ""
    exit_date: str = ""
    exit_time: str = ""
    entry_ic: str = ""
    exit_ic: str = ""
    route_info: str = ""
    toll_amount: int = 0       # charged amount (ETC料金 / 通行料金)
    normal_amount: int = 0     # amount before discount (割引前料金)
    discount_amount: int = 0   # usually negative (ＥＴＣ割引額)
    mileage: int = 0
    vehicle_class: int = 0
    vehicle_number: str = ""
    card_number: str = ""
    notes: str = ""


@dataclass(frozen=True)
class SimpleRecord:
    """Caller-facing shape: one resolved date and one non-negative amount."""
    date: date
    entry_ic: str
    exit_ic: str
    route: str
    vehicle_type: str
    amount: int
    card_number: str


class BaseParser(ABC):
    """Abstract base for ETC CSV parsers.

    Attributes:
        skipped_count: Number of rows rejected during the last parse()
            (e.g. too few fields). Check this after parse() to detect
            silent data loss.
    """

    def __init__(self):
        self.skipped_count: int = 0

    @abstractmethod
    def parse(self, source):
        """Parse CSV text or a stream."""

    @abstractmethod
    def parse_file(self, file_path: Path | str):
        """Parse a CSV file from disk."""


# ── Field helpers ───────────────────────────────────────


def field_at(row: list[str], index: int) -> str:
    """Return row[index], or "" when the index is out of range."""
    if 0 <= index < len(row):
        return row[index]
    return ""


def parse_int(text: str) -> int:
    """Strict signed 64-bit integer: ASCII digits, optional sign, nothing else.

    Raises:
        ValueError: On any other text (spaces, underscores, non-ASCII digits)
            or a value outside the int64 range.
    """
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def parse_amount(text: str) -> int:
    """Parse "1,500" / "-7,430" style amounts into a signed int.

    Raises:
        NumericFormatError: If the text, once commas are removed, is not an
            integer (empty, decimal, partial number, out of range).
    """
    cleaned = text.replace(",", "")
    try:
        return parse_int(cleaned)
    except ValueError as e:
        raise NumericFormatError(f"invalid amount {text!r}: {e}") from e


def parse_vehicle_class(text: str) -> int:
    """Vehicle class as int; anything unparsable becomes 0."""
    try:
        return parse_int(text)
    except ValueError:
        return 0


def parse_date(text: str) -> date:
    """Parse "YY/MM/DD" or "YYYY/MM/DD" into a date.

    Two-digit years pivot at 50: 49 -> 2049, 50 -> 1950. Month and day are
    not range-checked; overflow rolls over the calendar (month 13 is January
    of the following year, day 32 of January is February 1).

    Raises:
        DateFormatError: If there are not exactly three numeric components,
            or the rolled-over date is outside the supported range.
    """
    parts = text.split("/")
    if len(parts) != 3:
        raise DateFormatError(f"invalid date format: {text}")
    try:
        year, month, day = (parse_int(p) for p in parts)
    except ValueError as e:
        raise DateFormatError(f"invalid date format: {text}: {e}") from e

    if year < 100:
        year += 2000 if year < YEAR_PIVOT else 1900

    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        return date(year, month, 1) + timedelta(days=day - 1)
    except (ValueError, OverflowError) as e:
        raise DateFormatError(f"date out of range: {text}") from e


# ── Source handling ─────────────────────────────────────


def decode_legacy(data: bytes) -> str:
    """Decode bytes from an ETC export (cp932) to text.

    Invalid byte sequences become U+FFFD so one corrupt cell does not cost
    the rest of the file; the affected rows usually fail validation later.
    """
    text = data.decode(LEGACY_ENCODING, errors="replace")
    # cp932 has no mapping for U+FFFD, so any occurrence is a replacement
    replaced = text.count("\ufffd")
    if replaced:
        logger.warning(
            "Replaced %d undecodable %s sequence(s) with U+FFFD", replaced, LEGACY_ENCODING,
        )
    return text


def read_legacy_text(file_path: Path | str) -> str:
    """Read an ETC export from disk and decode it to text."""
    try:
        data = Path(file_path).read_bytes()
    except OSError as e:
        raise InputSourceError(f"failed to open file: {e}") from e
    return decode_legacy(data)


def _source_text(source) -> str:
    if source is None:
        raise InputSourceError("reader cannot be None")
    if hasattr(source, "read"):
        try:
            source = source.read()
        except (OSError, UnicodeDecodeError) as e:
            raise InputSourceError(f"failed to read CSV: {e}") from e
    if isinstance(source, (bytes, bytearray)):
        try:
            source = bytes(source).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise InputSourceError(f"failed to decode UTF-8 input: {e}") from e
    if not isinstance(source, str):
        raise InputSourceError(f"unsupported CSV source: {type(source).__name__}")
    return source.removeprefix("\ufeff")


def read_csv_rows(source) -> list[list[str]]:
    """Tokenize CSV text / stream into rows, dropping blank lines.

    Rows may have differing numbers of cells; callers decide what a short
    or long row means.

    Raises:
        InputSourceError: If the source is None or unreadable.
        CsvFormatError: If the csv module rejects the token stream.
    """
    text = _source_text(source)
    try:
        return [row for row in csv.reader(io.StringIO(text, newline="")) if row]
    except csv.Error as e:
        raise CsvFormatError(f"failed to read CSV: {e}") from e
