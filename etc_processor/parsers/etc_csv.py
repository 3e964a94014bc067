"""Detailed ETC usage export parser.

Handles the 15-column "利用明細" export in every dialect seen so far:
- header row with （入）/（出） or （自）/（至） style column names
- no header row at all (fixed column order)

Parsing never aborts the batch for a bad row. Each row comes back as a
ParsedRow tagged with its outcome:
- accepted: mapped and valid
- invalid: mapped, but fails validate_record() (kept, error attached)
- rejected: could not be mapped (too few fields), no record

Only structural problems (empty input, header without data, unreadable or
malformed CSV) raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .base import (
    BaseParser,
    DateFormatError,
    EmptyInputError,
    InvalidDateError,
    MissingFieldError,
    NoDataRowsError,
    RecordError,
    UsageRecord,
    parse_date,
    read_csv_rows,
    read_legacy_text,
)
from .headers import RowMapper, resolve_header, select_row_mapper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedRow:
    """Outcome of parsing one CSV row."""
    line_number: int            # 1-based row number in the CSV (header included)
    raw: tuple[str, ...]
    record: UsageRecord | None
    error: RecordError | None = None

    @property
    def is_valid(self) -> bool:
        return self.record is not None and self.error is None

    @property
    def is_rejected(self) -> bool:
        return self.record is None


@dataclass
class ParseResult:
    rows: list[ParsedRow] = field(default_factory=list)
    has_header: bool = False

    @property
    def records(self) -> list[UsageRecord]:
        """Every mapped record in input order, valid or not."""
        return [r.record for r in self.rows if r.record is not None]

    @property
    def invalid(self) -> list[ParsedRow]:
        return [r for r in self.rows if r.record is not None and r.error is not None]

    @property
    def rejected(self) -> list[ParsedRow]:
        return [r for r in self.rows if r.record is None]


def validate_record(record: UsageRecord) -> None:
    """Check the minimal admissibility of a record.

    Raises:
        MissingFieldError: If the card number is empty.
        InvalidDateError: If a non-empty entry or exit date does not parse.
    """
    if not record.card_number:
        raise MissingFieldError("card number cannot be empty", field="card_number")

    for field_name, label in (("entry_date", "entry"), ("exit_date", "exit")):
        text = getattr(record, field_name)
        if not text:
            continue
        try:
            parse_date(text)
        except DateFormatError as e:
            raise InvalidDateError(f"invalid {label} date: {e}", field=field_name) from e


def ensure_records_available(rows: list[list[str]], start_index: int) -> None:
    """Raises NoDataRowsError unless rows has data at or after start_index."""
    if len(rows) <= start_index:
        raise NoDataRowsError("no data records found")


class EtcCsvParser(BaseParser):
    """Parse detailed ETC usage exports into tagged UsageRecords."""

    def parse_file(self, file_path: Path | str) -> ParseResult:
        """Parse an export from disk (cp932 encoded)."""
        return self.parse(read_legacy_text(file_path))

    def parse(self, source) -> ParseResult:
        """Parse CSV text, bytes (UTF-8), or a readable stream.

        Raises:
            InputSourceError: source is None or unreadable.
            CsvFormatError: the csv module rejects the input.
            EmptyInputError: no rows at all.
            NoDataRowsError: only a header row.
        """
        self.skipped_count = 0
        rows = read_csv_rows(source)
        if not rows:
            raise EmptyInputError("CSV file is empty")

        header_map = resolve_header(rows[0])
        start_index = 1 if header_map else 0
        ensure_records_available(rows, start_index)

        mapper = select_row_mapper(header_map)
        result = ParseResult(has_header=bool(header_map))
        for idx in range(start_index, len(rows)):
            parsed = self._parse_row(mapper, rows[idx], idx + 1)
            if parsed.is_rejected:
                self.skipped_count += 1
            result.rows.append(parsed)

        if self.skipped_count:
            logger.warning(
                "Rejected %d row(s) with too few fields for positional mapping",
                self.skipped_count,
            )
        invalid_count = len(result.invalid)
        if invalid_count:
            logger.warning("%d row(s) failed validation and were kept", invalid_count)
        return result

    @staticmethod
    def _parse_row(mapper: RowMapper, row: list[str], line_number: int) -> ParsedRow:
        try:
            record = mapper.map_row(row)
        except RecordError as e:
            return ParsedRow(line_number=line_number, raw=tuple(row), record=None, error=e)

        try:
            validate_record(record)
        except RecordError as e:
            return ParsedRow(line_number=line_number, raw=tuple(row), record=record, error=e)
        return ParsedRow(line_number=line_number, raw=tuple(row), record=record)
