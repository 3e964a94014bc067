"""Summary ETC CSV parser (7 columns, already simplified).

Format: 日付,入口IC,出口IC,路線,車種,金額,カード番号
- optional header, recognised by "日付" in the first cell
- ISO dates (YYYY-MM-DD), plain integer amounts
- UTF-8 text

Unlike the detailed export parser this format is strict: every row must
have exactly 7 fields and pass validation, and the first bad row aborts
the parse with the line number in the message.
"""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

from .base import (
    BaseParser,
    CsvFormatError,
    DateFormatError,
    EmptyInputError,
    InputSourceError,
    MissingFieldError,
    NoDataRowsError,
    NumericFormatError,
    RecordError,
    SimpleRecord,
    parse_int,
    read_csv_rows,
)

FIELDS_PER_ROW = 7
HEADER_FIRST_CELL = "日付"
MIN_DATE = date(2000, 1, 1)

_REQUIRED = (
    ("entry_ic", "entry IC"),
    ("exit_ic", "exit IC"),
    ("route", "route"),
    ("vehicle_type", "vehicle type"),
    ("card_number", "card number"),
)


def validate_simple_record(record: SimpleRecord, today: date | None = None) -> None:
    """Validate a summary record.

    Raises:
        MissingFieldError: A required text field is empty.
        RecordError: Negative amount, future date, or date before 2000.
    """
    for attr, label in _REQUIRED:
        if not getattr(record, attr):
            raise MissingFieldError(f"{label} cannot be empty", field=attr)

    if record.amount < 0:
        raise RecordError("amount cannot be negative", field="amount")

    today = today or date.today()
    if record.date > today:
        raise RecordError("date cannot be in the future", field="date")
    if record.date < MIN_DATE:
        raise RecordError("date is too old (before year 2000)", field="date")


class SimpleCsvParser(BaseParser):
    """Parse the 7-column summary CSV into SimpleRecords."""

    def parse_file(self, file_path: Path | str) -> list[SimpleRecord]:
        try:
            text = Path(file_path).read_text(encoding="utf-8-sig")
        except OSError as e:
            raise InputSourceError(f"failed to open file: {e}") from e
        return self.parse(text)

    def parse(self, source) -> list[SimpleRecord]:
        rows = read_csv_rows(source)
        for idx, row in enumerate(rows):
            if len(row) != FIELDS_PER_ROW:
                raise CsvFormatError(
                    f"failed to read CSV: line {idx + 1}: wrong number of fields "
                    f"({len(row)}, expected {FIELDS_PER_ROW})"
                )
        if not rows:
            raise EmptyInputError("CSV file is empty")

        start_index = 1 if rows[0][0] == HEADER_FIRST_CELL else 0
        if len(rows) <= start_index:
            raise NoDataRowsError("no data records found")

        return self.process_rows(rows, start_index)

    def process_rows(self, rows: list[list[str]], start_index: int) -> list[SimpleRecord]:
        """Convert and validate rows[start_index:]; the first failure aborts."""
        records: list[SimpleRecord] = []
        for idx in range(start_index, len(rows)):
            row = rows[idx]
            line = idx + 1
            try:
                parsed_date = datetime.strptime(row[0], "%Y-%m-%d").date()
            except ValueError as e:
                raise DateFormatError(
                    f"invalid date format at line {line}: {e}", field="date",
                ) from e
            try:
                amount = parse_int(row[5])
            except ValueError as e:
                raise NumericFormatError(
                    f"invalid amount at line {line}: {e}", field="amount",
                ) from e

            record = SimpleRecord(
                date=parsed_date,
                entry_ic=row[1],
                exit_ic=row[2],
                route=row[3],
                vehicle_type=row[4],
                amount=amount,
                card_number=row[6],
            )
            try:
                validate_simple_record(record)
            except RecordError as e:
                raise type(e)(f"validation error at line {line}: {e}", field=e.field) from e
            records.append(record)
        return records
