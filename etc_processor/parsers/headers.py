"""Header detection and row mapping for detailed ETC usage exports.

Exports from different periods and portals spell the same column
differently: （入）/（出） vs （自）/（至）, full-width vs half-width
parentheses, ＩＣ vs IC. Each logical field therefore carries a list of
candidate header names, tried in priority order.

Files without a header row fall back to the fixed column order of the
first-generation export (positional mode).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .base import (
    NumericFormatError,
    TooFewFieldsError,
    UsageRecord,
    field_at,
    parse_amount,
    parse_vehicle_class,
)

# A first row containing any of these is treated as a header
HEADER_KEYWORDS: tuple[str, ...] = ("利用年月日", "時刻", "利用IC", "料金", "カード番号")

HEADER_CANDIDATES: dict[str, tuple[str, ...]] = {
    "entry_date": ("利用年月日（入）", "利用年月日(入)", "利用年月日（自）", "入口日付"),
    "entry_time": ("時刻（入）", "時刻(入)", "時分（自）", "入口時刻"),
    "exit_date": ("利用年月日（出）", "利用年月日(出)", "利用年月日（至）", "出口日付"),
    "exit_time": ("時刻（出）", "時刻(出)", "時分（至）", "出口時刻"),
    "entry_ic": ("利用IC（入）", "利用IC(入)", "利用ＩＣ（自）", "入口IC", "入口"),
    "exit_ic": ("利用IC（出）", "利用IC(出)", "利用ＩＣ（至）", "出口IC", "出口"),
    "route_info": ("経路情報", "路線", "経路"),
    "normal_amount": ("割引前料金", "通行料金", "通常料金"),
    "discount_amount": ("ＥＴＣ割引額", "ETC割引額", "割引額"),
    "toll_amount": ("通行料金", "ETC料金", "料金"),
    "post_payment_amount": ("後納料金", "後払料金"),
    "vehicle_class": ("車種", "車両区分", "車種区分"),
    "vehicle_number": ("車両番号", "ナンバー", "車番"),
    "card_number": ("ＥＴＣカード番号", "ETCカード番号", "カード番号", "カード"),
    "notes": ("備考", "メモ", "注記"),
}

_TEXT_FIELDS = (
    "entry_date", "entry_time", "exit_date", "exit_time",
    "entry_ic", "exit_ic", "route_info",
    "vehicle_number", "card_number", "notes",
)


def is_header_row(row: list[str]) -> bool:
    return any(keyword in cell for cell in row for keyword in HEADER_KEYWORDS)


def build_header_map(row: list[str]) -> dict[str, int]:
    """Map exact header cell text to its column index.

    A repeated header name resolves to its last occurrence.
    """
    return {cell: idx for idx, cell in enumerate(row)}


def resolve_header(row: list[str]) -> dict[str, int]:
    """Return the header map for row 0, or {} if it is a data row."""
    if is_header_row(row):
        return build_header_map(row)
    return {}


def _amount_or_zero(text: str) -> int:
    if not text:
        return 0
    try:
        return parse_amount(text)
    except NumericFormatError:
        return 0


class RowMapper(ABC):
    """Turns one CSV row into a UsageRecord."""

    @abstractmethod
    def map_row(self, row: list[str]) -> UsageRecord:
        """Map a row. Raises TooFewFieldsError if the row cannot be mapped."""


class HeaderRowMapper(RowMapper):
    """Map rows by header name, tolerating alternate header spellings.

    Args:
        header_map: Header cell text -> column index, from build_header_map().
    """

    def __init__(self, header_map: dict[str, int]):
        self.header_map = header_map

    def lookup(self, row: list[str], field: str) -> str:
        """First candidate header for field that exists and is inside row."""
        for name in HEADER_CANDIDATES[field]:
            idx = self.header_map.get(name)
            if idx is not None and idx < len(row):
                return row[idx]
        return ""

    def map_row(self, row: list[str]) -> UsageRecord:
        values: dict[str, object] = {f: self.lookup(row, f) for f in _TEXT_FIELDS}

        values["normal_amount"] = _amount_or_zero(self.lookup(row, "normal_amount"))
        values["discount_amount"] = _amount_or_zero(self.lookup(row, "discount_amount"))

        toll_amount = _amount_or_zero(self.lookup(row, "toll_amount"))
        # 後納料金 replaces the charged amount, but only when actually present
        post_payment = _amount_or_zero(self.lookup(row, "post_payment_amount"))
        if post_payment != 0:
            toll_amount = post_payment
        values["toll_amount"] = toll_amount

        values["vehicle_class"] = parse_vehicle_class(self.lookup(row, "vehicle_class"))

        return UsageRecord(**values)


class PositionalRowMapper(RowMapper):
    """Map rows of header-less exports by fixed column position.

    Columns: 0 entry date, 1 entry time, 2 exit date, 3 exit time,
    4 entry IC, 5 exit IC, 6 route, 7 toll amount, 8 normal amount,
    9 discount, 10 mileage, 11 vehicle class, 12 vehicle number,
    13 card number, 14 notes. Extra cells are ignored.
    """

    MIN_FIELDS = 13

    def map_row(self, row: list[str]) -> UsageRecord:
        if len(row) < self.MIN_FIELDS:
            raise TooFewFieldsError(
                f"too few fields: {len(row)} < {self.MIN_FIELDS}", field="row",
            )
        return UsageRecord(
            entry_date=row[0],
            entry_time=row[1],
            exit_date=row[2],
            exit_time=row[3],
            entry_ic=row[4],
            exit_ic=row[5],
            route_info=field_at(row, 6),
            toll_amount=_amount_or_zero(field_at(row, 7)),
            normal_amount=_amount_or_zero(field_at(row, 8)),
            discount_amount=_amount_or_zero(field_at(row, 9)),
            mileage=_amount_or_zero(field_at(row, 10)),
            vehicle_class=parse_vehicle_class(field_at(row, 11)),
            vehicle_number=field_at(row, 12),
            card_number=field_at(row, 13),
            notes=field_at(row, 14),
        )


def select_row_mapper(header_map: dict[str, int]) -> RowMapper:
    """Pick the mapping strategy once per batch."""
    if header_map:
        return HeaderRowMapper(header_map)
    return PositionalRowMapper()
