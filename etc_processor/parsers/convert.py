"""Convert detailed usage records to the simplified stored shape."""

from __future__ import annotations

from .base import (
    DateFormatError,
    SimpleRecord,
    UnresolvableDateError,
    UsageRecord,
    parse_date,
)


def resolve_date(record: UsageRecord):
    """Exit date if it parses, otherwise entry date.

    Raises:
        UnresolvableDateError: If neither date parses (empty counts as
            unparsable here).
    """
    try:
        return parse_date(record.exit_date)
    except DateFormatError:
        pass
    try:
        return parse_date(record.entry_date)
    except DateFormatError as e:
        raise UnresolvableDateError(
            f"no usable date (exit={record.exit_date!r}, entry={record.entry_date!r})",
            field="date",
        ) from e


def resolve_amount(record: UsageRecord) -> int:
    """Charged amount, falling back to the pre-discount amount when zero.

    Refund rows carry negative amounts; the stored amount is always >= 0.
    """
    amount = record.toll_amount
    if amount == 0:
        amount = record.normal_amount
    return abs(amount)


def convert_to_simple(record: UsageRecord) -> SimpleRecord:
    return SimpleRecord(
        date=resolve_date(record),
        entry_ic=record.entry_ic,
        exit_ic=record.exit_ic,
        route=record.route_info,
        vehicle_type=f"Class {record.vehicle_class}",
        amount=resolve_amount(record),
        card_number=record.card_number,
    )
