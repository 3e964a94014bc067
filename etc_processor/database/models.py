"""Dataclass models matching the SQLite schema.

Fields match column names exactly. Primary keys are TEXT (uuid4 strings).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from etc_processor.parsers.base import SimpleRecord


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoredRecord:
    account_id: str
    date: str              # YYYY-MM-DD
    amount: int            # always >= 0
    card_number: str
    entry_ic: str = ""
    exit_ic: str = ""
    route: str = ""
    vehicle_type: str = ""
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)

    @classmethod
    def from_simple(cls, account_id: str, record: SimpleRecord) -> StoredRecord:
        return cls(
            account_id=account_id,
            date=record.date.isoformat(),
            amount=record.amount,
            card_number=record.card_number,
            entry_ic=record.entry_ic,
            exit_ic=record.exit_ic,
            route=record.route,
            vehicle_type=record.vehicle_type,
        )
