"""In-batch duplicate detection for ETC usage records.

Two rows are "the same trip" when entry/exit date and time, charged
amount, and card number all match. The card number is part of the key so
that two cards with coincidentally identical trips are not collapsed.

The key is used only for in-memory bookkeeping during one pass; it is
never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from etc_processor.parsers.base import UsageRecord


def compute_dedup_key(record: UsageRecord) -> str:
    """{entry_date}_{entry_time}_{exit_date}_{exit_time}_{toll_amount}_{card_number}."""
    return (
        f"{record.entry_date}_{record.entry_time}_"
        f"{record.exit_date}_{record.exit_time}_"
        f"{record.toll_amount}_{record.card_number}"
    )


@dataclass
class DuplicateReport:
    """Result of a single duplicate-counting pass."""
    total: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    duplicate_indices: list[int] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        """Occurrences beyond the first of each key."""
        return len(self.duplicate_indices)


def count_duplicates(records: list[UsageRecord]) -> DuplicateReport:
    """Count repeated keys in one linear pass, preserving input order."""
    report = DuplicateReport(total=len(records))
    for idx, record in enumerate(records):
        key = compute_dedup_key(record)
        report.counts[key] = report.counts.get(key, 0) + 1
        if report.counts[key] > 1:
            report.duplicate_indices.append(idx)
    return report
