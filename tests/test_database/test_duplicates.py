"""Tests for in-batch duplicate detection."""

from etc_processor.database.dedup import compute_dedup_key, count_duplicates
from etc_processor.parsers.base import UsageRecord


def _record(**overrides) -> UsageRecord:
    defaults = dict(
        entry_date="25/07/01", entry_time="08:10",
        exit_date="25/07/01", exit_time="08:45",
        toll_amount=1200, card_number="1111",
    )
    defaults.update(overrides)
    return UsageRecord(**defaults)


class TestDedupKey:
    def test_format(self):
        assert compute_dedup_key(_record()) == "25/07/01_08:10_25/07/01_08:45_1200_1111"

    def test_card_number_distinguishes(self):
        assert compute_dedup_key(_record()) != compute_dedup_key(_record(card_number="2222"))

    def test_ignores_non_key_fields(self):
        assert compute_dedup_key(_record()) == compute_dedup_key(
            _record(entry_ic="東京", notes="x", normal_amount=1500)
        )


class TestCountDuplicates:
    def test_three_identical(self):
        report = count_duplicates([_record(), _record(), _record()])
        assert report.total == 3
        assert report.duplicate_count == 2
        assert report.duplicate_indices == [1, 2]

    def test_interleaved(self):
        records = [_record(), _record(toll_amount=900), _record(), _record(toll_amount=900)]
        report = count_duplicates(records)
        assert report.duplicate_indices == [2, 3]
        assert report.counts[compute_dedup_key(_record())] == 2

    def test_no_duplicates(self):
        report = count_duplicates([_record(), _record(card_number="2222")])
        assert report.duplicate_count == 0

    def test_empty(self):
        report = count_duplicates([])
        assert report.total == 0
        assert report.duplicate_count == 0
