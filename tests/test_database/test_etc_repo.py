"""Tests for the SQLite record repository."""

from datetime import date

import pytest

from etc_processor.database.models import StoredRecord
from etc_processor.database.repository import Repository, StorageError
from etc_processor.parsers.base import SimpleRecord


def _simple(**overrides) -> SimpleRecord:
    defaults = dict(
        date=date(2025, 7, 1), entry_ic="東京", exit_ic="横浜町田", route="",
        vehicle_type="Class 1", amount=1200, card_number="1234567890123456",
    )
    defaults.update(overrides)
    return SimpleRecord(**defaults)


class TestMigrations:
    def test_creates_table(self, repo):
        tables = {
            r[0] for r in repo.conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert "etc_records" in tables
        assert "schema_version" in tables

    def test_idempotent(self, repo):
        repo.apply_migrations()
        count = repo.conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert count == 1


class TestSave:
    def test_save_and_retrieve(self, repo):
        stored = repo.save("acct-1", _simple())
        found = repo.get_record(stored.id)
        assert found is not None
        assert found.account_id == "acct-1"
        assert found.date == "2025-07-01"
        assert found.amount == 1200
        assert found.entry_ic == "東京"
        assert found.vehicle_type == "Class 1"
        assert found.card_number == "1234567890123456"

    def test_each_save_is_a_new_row(self, repo):
        repo.save("acct-1", _simple())
        repo.save("acct-1", _simple())
        assert repo.count_records() == 2

    def test_negative_amount_rejected(self, repo):
        rec = StoredRecord(account_id="a", date="2025-07-01", amount=-1, card_number="c")
        with pytest.raises(StorageError):
            repo.insert_record(rec)
        assert repo.count_records() == 0

    def test_get_missing_record(self, repo):
        assert repo.get_record("nope") is None

    def test_save_without_schema_raises_storage_error(self):
        bare = Repository(":memory:")
        with pytest.raises(StorageError):
            bare.save("a", _simple())
        bare.close()


class TestSaveMany:
    def test_stores_all(self, repo):
        stored = repo.save_many("acct-1", [_simple(), _simple(amount=800)])
        assert len(stored) == 2
        assert repo.count_records("acct-1") == 2
        assert repo.get_record(stored[1].id).amount == 800

    def test_empty_batch(self, repo):
        assert repo.save_many("acct-1", []) == []
        assert repo.count_records() == 0

    def test_one_bad_record_stores_nothing(self, repo):
        batch = [_simple(), _simple(amount=-1), _simple()]
        with pytest.raises(StorageError, match="nothing saved"):
            repo.save_many("acct-1", batch)
        assert repo.count_records() == 0

    def test_connection_usable_after_failed_batch(self, repo):
        with pytest.raises(StorageError):
            repo.save_many("acct-1", [_simple(amount=-1)])
        repo.save("acct-1", _simple())
        assert repo.count_records() == 1


class TestQueries:
    def test_filter_by_account(self, repo):
        repo.save("a", _simple())
        repo.save("b", _simple())
        repo.save("a", _simple(date=date(2025, 6, 30)))
        records = repo.get_records(account_id="a")
        assert [r.date for r in records] == ["2025-06-30", "2025-07-01"]
        assert repo.count_records("a") == 2
        assert repo.count_records("b") == 1
        assert len(repo.get_records()) == 3

    def test_empty(self, repo):
        assert repo.get_records() == []
        assert repo.count_records() == 0


class TestStoredRecord:
    def test_from_simple(self):
        rec = StoredRecord.from_simple("acct", _simple(route="首都高速"))
        assert rec.date == "2025-07-01"
        assert rec.route == "首都高速"
        assert rec.id
        assert rec.created_at

    def test_ids_unique(self):
        a = StoredRecord.from_simple("acct", _simple())
        b = StoredRecord.from_simple("acct", _simple())
        assert a.id != b.id


class TestFileDatabase:
    def test_persists_across_connections(self, tmp_path):
        db_path = str(tmp_path / "etc.db")
        first = Repository(db_path)
        first.apply_migrations()
        first.save("acct", _simple())
        first.close()

        second = Repository(db_path)
        assert second.count_records() == 1
        second.close()
