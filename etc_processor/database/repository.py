"""Repository: persistence of converted ETC records in SQLite, raw SQL.

Implements the storage side of the batch processor (save one record,
succeed or raise StorageError) plus the read queries the CLI needs.
Connection management uses a single lazily opened connection with WAL
mode enabled.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from etc_processor.parsers.base import SimpleRecord

from .models import StoredRecord

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class StorageError(Exception):
    """Raised when a record cannot be persisted."""


_INSERT_RECORD = (
    "INSERT INTO etc_records"
    " (id, account_id, date, entry_ic, exit_ic, route,"
    "  vehicle_type, amount, card_number, created_at)"
    " VALUES (?,?,?,?,?,?,?,?,?,?)"
)


def _record_params(rec: StoredRecord) -> tuple:
    return (rec.id, rec.account_id, rec.date, rec.entry_ic,
            rec.exit_ic, rec.route, rec.vehicle_type, rec.amount,
            rec.card_number, rec.created_at)


class Repository:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── Migrations ──────────────────────────────────────────

    def apply_migrations(self, migrations_dir: Path = MIGRATIONS_DIR):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )
        self.conn.commit()

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version > current:
                try:
                    self.conn.execute("BEGIN")
                    # executescript auto-commits, so we split statements manually
                    sql_text = sql_file.read_text()
                    for statement in sql_text.split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    self.conn.commit()
                except Exception:
                    self.conn.rollback()
                    raise

    # ── Records ─────────────────────────────────────────────

    def save(self, account_id: str, record: SimpleRecord) -> StoredRecord:
        """Persist one converted record for an account.

        Raises:
            StorageError: If SQLite rejects the insert.
        """
        return self.insert_record(StoredRecord.from_simple(account_id, record))

    def save_many(
        self, account_id: str, records: list[SimpleRecord],
    ) -> list[StoredRecord]:
        """Persist a batch of records for an account atomically.

        Either every record is stored or none is.

        Raises:
            StorageError: If SQLite rejects any insert.
        """
        stored = [StoredRecord.from_simple(account_id, r) for r in records]
        try:
            self.conn.execute("BEGIN")
            self.conn.executemany(_INSERT_RECORD, [_record_params(r) for r in stored])
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StorageError(f"batch insert failed, nothing saved: {e}") from e
        return stored

    def insert_record(self, rec: StoredRecord) -> StoredRecord:
        try:
            self.conn.execute(_INSERT_RECORD, _record_params(rec))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StorageError(f"insert failed: {e}") from e
        return rec

    def get_record(self, record_id: str) -> StoredRecord | None:
        row = self.conn.execute(
            "SELECT * FROM etc_records WHERE id = ?", (record_id,)
        ).fetchone()
        return self._row_to_record(row) if row else None

    def get_records(self, account_id: str | None = None) -> list[StoredRecord]:
        if account_id is None:
            rows = self.conn.execute(
                "SELECT * FROM etc_records ORDER BY date, rowid"
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM etc_records WHERE account_id = ?"
                " ORDER BY date, rowid",
                (account_id,),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def count_records(self, account_id: str | None = None) -> int:
        if account_id is None:
            row = self.conn.execute("SELECT COUNT(*) FROM etc_records").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM etc_records WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        return row[0]

    # ── Row Converters ──────────────────────────────────────

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> StoredRecord:
        return StoredRecord(
            id=row["id"], account_id=row["account_id"],
            date=row["date"], amount=row["amount"],
            card_number=row["card_number"],
            entry_ic=row["entry_ic"], exit_ic=row["exit_ic"],
            route=row["route"], vehicle_type=row["vehicle_type"],
            created_at=row["created_at"],
        )
