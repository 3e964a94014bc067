"""Batch processing service: parse → validate/convert → store.

This is the request surface a transport layer (gRPC, HTTP, CLI) calls:
- process_csv_file:  detailed export on disk (cp932)
- process_csv_data:  detailed export as text
- validate_csv_data: parse + validate + count duplicates, nothing stored
- health_check

Per-record failures never abort a batch. They are counted in
ProcessingStats and described, in input order, in the errors list. Only
input that cannot be parsed at all fails the call.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from etc_processor.database.dedup import compute_dedup_key, count_duplicates
from etc_processor.database.repository import StorageError
from etc_processor.parsers.base import ParseError, RecordError, SimpleRecord, UsageRecord
from etc_processor.parsers.convert import convert_to_simple
from etc_processor.parsers.etc_csv import EtcCsvParser, ParseResult

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
SERVICE_NAME = "etc_data_processor"


class InvalidCsvError(Exception):
    """CSV text passed by a caller could not be parsed at all."""


class CancellationError(Exception):
    """Processing stopped cooperatively before the batch finished."""

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Processing cancelled at record {index}")


class TollStore(Protocol):
    def save(self, account_id: str, record: SimpleRecord) -> object: ...


@dataclass
class ProcessingStats:
    total: int = 0
    saved: int = 0
    skipped: int = 0
    errored: int = 0


@dataclass
class ProcessResponse:
    success: bool
    message: str
    stats: ProcessingStats
    errors: list[str] = field(default_factory=list)


@dataclass
class ValidationIssue:
    line_number: int
    field: str
    message: str
    record_data: str = ""


@dataclass
class ValidationResponse:
    is_valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    duplicate_count: int = 0
    total_records: int = 0


@dataclass
class HealthStatus:
    status: str
    version: str
    timestamp: int
    details: dict[str, str] = field(default_factory=dict)


def process_records(
    records: list[UsageRecord],
    account_id: str,
    skip_duplicates: bool,
    store: TollStore | None,
    cancel_event: threading.Event | None = None,
) -> tuple[ProcessingStats, list[str]]:
    """Convert and store records one by one.

    Args:
        records: Parsed usage records, in input order.
        account_id: Account the records are stored under.
        skip_duplicates: Skip a record whose dedup key was already saved
            earlier in this run.
        store: Storage collaborator; None means convert only (dry run).
        cancel_event: Checked before each record. Once set, the current
            and remaining records are counted as errored and not attempted.

    Returns:
        (stats, errors) where errors are human-readable diagnostics.
    """
    stats = ProcessingStats(total=len(records))
    errors: list[str] = []
    processed_keys: set[str] = set()

    for i, record in enumerate(records):
        if cancel_event is not None and cancel_event.is_set():
            errors.append(str(CancellationError(i)))
            stats.errored += len(records) - i
            logger.warning("Batch cancelled with %d record(s) left", len(records) - i)
            break

        key = compute_dedup_key(record)
        if skip_duplicates and key in processed_keys:
            stats.skipped += 1
            continue

        try:
            simple = convert_to_simple(record)
        except RecordError as e:
            errors.append(f"Record {i + 1}: conversion failed: {e}")
            stats.errored += 1
            logger.warning("Record %d: conversion failed: %s", i + 1, e)
            continue

        if store is not None:
            try:
                store.save(account_id, simple)
            except Exception as e:
                err = e if isinstance(e, StorageError) else StorageError(str(e))
                errors.append(f"Record {i + 1}: save failed: {err}")
                stats.errored += 1
                logger.warning("Record %d: save failed: %s", i + 1, err)
                continue

        processed_keys.add(key)
        stats.saved += 1

    logger.info(
        "Batch done: total=%d saved=%d skipped=%d errored=%d",
        stats.total, stats.saved, stats.skipped, stats.errored,
    )
    return stats, errors


def _rejected_diagnostics(result: ParseResult) -> list[str]:
    return [f"Line {row.line_number}: skipped: {row.error}" for row in result.rejected]


class DataProcessorService:
    """Process and validate ETC usage CSVs.

    Args:
        store: Storage collaborator (e.g. Repository). None disables saving.
        parser: Detailed export parser; defaults to EtcCsvParser().
    """

    def __init__(self, store: TollStore | None = None, parser: EtcCsvParser | None = None):
        self.store = store
        self.parser = parser or EtcCsvParser()

    def process_csv_file(
        self,
        file_path: Path | str,
        account_id: str,
        skip_duplicates: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ProcessResponse:
        """Process an export file. Parse failures come back as success=False."""
        try:
            result = self.parser.parse_file(file_path)
        except ParseError as e:
            logger.error("Failed to parse %s: %s", file_path, e)
            return ProcessResponse(
                success=False,
                message=f"Failed to parse CSV file: {e}",
                stats=ProcessingStats(),
                errors=[str(e)],
            )

        stats, errors = process_records(
            result.records, account_id, skip_duplicates, self.store, cancel_event,
        )
        return ProcessResponse(
            success=stats.saved > 0,
            message=f"Processed {stats.total} records from file",
            stats=stats,
            errors=_rejected_diagnostics(result) + errors,
        )

    def process_csv_data(
        self,
        csv_data: str,
        account_id: str,
        skip_duplicates: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ProcessResponse:
        """Process export text.

        Raises:
            InvalidCsvError: If the text cannot be parsed at all.
        """
        try:
            result = self.parser.parse(csv_data)
        except ParseError as e:
            raise InvalidCsvError(f"invalid CSV format: {e}") from e

        stats, errors = process_records(
            result.records, account_id, skip_duplicates, self.store, cancel_event,
        )
        return ProcessResponse(
            success=stats.saved > 0,
            message=f"Processed {stats.total} records",
            stats=stats,
            errors=_rejected_diagnostics(result) + errors,
        )

    def validate_csv_data(self, csv_data: str, account_id: str = "") -> ValidationResponse:
        """Parse and validate without saving; report duplicates too."""
        try:
            result = self.parser.parse(csv_data)
        except ParseError as e:
            return ValidationResponse(
                is_valid=False,
                errors=[ValidationIssue(line_number=0, field="csv", message=str(e))],
                total_records=0,
            )

        issues = [
            ValidationIssue(
                line_number=row.line_number,
                field=row.error.field,
                message=str(row.error),
                record_data=repr(row.record) if row.record is not None else ",".join(row.raw),
            )
            for row in result.rows
            if row.error is not None
        ]
        records = result.records
        report = count_duplicates(records)
        return ValidationResponse(
            is_valid=not issues,
            errors=issues,
            duplicate_count=report.duplicate_count,
            total_records=len(records),
        )

    def health_check(self) -> HealthStatus:
        return HealthStatus(
            status="healthy",
            version=VERSION,
            timestamp=int(time.time()),
            details={"service": SERVICE_NAME, "uptime": "running"},
        )
