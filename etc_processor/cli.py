"""CLI entry point for the ETC data processor.

Commands:
    etc-processor process FILE --account ID [--skip-duplicates]
                                         Parse a cp932 export and store it
    etc-processor process-data FILE --account ID [--skip-duplicates]
                                         Same, for an export already in UTF-8
    etc-processor validate FILE [--encoding legacy|utf-8]
                                         Validate only, nothing is stored
    etc-processor records [--account ID] List stored records
    etc-processor import-summary FILE --account ID
                                         Store a 7-column summary CSV
    etc-processor watch --account ID [--skip-duplicates]
                                         Start the drop-folder watcher
    etc-processor health                 Print service health
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def _setup_logging(config=None) -> None:
    """Configure logging from ETC_LOG_LEVEL, falling back to the config file."""
    level = os.environ.get("ETC_LOG_LEVEL")
    if not level:
        level = config.log_level if config is not None else "INFO"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load processor config (ETC_CONFIG or config/processor.yaml)."""
    from etc_processor.config import Config

    return Config()


def _get_repo(config):
    """Create a Repository on the configured database with migrations applied."""
    from etc_processor.database.repository import Repository

    repo = Repository(db_path=config.database_path)
    repo.apply_migrations()
    return repo


def _get_service(repo):
    from etc_processor.service.processor import DataProcessorService

    return DataProcessorService(store=repo)


def _resolve_account(args: argparse.Namespace, config) -> str | None:
    return getattr(args, "account", None) or config.default_account_id


def _print_response(response) -> None:
    stats = response.stats
    print(response.message)
    print(
        f"  total={stats.total} saved={stats.saved}"
        f" skipped={stats.skipped} errored={stats.errored}"
    )
    for err in response.errors:
        print(f"  {err}")


# ── Command handlers ─────────────────────────────────────


def cmd_process(args: argparse.Namespace) -> int:
    """Process a cp932 export file and store its records."""
    config = _get_config()
    account_id = _resolve_account(args, config)
    if not account_id:
        print("Error: --account is required (or set default_account_id)")
        return 1

    filepath = args.file.resolve()
    if not filepath.exists():
        print(f"Error: File not found: {filepath}")
        return 1

    repo = _get_repo(config)
    try:
        service = _get_service(repo)
        response = service.process_csv_file(
            filepath, account_id,
            skip_duplicates=args.skip_duplicates or config.skip_duplicates,
        )
        _print_response(response)
        return 0 if response.success else 1
    finally:
        repo.close()


def cmd_process_data(args: argparse.Namespace) -> int:
    """Process a UTF-8 export through the text entry point."""
    from etc_processor.service.processor import InvalidCsvError

    config = _get_config()
    account_id = _resolve_account(args, config)
    if not account_id:
        print("Error: --account is required (or set default_account_id)")
        return 1

    try:
        csv_data = args.file.read_text(encoding="utf-8-sig")
    except OSError as e:
        print(f"Error: {e}")
        return 1

    repo = _get_repo(config)
    try:
        service = _get_service(repo)
        try:
            response = service.process_csv_data(
                csv_data, account_id,
                skip_duplicates=args.skip_duplicates or config.skip_duplicates,
            )
        except InvalidCsvError as e:
            print(f"Error: {e}")
            return 1
        _print_response(response)
        return 0 if response.success else 1
    finally:
        repo.close()


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate an export without storing anything."""
    from etc_processor.parsers.base import ParseError, read_legacy_text
    from etc_processor.service.processor import DataProcessorService

    try:
        if args.encoding == "legacy":
            csv_data = read_legacy_text(args.file)
        else:
            csv_data = args.file.read_text(encoding="utf-8-sig")
    except (ParseError, OSError) as e:
        print(f"Error: {e}")
        return 1

    response = DataProcessorService().validate_csv_data(csv_data)
    print(
        f"{args.file.name}: {'valid' if response.is_valid else 'invalid'}"
        f" (records={response.total_records},"
        f" duplicates={response.duplicate_count})"
    )
    for issue in response.errors:
        print(f"  line {issue.line_number} [{issue.field}]: {issue.message}")
    return 0 if response.is_valid else 1


def cmd_records(args: argparse.Namespace) -> int:
    """List stored records, optionally for one account."""
    config = _get_config()
    repo = _get_repo(config)
    try:
        records = repo.get_records(account_id=args.account)
        if not records:
            print("No records found.")
            return 0

        for rec in records:
            print(
                f"  {rec.date}  {rec.entry_ic:<12} -> {rec.exit_ic:<12}"
                f"  {rec.vehicle_type:<8} {rec.amount:>7,}  [{rec.account_id}]"
            )
        print(f"\n{len(records)} records")
        return 0
    finally:
        repo.close()


def cmd_import_summary(args: argparse.Namespace) -> int:
    """Store a 7-column summary CSV in one transaction; any bad row aborts it."""
    from etc_processor.database.repository import StorageError
    from etc_processor.parsers.base import ParseError, RecordError
    from etc_processor.parsers.simple_csv import SimpleCsvParser

    config = _get_config()
    account_id = _resolve_account(args, config)
    if not account_id:
        print("Error: --account is required (or set default_account_id)")
        return 1

    try:
        records = SimpleCsvParser().parse_file(args.file)
    except (ParseError, RecordError) as e:
        print(f"Error: {e}")
        return 1

    repo = _get_repo(config)
    try:
        stored = repo.save_many(account_id, records)
    except StorageError as e:
        print(f"Error: {e}")
        return 1
    else:
        print(f"{args.file.name}: saved {len(stored)} records")
        return 0
    finally:
        repo.close()


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the drop-folder watcher."""
    from etc_processor.watcher.observer import FileWatcher

    config = _get_config()
    account_id = _resolve_account(args, config)
    if not account_id:
        print("Error: --account is required (or set default_account_id)")
        return 1

    repo = _get_repo(config)
    watcher = FileWatcher(
        watch_dir=config.watch_dir,
        service=_get_service(repo),
        account_id=account_id,
        skip_duplicates=args.skip_duplicates or config.skip_duplicates,
        stability_seconds=config.stability_seconds,
    )

    print(f"Watching {watcher.watch_dir} for ETC exports... (Ctrl+C to stop)")
    watcher.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
    finally:
        watcher.stop()
        repo.close()

    return 0


def cmd_health(args: argparse.Namespace) -> int:
    """Print service health."""
    from etc_processor.service.processor import DataProcessorService

    health = DataProcessorService().health_check()
    print(f"{health.details.get('service')}: {health.status} (version {health.version})")
    for key, value in sorted(health.details.items()):
        print(f"  {key}: {value}")
    return 0 if health.status == "healthy" else 1


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "process": cmd_process,
    "process-data": cmd_process_data,
    "validate": cmd_validate,
    "records": cmd_records,
    "import-summary": cmd_import_summary,
    "watch": cmd_watch,
    "health": cmd_health,
}


def main(argv: list[str] | None = None):
    from etc_processor.config import ConfigError

    parser = argparse.ArgumentParser(
        prog="etc-processor",
        description="ETC toll usage CSV processor",
    )
    subparsers = parser.add_subparsers(dest="command")

    # process
    process_p = subparsers.add_parser("process", help="Process a cp932 ETC export file")
    process_p.add_argument("file", type=Path, help="ETC usage CSV export")
    process_p.add_argument("--account", help="Account ID to store records under")
    process_p.add_argument("--skip-duplicates", action="store_true",
                           help="Skip repeated trips within the file")

    # process-data
    data_p = subparsers.add_parser("process-data", help="Process a UTF-8 ETC export")
    data_p.add_argument("file", type=Path, help="ETC usage CSV, UTF-8 encoded")
    data_p.add_argument("--account", help="Account ID to store records under")
    data_p.add_argument("--skip-duplicates", action="store_true",
                        help="Skip repeated trips within the file")

    # validate
    validate_p = subparsers.add_parser("validate", help="Validate an export without storing")
    validate_p.add_argument("file", type=Path, help="ETC usage CSV export")
    validate_p.add_argument("--encoding", choices=["legacy", "utf-8"], default="legacy",
                            help="File encoding (legacy = cp932)")

    # records
    records_p = subparsers.add_parser("records", help="List stored records")
    records_p.add_argument("--account", help="Only records for this account")

    # import-summary
    summary_p = subparsers.add_parser("import-summary", help="Store a 7-column summary CSV")
    summary_p.add_argument("file", type=Path, help="Summary CSV, UTF-8 encoded")
    summary_p.add_argument("--account", help="Account ID to store records under")

    # watch
    watch_p = subparsers.add_parser("watch", help="Start drop-folder watcher")
    watch_p.add_argument("--account", help="Account ID to store records under")
    watch_p.add_argument("--skip-duplicates", action="store_true",
                         help="Skip repeated trips within each file")

    # health
    subparsers.add_parser("health", help="Print service health")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = _get_config()
    try:
        config.validate()
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)
    _setup_logging(config)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
