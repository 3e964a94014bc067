"""File watcher: PollingObserver feeding ETC exports to the processor.

Watches a drop folder for new .csv exports, waits for file stability
(size+mtime stable), checks the file is complete, then hands it to
DataProcessorService.process_csv_file under the configured account.

Uses PollingObserver rather than inotify: drop folders often live on
network shares where inotify events are unreliable.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from watchdog.events import FileSystemEventHandler

from etc_processor.service.processor import (
    DataProcessorService,
    ProcessingStats,
    ProcessResponse,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv"}

DEFAULT_STABILITY_SECONDS = 10
DEFAULT_CHECK_INTERVAL = 2.0
DEFAULT_POLL_INTERVAL = 30


class FileStabilityError(Exception):
    """Raised when a file fails post-stability validation."""


def wait_for_stable(
    filepath: Path,
    stability_seconds: int = DEFAULT_STABILITY_SECONDS,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    max_wait: float = 300.0,
) -> None:
    """Wait until file size and mtime are stable for stability_seconds.

    Raises:
        TimeoutError: If file doesn't stabilize within max_wait.
    """
    prev_size = -1
    prev_mtime = -1.0
    stable_since: float | None = None
    start = time.monotonic()

    while True:
        if time.monotonic() - start > max_wait:
            raise TimeoutError(
                f"File did not stabilize within {max_wait}s: {filepath}"
            )

        stat = filepath.stat()
        if stat.st_size == prev_size and stat.st_mtime == prev_mtime:
            if stable_since is None:
                stable_since = time.monotonic()
            if time.monotonic() - stable_since >= stability_seconds:
                return
        else:
            stable_since = None

        prev_size = stat.st_size
        prev_mtime = stat.st_mtime
        time.sleep(check_interval)


def validate_file_completeness(filepath: Path) -> None:
    """CSV exports must be non-empty and end with a newline.

    Raises:
        FileStabilityError: If file appears incomplete.
    """
    with open(filepath, "rb") as f:
        f.seek(0, 2)
        size = f.tell()
        if size == 0:
            raise FileStabilityError(f"Empty CSV file: {filepath}")
        f.seek(size - 1)
        last_byte = f.read(1)
        if last_byte not in (b"\n", b"\r"):
            raise FileStabilityError(
                f"CSV file does not end with newline: {filepath}"
            )


def _error_response(message: str) -> ProcessResponse:
    return ProcessResponse(
        success=False, message=message, stats=ProcessingStats(), errors=[message],
    )


class FileWatcher(FileSystemEventHandler):
    """Watch a drop folder for ETC exports and process each one.

    Files are processed sequentially on the observer thread.

    Args:
        watch_dir: Directory to watch for new files.
        service: Processor that parses and stores each file.
        account_id: Account every dropped file is stored under.
        skip_duplicates: Passed through to process_csv_file.
        stability_seconds: Seconds of stability before processing.
        check_interval: Seconds between stability checks.
    """

    def __init__(
        self,
        watch_dir: Path,
        service: DataProcessorService,
        account_id: str,
        skip_duplicates: bool = False,
        stability_seconds: int = DEFAULT_STABILITY_SECONDS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
    ):
        self.watch_dir = Path(watch_dir)
        self.service = service
        self.account_id = account_id
        self.skip_duplicates = skip_duplicates
        self.stability_seconds = stability_seconds
        self.check_interval = check_interval
        self.cancel_event = threading.Event()
        self._observer = None

    def start(self) -> None:
        """Start watching the drop folder."""
        from watchdog.observers.polling import PollingObserver

        if not self.watch_dir.exists():
            self.watch_dir.mkdir(parents=True, exist_ok=True)

        self.cancel_event.clear()
        self._observer = PollingObserver(timeout=DEFAULT_POLL_INTERVAL)
        self._observer.schedule(self, str(self.watch_dir), recursive=False)
        self._observer.start()
        logger.info("Watching %s for ETC exports", self.watch_dir)

    def stop(self) -> None:
        """Stop watching; a batch in progress stops at its next record."""
        self.cancel_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("File watcher stopped")

    def on_created(self, event) -> None:
        if event.is_directory:
            return

        filepath = Path(event.src_path)
        if filepath.suffix.lower() not in SUPPORTED_EXTENSIONS:
            return

        logger.info("New file detected: %s", filepath.name)
        self._process_file(filepath)

    def _process_file(self, filepath: Path) -> ProcessResponse:
        """Wait for stability, validate, then process."""
        try:
            wait_for_stable(
                filepath,
                stability_seconds=self.stability_seconds,
                check_interval=self.check_interval,
            )
            validate_file_completeness(filepath)

            response = self.service.process_csv_file(
                filepath, self.account_id,
                skip_duplicates=self.skip_duplicates,
                cancel_event=self.cancel_event,
            )
            logger.info(
                "Processed %s: saved=%d, skipped=%d, errored=%d",
                filepath.name, response.stats.saved,
                response.stats.skipped, response.stats.errored,
            )
            return response

        except FileStabilityError as e:
            logger.error("File validation failed: %s", e)
            return _error_response(str(e))
        except TimeoutError as e:
            logger.error("File stability timeout: %s", e)
            return _error_response(str(e))
        except OSError as e:
            logger.error("Could not read %s: %s", filepath.name, e)
            return _error_response(str(e))
        except Exception as e:
            logger.exception("Unexpected error processing %s", filepath.name)
            return _error_response(str(e))
