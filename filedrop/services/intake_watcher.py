"""
Intake watcher for the upload directory.

Uses the watchdog library to observe newly dropped files. A file is taken in
only once it is stable: size and mtime unchanged for a short quiescence window,
so half-copied files are never enqueued. Stable files are renamed to
'<epochMillis>___<originalName>' and enqueued through the JobService.

Names already carrying the '___' separator are treated as taken in and skipped;
this also covers files written by the upload endpoint and the watcher's own
renames.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from filedrop.config import WATCHER_SETTINGS
from filedrop.errors import FileDropError
from filedrop.models.job import JobRecord
from filedrop.services.job_service import JobService
from filedrop.utils import get_logger
from filedrop.utils.files import has_stored_marker

logger = get_logger(__name__)


@dataclass
class _Candidate:
    signature: Optional[tuple[int, int]] = None
    stable_since: float = 0.0


class IntakeEventHandler(FileSystemEventHandler):
    """Watchdog handler feeding new or changing files to the watcher."""

    def __init__(self, watcher: "IntakeWatcher") -> None:
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.track(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.track(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        dest = getattr(event, "dest_path", None)
        if dest and not event.is_directory:
            self.watcher.track(dest)


class IntakeWatcher:
    """Turns stable new files in the upload directory into pending jobs."""

    def __init__(
        self,
        service: JobService,
        *,
        stability_threshold: Optional[float] = None,
        poll_interval: Optional[float] = None,
        ignore_initial: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service = service
        self.upload_dir = service.upload_dir
        self.stability_threshold = float(
            WATCHER_SETTINGS["stability_threshold_seconds"] if stability_threshold is None else stability_threshold
        )
        self.poll_interval = float(WATCHER_SETTINGS["poll_interval_seconds"] if poll_interval is None else poll_interval)
        self.ignore_initial = bool(WATCHER_SETTINGS["ignore_initial"] if ignore_initial is None else ignore_initial)
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[Path, _Candidate] = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def should_process(self, path: Path) -> bool:
        if path.name.startswith("."):
            return False
        if path.parent.resolve() != self.upload_dir.resolve():
            return False
        if has_stored_marker(path.name):
            logger.debug("Skipping already processed file", file_name=path.name)
            return False
        return True

    def track(self, raw_path: str | Path) -> None:
        path = Path(raw_path)
        if not self.should_process(path):
            return
        with self._lock:
            self._pending.setdefault(path, _Candidate())

    def pending_paths(self) -> list[Path]:
        with self._lock:
            return list(self._pending)

    def check_pending(self) -> list[JobRecord]:
        """Take in every tracked file that has been quiet for the threshold."""
        now = self._clock()
        ready: list[Path] = []
        with self._lock:
            for path, candidate in list(self._pending.items()):
                try:
                    stat = path.stat()
                except FileNotFoundError:
                    self._pending.pop(path, None)
                    continue
                except OSError as e:
                    logger.error("File watcher error", path=str(path), error=str(e))
                    self._pending.pop(path, None)
                    continue
                signature = (stat.st_size, stat.st_mtime_ns)
                if signature != candidate.signature:
                    candidate.signature = signature
                    candidate.stable_since = now
                elif now - candidate.stable_since >= self.stability_threshold:
                    self._pending.pop(path, None)
                    ready.append(path)

        jobs = []
        for path in ready:
            job = self.process(path)
            if job is not None:
                jobs.append(job)
        return jobs

    def process(self, path: Path) -> Optional[JobRecord]:
        """Take one file in; errors are logged and do not stop observation."""
        try:
            return self.service.take_in(path)
        except (OSError, FileDropError) as e:
            logger.error("File watcher error", path=str(path), error=str(e))
            return None

    def scan_existing(self) -> None:
        for entry in sorted(self.upload_dir.iterdir()):
            if entry.is_file():
                self.track(entry)

    def start(self) -> None:
        if self.is_running:  # pragma: no cover
            return
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self._stop_event.clear()
        if not self.ignore_initial:
            self.scan_existing()

        self._observer = Observer()
        self._observer.schedule(IntakeEventHandler(self), str(self.upload_dir), recursive=False)
        self._observer.start()
        self._thread = threading.Thread(target=self._loop, name="intake-watcher", daemon=True)
        self._thread.start()
        logger.info("File watcher monitoring", path=str(self.upload_dir.resolve()))

    def stop(self) -> None:
        self._stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("File watcher stopped")

    def _loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            try:
                self.check_pending()
            except Exception as e:  # pragma: no cover
                logger.error("File watcher loop error", error=str(e), exc_info=True)


__all__ = ["IntakeWatcher", "IntakeEventHandler"]
