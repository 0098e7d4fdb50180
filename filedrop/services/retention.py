"""Periodic deletion of aged-out files in the upload directory.

Best-effort disk reclamation, independent of queue state: any regular file whose
modification time is older than the retention window is deleted. Per-file
failures are counted and the sweep continues.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from filedrop.config import CLEANUP_SETTINGS
from filedrop.utils import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(slots=True)
class SweepResult:
    scanned: int = 0
    deleted: int = 0
    failed: int = 0


class RetentionSweeper:
    def __init__(
        self,
        upload_dir: str | Path,
        *,
        keep_days: Optional[float] = None,
        interval_hours: Optional[float] = None,
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.keep_days = float(CLEANUP_SETTINGS["keep_files_for_days"] if keep_days is None else keep_days)
        self.interval_hours = float(
            CLEANUP_SETTINGS["auto_cleanup_interval_hours"] if interval_hours is None else interval_hours
        )
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def max_age_seconds(self) -> float:
        return self.keep_days * SECONDS_PER_DAY

    def sweep(self, now: Optional[float] = None) -> SweepResult:
        now_ts = time.time() if now is None else now
        result = SweepResult()
        try:
            entries = list(self.upload_dir.iterdir())
        except OSError as e:
            logger.error("Auto cleanup error", path=str(self.upload_dir), error=str(e))
            return result

        for entry in entries:
            result.scanned += 1
            try:
                if not entry.is_file():
                    continue
                if now_ts - entry.stat().st_mtime > self.max_age_seconds:
                    entry.unlink()
                    result.deleted += 1
            except OSError as e:
                result.failed += 1
                logger.debug("Cleanup skipped file", path=str(entry), error=str(e))

        if result.deleted > 0:
            logger.info(
                "Auto cleanup deleted old files",
                deleted=result.deleted,
                keep_days=self.keep_days,
            )
        if result.failed > 0:
            logger.warning("Auto cleanup failures", failed=result.failed)
        return result

    def start(self) -> None:
        if self.interval_hours <= 0:
            logger.info("Auto cleanup disabled")
            return
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="retention-sweeper", daemon=True)
        self._thread.start()
        logger.info("Auto cleanup scheduled", interval_hours=self.interval_hours, keep_days=self.keep_days)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _loop(self) -> None:
        interval_seconds = self.interval_hours * 60 * 60
        while not self._stop_event.is_set():
            try:
                self.sweep()
            except Exception as e:  # pragma: no cover
                logger.error("Auto cleanup loop error", error=str(e), exc_info=True)
            if self._stop_event.wait(interval_seconds):
                break


__all__ = ["RetentionSweeper", "SweepResult"]
