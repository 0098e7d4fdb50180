"""Producer-side job operations: intake, listing, serving, completion.

Wraps the JobQueue and the upload directory. HTTP handlers, the intake watcher
and the upload endpoint all go through this service; none of them touch the
queue store directly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from filedrop.config import CLEANUP_SETTINGS, QUEUE_SETTINGS
from filedrop.errors import FileMissing
from filedrop.jobs.job_queue import JobQueue
from filedrop.models.job import JobRecord
from filedrop.utils import get_logger, log_business_event, format_file_size
from filedrop.utils.files import build_stored_name
from filedrop.utils.time import utc_now, epoch_millis, from_epoch_millis

logger = get_logger(__name__)


@dataclass(slots=True)
class DownloadTarget:
    job: JobRecord
    path: Path

    @property
    def download_name(self) -> str:
        return self.job.original_name

    def iter_bytes(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        with self.path.open("rb") as handle:
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk


class JobService:
    def __init__(
        self,
        queue: JobQueue,
        upload_dir: str | Path,
        *,
        delete_after_download: Optional[bool] = None,
        max_listing: Optional[int] = None,
    ) -> None:
        self.queue = queue
        self.upload_dir = Path(upload_dir)
        self.delete_after_download = bool(
            CLEANUP_SETTINGS["delete_after_download"] if delete_after_download is None else delete_after_download
        )
        self.max_listing = int(max_listing or QUEUE_SETTINGS["max_pending_listing"])  # type: ignore[arg-type]

    # ----------------------------- intake ----------------------------- #
    def allocate_stored_path(self, original_name: str, now: datetime | None = None) -> tuple[datetime, Path]:
        """Reserve a '<epochMillis>___<name>' path by creating it empty.

        Creation is exclusive, so concurrent intakes of the same name in the
        same millisecond cannot share a stored name: the loser bumps the
        millisecond stamp and tries again. The caller owns the empty file and
        must fill it, replace it, or remove it.
        """
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        created_ms = epoch_millis(now or utc_now())
        while True:
            target = self.upload_dir / build_stored_name(created_ms, original_name)
            try:
                with target.open("xb"):
                    pass
            except FileExistsError:
                created_ms += 1
                continue
            return from_epoch_millis(created_ms), target

    def register_stored_file(self, original_name: str, stored_path: Path, created_at: datetime) -> JobRecord:
        """Enqueue a file already placed at its stored path."""
        job = JobRecord(
            original_name=original_name,
            stored_name=stored_path.name,
            size=stored_path.stat().st_size,
            created_at=created_at,
        )
        self.queue.enqueue(job)
        log_business_event(
            "job_enqueued",
            {"job_id": job.id, "original_name": original_name, "size": job.size},
        )
        return job

    def take_in(self, path: Path, now: datetime | None = None) -> JobRecord:
        """Rename a freshly dropped file to its stored name and enqueue it.

        The rename happens before the job becomes visible.
        """
        original_name = path.name
        created_at, target = self.allocate_stored_path(original_name, now)
        try:
            # Replaces only the empty reservation made above
            os.replace(path, target)
        except OSError:
            target.unlink(missing_ok=True)
            raise
        job = self.register_stored_file(original_name, target, created_at)
        logger.info("File detected", original_name=original_name, size=format_file_size(job.size))
        return job

    # ----------------------------- serving ----------------------------- #
    def list_pending(self, limit: int) -> tuple[list[JobRecord], int]:
        limit = max(0, min(int(limit), self.max_listing))
        return self.queue.head(limit), self.queue.depth()

    def stream_download(self, job_id: str) -> DownloadTarget:
        """Resolve a pending job to its stored file.

        A job whose file has disappeared, or no longer has the recorded size, is
        evicted from the queue so it cannot poison later polls, then FileMissing
        is raised.
        """
        job = self.queue.find(job_id)
        path = self.upload_dir / job.stored_name
        if not path.is_file():
            self.queue.evict(job_id)
            logger.warning("Removed stale job", job_id=job_id, original_name=job.original_name)
            log_business_event("stale_job_evicted", {"job_id": job_id, "stored_name": job.stored_name})
            raise FileMissing(job_id, job.stored_name)

        actual = path.stat().st_size
        if actual != job.size:
            self.queue.evict(job_id)
            logger.warning("Removed job with altered file", job_id=job_id, expected=job.size, actual=actual)
            log_business_event("stale_job_evicted", {"job_id": job_id, "stored_name": job.stored_name, "reason": "size_changed"})
            raise FileMissing(job_id, job.stored_name)
        logger.info("File download served", job_id=job_id, original_name=job.original_name)
        return DownloadTarget(job=job, path=path)

    def complete_job(self, job_id: str, now: datetime | None = None) -> JobRecord:
        completed = self.queue.complete(job_id, now)
        if self.delete_after_download:
            self._delete_stored_file(completed)
        logger.info("Job completed", job_id=job_id, original_name=completed.original_name)
        log_business_event("job_completed", {"job_id": job_id, "original_name": completed.original_name})
        return completed

    def _delete_stored_file(self, job: JobRecord) -> None:
        path = self.upload_dir / job.stored_name
        try:
            path.unlink()
            logger.info("File deleted after download", original_name=job.original_name)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to delete file", original_name=job.original_name, error=str(e))

    def health(self) -> dict:
        return {"status": "ok", "timestamp": utc_now()}


__all__ = ["JobService", "DownloadTarget"]
