"""Pending/completed job queue over a keyed list store.

JobQueue is the only component that touches the store. Pending jobs live in a
FIFO list (append at the tail, serve from the head); completed jobs are appended
to an audit list. A hash keyed by job id holds the exact serialized form of each
pending job so lookups avoid scanning the list. The index is advisory: a miss
falls back to a bounded scan of the pending list (repairing the index), and an
index hit whose list entry is already gone resolves to "not found" on removal.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from filedrop.config import QUEUE_SETTINGS
from filedrop.errors import JobNotFound
from filedrop.jobs.store import ListStore
from filedrop.models.job import JobRecord
from filedrop.utils import get_logger

logger = get_logger(__name__)


class JobQueue:
    def __init__(
        self,
        store: ListStore,
        *,
        pending_key: str | None = None,
        completed_key: str | None = None,
        index_key: str | None = None,
    ) -> None:
        self._store = store
        self.pending_key = str(pending_key or QUEUE_SETTINGS["pending_key"])
        self.completed_key = str(completed_key or QUEUE_SETTINGS["completed_key"])
        self.index_key = str(index_key or QUEUE_SETTINGS["index_key"])
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))  # type: ignore[arg-type]

    @property
    def backend(self) -> str:
        return getattr(self._store, "backend", "unknown")

    # ----------------------------- internal helpers ----------------------------- #
    @staticmethod
    def _parse(raw: str) -> Optional[JobRecord]:
        try:
            return JobRecord.from_wire(raw)
        except ValidationError as e:
            logger.warning("Skipping malformed queue entry", error=str(e))
            return None

    def _locate(self, job_id: str) -> Optional[tuple[JobRecord, str]]:
        """Find a pending job and the exact serialized value stored in the list."""
        raw = self._store.index_get(self.index_key, job_id)
        if raw is not None:
            job = self._parse(raw)
            if job is not None:
                return job, raw

        length = self._store.length(self.pending_key)
        for position in range(length):
            entries = self._store.range(self.pending_key, position, position)
            if not entries:
                break
            job = self._parse(entries[0])
            if job is not None and job.id == job_id:
                self._store.index_set(self.index_key, job_id, entries[0])
                return job, entries[0]
        return None

    # ----------------------------- public API ----------------------------- #
    def enqueue(self, job: JobRecord) -> JobRecord:
        raw = job.to_wire()
        self._store.index_set(self.index_key, job.id, raw)
        depth = self._store.append(self.pending_key, raw)
        if depth >= self._warn_depth:
            logger.warning("Queue depth warning", depth=depth)
        return job

    def head(self, limit: int) -> list[JobRecord]:
        """Up to ``limit`` pending jobs in enqueue order. Read-only."""
        if limit <= 0:
            return []
        jobs = []
        for raw in self._store.range(self.pending_key, 0, limit - 1):
            job = self._parse(raw)
            if job is not None:
                jobs.append(job)
        return jobs

    def find(self, job_id: str) -> JobRecord:
        located = self._locate(job_id)
        if located is None:
            raise JobNotFound(job_id)
        return located[0]

    def evict(self, job_id: str) -> bool:
        """Drop a pending job without recording completion."""
        located = self._locate(job_id)
        if located is None:
            return False
        _, raw = located
        removed = self._store.remove(self.pending_key, raw)
        self._store.index_delete(self.index_key, job_id)
        return removed > 0

    def complete(self, job_id: str, now: datetime | None = None) -> JobRecord:
        """Move a pending job to the completed list exactly once.

        Raises JobNotFound when the job is absent, including when a concurrent
        completer removed it first.
        """
        located = self._locate(job_id)
        if located is None:
            raise JobNotFound(job_id)
        job, raw = located
        completed = job.completed_copy(now)
        moved = self._store.move(self.pending_key, raw, self.completed_key, completed.to_wire())
        self._store.index_delete(self.index_key, job_id)
        if not moved:
            raise JobNotFound(job_id)
        return completed

    def completed(self, limit: int) -> list[JobRecord]:
        """Most recently completed jobs first."""
        if limit <= 0:
            return []
        raws = self._store.range(self.completed_key, -limit, -1)
        jobs = [job for job in (self._parse(raw) for raw in reversed(raws)) if job is not None]
        return jobs

    def depth(self) -> int:
        return self._store.length(self.pending_key)

    def completed_depth(self) -> int:
        return self._store.length(self.completed_key)

    def purge(self) -> None:
        """Remove all pending/completed jobs. Test isolation only."""
        self._store.delete(self.pending_key, self.completed_key, self.index_key)

    def snapshot(self) -> dict:
        return {
            "backend": self.backend,
            "pending": self.depth(),
            "completed": self.completed_depth(),
        }


__all__ = ["JobQueue"]
