"""Transfer executor: download one job with retry, integrity check and de-duplication.

Each attempt streams into '<target>.part' next to the final name, checks the
byte count against the job size and only then renames into place, so a
truncated transfer never shows up under the real file name. Retry delays come
from ``compute_backoff_seconds`` and are awaited through an injectable sleeper.
"""
from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from filedrop.errors import FileDropError, SizeMismatch, StorageError
from filedrop.models.job import JobRecord
from filedrop.sync.registry import RegisteredEndpoint
from filedrop.utils import get_logger, log_business_event, log_performance, format_file_size
from filedrop.utils.backoff import compute_backoff_seconds
from filedrop.utils.files import safe_basename, unique_path

logger = get_logger(__name__)

PARTIAL_SUFFIX = ".part"

Sleeper = Callable[[float], Awaitable[None]]


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove partial file", path=str(path), error=str(e))


class TransferExecutor:
    def __init__(self, *, sleep: Sleeper = asyncio.sleep, retry_base: Optional[float] = None) -> None:
        self._sleep = sleep
        self.retry_base = retry_base

    async def _attempt(self, endpoint: RegisteredEndpoint, job: JobRecord) -> Path:
        if endpoint.storage_path is None:
            raise StorageError(f"No download directory for {endpoint.name}")
        target = unique_path(endpoint.storage_path / safe_basename(job.original_name))
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        try:
            written = await endpoint.client.download(job, partial)
            if written != job.size:
                raise SizeMismatch(job.size, written)
            try:
                os.replace(partial, target)
            except OSError as e:
                raise StorageError(f"Cannot move {partial.name} into place: {e}") from e
        except BaseException:
            _discard(partial)
            raise
        return target

    async def download_job(self, endpoint: RegisteredEndpoint, job: JobRecord) -> Optional[Path]:
        """Download ``job`` from ``endpoint``; returns the local path or None when abandoned.

        Non-retryable errors (job gone, bad credentials) abandon immediately.
        Retryable ones sleep ``attempt * base`` between attempts; the last
        failed attempt does not sleep. Completion is reported best-effort.
        """
        max_attempts = endpoint.config.max_retries
        start_time = time.time()
        logger.info(
            "Downloading",
            endpoint=endpoint.name,
            original_name=job.original_name,
            size=format_file_size(job.size),
        )

        for attempt in range(1, max_attempts + 1):
            try:
                target = await self._attempt(endpoint, job)
            except FileDropError as e:
                if not e.retryable:
                    logger.warning(
                        "Download abandoned",
                        endpoint=endpoint.name,
                        job_id=job.id,
                        code=e.code,
                        error=e.message,
                    )
                    endpoint.state.record_job_failure()
                    return None
                if attempt >= max_attempts:
                    logger.error(
                        "Download failed after all retries",
                        endpoint=endpoint.name,
                        job_id=job.id,
                        attempts=attempt,
                        code=e.code,
                        error=e.message,
                    )
                    endpoint.state.record_job_failure()
                    return None
                delay = compute_backoff_seconds(attempt, base=self.retry_base)
                logger.warning(
                    "Download attempt failed; retrying",
                    endpoint=endpoint.name,
                    job_id=job.id,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    retry_in_seconds=delay,
                    code=e.code,
                    error=e.message,
                )
                await self._sleep(delay)
                continue

            endpoint.state.record_transfer(job.size)
            duration_ms = (time.time() - start_time) * 1000
            logger.info("Download complete", endpoint=endpoint.name, path=str(target), attempts=attempt)
            log_performance(
                operation="download_job",
                duration_ms=duration_ms,
                additional_data={"endpoint": endpoint.name, "job_id": job.id, "size": job.size, "attempts": attempt},
            )
            await self._report_completion(endpoint, job)
            return target

        return None

    async def _report_completion(self, endpoint: RegisteredEndpoint, job: JobRecord) -> None:
        try:
            await endpoint.client.complete(job.id)
        except FileDropError as e:
            # The job stays pending and will be served again.
            logger.warning(
                "Failed to mark job completed",
                endpoint=endpoint.name,
                job_id=job.id,
                code=e.code,
                error=e.message,
            )
            return
        log_business_event("job_synced", {"endpoint": endpoint.name, "job_id": job.id, "original_name": job.original_name})


__all__ = ["TransferExecutor", "PARTIAL_SUFFIX"]
