"""Multi-endpoint sync scheduler.

One cooperative loop polls every active endpoint in priority order, hands the
returned jobs to the TransferExecutor one by one, then waits. The loop is an
explicit state machine (idle -> polling -> waiting -> polling ...) and the
wait after each pass comes from ``next_wait``, a pure function of how many
jobs the pass found. Time is read and slept through an injectable clock so
tests run without real timers.

A stop request is honoured between passes and between endpoint polls; an
in-flight transfer always finishes.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Sequence

from filedrop.config import SYNC_SETTINGS
from filedrop.errors import EndpointTimeout, EndpointUnreachable, FileDropError, Unauthorized
from filedrop.models.endpoint import EndpointConfig
from filedrop.sync.registry import EndpointRegistry, RegisteredEndpoint
from filedrop.sync.transfer import TransferExecutor
from filedrop.utils import get_logger, format_file_size
from filedrop.utils.time import utc_now

logger = get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    WAITING = "waiting"


@dataclass(slots=True)
class PollResult:
    success: bool
    jobs_found: int = 0
    jobs_processed: int = 0
    error: Optional[str] = None


class Clock(Protocol):
    def now(self) -> datetime: ...
    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def now(self) -> datetime:
        return utc_now()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def next_wait(jobs_found: int, endpoints: Sequence[EndpointConfig]) -> float:
    """Seconds to wait after a pass.

    Short fixed wait while a burst is in progress, otherwise the smallest poll
    interval among the active endpoints, or the default when none are active.
    """
    if not endpoints:
        return float(SYNC_SETTINGS["default_wait_seconds"])
    if jobs_found > 0:
        return float(SYNC_SETTINGS["active_wait_seconds"])
    return min(endpoint.poll_interval_seconds for endpoint in endpoints)


def _failure_category(exc: FileDropError) -> str:
    if isinstance(exc, EndpointUnreachable):
        return "unreachable"
    if isinstance(exc, EndpointTimeout):
        return "timeout"
    if isinstance(exc, Unauthorized):
        return "unauthorized"
    return "other"


class SyncScheduler:
    def __init__(
        self,
        registry: EndpointRegistry,
        executor: Optional[TransferExecutor] = None,
        *,
        clock: Optional[Clock] = None,
        batch_size: Optional[int] = None,
        inter_endpoint_delay: Optional[float] = None,
        error_cooldown: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.clock = clock or SystemClock()
        self.executor = executor or TransferExecutor(sleep=self.clock.sleep)
        self.batch_size = int(batch_size or SYNC_SETTINGS["batch_size"])
        self.inter_endpoint_delay = float(
            SYNC_SETTINGS["inter_endpoint_delay_seconds"] if inter_endpoint_delay is None else inter_endpoint_delay
        )
        self.error_cooldown = float(
            SYNC_SETTINGS["error_cooldown_seconds"] if error_cooldown is None else error_cooldown
        )
        self.state = SchedulerState.IDLE
        self.cycles = 0
        self._stop_event = asyncio.Event()

    # ----------------------------- control ----------------------------- #
    def stop(self) -> None:
        if not self._stop_event.is_set():
            logger.info("Sync stop requested")
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def _pause(self, seconds: float) -> None:
        """Sleep on the clock, returning early if a stop is requested."""
        if seconds <= 0 or self.stopping:
            return
        sleeper = asyncio.ensure_future(self.clock.sleep(seconds))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        _, pending = await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()

    # ----------------------------- polling ----------------------------- #
    async def probe_health(self) -> dict[str, bool]:
        """Probe every active endpoint once; failures are logged, never disabling."""
        results: dict[str, bool] = {}
        for endpoint in self.registry.active_endpoints():
            healthy = await endpoint.client.health()
            results[endpoint.name] = healthy
            if healthy:
                logger.info("Endpoint healthy", endpoint=endpoint.name, url=endpoint.config.base_address)
            else:
                logger.warning("Endpoint unavailable", endpoint=endpoint.name, url=endpoint.config.base_address)
        return results

    async def poll_endpoint(self, endpoint: RegisteredEndpoint) -> PollResult:
        try:
            jobs, total = await endpoint.client.list_pending(self.batch_size)
        except FileDropError as e:
            endpoint.state.record_poll_failure()
            logger.error(
                "Poll failed",
                endpoint=endpoint.name,
                category=_failure_category(e),
                code=e.code,
                error=e.message,
                consecutive_errors=endpoint.state.consecutive_errors,
            )
            return PollResult(success=False, error=e.code)
        except Exception as e:
            # Contained to this endpoint; the pass continues
            endpoint.state.record_poll_failure()
            logger.error(
                "Poll failed unexpectedly",
                endpoint=endpoint.name,
                category="other",
                error=str(e),
                error_type=type(e).__name__,
                consecutive_errors=endpoint.state.consecutive_errors,
                exc_info=True,
            )
            return PollResult(success=False, error="other")

        endpoint.state.record_poll_success(self.clock.now())
        if not jobs:
            return PollResult(success=True)

        logger.info("Found files", endpoint=endpoint.name, count=len(jobs), total_in_queue=total)
        processed = 0
        for job in jobs:
            try:
                path = await self.executor.download_job(endpoint, job)
            except Exception as e:
                endpoint.state.record_job_failure()
                logger.error(
                    "Transfer crashed; moving to next job",
                    endpoint=endpoint.name,
                    job_id=job.id,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                continue
            if path is not None:
                processed += 1
        return PollResult(success=True, jobs_found=len(jobs), jobs_processed=processed)

    async def run_cycle(self) -> int:
        """Poll every active endpoint once; returns the number of jobs found."""
        self.state = SchedulerState.POLLING
        jobs_found = 0
        for position, endpoint in enumerate(self.registry.active_endpoints()):
            if self.stopping:
                break
            if position > 0:
                await self._pause(self.inter_endpoint_delay)
                if self.stopping:
                    break
            result = await self.poll_endpoint(endpoint)
            jobs_found += result.jobs_found
        self.cycles += 1
        return jobs_found

    async def run(self) -> None:
        endpoints = self.registry.active_endpoints()
        logger.info("Sync started", client_id=self.registry.client_id, endpoints=len(endpoints))
        try:
            await self.probe_health()
            while not self.stopping:
                try:
                    jobs_found = await self.run_cycle()
                    wait = next_wait(jobs_found, [entry.config for entry in self.registry.active_endpoints()])
                except Exception as e:
                    logger.error("Sync loop error; cooling down", error=str(e), exc_info=True)
                    wait = self.error_cooldown
                self.state = SchedulerState.WAITING
                logger.debug("Waiting before next pass", seconds=wait)
                await self._pause(wait)
        finally:
            self.state = SchedulerState.IDLE
            await self.registry.close()
            logger.info("Sync stopped", cycles=self.cycles)

    # ----------------------------- stats ----------------------------- #
    def stats(self) -> dict:
        endpoints = {}
        total_bytes = total_files = total_errors = 0
        for entry in self.registry.endpoints:
            endpoints[entry.name] = {**entry.state.snapshot(), "active": entry.active, "priority": entry.config.priority}
            total_bytes += entry.state.bytes_transferred
            total_files += entry.state.files_transferred
            total_errors += entry.state.error_count
        attempts = total_files + total_errors
        return {
            "endpoints": endpoints,
            "total_bytes": total_bytes,
            "total_files": total_files,
            "total_errors": total_errors,
            "error_rate_pct": round(total_errors / attempts * 100) if total_files and attempts else 0,
        }

    def print_stats(self) -> None:
        stats = self.stats()
        for name, entry in stats["endpoints"].items():
            logger.info(
                "Endpoint statistics",
                endpoint=name,
                status="active" if entry["active"] else "disabled",
                priority=entry["priority"],
                downloaded=format_file_size(entry["bytes_transferred"]),
                files=entry["files_transferred"],
                errors=entry["error_count"],
                error_rate=f"{entry['error_rate_pct']}%",
                last_sync=entry["last_sync_at"] or "never",
            )
        logger.info(
            "Overall statistics",
            downloaded=format_file_size(stats["total_bytes"]),
            files=stats["total_files"],
            errors=stats["total_errors"],
            error_rate=f"{stats['error_rate_pct']}%",
        )


__all__ = ["SchedulerState", "PollResult", "Clock", "SystemClock", "next_wait", "SyncScheduler"]
