"""
HTTP client for one remote producer.

Wraps an aiohttp session and translates transport failures into the FileDrop
error hierarchy so the transfer executor can decide what to retry:

    connection refused / DNS   -> EndpointUnreachable
    request or read timeout    -> EndpointTimeout
    401                        -> Unauthorized
    404                        -> JobNotFound / FileMissing (by error code)
    other non-2xx              -> TransferError
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiohttp
from pydantic import ValidationError

from filedrop.config import AUTH_SETTINGS, TRANSFER_SETTINGS
from filedrop.errors import (
    EndpointTimeout,
    EndpointUnreachable,
    FileDropError,
    FileMissing,
    JobNotFound,
    StorageError,
    TransferError,
    Unauthorized,
)
from filedrop.models.job import JobRecord
from filedrop.utils import get_logger

logger = get_logger(__name__)


class ProducerClient:
    def __init__(
        self,
        base_address: str,
        *,
        client_id: str,
        credential: Optional[str] = None,
        name: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_address = base_address.rstrip("/")
        self.client_id = client_id
        self.credential = credential
        self.name = name or self.base_address
        self.chunk_size = int(TRANSFER_SETTINGS["chunk_size_bytes"])
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.credential:
            headers[str(AUTH_SETTINGS["header_name"])] = self.credential
        return headers

    @staticmethod
    async def _error_code(resp: aiohttp.ClientResponse) -> Optional[str]:
        try:
            body = await resp.json(content_type=None)
        except (ValueError, aiohttp.ClientError):
            return None
        return body.get("code") if isinstance(body, dict) else None

    async def _raise_for_status(self, resp: aiohttp.ClientResponse, job_id: Optional[str]) -> None:
        if resp.status < 400:
            return
        if resp.status == 401:
            raise Unauthorized(f"{self.name} rejected the API key")
        if resp.status == 404 and job_id is not None:
            if await self._error_code(resp) == FileMissing.code:
                raise FileMissing(job_id)
            raise JobNotFound(job_id)
        raise TransferError(f"{self.name} answered HTTP {resp.status}", code=f"HTTP_{resp.status}")

    @asynccontextmanager
    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        session = await self._get_session()
        url = f"{self.base_address}{path}"
        try:
            async with session.request(
                method,
                url,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=timeout),
                **kwargs,
            ) as resp:
                await self._raise_for_status(resp, job_id)
                yield resp
        except FileDropError:
            raise
        except asyncio.TimeoutError as e:
            raise EndpointTimeout(f"{self.name} timed out after {timeout}s ({method} {path})") from e
        except aiohttp.ClientConnectionError as e:
            raise EndpointUnreachable(f"{self.name} is unreachable: {e}") from e
        except aiohttp.ClientError as e:
            raise TransferError(f"{self.name} request failed: {e}") from e

    async def health(self) -> bool:
        """True when the producer answers its liveness probe; never raises."""
        try:
            async with self._request("GET", "/api/health", timeout=float(TRANSFER_SETTINGS["health_timeout_seconds"])):
                return True
        except FileDropError as e:
            logger.debug("Health check failed", endpoint=self.name, error=e.message)
            return False

    async def list_pending(self, limit: int) -> tuple[list[JobRecord], int]:
        """Return up to ``limit`` pending jobs and the producer's total queue length."""
        async with self._request(
            "GET",
            "/api/jobs/pending",
            timeout=float(TRANSFER_SETTINGS["poll_timeout_seconds"]),
            params={"clientId": self.client_id, "limit": str(limit)},
        ) as resp:
            try:
                body = await resp.json(content_type=None)
            except ValueError as e:
                raise TransferError(f"{self.name} returned an unreadable job list") from e

        if not isinstance(body, dict) or not isinstance(body.get("jobs", []), list):
            raise TransferError(f"{self.name} returned an unreadable job list")
        try:
            jobs = [JobRecord.model_validate(item) for item in body.get("jobs", [])]
        except ValidationError as e:
            raise TransferError(f"{self.name} returned a malformed job: {e}") from e
        total = body.get("totalInQueue", len(jobs))
        # bool is an int subclass; reject it along with strings and null
        if isinstance(total, bool) or not isinstance(total, int):
            raise TransferError(f"{self.name} returned a non-numeric totalInQueue: {total!r}")
        return jobs, total

    async def download(self, job: JobRecord, dest: Path) -> int:
        """Stream the job's file into ``dest``; returns the number of bytes written."""
        written = 0
        async with self._request(
            "GET",
            f"/api/download/{job.id}",
            timeout=float(TRANSFER_SETTINGS["download_timeout_seconds"]),
            job_id=job.id,
            params={"clientId": self.client_id},
        ) as resp:
            try:
                handle = dest.open("wb")
            except OSError as e:
                raise StorageError(f"Cannot write {dest}: {e}") from e
            with handle:
                async for chunk in resp.content.iter_chunked(self.chunk_size):
                    try:
                        handle.write(chunk)
                    except OSError as e:
                        raise StorageError(f"Cannot write {dest}: {e}") from e
                    written += len(chunk)
        return written

    async def complete(self, job_id: str) -> dict:
        async with self._request(
            "POST",
            f"/api/jobs/{job_id}/complete",
            timeout=float(TRANSFER_SETTINGS["complete_timeout_seconds"]),
            job_id=job_id,
            json={"clientId": self.client_id},
        ) as resp:
            try:
                return await resp.json(content_type=None)
            except ValueError as e:
                raise TransferError(f"{self.name} sent an unreadable completion reply") from e


__all__ = ["ProducerClient"]
