"""Consumer-side configuration and runtime state for polled producer endpoints."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from filedrop.config import SYNC_SETTINGS, CLEANUP_SETTINGS


class EndpointConfig(BaseModel):
    """One configured remote producer.

    Accepts the keys used by the JSON client config (``url``, ``downloadPath``,
    ``pollInterval``, ``apiKey`` ...) as well as the field names.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = "Unnamed Server"
    base_address: str = Field(alias="url", min_length=1)
    local_storage_path: Optional[str] = Field(None, alias="downloadPath")
    poll_interval_ms: int = Field(int(SYNC_SETTINGS["default_poll_interval_ms"]), alias="pollInterval", gt=0)
    max_retries: int = Field(int(SYNC_SETTINGS["default_max_retries"]), alias="maxRetries", ge=1)
    priority: int = Field(int(SYNC_SETTINGS["default_priority"]), description="Higher is served first")
    enabled: bool = True
    credential: Optional[str] = Field(None, alias="apiKey")

    @field_validator("base_address")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Server URL is required")
        return value.rstrip("/")

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


class RetentionPolicy(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    delete_after_download: bool = Field(bool(CLEANUP_SETTINGS["delete_after_download"]), alias="deleteAfterDownload")
    keep_days: float = Field(float(CLEANUP_SETTINGS["keep_files_for_days"]), alias="keepFilesForDays", ge=0)
    sweep_interval_hours: float = Field(
        float(CLEANUP_SETTINGS["auto_cleanup_interval_hours"]), alias="autoCleanupInterval", ge=0
    )


class ClientConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    download_path: str = Field(str(SYNC_SETTINGS["default_download_path"]), alias="downloadPath")
    servers: List[EndpointConfig] = Field(min_length=1)
    cleanup: RetentionPolicy = Field(default_factory=RetentionPolicy)

    @field_validator("download_path", mode="before")
    @classmethod
    def _default_download_path(cls, value: Optional[str]) -> str:
        return value or str(SYNC_SETTINGS["default_download_path"])


@dataclass
class EndpointRuntimeState:
    """Per-endpoint counters, written only on behalf of that endpoint."""
    bytes_transferred: int = 0
    files_transferred: int = 0
    error_count: int = 0
    consecutive_errors: int = 0
    last_sync_at: datetime | None = None

    def record_transfer(self, size: int) -> None:
        self.bytes_transferred += size
        self.files_transferred += 1

    def record_job_failure(self) -> None:
        self.error_count += 1

    def record_poll_success(self, now: datetime | None = None) -> None:
        self.consecutive_errors = 0
        if now is not None:
            self.last_sync_at = now

    def record_poll_failure(self) -> None:
        self.consecutive_errors += 1

    @property
    def error_rate_pct(self) -> int:
        attempts = self.files_transferred + self.error_count
        if self.files_transferred == 0 or attempts == 0:
            return 0
        return round(self.error_count / attempts * 100)

    def snapshot(self) -> dict[str, object]:
        return {
            "bytes_transferred": self.bytes_transferred,
            "files_transferred": self.files_transferred,
            "error_count": self.error_count,
            "consecutive_errors": self.consecutive_errors,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "error_rate_pct": self.error_rate_pct,
        }


__all__ = ["EndpointConfig", "RetentionPolicy", "ClientConfig", "EndpointRuntimeState"]
