"""
FileDrop exception hierarchy.

Every domain error carries a stable machine-readable ``code`` (surfaced in API
error envelopes and logs) and a ``retryable`` flag consulted by the transfer
executor.

Hierarchy::

    FileDropError
    ├── ConfigurationError
    ├── QueueStoreError          - backing list store unreachable / failing
    ├── NotFoundError
    │   ├── JobNotFound          - job id absent from the pending queue
    │   └── FileMissing          - job present but its stored file is gone
    ├── Unauthorized             - missing / wrong shared key
    ├── UploadRejected           - upload limit violations
    └── TransferError
        ├── SizeMismatch         - on-disk byte count != job size
        ├── EndpointUnreachable  - connection refused / DNS failure
        ├── EndpointTimeout
        └── StorageError         - local disk failure while writing
"""
from __future__ import annotations

from typing import Any


class FileDropError(Exception):
    """Base exception for all FileDrop errors."""

    code: str = "FILEDROP_ERROR"
    retryable: bool = False

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class ConfigurationError(FileDropError):
    code = "CONFIGURATION_ERROR"


class QueueStoreError(FileDropError):
    code = "QUEUE_STORE_ERROR"


# --- Not found ----------------------------------------------------------------


class NotFoundError(FileDropError):
    code = "NOT_FOUND"


class JobNotFound(NotFoundError):
    code = "JOB_NOT_FOUND"

    def __init__(self, job_id: str) -> None:
        super().__init__("Job not found", details={"job_id": job_id})
        self.job_id = job_id


class FileMissing(NotFoundError):
    code = "FILE_NOT_FOUND"

    def __init__(self, job_id: str, stored_name: str | None = None) -> None:
        super().__init__("File no longer exists", details={"job_id": job_id, "stored_name": stored_name})
        self.job_id = job_id
        self.stored_name = stored_name


# --- Access / input -------------------------------------------------------------


class Unauthorized(FileDropError):
    code = "UNAUTHORIZED"


class UploadRejected(FileDropError):
    code = "UPLOAD_REJECTED"


# --- Transfer -------------------------------------------------------------------


class TransferError(FileDropError):
    code = "TRANSFER_ERROR"
    retryable = True


class SizeMismatch(TransferError):
    code = "SIZE_MISMATCH"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"File size mismatch: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class EndpointUnreachable(TransferError):
    code = "ENDPOINT_UNREACHABLE"


class EndpointTimeout(TransferError):
    code = "ENDPOINT_TIMEOUT"


class StorageError(TransferError):
    code = "STORAGE_ERROR"


__all__ = [
    "FileDropError",
    "ConfigurationError",
    "QueueStoreError",
    "NotFoundError",
    "JobNotFound",
    "FileMissing",
    "Unauthorized",
    "UploadRejected",
    "TransferError",
    "SizeMismatch",
    "EndpointUnreachable",
    "EndpointTimeout",
    "StorageError",
]
