"""
Pydantic schemas for the producer HTTP surface.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .job import JobRecord


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(WireModel):
    status: str = "ok"
    timestamp: datetime


class PendingJobsResponse(WireModel):
    success: bool = True
    jobs: List[JobRecord]
    count: int = Field(description="Number of jobs in this response")
    total_in_queue: int = Field(description="Total pending jobs")


class CompletedJobSummary(WireModel):
    id: str
    file_name: str = Field(description="Original file name")
    completed_at: datetime


class CompleteJobRequest(WireModel):
    client_id: Optional[str] = None


class CompleteJobResponse(WireModel):
    success: bool = True
    message: str = "Job completed"
    job: CompletedJobSummary


class CompletedJobsResponse(WireModel):
    success: bool = True
    jobs: List[JobRecord]
    count: int
    total_completed: int


class UploadedJobSummary(WireModel):
    id: str
    file_name: str
    size: str = Field(description="Human readable size")
    uploaded_at: datetime


class UploadResponse(WireModel):
    success: bool = True
    message: str
    count: int
    jobs: List[UploadedJobSummary]


class StatusResponse(WireModel):
    success: bool = True
    status: str = "running"
    version: str
    uptime: int = Field(description="Seconds since process start")
    pending: int
    completed: int
    upload_path: str
    file_watcher: str
    filename_handling: str = "original_names_preserved"
    auth_enabled: bool
    queue: Dict[str, Any] = Field(default_factory=dict)
    limits: Dict[str, Any]


__all__ = [
    "HealthResponse",
    "PendingJobsResponse",
    "CompletedJobSummary",
    "CompleteJobRequest",
    "CompleteJobResponse",
    "CompletedJobsResponse",
    "UploadedJobSummary",
    "UploadResponse",
    "StatusResponse",
]
