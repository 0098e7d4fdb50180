"""Job record: the unit of work shared by the producer queue and the sync client."""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from filedrop.utils.files import build_stored_name
from filedrop.utils.time import epoch_millis, utc_now


class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class JobRecord(BaseModel):
    """One file waiting to be collected.

    Serialized in camelCase on the wire and in the queue store; instances are
    value objects and are never shared between producer and consumer.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Opaque unique job token")
    original_name: str = Field(description="Name presented to downloaders")
    stored_name: str = Field(description="'<epochMillis>___<originalName>' in the upload directory")
    size: int = Field(ge=0, description="Byte count fixed at enqueue time")
    created_at: datetime
    completed_at: Optional[datetime] = None
    status: JobStatus = JobStatus.PENDING

    @classmethod
    def new(cls, original_name: str, size: int, *, created_at: datetime | None = None) -> "JobRecord":
        created = created_at or utc_now()
        return cls(
            original_name=original_name,
            stored_name=build_stored_name(epoch_millis(created), original_name),
            size=size,
            created_at=created,
        )

    def completed_copy(self, now: datetime | None = None) -> "JobRecord":
        return self.model_copy(update={"completed_at": now or utc_now(), "status": JobStatus.COMPLETED})

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_wire(cls, raw: str | bytes) -> "JobRecord":
        return cls.model_validate_json(raw)


__all__ = ["JobRecord", "JobStatus"]
