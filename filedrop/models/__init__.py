from .job import JobRecord, JobStatus
from .endpoint import EndpointConfig, RetentionPolicy, ClientConfig, EndpointRuntimeState

__all__ = [
    "JobRecord",
    "JobStatus",
    "EndpointConfig",
    "RetentionPolicy",
    "ClientConfig",
    "EndpointRuntimeState",
]
