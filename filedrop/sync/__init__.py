"""
Consumer side: polls producers, downloads pending files and reports completion.
"""
from .producer_client import ProducerClient
from .registry import EndpointRegistry, RegisteredEndpoint, client_id, load_client_config
from .transfer import TransferExecutor
from .scheduler import PollResult, SchedulerState, SyncScheduler, next_wait

__all__ = [
    "ProducerClient",
    "EndpointRegistry",
    "RegisteredEndpoint",
    "client_id",
    "load_client_config",
    "TransferExecutor",
    "PollResult",
    "SchedulerState",
    "SyncScheduler",
    "next_wait",
]
