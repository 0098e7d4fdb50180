"""Time utilities (UTC now, epoch millis)."""
from __future__ import annotations
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)

def from_epoch_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

__all__ = ["utc_now", "epoch_millis", "from_epoch_millis"]
