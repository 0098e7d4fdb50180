"""Linear retry backoff for sync transfers."""
from __future__ import annotations

from typing import Optional

from filedrop.config import TRANSFER_SETTINGS


def compute_backoff_seconds(attempt: int, *, base: Optional[float] = None) -> float:
    """Delay to wait after failed attempt ``attempt`` (1-based): ``attempt * base``."""
    if attempt < 1:
        attempt = 1
    base = float(base if base is not None else TRANSFER_SETTINGS["retry_base_seconds"])
    return max(base * attempt, 0.0)


__all__ = ["compute_backoff_seconds"]
