"""Filename helpers shared by the producer and the sync client."""
from __future__ import annotations

import math
import re
from pathlib import Path

# Marks a file as already taken in by the producer: "<epochMillis>___<originalName>".
STORED_NAME_SEPARATOR = "___"

_UNSAFE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


def build_stored_name(created_ms: int, original_name: str) -> str:
    return f"{created_ms}{STORED_NAME_SEPARATOR}{original_name}"


def has_stored_marker(file_name: str) -> bool:
    """True when the name carries the separator token.

    A user-supplied name that happens to contain the token is indistinguishable
    from a stored name and is treated as already taken in.
    """
    return STORED_NAME_SEPARATOR in file_name


def sanitize_name(name: str) -> str:
    """Make an endpoint name usable as a single directory component."""
    return _WHITESPACE.sub("_", _UNSAFE_NAME_CHARS.sub("_", name))


def safe_basename(name: str) -> str:
    """Strip any directory part from a remote-supplied file name."""
    base = Path(name.replace("\\", "/")).name
    if base in ("", ".", ".."):
        return "unnamed"
    return base


def unique_path(path: Path) -> Path:
    """Return ``path`` or the first free ``"<stem> (n)<suffix>"`` sibling."""
    if not path.exists():
        return path
    stem, suffix = path.stem, path.suffix
    counter = 1
    while True:
        candidate = path.with_name(f"{stem} ({counter}){suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def format_file_size(size: int | float) -> str:
    if size <= 0:
        return "0 Bytes"
    k = 1024
    units = ["Bytes", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(size) / math.log(k))), len(units) - 1)
    value = round(size / math.pow(k, i), 2)
    if value == int(value):
        return f"{int(value)} {units[i]}"
    return f"{value} {units[i]}"


__all__ = [
    "STORED_NAME_SEPARATOR",
    "build_stored_name",
    "has_stored_marker",
    "sanitize_name",
    "safe_basename",
    "unique_path",
    "format_file_size",
]
