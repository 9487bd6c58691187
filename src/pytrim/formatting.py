"""Parsing and formatting helpers for sizes and durations."""

import re

_UNITS = {
    "": 1,
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "M": 1024**2,
    "MB": 1024**2,
    "G": 1024**3,
    "GB": 1024**3,
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$")


def parse_size(value: str | int) -> int:
    """Parse '512', '50MB', '1.5GB' (binary units) into bytes."""
    if isinstance(value, int):
        return value
    match = _SIZE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    multiplier = _UNITS.get(unit.upper())
    if multiplier is None:
        raise ValueError(f"Unknown size unit {unit!r} in {value!r}")
    return int(float(number) * multiplier)


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    sign = "-" if size < 0 else ""
    size = abs(size)
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{sign}{size:.1f}{unit}" if unit != "B" else f"{sign}{size:d}{unit}"
        size = size / 1024
    return f"{sign}{size:.1f}P"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to a readable format like 01m:30.5s or 01h:05m:30s"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes:02d}m:{secs:04.1f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours:02d}h:{minutes:02d}m:{secs:02.0f}s"
