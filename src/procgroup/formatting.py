"""Formatting utilities for CLI output."""

import time
from datetime import datetime


def format_bytes(size: int) -> str:
    """Format a byte count compactly ("512B", "1.5K", "2.0G")."""
    value = float(size)
    for unit in ["B", "K", "M", "G", "T"]:
        if value < 1024:
            return f"{int(value)}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}P"


def format_cpu_seconds(seconds: float) -> str:
    """Format accumulated CPU time ("0.25s", "12.3s", "4m05s", "2h03m")."""
    if seconds < 10:
        return f"{seconds:.2f}s"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m{secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m"


def format_age(start: datetime | None, *, now: float | None = None) -> str:
    """Format how long ago start was, or "-" when there is no start time.

    Args:
        start: Start time of the oldest member
        now: Current time as a timestamp (defaults to time.time())
    """
    if start is None:
        return "-"
    if now is None:
        now = time.time()
    return format_cpu_seconds(max(0.0, now - start.timestamp()))
