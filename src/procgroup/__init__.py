"""Per-group process resource accounting."""

from procgroup.grouper import Group, GroupByName, Grouper
from procgroup.model import (
    UNAVAILABLE,
    Counts,
    Memory,
    ProcessGone,
    ProcessId,
    ProcessIdInfo,
    ProcessMetrics,
    ProcessReadError,
    ProcessStatic,
    ScanError,
)
from procgroup.tracker import CollectErrors, TrackedProcess, Tracker

__all__ = [
    "UNAVAILABLE",
    "CollectErrors",
    "Counts",
    "Group",
    "GroupByName",
    "Grouper",
    "Memory",
    "ProcessGone",
    "ProcessId",
    "ProcessIdInfo",
    "ProcessMetrics",
    "ProcessReadError",
    "ProcessStatic",
    "ScanError",
    "TrackedProcess",
    "Tracker",
]
