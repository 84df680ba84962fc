"""Snapshot model shared by the tracker, grouper and scanners.

Everything here is plain data. A scan produces one ``ProcessIdInfo`` per
process; the tracker turns successive readings into ``Counts``.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

# Marker for a counter that could not be read (permissions, unsupported
# platform). Zero is a real reading and must never stand in for this.
UNAVAILABLE = -1


def is_available(value: int) -> bool:
    """Return True unless value is the UNAVAILABLE sentinel."""
    return value != UNAVAILABLE


@dataclass(frozen=True, slots=True)
class ProcessId:
    """Identity of one process instance.

    The OS reuses pids; start_time_rel does not repeat for the same pid, so
    the pair names one process for its whole life.
    """

    pid: int
    start_time_rel: int


@dataclass(frozen=True, slots=True)
class ProcessStatic:
    """Attributes captured once when a process is discovered."""

    name: str
    cmdline: tuple[str, ...]
    parent_pid: int
    start_time: datetime
    username: str = ""


@dataclass(frozen=True, slots=True)
class ProcessMetrics:
    """One scan's counter readings for a process.

    cpu_time, read_bytes and write_bytes are cumulative since process start.
    Memory, fd and thread figures are instantaneous.
    """

    cpu_time: float
    read_bytes: int
    write_bytes: int
    resident_bytes: int
    virtual_bytes: int
    open_fds: int
    max_fds: int
    num_threads: int


@dataclass(frozen=True, slots=True)
class ProcessInfo:
    """Static attributes plus the latest metrics."""

    static: ProcessStatic
    metrics: ProcessMetrics


@dataclass(frozen=True, slots=True)
class ProcessIdInfo:
    """Everything one scan yields for one process."""

    id: ProcessId
    static: ProcessStatic
    metrics: ProcessMetrics

    @property
    def info(self) -> ProcessInfo:
        return ProcessInfo(self.static, self.metrics)


@dataclass(frozen=True, slots=True)
class Counts:
    """Accumulated CPU seconds and I/O bytes."""

    cpu: float = 0.0
    read_bytes: int = 0
    write_bytes: int = 0

    def __add__(self, other: "Counts") -> "Counts":
        return Counts(
            cpu=self.cpu + other.cpu,
            read_bytes=self.read_bytes + other.read_bytes,
            write_bytes=self.write_bytes + other.write_bytes,
        )

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "cpu": self.cpu,
            "read_bytes": self.read_bytes,
            "write_bytes": self.write_bytes,
        }


@dataclass(frozen=True, slots=True)
class Memory:
    """Resident and virtual memory in bytes."""

    resident_bytes: int = 0
    virtual_bytes: int = 0

    def __add__(self, other: "Memory") -> "Memory":
        return Memory(
            resident_bytes=self.resident_bytes + other.resident_bytes,
            virtual_bytes=self.virtual_bytes + other.virtual_bytes,
        )


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class ProcessGone(Exception):
    """The process exited between enumeration and reading."""

    def __init__(self, pid: int):
        super().__init__(f"process {pid} no longer exists")
        self.pid = pid


class ProcessReadError(Exception):
    """An attribute of a live process could not be read."""

    def __init__(self, pid: int, reason: str):
        super().__init__(f"failed to read process {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class ScanError(Exception):
    """The scan as a whole failed to finalize; its results are not trusted."""


# ─────────────────────────────────────────────────────────────────────────────
# Scan interface
# ─────────────────────────────────────────────────────────────────────────────


class ProcessHandle(Protocol):
    """One process as seen by a scan.

    Each getter may raise ProcessGone or ProcessReadError independently.
    """

    def get_id(self) -> ProcessId: ...

    def get_static(self) -> ProcessStatic: ...

    def get_metrics(self) -> ProcessMetrics: ...


class ProcessIter(Protocol):
    """A finite, closable scan of the process table.

    close() raises ScanError if the scan could not be finalized.
    """

    def __iter__(self) -> Iterator[ProcessHandle]: ...

    def close(self) -> None: ...
