"""Process table scanners.

PsutilProcs reads the live process table through psutil. ObservationIter
replays pre-built observations (fixtures, recorded scans).
"""

from collections.abc import Iterator
from datetime import datetime

import psutil
import structlog

from procgroup.model import (
    UNAVAILABLE,
    ProcessGone,
    ProcessId,
    ProcessIdInfo,
    ProcessMetrics,
    ProcessReadError,
    ProcessStatic,
    ScanError,
)

log = structlog.get_logger()

# Linux and FreeBSD only
_RLIMIT_NOFILE = getattr(psutil, "RLIMIT_NOFILE", None)


def start_time_rel(create_time: float) -> int:
    """Convert psutil's float create_time to an integer identity component (ms)."""
    return int(round(create_time * 1000))


class PsutilHandle:
    """One live process, read lazily.

    psutil.NoSuchProcess (and ZombieProcess) become ProcessGone; AccessDenied on
    a required attribute becomes ProcessReadError. Optional counters that are
    denied or unsupported are reported as UNAVAILABLE.
    """

    def __init__(self, proc: psutil.Process):
        self._proc = proc

    @property
    def pid(self) -> int:
        return self._proc.pid

    def get_id(self) -> ProcessId:
        try:
            return ProcessId(self.pid, start_time_rel(self._proc.create_time()))
        except psutil.NoSuchProcess as e:
            raise ProcessGone(self.pid) from e
        except psutil.AccessDenied as e:
            raise ProcessReadError(self.pid, "create_time: access denied") from e

    def get_static(self) -> ProcessStatic:
        proc = self._proc
        try:
            with proc.oneshot():
                name = proc.name()
                ppid = proc.ppid()
                started = datetime.fromtimestamp(proc.create_time())
                cmdline = self._optional(proc.cmdline, [])
                username = self._optional(proc.username, "")
        except psutil.NoSuchProcess as e:
            raise ProcessGone(self.pid) from e
        except psutil.AccessDenied as e:
            raise ProcessReadError(self.pid, "static attributes: access denied") from e

        return ProcessStatic(
            name=name,
            cmdline=tuple(cmdline),
            parent_pid=ppid,
            start_time=started,
            username=username,
        )

    def get_metrics(self) -> ProcessMetrics:
        proc = self._proc
        try:
            with proc.oneshot():
                cpu = proc.cpu_times()
                mem = proc.memory_info()
                num_threads = proc.num_threads()
                read_bytes, write_bytes = self._io_counters()
                open_fds = self._optional(getattr(proc, "num_fds", None), UNAVAILABLE)
                max_fds = self._max_fds()
        except psutil.NoSuchProcess as e:
            raise ProcessGone(self.pid) from e
        except psutil.AccessDenied as e:
            raise ProcessReadError(self.pid, "metrics: access denied") from e

        return ProcessMetrics(
            cpu_time=cpu.user + cpu.system,
            read_bytes=read_bytes,
            write_bytes=write_bytes,
            resident_bytes=mem.rss,
            virtual_bytes=mem.vms,
            open_fds=open_fds,
            max_fds=max_fds,
            num_threads=num_threads,
        )

    def _io_counters(self) -> tuple[int, int]:
        io_counters = getattr(self._proc, "io_counters", None)  # Not on macOS
        io = self._optional(io_counters, None)
        if io is None:
            return UNAVAILABLE, UNAVAILABLE
        return io.read_bytes, io.write_bytes

    def _max_fds(self) -> int:
        if _RLIMIT_NOFILE is None:
            return UNAVAILABLE
        limits = self._optional(lambda: self._proc.rlimit(_RLIMIT_NOFILE), None)
        if limits is None:
            return UNAVAILABLE
        soft = limits[0]
        if soft == psutil.RLIM_INFINITY or soft <= 0:
            return UNAVAILABLE
        return soft

    @staticmethod
    def _optional(getter, default):
        """Call getter, returning default if it is missing or access is denied."""
        if getter is None:
            return default
        try:
            return getter()
        except (psutil.AccessDenied, NotImplementedError):
            return default


class PsutilProcs:
    """One scan of the live process table.

    An enumeration failure ends the scan early and is raised as ScanError by
    close(), so a truncated scan is never mistaken for a complete one.
    """

    def __init__(self) -> None:
        self._error: Exception | None = None

    def __iter__(self) -> Iterator[PsutilHandle]:
        try:
            for proc in psutil.process_iter():
                yield PsutilHandle(proc)
        except (psutil.Error, OSError) as e:
            log.warning("process_enumeration_failed", error=str(e))
            self._error = e

    def close(self) -> None:
        if self._error is not None:
            raise ScanError(f"process enumeration failed: {self._error}") from self._error


class ObservationHandle:
    """Handle over an already-captured observation."""

    def __init__(self, idinfo: ProcessIdInfo, error: Exception | None = None):
        self._idinfo = idinfo
        self._error = error

    def get_id(self) -> ProcessId:
        return self._idinfo.id

    def get_static(self) -> ProcessStatic:
        if self._error is not None:
            raise self._error
        return self._idinfo.static

    def get_metrics(self) -> ProcessMetrics:
        if self._error is not None:
            raise self._error
        return self._idinfo.metrics


class ObservationIter:
    """A scan over pre-built observations.

    Args:
        procs: Observations to yield, in order
        errors: Per-pid exception raised when that process's attributes are read
        close_error: If set, close() raises ScanError
    """

    def __init__(
        self,
        *procs: ProcessIdInfo,
        errors: dict[int, Exception] | None = None,
        close_error: str | None = None,
    ):
        self._procs = procs
        self._errors = errors or {}
        self._close_error = close_error
        self.closed = False

    def __iter__(self) -> Iterator[ObservationHandle]:
        for idinfo in self._procs:
            yield ObservationHandle(idinfo, self._errors.get(idinfo.id.pid))

    def close(self) -> None:
        self.closed = True
        if self._close_error is not None:
            raise ScanError(self._close_error)
