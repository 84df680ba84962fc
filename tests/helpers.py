"""Observation factories shared by the test modules."""

from datetime import datetime, timedelta

from procgroup.collector import ObservationIter
from procgroup.model import ProcessId, ProcessIdInfo, ProcessMetrics, ProcessStatic

BASE_TIME = datetime(2024, 1, 23, 9, 0, 0)


def make_metrics(
    cpu: float = 0.0,
    read: int = 0,
    write: int = 0,
    rss: int = 0,
    vms: int = 0,
    open_fds: int = 0,
    max_fds: int = 1024,
    threads: int = 1,
) -> ProcessMetrics:
    """Create ProcessMetrics with zero defaults."""
    return ProcessMetrics(
        cpu_time=cpu,
        read_bytes=read,
        write_bytes=write,
        resident_bytes=rss,
        virtual_bytes=vms,
        open_fds=open_fds,
        max_fds=max_fds,
        num_threads=threads,
    )


def make_proc(
    pid: int,
    start: int = 0,
    name: str | None = None,
    metrics: ProcessMetrics | None = None,
    ppid: int = 1,
    cmdline: tuple[str, ...] | None = None,
    username: str = "tester",
) -> ProcessIdInfo:
    """Create an observation; start doubles as seconds after BASE_TIME."""
    name = name or f"p{pid}"
    return ProcessIdInfo(
        id=ProcessId(pid, start),
        static=ProcessStatic(
            name=name,
            cmdline=cmdline if cmdline is not None else (f"/usr/bin/{name}",),
            parent_pid=ppid,
            start_time=BASE_TIME + timedelta(seconds=start),
            username=username,
        ),
        metrics=metrics or make_metrics(),
    )


def with_metrics(proc: ProcessIdInfo, **kwargs) -> ProcessIdInfo:
    """Same process, new metrics."""
    return ProcessIdInfo(proc.id, proc.static, make_metrics(**kwargs))


def scan(*procs: ProcessIdInfo, **kwargs) -> ObservationIter:
    """Shorthand for one scan over procs."""
    return ObservationIter(*procs, **kwargs)
