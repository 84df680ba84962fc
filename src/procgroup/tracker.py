"""Per-process lifecycle tracking and counter accumulation."""

from collections.abc import Iterator
from dataclasses import dataclass, field, replace

import structlog

from procgroup.model import (
    Counts,
    Memory,
    ProcessGone,
    ProcessHandle,
    ProcessId,
    ProcessIdInfo,
    ProcessInfo,
    ProcessIter,
    ProcessMetrics,
    ProcessReadError,
    is_available,
)

log = structlog.get_logger()


@dataclass
class CollectErrors:
    """Non-fatal problems seen during one scan."""

    errors: list[ProcessReadError] = field(default_factory=list)
    gone: int = 0  # Processes that exited while being read
    naming_failed: int = 0  # New processes the namer raised on; ignored

    @property
    def read(self) -> int:
        """Number of processes skipped because a read failed."""
        return len(self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors) or self.naming_failed > 0


@dataclass
class TrackedProcess:
    """In-memory state for a tracked process."""

    group_name: str
    info: ProcessInfo
    accum: Counts = field(default_factory=Counts)
    last_update: int = 0  # Cycle in which the process was last seen

    def get_name(self) -> str:
        return self.info.static.name

    def get_cmdline(self) -> tuple[str, ...]:
        return self.info.static.cmdline

    def get_stats(self) -> tuple[Counts, Memory]:
        """Return accumulated counts and current memory."""
        metrics = self.info.metrics
        return self.accum, Memory(metrics.resident_bytes, metrics.virtual_bytes)


def _delta(current: int, last: int) -> int:
    """Growth of a cumulative counter, zero if either reading is unavailable."""
    if not is_available(current) or not is_available(last):
        return 0
    return max(0, current - last)


def _merge_metrics(last: ProcessMetrics, current: ProcessMetrics) -> ProcessMetrics:
    """Take the new readings but keep the last good value for unavailable counters."""
    return replace(
        current,
        read_bytes=current.read_bytes if is_available(current.read_bytes) else last.read_bytes,
        write_bytes=current.write_bytes if is_available(current.write_bytes) else last.write_bytes,
    )


class Tracker:
    """Observes processes across scans and accumulates their counters.

    Entries in ``tracked`` map a process identity to its state. A ``None``
    value is a tombstone: the process was explicitly ignored and stays that way
    until unignored or until its pid is taken by a new process.

    Discovery and tracking are separate. ``update`` reports processes it has
    not seen before; they are only tracked once the caller passes them to
    ``track`` (or excluded with ``ignore``).
    """

    def __init__(self) -> None:
        self.tracked: dict[ProcessId, TrackedProcess | None] = {}
        self.proc_ids: dict[int, ProcessId] = {}
        self._cycle = 0

    def track(self, group_name: str, idinfo: ProcessIdInfo) -> bool:
        """Start tracking a process under group_name.

        Returns False if the process has been ignored.
        """
        proc_id = idinfo.id
        if proc_id in self.tracked and self.tracked[proc_id] is None:
            log.debug("track_ignored_process", pid=proc_id.pid, group=group_name)
            return False

        self._claim_pid(proc_id)
        self.tracked[proc_id] = TrackedProcess(
            group_name=group_name,
            info=idinfo.info,
            last_update=self._cycle,
        )
        return True

    def ignore(self, proc_id: ProcessId) -> bool:
        """Exclude a process from reporting for as long as it lives.

        Returns False if the tracker has never seen proc_id.
        """
        if proc_id not in self.tracked and self.proc_ids.get(proc_id.pid) != proc_id:
            log.debug("ignore_unknown_process", pid=proc_id.pid)
            return False
        self.tracked[proc_id] = None
        self.proc_ids[proc_id.pid] = proc_id
        return True

    def unignore(self, proc_id: ProcessId) -> bool:
        """Drop a tombstone so the process is reported as new when next seen."""
        if proc_id not in self.tracked or self.tracked[proc_id] is not None:
            return False
        del self.tracked[proc_id]
        return True

    def is_ignored(self, proc_id: ProcessId) -> bool:
        return proc_id in self.tracked and self.tracked[proc_id] is None

    def tracked_updates(self) -> Iterator[tuple[ProcessId, TrackedProcess]]:
        """Yield every live (non-ignored) tracked process."""
        for proc_id, tracked in self.tracked.items():
            if tracked is not None:
                yield proc_id, tracked

    def lookup_pid(self, pid: int) -> TrackedProcess | None:
        """Return the live tracked process currently holding pid, if any."""
        proc_id = self.proc_ids.get(pid)
        if proc_id is None:
            return None
        return self.tracked.get(proc_id)

    def update(self, procs: ProcessIter) -> tuple[list[ProcessIdInfo], CollectErrors]:
        """Consume one scan.

        Rather than building a fresh map each cycle to find exited processes,
        each process seen gets the current cycle number; a second pass then
        removes live entries that still carry an older one.

        Readings are staged while the scan runs and only applied once it has
        closed cleanly.

        Returns the newly discovered processes and the per-process errors.

        Raises:
            ScanError: If the scan could not be closed. Nothing from that
                       cycle is applied: no counts, no pid claims, no reaping.
        """
        self._cycle += 1
        cycle = self._cycle
        new_procs: list[ProcessIdInfo] = []
        # Live entries seen this scan, with their new metrics (None if unreadable)
        seen: list[tuple[TrackedProcess, ProcessMetrics | None]] = []
        errs = CollectErrors()

        try:
            for handle in procs:
                try:
                    idinfo = self._observe(handle, seen)
                except ProcessGone:
                    errs.gone += 1
                    continue
                except ProcessReadError as e:
                    errs.errors.append(e)
                    continue
                if idinfo is not None:
                    new_procs.append(idinfo)
        finally:
            procs.close()

        for tracked, metrics in seen:
            if metrics is not None:
                self._accumulate(tracked, metrics)
            tracked.last_update = cycle
        for idinfo in new_procs:
            self._claim_pid(idinfo.id)

        for proc_id, tracked in list(self.tracked.items()):
            if tracked is None or tracked.last_update == cycle:
                continue
            del self.tracked[proc_id]
            if self.proc_ids.get(proc_id.pid) == proc_id:
                del self.proc_ids[proc_id.pid]
            log.debug("process_exited", pid=proc_id.pid, group=tracked.group_name)

        return new_procs, errs

    def _observe(
        self,
        handle: ProcessHandle,
        seen: list[tuple[TrackedProcess, ProcessMetrics | None]],
    ) -> ProcessIdInfo | None:
        """Read one handle; return it as a new process if it is unknown."""
        proc_id = handle.get_id()

        if proc_id in self.tracked:
            last = self.tracked[proc_id]
            if last is None:
                return None
            try:
                metrics = handle.get_metrics()
            except ProcessReadError:
                # Still running, so keep it (and its accumulator) from being reaped
                seen.append((last, None))
                raise
            seen.append((last, metrics))
            return None

        static = handle.get_static()
        metrics = handle.get_metrics()
        return ProcessIdInfo(proc_id, static, metrics)

    def _accumulate(self, tracked: TrackedProcess, metrics: ProcessMetrics) -> None:
        last = tracked.info.metrics
        delta = Counts(
            cpu=max(0.0, metrics.cpu_time - last.cpu_time),
            read_bytes=_delta(metrics.read_bytes, last.read_bytes),
            write_bytes=_delta(metrics.write_bytes, last.write_bytes),
        )
        tracked.accum = tracked.accum + delta
        tracked.info = replace(tracked.info, metrics=_merge_metrics(last, metrics))

    def _claim_pid(self, proc_id: ProcessId) -> None:
        """Point the pid index at proc_id, evicting whatever held the pid before."""
        old_id = self.proc_ids.get(proc_id.pid)
        if old_id is not None and old_id != proc_id:
            # Evict now; otherwise the sweep would drop the index entry we set here
            old = self.tracked.pop(old_id, None)
            log.debug(
                "pid_reused",
                pid=proc_id.pid,
                old_start=old_id.start_time_rel,
                new_start=proc_id.start_time_rel,
                group=old.group_name if old is not None else None,
            )
        self.proc_ids[proc_id.pid] = proc_id
