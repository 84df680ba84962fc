"""Aggregation of tracked processes into named groups."""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from procgroup.model import UNAVAILABLE, Counts, Memory, ProcessId, ProcessIdInfo, ProcessIter
from procgroup.namer import Namer
from procgroup.tracker import CollectErrors, Tracker, TrackedProcess

log = structlog.get_logger()


@dataclass
class Group:
    """Metrics of a single group for one cycle."""

    counts: Counts = field(default_factory=Counts)
    procs: int = 0
    memory: Memory = field(default_factory=Memory)
    oldest_start_time: datetime | None = None
    open_fds: int = 0
    worst_fd_ratio: float = 0.0
    num_threads: int = 0

    def add(self, tracked: TrackedProcess) -> None:
        """Fold one live member into the group."""
        static = tracked.info.static
        metrics = tracked.info.metrics

        self.procs += 1
        self.memory = self.memory + Memory(metrics.resident_bytes, metrics.virtual_bytes)
        if metrics.open_fds != UNAVAILABLE:
            self.open_fds += metrics.open_fds
            if metrics.max_fds != UNAVAILABLE and metrics.max_fds > 0:
                self.worst_fd_ratio = max(self.worst_fd_ratio, metrics.open_fds / metrics.max_fds)
        self.num_threads += metrics.num_threads
        self.counts = self.counts + tracked.accum
        if self.oldest_start_time is None or static.start_time < self.oldest_start_time:
            self.oldest_start_time = static.start_time

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "procs": self.procs,
            "counts": self.counts.to_dict(),
            "resident_bytes": self.memory.resident_bytes,
            "virtual_bytes": self.memory.virtual_bytes,
            "oldest_start_time": (
                self.oldest_start_time.isoformat() if self.oldest_start_time else None
            ),
            "open_fds": self.open_fds,
            "worst_fd_ratio": self.worst_fd_ratio,
            "num_threads": self.num_threads,
        }


GroupByName = dict[str, Group]


class Grouper:
    """Top-level interface to the process metrics.

    All tracked processes sharing a group name are aggregated. Counts
    contributed by members that have exited are kept in a per-group floor so
    the totals returned never decrease.
    """

    def __init__(self, namer: Namer, track_children: bool = False) -> None:
        self.tracker = Tracker()
        self._namer = namer
        self._track_children = track_children
        # Counts left behind by members that have exited, per group
        self._group_floor: dict[str, Counts] = {}
        # Members seen in the last completed cycle and their accumulators
        self._members: dict[ProcessId, tuple[str, Counts]] = {}

    @property
    def group_names(self) -> list[str]:
        """Every group name observed so far."""
        return list(self._group_floor)

    def update(self, procs: ProcessIter) -> tuple[CollectErrors, GroupByName]:
        """Run one cycle and return the per-group metrics.

        Raises:
            ScanError: If the scan failed; group state is left untouched.
        """
        new_procs, errs = self.tracker.update(procs)
        self._classify(new_procs, errs)

        groups: GroupByName = {}
        members: dict[ProcessId, tuple[str, Counts]] = {}
        for proc_id, tracked in self.tracker.tracked_updates():
            gname = tracked.group_name
            groups.setdefault(gname, Group()).add(tracked)
            members[proc_id] = (gname, tracked.accum)
            self._group_floor.setdefault(gname, Counts())

        # Members that left since the last cycle hand their final counts to the floor
        for proc_id, (gname, accum) in self._members.items():
            if proc_id not in members:
                self._group_floor[gname] = self._group_floor[gname] + accum
        self._members = members

        # Groups with no live members still report what they accumulated
        for gname, floor in self._group_floor.items():
            group = groups.setdefault(gname, Group())
            group.counts = group.counts + floor

        return errs, groups

    def _classify(self, new_procs: list[ProcessIdInfo], errs: CollectErrors) -> None:
        """Track or ignore each newly discovered process.

        A process the namer cannot name is ignored and counted in errs.
        """
        new_by_pid = {p.id.pid: p for p in new_procs}
        decided: dict[int, str | None] = {}

        for idinfo in new_procs:
            gname = self._group_for(idinfo, new_by_pid, decided, errs)
            if gname is None:
                self.tracker.ignore(idinfo.id)
            else:
                self.tracker.track(gname, idinfo)
                log.debug("process_tracked", pid=idinfo.id.pid, group=gname)

    def _group_for(
        self,
        idinfo: ProcessIdInfo,
        new_by_pid: dict[int, ProcessIdInfo],
        decided: dict[int, str | None],
        errs: CollectErrors,
    ) -> str | None:
        pid = idinfo.id.pid
        if pid in decided:
            return decided[pid]

        gname = None
        if self._track_children:
            ppid = idinfo.static.parent_pid
            parent = self.tracker.lookup_pid(ppid)
            if parent is not None:
                gname = parent.group_name
            elif ppid in new_by_pid and ppid != pid:
                decided[pid] = None  # guards against ppid loops
                gname = self._group_for(new_by_pid[ppid], new_by_pid, decided, errs)

        if gname is None:
            try:
                gname = self._namer(idinfo.static)
            except ValueError as e:
                log.warning(
                    "process_naming_failed", pid=pid, name=idinfo.static.name, error=str(e)
                )
                errs.naming_failed += 1
        decided[pid] = gname
        return gname
