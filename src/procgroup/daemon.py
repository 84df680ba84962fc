"""Background sampling loop for procgroup."""

import asyncio
import signal
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog

from procgroup import logging as console
from procgroup.collector import PsutilProcs
from procgroup.config import Config
from procgroup.grouper import Grouper, GroupByName
from procgroup.model import ProcessIter, ScanError

log = structlog.get_logger()


@dataclass
class DaemonState:
    """Runtime state of the daemon."""

    running: bool = False
    cycle_count: int = 0
    failed_cycles: int = 0
    last_cycle_time: datetime | None = None
    group_count: int = 0

    def update_cycle(self, group_count: int) -> None:
        """Update state after a completed cycle."""
        self.cycle_count += 1
        self.group_count = group_count
        self.last_cycle_time = datetime.now()


class Daemon:
    """Runs one scan cycle per sample interval and keeps the latest groups.

    ``latest`` always holds the groups of the last cycle that completed; a
    failed cycle leaves it unchanged.
    """

    def __init__(
        self,
        config: Config,
        scanner: Callable[[], ProcessIter] = PsutilProcs,
    ):
        self.config = config
        self.state = DaemonState()
        self.grouper = Grouper(
            config.grouping.build_namer(),
            track_children=config.grouping.track_children,
        )
        self.latest: GroupByName = {}
        self._scanner = scanner
        self._shutdown_event = asyncio.Event()

        # Heartbeat window
        self._hb_cycles = 0
        self._hb_read_errors = 0

    def run_cycle(self) -> GroupByName | None:
        """Run one scan cycle. Returns the groups, or None if the cycle failed."""
        try:
            errs, groups = self.grouper.update(self._scanner())
        except ScanError as e:
            self.state.failed_cycles += 1
            log.error("cycle_failed", error=str(e))
            console.cycle_failed(str(e))
            return None

        for name in groups.keys() - self.latest.keys():
            log.info("group_appeared", group=name, procs=groups[name].procs)
            console.group_appeared(name, groups[name].procs)

        if errs:
            log.info(
                "collect_errors",
                read=errs.read,
                gone=errs.gone,
                naming_failed=errs.naming_failed,
            )
            console.collect_errors(errs.read, errs.gone, errs.naming_failed)
            for e in errs.errors:
                log.debug("process_read_failed", pid=e.pid, reason=e.reason)

        self.latest = groups
        self.state.update_cycle(len(groups))
        self._hb_cycles += 1
        self._hb_read_errors += errs.read
        return groups

    def _heartbeat(self) -> None:
        tracker = self.grouper.tracker
        tracked = sum(1 for _ in tracker.tracked_updates())
        ignored = len(tracker.tracked) - tracked
        log.info(
            "daemon_heartbeat",
            cycles=self._hb_cycles,
            groups=len(self.latest),
            tracked=tracked,
            ignored=ignored,
            read_errors=self._hb_read_errors,
        )
        console.heartbeat(self._hb_cycles, len(self.latest), tracked, ignored, self._hb_read_errors)
        self._hb_cycles = 0
        self._hb_read_errors = 0

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        log.info("signal_received", signal=sig.name)
        console.signal_received(sig.name)
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def start(self) -> None:
        """Install signal handlers and run the main loop until shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

        grouping = self.config.grouping
        log.info(
            "daemon_config",
            sample_interval=self.config.system.sample_interval,
            matchers=len(grouping.matchers),
            track_children=grouping.track_children,
        )
        console.config_summary(
            self.config.system.sample_interval, len(grouping.matchers), grouping.track_children
        )

        self.state.running = True
        log.info("daemon_started")
        console.daemon_started()
        await self._main_loop()

    async def stop(self) -> None:
        """Stop the daemon."""
        log.info("daemon_stopping")
        console.daemon_stopping()
        self.state.running = False
        self._shutdown_event.set()
        log.info("daemon_stopped", cycles=self.state.cycle_count)
        console.daemon_stopped()

    async def _main_loop(self) -> None:
        """Run cycles at the configured interval until shutdown.

        The interval is measured from the start of each cycle, so a slow scan
        shortens the following sleep rather than drifting the schedule.
        """
        interval = self.config.system.sample_interval
        heartbeat_cycles = self.config.system.heartbeat_cycles
        loop = asyncio.get_running_loop()

        while not self._shutdown_event.is_set():
            try:
                cycle_start = loop.time()

                # Scanning the process table is blocking; cycles stay sequential
                await loop.run_in_executor(None, self.run_cycle)

                if self._hb_cycles >= heartbeat_cycles:
                    self._heartbeat()

                elapsed = loop.time() - cycle_start
                sleep_time = interval - elapsed
                if sleep_time > 0:
                    try:
                        await asyncio.wait_for(self._shutdown_event.wait(), timeout=sleep_time)
                        break
                    except asyncio.TimeoutError:
                        pass
            except asyncio.CancelledError:
                log.info("main_loop_cancelled")
                break
            except Exception as e:
                self.state.failed_cycles += 1
                log.error("cycle_crashed", error=str(e))
                console.cycle_failed(str(e))
                # Wait briefly before retry, but exit immediately if shutdown
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(), timeout=min(1.0, interval)
                    )
                    break
                except asyncio.TimeoutError:
                    pass


async def run_daemon(config: Config | None = None) -> None:
    """Run the daemon until shutdown.

    Args:
        config: Optional config, loads from file if not provided
    """
    if config is None:
        config = Config.load()

    console.configure(config)

    daemon = Daemon(config)
    try:
        await daemon.start()
    except Exception as e:
        log.exception("daemon_crashed", error=str(e))
        raise
    finally:
        await daemon.stop()
