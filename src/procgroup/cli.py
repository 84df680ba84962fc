"""CLI commands for procgroup."""

import click


@click.group()
@click.version_option(package_name="procgroup")
def main() -> None:
    """Track per-group process resource usage."""
    pass


@main.command()
def daemon() -> None:
    """Run the background sampler."""
    import asyncio

    from procgroup.daemon import run_daemon

    asyncio.run(run_daemon())


@main.command()
@click.option("--cycles", "-n", default=2, type=click.IntRange(min=1), help="Scan cycles to run")
@click.option("--interval", "-i", default=1.0, type=float, help="Seconds between cycles")
@click.option("--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table")
@click.option("--all", "show_all", is_flag=True, help="Include groups with no live members")
def snapshot(cycles: int, interval: float, fmt: str, show_all: bool) -> None:
    """Sample the process table and print per-group totals.

    Counts accumulate from the first cycle, so at least two cycles are needed
    to see CPU and I/O growth.
    """
    import json
    import time

    from procgroup.collector import PsutilProcs
    from procgroup.config import Config
    from procgroup.grouper import Grouper
    from procgroup.model import ScanError

    config = Config.load()
    grouper = Grouper(
        config.grouping.build_namer(),
        track_children=config.grouping.track_children,
    )

    groups = {}
    for i in range(cycles):
        if i > 0:
            time.sleep(interval)
        try:
            errs, groups = grouper.update(PsutilProcs())
        except ScanError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)
        if errs.read:
            click.echo(f"Warning: {errs.read} processes could not be read", err=True)
        if errs.naming_failed:
            click.echo(
                f"Warning: {errs.naming_failed} processes could not be named", err=True
            )

    if not show_all:
        groups = {name: g for name, g in groups.items() if g.procs > 0}

    if fmt == "json":
        click.echo(json.dumps({name: g.to_dict() for name, g in groups.items()}, indent=2))
        return

    if not groups:
        click.echo("No groups.")
        return

    from procgroup.formatting import format_age, format_bytes, format_cpu_seconds

    click.echo(
        f"{'Group':24}  {'Procs':>5}  {'CPU':>8}  {'Read':>7}  {'Write':>7}  "
        f"{'RSS':>7}  {'FDs':>5}  {'FD%':>5}  {'Thr':>5}  {'Oldest':>8}"
    )
    click.echo("-" * 98)

    now = time.time()
    for name in sorted(groups, key=lambda n: groups[n].counts.cpu, reverse=True):
        g = groups[name]
        click.echo(
            f"{name[:24]:24}  {g.procs:>5}  {format_cpu_seconds(g.counts.cpu):>8}  "
            f"{format_bytes(g.counts.read_bytes):>7}  {format_bytes(g.counts.write_bytes):>7}  "
            f"{format_bytes(g.memory.resident_bytes):>7}  {g.open_fds:>5}  "
            f"{g.worst_fd_ratio * 100:>4.0f}%  {g.num_threads:>5}  "
            f"{format_age(g.oldest_start_time, now=now):>8}"
        )


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from procgroup.config import Config

    cfg = Config.load()

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[system]")
    click.echo(f"  sample_interval = {cfg.system.sample_interval}")
    click.echo(f"  heartbeat_cycles = {cfg.system.heartbeat_cycles}")
    click.echo(f"  log_max_bytes = {cfg.system.log_max_bytes}")
    click.echo(f"  log_backup_count = {cfg.system.log_backup_count}")
    click.echo()
    click.echo("[grouping]")
    click.echo(f"  track_children = {cfg.grouping.track_children}")
    if not cfg.grouping.matchers:
        click.echo("  (no matchers: grouping by process name)")
    for m in cfg.grouping.matchers:
        selectors = []
        if m.comm:
            selectors.append(f"comm={m.comm}")
        if m.exe:
            selectors.append(f"exe={m.exe}")
        if m.cmdline:
            selectors.append(f"cmdline={m.cmdline}")
        click.echo(f"  {m.name}: {', '.join(selectors)}")


@config.command("path")
def config_path() -> None:
    """Print the config file path."""
    from procgroup.config import Config

    click.echo(str(Config().config_path))


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from procgroup.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")
