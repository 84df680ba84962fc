"""Configuration system for procgroup."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

from procgroup.namer import DEFAULT_NAME_TEMPLATE, GroupMatcher, MatcherNamer


@dataclass
class SystemConfig:
    """Sampling and logging configuration."""

    sample_interval: float = 5.0  # Seconds between scan cycles
    heartbeat_cycles: int = 12  # Log heartbeat every N cycles (~1 minute at 5s)
    # Log file rotation
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


@dataclass
class MatcherConfig:
    """A [[grouping.matchers]] entry. See GroupMatcher for semantics."""

    name: str = DEFAULT_NAME_TEMPLATE
    comm: list[str] = field(default_factory=list)
    exe: list[str] = field(default_factory=list)
    cmdline: list[str] = field(default_factory=list)


@dataclass
class GroupingConfig:
    """How processes are assigned to groups.

    Matchers are tried in order; the first match names the group. With no
    matchers, processes are grouped by process name.
    """

    track_children: bool = True  # Children of a tracked process join its group
    matchers: list[MatcherConfig] = field(default_factory=list)

    def build_namer(self) -> MatcherNamer:
        """Create the namer described by this config."""
        return MatcherNamer(
            [
                GroupMatcher(name=m.name, comm=m.comm, exe=m.exe, cmdline=m.cmdline)
                for m in self.matchers
            ]
        )


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        elif isinstance(value, list) and value and is_dataclass(value[0]):
            aot = tomlkit.aot()
            for item in value:
                aot.append(_dataclass_to_table(item))
            table.add(f.name, aot)
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    system: SystemConfig = field(default_factory=SystemConfig)
    grouping: GroupingConfig = field(default_factory=GroupingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "procgroup"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "procgroup"

    @property
    def log_path(self) -> Path:
        """Daemon log path (JSON Lines)."""
        return self.state_dir / "daemon.log"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ["system", "grouping"]:
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() agree.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            system=_load_system_config(data.get("system", {})),
            grouping=_load_grouping_config(data.get("grouping", {})),
        )


def _load_system_config(data: dict) -> SystemConfig:
    """Load system config from TOML data, using dataclass defaults for missing fields."""
    d = SystemConfig()

    sample_interval = data.get("sample_interval", d.sample_interval)
    heartbeat_cycles = data.get("heartbeat_cycles", d.heartbeat_cycles)
    log_max_bytes = data.get("log_max_bytes", d.log_max_bytes)
    log_backup_count = data.get("log_backup_count", d.log_backup_count)

    if sample_interval <= 0:
        raise ValueError(f"sample_interval must be > 0, got {sample_interval}")
    if heartbeat_cycles < 1:
        raise ValueError(f"heartbeat_cycles must be >= 1, got {heartbeat_cycles}")
    if log_max_bytes < 0:
        raise ValueError(f"log_max_bytes must be >= 0, got {log_max_bytes}")
    if log_backup_count < 0:
        raise ValueError(f"log_backup_count must be >= 0, got {log_backup_count}")

    return SystemConfig(
        sample_interval=sample_interval,
        heartbeat_cycles=heartbeat_cycles,
        log_max_bytes=log_max_bytes,
        log_backup_count=log_backup_count,
    )


def _load_grouping_config(data: dict) -> GroupingConfig:
    """Load grouping config, validating each matcher."""
    d = GroupingConfig()
    matchers = []
    for i, entry in enumerate(data.get("matchers", [])):
        unknown = set(entry) - {"name", "comm", "exe", "cmdline"}
        if unknown:
            raise ValueError(f"Unknown keys in grouping.matchers[{i}]: {sorted(unknown)}")
        matcher = MatcherConfig(
            name=entry.get("name", DEFAULT_NAME_TEMPLATE),
            comm=list(entry.get("comm", [])),
            exe=list(entry.get("exe", [])),
            cmdline=list(entry.get("cmdline", [])),
        )
        matchers.append(matcher)

    config = GroupingConfig(
        track_children=data.get("track_children", d.track_children),
        matchers=matchers,
    )
    # Surface bad selectors or regexes at load time rather than on first scan
    config.build_namer()
    return config
