"""Tests for configuration system."""

import pytest

from procgroup.config import Config, GroupingConfig, MatcherConfig, SystemConfig


def test_system_config_defaults():
    """SystemConfig has correct defaults."""
    config = SystemConfig()
    assert config.sample_interval == 5.0
    assert config.heartbeat_cycles == 12
    assert config.log_max_bytes == 5 * 1024 * 1024
    assert config.log_backup_count == 3


def test_grouping_config_defaults():
    """GroupingConfig tracks children and has no matchers by default."""
    config = GroupingConfig()
    assert config.track_children is True
    assert config.matchers == []


def test_config_paths():
    """Config provides correct paths."""
    config = Config()
    assert "procgroup" in str(config.config_dir)
    assert config.config_path.name == "config.toml"
    assert config.log_path.name == "daemon.log"
    assert config.log_path.parent == config.state_dir


def test_config_load_missing_file_returns_defaults(tmp_path):
    """Config.load() with no file returns defaults."""
    config = Config.load(tmp_path / "missing.toml")
    assert config == Config()


def test_config_save_load_roundtrip(tmp_path):
    """Saved values come back unchanged, including matchers."""
    config_path = tmp_path / "config.toml"
    config = Config()
    config.system.sample_interval = 2.5
    config.grouping.track_children = False
    config.grouping.matchers = [
        MatcherConfig(name="web", comm=["nginx"]),
        MatcherConfig(name="celery:{queue}", cmdline=[r"-Q (?P<queue>\w+)"]),
    ]
    config.save(config_path)

    loaded = Config.load(config_path)

    assert loaded.system.sample_interval == 2.5
    assert loaded.grouping.track_children is False
    assert loaded.grouping.matchers == config.grouping.matchers


def test_config_partial_file_uses_defaults(tmp_path):
    """Missing keys fall back to dataclass defaults."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("[system]\nsample_interval = 1.0\n")

    config = Config.load(config_path)

    assert config.system.sample_interval == 1.0
    assert config.system.heartbeat_cycles == SystemConfig().heartbeat_cycles
    assert config.grouping == GroupingConfig()


def test_config_matchers_from_toml(tmp_path):
    """[[grouping.matchers]] entries build a working namer."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        "[grouping]\n"
        "[[grouping.matchers]]\n"
        'name = "shells"\n'
        'comm = ["bash", "zsh"]\n'
    )

    config = Config.load(config_path)
    namer = config.grouping.build_namer()

    assert len(namer.matchers) == 1
    assert namer.matchers[0].comm == ["bash", "zsh"]


def test_config_invalid_toml(tmp_path):
    """Unparseable files raise ValueError naming the file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text("[system\n")

    with pytest.raises(ValueError, match="Failed to parse"):
        Config.load(config_path)


@pytest.mark.parametrize(
    "body, message",
    [
        ("[system]\nsample_interval = 0\n", "sample_interval"),
        ("[system]\nheartbeat_cycles = 0\n", "heartbeat_cycles"),
        ("[system]\nlog_backup_count = -1\n", "log_backup_count"),
        ('[[grouping.matchers]]\nname = "x"\n', "needs at least one"),
        ('[[grouping.matchers]]\ncmdline = ["("]\n', "Invalid cmdline pattern"),
        ('[[grouping.matchers]]\ncomm = ["a"]\nuser = "root"\n', "Unknown keys"),
    ],
)
def test_config_validation(tmp_path, body, message):
    """Invalid values are rejected at load time."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(body)

    with pytest.raises(ValueError, match=message):
        Config.load(config_path)


def test_config_save_creates_parent_dirs(tmp_path):
    """save() creates missing directories."""
    config_path = tmp_path / "nested" / "dir" / "config.toml"
    Config().save(config_path)
    assert config_path.exists()
