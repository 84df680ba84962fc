"""Tests for console helpers and structured file logging."""

import json
import logging

import pytest
import structlog

from procgroup import logging as console


@pytest.fixture
def reset_logging():
    """Restore structlog and the stdlib root logger after configure()."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def read_log_lines(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines()]


class TestConsoleHelpers:
    """Tests for the Rich console helpers."""

    def test_info_line(self, capsys):
        console.info("hello")
        out = capsys.readouterr().out
        assert "[info]" in out
        assert "hello" in out

    def test_error_with_icon(self, capsys):
        console.cycle_failed("scan broke")
        out = capsys.readouterr().out
        assert "[err]" in out
        assert "✗" in out
        assert "Cycle failed: scan broke" in out

    def test_group_appeared_pluralizes(self, capsys):
        console.group_appeared("web", 1)
        console.group_appeared("db", 3)
        out = capsys.readouterr().out
        assert "(1 process)" in out
        assert "(3 processes)" in out

    def test_heartbeat(self, capsys):
        console.heartbeat(cycles=12, groups=4, tracked=30, ignored=200, read_errors=2)
        # Rich wraps at the terminal width
        out = " ".join(capsys.readouterr().out.split())
        assert "4 groups, 30 tracked" in out
        assert "200 ignored, 2 read errors over 12 cycles" in out

    def test_collect_errors(self, capsys):
        console.collect_errors(read=0, gone=2, naming_failed=1)
        out = capsys.readouterr().out
        assert "unreadable" not in out
        assert "1 processes could not be named" in out

    def test_config_summary(self, capsys):
        console.config_summary(5.0, 0, True)
        out = capsys.readouterr().out
        assert "interval=5.0s" in out
        assert "group by name" in out
        assert "children=on" in out


class TestConfigure:
    """Tests for structlog file configuration."""

    def test_writes_json_lines(self, tmp_config, reset_logging):
        console.configure(tmp_config)

        console.get_structlog().info("group_appeared", group="web", procs=2)

        [entry] = read_log_lines(tmp_config.log_path)
        assert entry["event"] == "group_appeared"
        assert entry["group"] == "web"
        assert entry["procs"] == 2
        assert entry["level"] == "info"
        assert entry["source"] == "daemon"
        assert "ts" in entry

    def test_level_filter(self, tmp_config, reset_logging):
        console.configure(tmp_config)

        log = console.get_structlog()
        log.debug("process_tracked", pid=1)
        log.warning("kept")

        entries = read_log_lines(tmp_config.log_path)
        assert [e["event"] for e in entries] == ["kept"]

    def test_stdlib_records_use_same_format(self, tmp_config, reset_logging):
        console.configure(tmp_config)

        logging.getLogger("somelib").warning("plain %s", "message")

        [entry] = read_log_lines(tmp_config.log_path)
        assert entry["event"] == "plain message"
        assert entry["level"] == "warning"
        assert entry["source"] == "daemon"
