"""Shared test fixtures for procgroup."""

from pathlib import Path

import pytest
from helpers import make_metrics

from procgroup.config import Config
from procgroup.model import UNAVAILABLE, ProcessMetrics


@pytest.fixture
def no_io_metrics() -> ProcessMetrics:
    """Metrics of a process whose I/O counters cannot be read."""
    return make_metrics(cpu=1.0, read=UNAVAILABLE, write=UNAVAILABLE)


@pytest.fixture
def tmp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Config:
    """Config whose paths all live under tmp_path."""
    monkeypatch.setattr(Config, "config_dir", property(lambda self: tmp_path / "config"))
    monkeypatch.setattr(Config, "state_dir", property(lambda self: tmp_path / "state"))
    return Config()
