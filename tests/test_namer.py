"""Tests for group naming."""

import pytest
from helpers import make_proc

from procgroup.namer import GroupMatcher, MatcherNamer


def static(name: str, cmdline: tuple[str, ...] = (), username: str = "alice"):
    return make_proc(1, 1, name=name, cmdline=cmdline, username=username).static


class TestGroupMatcher:
    """Tests for individual matchers."""

    def test_comm_match(self) -> None:
        matcher = GroupMatcher(name="web", comm=["nginx", "apache2"])
        assert matcher.match(static("nginx")) == "web"
        assert matcher.match(static("postgres")) is None

    def test_exe_matches_basename_or_full_path(self) -> None:
        matcher = GroupMatcher(name="{exebase}", exe=["python3", "/usr/bin/node"])
        assert matcher.match(static("python3", ("/usr/local/bin/python3", "app.py"))) == "python3"
        assert matcher.match(static("node", ("/usr/bin/node", "server.js"))) == "node"
        assert matcher.match(static("node", ("/opt/node", "server.js"))) is None

    def test_exe_falls_back_to_name_without_cmdline(self) -> None:
        """Kernel threads have no cmdline; the process name stands in for argv[0]."""
        matcher = GroupMatcher(name="{exefull}", exe=["kworker"])
        assert matcher.match(static("kworker")) == "kworker"

    def test_cmdline_named_groups_in_template(self) -> None:
        matcher = GroupMatcher(name="celery:{queue}", cmdline=[r"-Q (?P<queue>\w+)"])
        proc = static("python", ("python", "-m", "celery", "worker", "-Q", "emails"))
        assert matcher.match(proc) == "celery:emails"

    def test_all_cmdline_patterns_must_match(self) -> None:
        matcher = GroupMatcher(name="x", cmdline=["java", "-jar"])
        assert matcher.match(static("java", ("java", "-jar", "app.jar"))) == "x"
        assert matcher.match(static("java", ("java", "Main"))) is None

    def test_selectors_combine(self) -> None:
        matcher = GroupMatcher(name="{comm}-{username}", comm=["sshd"], cmdline=["@"])
        assert matcher.match(static("sshd", ("sshd: bob@pts/0",))) == "sshd-alice"
        assert matcher.match(static("sshd", ("/usr/sbin/sshd", "-D"))) is None

    def test_requires_a_selector(self) -> None:
        with pytest.raises(ValueError, match="needs at least one"):
            GroupMatcher(name="everything")

    def test_invalid_regex(self) -> None:
        with pytest.raises(ValueError, match="Invalid cmdline pattern"):
            GroupMatcher(name="x", cmdline=["("])

    def test_unknown_template_field(self) -> None:
        matcher = GroupMatcher(name="{nope}", comm=["bash"])
        with pytest.raises(ValueError, match="references"):
            matcher.match(static("bash"))


class TestMatcherNamer:
    """Tests for ordered matching."""

    def test_no_matchers_groups_by_name(self) -> None:
        namer = MatcherNamer()
        assert namer(static("redis-server")) == "redis-server"
        assert namer(static("")) is None

    def test_first_match_wins(self) -> None:
        namer = MatcherNamer(
            [
                GroupMatcher(name="first", comm=["bash"]),
                GroupMatcher(name="second", comm=["bash", "zsh"]),
            ]
        )
        assert namer(static("bash")) == "first"
        assert namer(static("zsh")) == "second"

    def test_unmatched_is_none(self) -> None:
        namer = MatcherNamer([GroupMatcher(name="shells", comm=["bash"])])
        assert namer(static("vim")) is None
