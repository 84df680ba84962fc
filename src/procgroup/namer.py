"""Assigning processes to named groups.

A namer is any callable from ProcessStatic to a group name, or None to leave
the process out. MatcherNamer is the configurable implementation.
"""

import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from procgroup.model import ProcessStatic

Namer = Callable[[ProcessStatic], str | None]

DEFAULT_NAME_TEMPLATE = "{comm}"


@dataclass
class GroupMatcher:
    """One grouping rule.

    A process matches when every configured selector matches:
    - comm: process name is one of these
    - exe: basename or full path of argv[0] is one of these
    - cmdline: every regex matches the space-joined command line

    The group name is formatted from ``name`` with comm, exebase, exefull,
    username and any named regex groups.
    """

    name: str = DEFAULT_NAME_TEMPLATE
    comm: list[str] = field(default_factory=list)
    exe: list[str] = field(default_factory=list)
    cmdline: list[str] = field(default_factory=list)
    _patterns: list[re.Pattern] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if not (self.comm or self.exe or self.cmdline):
            raise ValueError(f"Matcher {self.name!r} needs at least one of comm, exe, cmdline")
        try:
            self._patterns = [re.compile(p) for p in self.cmdline]
        except re.error as e:
            raise ValueError(f"Invalid cmdline pattern in matcher {self.name!r}: {e}") from e

    def match(self, static: ProcessStatic) -> str | None:
        """Return the group name if static matches, else None."""
        if self.comm and static.name not in self.comm:
            return None

        exefull = static.cmdline[0] if static.cmdline else static.name
        exebase = os.path.basename(exefull)
        if self.exe and exebase not in self.exe and exefull not in self.exe:
            return None

        captures: dict[str, str] = {}
        joined = " ".join(static.cmdline)
        for pattern in self._patterns:
            m = pattern.search(joined)
            if m is None:
                return None
            captures.update({k: v for k, v in m.groupdict().items() if v is not None})

        try:
            return self.name.format(
                comm=static.name,
                exebase=exebase,
                exefull=exefull,
                username=static.username,
                **captures,
            )
        except (KeyError, IndexError) as e:
            raise ValueError(f"Group name template {self.name!r} references {e}") from e


class MatcherNamer:
    """First matching GroupMatcher wins.

    With no matchers every process is grouped by its process name.
    """

    def __init__(self, matchers: list[GroupMatcher] | None = None) -> None:
        self.matchers = matchers or []

    def __call__(self, static: ProcessStatic) -> str | None:
        if not self.matchers:
            return static.name or None
        for matcher in self.matchers:
            name = matcher.match(static)
            if name is not None:
                return name
        return None
