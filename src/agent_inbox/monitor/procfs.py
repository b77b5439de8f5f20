"""Read-only view of OS process state via ``/proc``.

Every read failure (process gone, permission denied, unparsable file) is
treated as absence of data; nothing here raises for a missing process.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

ZOMBIE_STATES = frozenset({"Z", "X", "x"})


@dataclass(frozen=True, slots=True)
class ProcessStat:
    """Fields of ``/proc/<pid>/stat`` the monitor needs."""

    pid: int
    state: str
    ppid: int
    cpu_ticks: int
    start_time: int


class ProcessTable(Protocol):
    """Source of process state; ``ProcfsProcessTable`` in production."""

    def pids(self) -> list[int]: ...

    def stat(self, pid: int) -> ProcessStat | None: ...

    def is_alive(self, pid: int) -> bool: ...


class ProcfsProcessTable:
    """Linux ``/proc`` reader."""

    def __init__(self, root: Path = Path("/proc")) -> None:
        self.root = root

    def pids(self) -> list[int]:
        try:
            entries = list(self.root.iterdir())
        except OSError as error:
            logger.debug("Cannot list %s: %s", self.root, error)
            return []
        return sorted(int(entry.name) for entry in entries if entry.name.isdigit())

    def stat(self, pid: int) -> ProcessStat | None:
        try:
            raw = (self.root / str(pid) / "stat").read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
        return parse_stat(pid, raw)

    def is_alive(self, pid: int) -> bool:
        """True while the process exists and has not become a zombie."""

        if not (self.root / str(pid)).exists():
            return False
        stat = self.stat(pid)
        return stat is None or stat.state not in ZOMBIE_STATES


def parse_stat(pid: int, raw: str) -> ProcessStat | None:
    """Parse a ``/proc/<pid>/stat`` line.

    The command name is wrapped in parentheses and may itself contain spaces
    or parentheses, so fields are split after the last ``)``.
    """

    close = raw.rfind(")")
    if close < 0:
        return None
    fields = raw[close + 1 :].split()
    # fields[0] is field 3 (state); utime/stime are fields 14/15, starttime 22.
    if len(fields) < 20:
        return None
    try:
        return ProcessStat(
            pid=pid,
            state=fields[0],
            ppid=int(fields[1]),
            cpu_ticks=int(fields[11]) + int(fields[12]),
            start_time=int(fields[19]),
        )
    except ValueError:
        return None


def build_process_tree(root_pid: int, parents: dict[int, int]) -> list[int]:
    """Root followed by all descendants, breadth-first, children ordered by pid."""

    children: dict[int, list[int]] = {}
    for pid, ppid in parents.items():
        if pid != ppid:
            children.setdefault(ppid, []).append(pid)

    tree: list[int] = []
    seen: set[int] = set()
    queue = deque([root_pid])
    while queue:
        pid = queue.popleft()
        if pid in seen:
            continue
        seen.add(pid)
        tree.append(pid)
        queue.extend(sorted(children.get(pid, [])))
    return tree
