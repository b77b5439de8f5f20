"""Blocking per-task process monitor."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from agent_inbox.monitor.detectors import AttentionDetector, ProcessSample, first_verdict
from agent_inbox.monitor.procfs import (
    ProcessTable,
    ProcfsProcessTable,
    ProcessStat,
    build_process_tree,
)
from agent_inbox.storage.common import utc_now
from agent_inbox.tasks.models import TaskStatus
from agent_inbox.tasks.repository import TaskStore

logger = logging.getLogger(__name__)


class MonitorStopReason(str, Enum):
    """Why ``TaskMonitor.run`` returned."""

    PROCESS_EXITED = "process_exited"
    TASK_MISSING = "task_missing"
    TASK_SETTLED = "task_settled"
    ATTENTION_FLAGGED = "attention_flagged"


@dataclass(slots=True)
class MonitorSummary:
    polls: int
    stop_reason: MonitorStopReason
    attention_reason: str | None = None


@dataclass(slots=True)
class _CpuState:
    start_time: int
    cpu_ticks: int | None
    sampled_at: datetime | None
    idle_seconds: float = 0.0


@dataclass(slots=True)
class _IdleTracker:
    """Per-process CPU history, keyed by pid and process start time."""

    states: dict[int, _CpuState] = field(default_factory=dict)

    def sample(
        self,
        pid: int,
        *,
        is_root: bool,
        stat: ProcessStat | None,
        poll_interval_seconds: float,
        now: datetime,
    ) -> ProcessSample:
        state = self.states.get(pid)
        if stat is not None and state is not None and state.start_time != stat.start_time:
            # pid reused by a different process
            state = None
            del self.states[pid]

        if stat is None:
            # unreadable: no signal, keep whatever was accumulated
            return ProcessSample(
                pid=pid,
                is_root=is_root,
                previous_sampled_at=state.sampled_at if state else None,
                previous_cpu_ticks=state.cpu_ticks if state else None,
                current_cpu_ticks=None,
                idle_seconds=state.idle_seconds if state else 0.0,
            )

        previous_ticks = state.cpu_ticks if state else None
        previous_at = state.sampled_at if state else None
        if state is None:
            state = _CpuState(start_time=stat.start_time, cpu_ticks=None, sampled_at=None)
            self.states[pid] = state

        if previous_ticks is not None and previous_ticks == stat.cpu_ticks:
            state.idle_seconds += poll_interval_seconds
        else:
            state.idle_seconds = 0.0
        state.cpu_ticks = stat.cpu_ticks
        state.sampled_at = now

        return ProcessSample(
            pid=pid,
            is_root=is_root,
            previous_sampled_at=previous_at,
            previous_cpu_ticks=previous_ticks,
            current_cpu_ticks=stat.cpu_ticks,
            idle_seconds=state.idle_seconds,
        )

    def prune(self, live_pids: set[int]) -> None:
        for pid in [pid for pid in self.states if pid not in live_pids]:
            del self.states[pid]


class TaskMonitor:
    """Watch one task's process tree until it exits, settles or needs attention.

    The task row is re-read every poll; any other process may have changed or
    deleted it in between. Store errors propagate to the caller.
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        detectors: list[AttentionDetector],
        process_table: ProcessTable | None = None,
        poll_interval_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.detectors = list(detectors)
        self.process_table = process_table or ProcfsProcessTable()
        self.poll_interval_seconds = poll_interval_seconds
        self.sleep = sleep
        self._idle = _IdleTracker()

    def run(self, task_id: str, root_pid: int) -> MonitorSummary:
        self._idle = _IdleTracker()
        self._record_monitor_pid(task_id)
        logger.info("Monitoring task_id=%s root_pid=%d", task_id, root_pid)

        polls = 0
        while True:
            polls += 1
            outcome = self.poll_once(task_id, root_pid)
            if outcome is not None:
                stop_reason, attention_reason = outcome
                logger.info(
                    "Monitor stopped task_id=%s reason=%s polls=%d",
                    task_id,
                    stop_reason.value,
                    polls,
                )
                return MonitorSummary(
                    polls=polls,
                    stop_reason=stop_reason,
                    attention_reason=attention_reason,
                )
            self.sleep(self.poll_interval_seconds)

    def poll_once(
        self,
        task_id: str,
        root_pid: int,
    ) -> tuple[MonitorStopReason, str | None] | None:
        """One monitoring step; returns the stop outcome or None to keep polling."""

        if not self.process_table.is_alive(root_pid):
            task = self.store.get_by_id(task_id)
            if task is not None and task.status == TaskStatus.RUNNING:
                # exit code is unknown here; the wrapper reports it separately
                task.complete(None)
                self.store.update(task)
                logger.info("Root process %d exited; task_id=%s completed", root_pid, task_id)
            return MonitorStopReason.PROCESS_EXITED, None

        task = self.store.get_by_id(task_id)
        if task is None:
            return MonitorStopReason.TASK_MISSING, None
        if task.status != TaskStatus.RUNNING:
            return MonitorStopReason.TASK_SETTLED, None

        samples = self._sample_tree(root_pid)
        reason = first_verdict(self.detectors, task, samples)
        if reason:
            task.mark_needs_attention(reason)
            self.store.update(task)
            logger.info("Task task_id=%s needs attention: %s", task_id, reason)
            return MonitorStopReason.ATTENTION_FLAGGED, reason
        return None

    def _sample_tree(self, root_pid: int) -> list[ProcessSample]:
        stats: dict[int, ProcessStat] = {}
        for pid in self.process_table.pids():
            stat = self.process_table.stat(pid)
            if stat is not None:
                stats[pid] = stat
        tree = build_process_tree(root_pid, {pid: stat.ppid for pid, stat in stats.items()})
        self._idle.prune(set(tree))

        now = utc_now()
        samples = []
        for pid in tree:
            samples.append(
                self._idle.sample(
                    pid,
                    is_root=pid == root_pid,
                    stat=stats.get(pid),
                    poll_interval_seconds=self.poll_interval_seconds,
                    now=now,
                ),
            )
        return samples

    def _record_monitor_pid(self, task_id: str) -> None:
        task = self.store.get_by_id(task_id)
        if task is None:
            return
        task.monitor_pid = os.getpid()
        self.store.update(task)
