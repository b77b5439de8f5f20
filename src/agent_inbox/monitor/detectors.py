"""Attention detectors: heuristics that decide a running task needs a human."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from agent_inbox.config import MonitorSettings
    from agent_inbox.tasks.models import Task

DEFAULT_IDLE_REASON = "No CPU activity for {idle_seconds:.0f}s (pid {pid})"


@dataclass(frozen=True, slots=True)
class ProcessSample:
    """CPU observation for one process of the task's tree at one poll."""

    pid: int
    is_root: bool
    previous_sampled_at: datetime | None
    previous_cpu_ticks: int | None
    current_cpu_ticks: int | None
    idle_seconds: float


class AttentionDetector(Protocol):
    """Pure verdict function; a non-empty string is the attention reason."""

    def evaluate(self, task: Task, sample: ProcessSample) -> str | None: ...


@dataclass(frozen=True, slots=True)
class CpuIdleDetector:
    """Flag a process whose CPU counters stayed flat for ``threshold_seconds``."""

    threshold_seconds: float = 60.0
    root_only: bool = False
    reason_template: str = DEFAULT_IDLE_REASON

    def evaluate(self, task: Task, sample: ProcessSample) -> str | None:
        del task
        if self.root_only and not sample.is_root:
            return None
        if sample.previous_cpu_ticks is None or sample.current_cpu_ticks is None:
            return None
        if sample.previous_cpu_ticks != sample.current_cpu_ticks:
            return None
        if sample.idle_seconds < self.threshold_seconds:
            return None
        return self.reason_template.format(idle_seconds=sample.idle_seconds, pid=sample.pid)


def default_detectors(settings: MonitorSettings) -> list[AttentionDetector]:
    """Detectors applied by ``agent-inbox monitor``, in evaluation order."""

    return [
        CpuIdleDetector(
            threshold_seconds=settings.idle_threshold_seconds,
            root_only=settings.idle_root_only,
        ),
    ]


def first_verdict(
    detectors: list[AttentionDetector],
    task: Task,
    samples: list[ProcessSample],
) -> str | None:
    """First non-empty reason over samples (tree order) x detectors (list order)."""

    for sample in samples:
        for detector in detectors:
            reason = detector.evaluate(task, sample)
            if reason:
                return reason
    return None
