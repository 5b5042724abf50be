"""Unified progress and log view over a pipeline and its engine task.

The pipeline alone only knows whole tasks: with four tasks, progress jumps
0 -> 0.25 -> 0.5.  While an engine task is running the engine reports its
own phase fraction; :class:`ProgressAggregator` counts that fraction as a
partial contribution towards the running task's slot.
"""

from __future__ import annotations

import heapq
from datetime import datetime

from skene.core.task.models import LogEntry, TaskStatus
from skene.engine.phases import PhaseUpdate
from skene.pipeline.pipeline import TaskPipeline


def combine_progress(completed: int, total: int, fraction: float = 0.0) -> float:
    """Return ``(completed + fraction) / total`` clamped to ``[0, 1]``."""
    if total <= 0:
        return 0.0
    fraction = min(max(fraction, 0.0), 1.0)
    return min((completed + fraction) / total, 1.0)


class ProgressAggregator:
    """Combine pipeline task counts with live engine phase progress.

    Pass :meth:`on_phase_update` as the engine's progress callback.  Phase
    progress only counts while the task it arrived for is still running in
    the same invocation.  The reported value never decreases within one
    ``run_all`` session of the pipeline.
    """

    def __init__(self, pipeline: TaskPipeline) -> None:
        self.pipeline = pipeline
        self._phase_task: tuple[str, datetime | None] | None = None
        self._phase_progress = 0.0
        self._engine_log: list[LogEntry] = []
        self._high_water: tuple[str, float] = ("", 0.0)

    def on_phase_update(self, update: PhaseUpdate) -> None:
        task = self.pipeline.current_task
        if task is not None:
            self._phase_task = (task.id, task.started_at)
        self._phase_progress = update.progress
        self._engine_log.append(
            LogEntry(message=f"[{update.phase.value}] {update.message}", source="engine")
        )
        # Record the high-water mark now so it holds however rarely callers poll.
        self.progress()

    def progress(self) -> float:
        tasks = self.pipeline.tasks
        completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)

        fraction = 0.0
        current = self.pipeline.current_task
        if (
            current is not None
            and current.status == TaskStatus.RUNNING
            and self._phase_task == (current.id, current.started_at)
        ):
            fraction = self._phase_progress

        value = combine_progress(completed, len(tasks), fraction)

        run_id, high = self._high_water
        if run_id == self.pipeline.run_id:
            value = max(value, high)
        self._high_water = (self.pipeline.run_id, value)
        return value

    def engine_logs(self) -> tuple[str, ...]:
        return tuple(str(entry) for entry in self._engine_log)

    def logs(self) -> list[str]:
        """Pipeline and engine log lines in chronological order."""
        merged = heapq.merge(
            self.pipeline.log_entries(),
            self._engine_log,
            key=lambda entry: (entry.timestamp, entry.seq),
        )
        return [str(entry) for entry in merged]
