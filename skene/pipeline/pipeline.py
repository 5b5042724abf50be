"""Sequential task pipeline.

The :class:`TaskPipeline` holds an ordered list of :class:`Task` objects and
runs them one after another:

1. Before each task the optional cancellation event is polled.
2. The task is marked running and its work coroutine is awaited.
3. Success marks it completed; an exception marks it failed and stops the
   run (fail-fast), leaving every later task ``pending``.

Cancellation is cooperative and only observed between tasks.  A task that
is already running, including a live engine invocation, runs to completion.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Callable

from skene.core.task.models import LogEntry, Task, TaskStatus
from skene.utils.exceptions import PipelineCancelledError, TaskNotFoundError
from skene.utils.logging import get_logger

ProgressObserver = Callable[[float], None]


class TaskPipeline:
    """Ordered, strictly sequential task runner with a timestamped log.

    Parameters
    ----------
    tasks:
        Optional initial task list; see :meth:`configure`.
    """

    def __init__(self, tasks: list[Task] | None = None) -> None:
        self._tasks: list[Task] = []
        self._current = -1
        self._log: list[LogEntry] = []
        self.run_id = uuid.uuid4().hex[:12]
        self.logger = get_logger("pipeline")
        if tasks:
            self.configure(tasks)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, tasks: list[Task]) -> None:
        """Install *tasks* in execution order, replacing any prior list."""
        seen: set[str] = set()
        for task in tasks:
            if task.id in seen:
                raise ValueError(f"Duplicate task id: {task.id}")
            seen.add(task.id)
        self._tasks = list(tasks)
        self._current = -1

    def remove_task(self, task_id: str) -> None:
        """Filter a task out of the pipeline before a run starts."""
        self._tasks = [t for t in self._tasks if t.id != task_id]
        self._current = -1

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    @property
    def current_task(self) -> Task | None:
        if 0 <= self._current < len(self._tasks):
            return self._tasks[self._current]
        return None

    def get_task(self, task_id: str) -> Task:
        return self._tasks[self._index_of(task_id)]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_task(self, task_id: str) -> None:
        """Execute exactly one task by id.

        Re-running a task that already finished executes it again.  The
        task's own exception is re-raised unchanged on failure.
        """
        index = self._index_of(task_id)
        task = self._tasks[index]
        self._current = index

        task.start()
        self.log(f"Starting: {task.name}")
        self.logger.info("task_start", run_id=self.run_id, task_id=task.id)

        try:
            if task.work is not None:
                await task.work(task)
        except Exception as exc:
            task.fail(exc)
            self.log(f"Failed: {task.name} - {exc}")
            self.logger.error(
                "task_failed",
                run_id=self.run_id,
                task_id=task.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        except asyncio.CancelledError:
            # A hard interrupt must not leave the task stuck in running.
            task.fail("cancelled")
            self.log(f"Failed: {task.name} - cancelled")
            self.logger.warning("task_interrupted", run_id=self.run_id, task_id=task.id)
            raise

        task.complete()
        self.log(f"Completed: {task.name}")
        self.logger.info(
            "task_complete",
            run_id=self.run_id,
            task_id=task.id,
            duration=_duration(task),
        )

    async def run_all(
        self,
        cancel_event: asyncio.Event | None = None,
        on_progress: ProgressObserver | None = None,
    ) -> None:
        """Run every task in order, stopping at the first failure.

        Parameters
        ----------
        cancel_event:
            Polled before each task.  Once set, :class:`PipelineCancelledError`
            is raised instead of starting the next task.
        on_progress:
            Called with :meth:`progress` after each successful task.
        """
        self.run_id = uuid.uuid4().hex[:12]
        self.logger.info(
            "pipeline_start",
            run_id=self.run_id,
            total_tasks=len(self._tasks),
        )

        for task in list(self._tasks):
            if cancel_event is not None and cancel_event.is_set():
                self.log(f"Cancelled before: {task.name}")
                self.logger.warning(
                    "pipeline_cancelled",
                    run_id=self.run_id,
                    next_task=task.id,
                )
                raise PipelineCancelledError(task.id)

            await self.run_task(task.id)

            if on_progress is not None:
                on_progress(self.progress())

        self.logger.info(
            "pipeline_complete",
            run_id=self.run_id,
            total_tasks=len(self._tasks),
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def progress(self) -> float:
        """Completed task count divided by total task count."""
        if not self._tasks:
            return 0.0
        completed = sum(1 for t in self._tasks if t.status == TaskStatus.COMPLETED)
        return completed / len(self._tasks)

    def is_complete(self) -> bool:
        """``True`` when no task is left pending or running."""
        return all(t.is_terminal for t in self._tasks)

    def has_errors(self) -> bool:
        return any(t.status == TaskStatus.FAILED for t in self._tasks)

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def log(self, message: str) -> None:
        self._log.append(LogEntry(message=message, source="pipeline"))

    def logs(self) -> tuple[str, ...]:
        return tuple(str(entry) for entry in self._log)

    def log_entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._log)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index_of(self, task_id: str) -> int:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return index
        raise TaskNotFoundError(task_id)


def _duration(task: Task) -> float | None:
    if task.started_at is None or task.ended_at is None:
        return None
    return round((task.ended_at - task.started_at).total_seconds(), 4)
