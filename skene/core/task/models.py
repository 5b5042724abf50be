"""Task-related data models for the orchestration pipeline.

Defines the structures used to represent individual pipeline tasks, their
lifecycle, and the timestamped log lines the pipeline records while it runs.
"""

from __future__ import annotations

import itertools
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from skene.utils.exceptions import InvalidTaskTransitionError


class TaskStatus(str, Enum):
    """Lifecycle states for a single task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TaskWork = Callable[[Any], Awaitable[None]]


class Task(BaseModel):
    """A single named step of the pipeline.

    Status only moves ``pending -> running -> completed | failed``.  Calling
    :meth:`start` again on a finished task begins a new invocation that
    overwrites the same record; it is not a transition out of the terminal
    state.

    Attributes:
        id: Unique, stable identifier used to look the task up.
        name: Human-readable label shown in logs.
        status: Current lifecycle state.
        progress: Fraction of the task's own work done, in ``[0, 1]``.
        error: Failure cause, populated when the task fails.
        started_at: When the current invocation started.
        ended_at: When the current invocation finished.
        work: Coroutine function executed by the pipeline for this task.
    """

    id: str
    name: str
    status: TaskStatus = TaskStatus.PENDING
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    error: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    work: TaskWork | None = Field(default=None, exclude=True, repr=False)

    model_config = {"validate_assignment": True}

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def start(self) -> None:
        """Begin a (new) invocation of this task."""
        if self.status == TaskStatus.RUNNING:
            raise InvalidTaskTransitionError(
                self.id, self.status.value, TaskStatus.RUNNING.value
            )
        self.status = TaskStatus.RUNNING
        self.progress = 0.0
        self.error = None
        self.started_at = datetime.now()
        self.ended_at = None

    def complete(self) -> None:
        self._finish(TaskStatus.COMPLETED)
        self.progress = 1.0

    def fail(self, cause: BaseException | str) -> None:
        self._finish(TaskStatus.FAILED)
        self.error = str(cause)

    def set_progress(self, value: float) -> None:
        """Update the running task's own progress, clamped to ``[0, 1]``."""
        self.progress = min(max(value, 0.0), 1.0)

    def _finish(self, target: TaskStatus) -> None:
        if self.status != TaskStatus.RUNNING:
            raise InvalidTaskTransitionError(
                self.id, self.status.value, target.value
            )
        self.status = target
        self.ended_at = datetime.now()


_log_sequence = itertools.count()


class LogEntry(BaseModel):
    """One timestamped log line.

    ``seq`` increases with every entry created in the process and orders
    entries whose timestamps collide.
    """

    timestamp: datetime = Field(default_factory=datetime.now)
    message: str
    source: str = "pipeline"
    seq: int = Field(default_factory=lambda: next(_log_sequence))

    def __str__(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"
