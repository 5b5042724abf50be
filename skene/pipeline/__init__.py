"""Sequential task pipeline, progress aggregation and run management.

Public API::

    from skene.pipeline import (
        ProgressAggregator,
        RunManager,
        SetupTasks,
        TaskPipeline,
    )
"""

from skene.pipeline.pipeline import TaskPipeline
from skene.pipeline.progress import ProgressAggregator, combine_progress
from skene.pipeline.runs import PipelineRunHandle, RunManager
from skene.pipeline.tasks import SetupTasks

__all__ = [
    "PipelineRunHandle",
    "ProgressAggregator",
    "RunManager",
    "SetupTasks",
    "TaskPipeline",
    "combine_progress",
]
