"""In-memory registry of pipeline runs started through the API.

Each run owns its pipeline, aggregator and cancellation event and drives
``run_all`` on its own asyncio task.  In a production deployment the
registry would live in a shared store instead of process memory.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field

from skene.engine.locator import locate_engine
from skene.engine.process import EngineConfig
from skene.pipeline.pipeline import TaskPipeline
from skene.pipeline.progress import ProgressAggregator
from skene.pipeline.tasks import EngineFactory, SetupTasks
from skene.utils.exceptions import PipelineCancelledError, RunNotFoundError
from skene.utils.logging import get_logger

logger = get_logger("pipeline.runs")


@dataclass
class PipelineRunHandle:
    run_id: str
    pipeline: TaskPipeline
    aggregator: ProgressAggregator
    setup: SetupTasks
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    error: Exception | None = None

    @property
    def status(self) -> str:
        if self.task is not None and not self.task.done():
            return "running"
        if isinstance(self.error, PipelineCancelledError):
            return "cancelled"
        if self.error is not None:
            return "failed"
        return "completed"


class RunManager:
    """Start, look up and cancel pipeline runs.

    Parameters
    ----------
    engine_path:
        Explicit engine location handed to every run.
    engine_factory:
        Overrides how engine tasks build their :class:`EngineProcess`.
    max_runs:
        Registry size.  Past it, the oldest finished runs are dropped; runs
        still in progress are never dropped.
    """

    def __init__(
        self,
        engine_path: str | None = None,
        engine_factory: EngineFactory | None = None,
        max_runs: int = 100,
    ) -> None:
        self.engine_path = engine_path
        self.engine_factory = engine_factory
        self.max_runs = max_runs
        self._runs: dict[str, PipelineRunHandle] = {}

    def start(
        self,
        config: EngineConfig,
        include_plan: bool = False,
        onboarding: bool = False,
    ) -> PipelineRunHandle:
        """Build the setup pipeline for *config* and start running it.

        Raises :class:`BinaryNotFoundError` up front when the engine cannot
        be located, instead of starting a run that is bound to fail.
        """
        engine_path = self.engine_path
        if self.engine_factory is None:
            engine_path = locate_engine(engine_path)

        pipeline = TaskPipeline()
        aggregator = ProgressAggregator(pipeline)
        setup = SetupTasks(
            pipeline,
            config,
            engine_factory=self.engine_factory,
            aggregator=aggregator,
            engine_path=engine_path,
        )
        pipeline.configure(setup.build(include_plan=include_plan, onboarding=onboarding))

        handle = PipelineRunHandle(
            run_id=uuid.uuid4().hex[:12],
            pipeline=pipeline,
            aggregator=aggregator,
            setup=setup,
        )
        handle.task = asyncio.create_task(self._drive(handle))
        self._runs[handle.run_id] = handle
        self._evict()

        logger.info(
            "run_started",
            run_id=handle.run_id,
            project_dir=config.project_dir,
            tasks=[t.id for t in pipeline.tasks],
        )
        return handle

    def get(self, run_id: str) -> PipelineRunHandle:
        handle = self._runs.get(run_id)
        if handle is None:
            raise RunNotFoundError(run_id)
        return handle

    def cancel(self, run_id: str) -> PipelineRunHandle:
        """Request cancellation; observed before the next task starts."""
        handle = self.get(run_id)
        handle.cancel_event.set()
        logger.info("run_cancel_requested", run_id=run_id)
        return handle

    def list_runs(self) -> list[PipelineRunHandle]:
        return list(self._runs.values())

    async def wait(self, run_id: str) -> PipelineRunHandle:
        handle = self.get(run_id)
        if handle.task is not None:
            await handle.task
        return handle

    def _evict(self) -> None:
        finished = [h.run_id for h in self._runs.values() if h.status != "running"]
        while len(self._runs) > self.max_runs and finished:
            run_id = finished.pop(0)
            del self._runs[run_id]
            logger.debug("run_evicted", run_id=run_id)

    async def _drive(self, handle: PipelineRunHandle) -> None:
        # The run's outcome is reported through the handle, so the error is
        # recorded here rather than left on an unawaited task.
        try:
            await handle.pipeline.run_all(cancel_event=handle.cancel_event)
        except Exception as exc:
            handle.error = exc
            logger.warning(
                "run_stopped",
                run_id=handle.run_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        else:
            logger.info("run_finished", run_id=handle.run_id)
