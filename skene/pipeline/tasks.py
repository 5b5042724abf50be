"""Standard setup tasks for a project.

:class:`SetupTasks` builds the task list a project run goes through:

``config``    write ``.skene.config`` and the ``.skene/`` cache directory
``manifest``  write the context manifest and its companion growth plan
``analyze``   run the engine's ``analyze`` command
``plan``      (optional) run the engine's ``plan`` command

Every work function is safe to repeat; files are overwritten in place.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Callable

from skene.core.task.models import Task
from skene.engine.phases import PhaseUpdate
from skene.engine.process import AnalysisResult, EngineConfig, EngineProcess, ProgressCallback
from skene.pipeline.pipeline import TaskPipeline
from skene.pipeline.progress import ProgressAggregator
from skene.utils.file_utils import ensure_dir, write_text
from skene.utils.logging import get_logger

logger = get_logger("pipeline.tasks")

CONFIG_FILE = ".skene.config"
CACHE_DIR = ".skene"
CONTEXT_MANIFEST_FILE = "manifest.json"
GROWTH_PLAN_FILE = "growth-plan.md"

GROWTH_PLAN_SCAFFOLD = """# Growth Plan

## Overview
This document outlines the growth strategy generated by Skene.

## Objectives
- [ ] Define key metrics
- [ ] Identify growth opportunities
- [ ] Implement tracking

## Next Steps
Run `skene analyze` to generate detailed recommendations.
"""

EngineFactory = Callable[[ProgressCallback], EngineProcess]


class SetupTasks:
    """Work functions for the standard project tasks.

    Parameters
    ----------
    pipeline:
        Pipeline the tasks will run in; work functions append to its log.
    config:
        Engine configuration.  A relative ``output_dir`` is taken relative
        to ``project_dir``.
    engine_factory:
        Builds the :class:`EngineProcess` for engine tasks from a progress
        callback.  Defaults to locating the engine normally.
    aggregator:
        Receives engine phase updates, when given.
    engine_path:
        Explicit engine location for the default factory.
    """

    def __init__(
        self,
        pipeline: TaskPipeline,
        config: EngineConfig,
        engine_factory: EngineFactory | None = None,
        aggregator: ProgressAggregator | None = None,
        engine_path: str | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.project_dir = Path(config.project_dir)
        self.output_dir = self.project_dir / config.output_dir
        self.config = config.model_copy(update={"output_dir": str(self.output_dir)})
        self.aggregator = aggregator
        self.engine_factory = engine_factory or self._default_engine_factory(engine_path)
        self.results: dict[str, AnalysisResult] = {}
        self.onboarding = False

    def build(
        self,
        include_analysis: bool = True,
        include_plan: bool = False,
        onboarding: bool = False,
    ) -> list[Task]:
        """Return the task list in execution order."""
        self.onboarding = onboarding
        tasks = [
            Task(id="config", name="Generating configuration", work=self.write_config),
            Task(id="manifest", name="Creating manifest files", work=self.write_manifest),
        ]
        if include_analysis:
            tasks.append(
                Task(id="analyze", name="Running growth analysis", work=self.run_analysis)
            )
        if include_plan:
            tasks.append(
                Task(id="plan", name="Generating growth plan", work=self.run_plan)
            )
        return tasks

    # ------------------------------------------------------------------
    # File tasks
    # ------------------------------------------------------------------

    async def write_config(self, task: Task) -> None:
        task.set_progress(0.3)
        await asyncio.to_thread(ensure_dir, self.project_dir / CACHE_DIR)

        task.set_progress(0.6)
        content = json.dumps(
            {
                "provider": self.config.provider,
                "model": self.config.model,
                "output_dir": str(self.output_dir),
                "verbose": self.config.verbose,
            },
            indent=2,
        )
        config_path = self.project_dir / CONFIG_FILE
        await asyncio.to_thread(write_text, config_path, content)

        self.pipeline.log(f"Created config: {config_path}")

    async def write_manifest(self, task: Task) -> None:
        task.set_progress(0.3)
        await asyncio.to_thread(ensure_dir, self.output_dir)

        task.set_progress(0.5)
        manifest = {
            "version": "1.0.0",
            "generated_at": datetime.now().astimezone().isoformat(timespec="seconds"),
            "provider": self.config.provider,
            "model": self.config.model,
            "files": [],
        }
        manifest_path = self.output_dir / CONTEXT_MANIFEST_FILE
        await asyncio.to_thread(write_text, manifest_path, json.dumps(manifest, indent=2))
        self.pipeline.log(f"Created manifest: {manifest_path}")

        # The companion plan is for humans only; the manifest alone decides
        # whether this task succeeded.
        task.set_progress(0.8)
        plan_path = self.output_dir / GROWTH_PLAN_FILE
        try:
            await asyncio.to_thread(write_text, plan_path, GROWTH_PLAN_SCAFFOLD)
        except OSError as exc:
            logger.warning("companion_write_failed", path=str(plan_path), error=str(exc))
            self.pipeline.log(f"Warning: could not write growth plan {plan_path}: {exc}")
        else:
            self.pipeline.log(f"Created growth plan: {plan_path}")

    # ------------------------------------------------------------------
    # Engine tasks
    # ------------------------------------------------------------------

    async def run_analysis(self, task: Task) -> None:
        engine = self.engine_factory(self._phase_callback(task))
        result = await engine.run_analyze()
        self._record(task, result)

    async def run_plan(self, task: Task) -> None:
        engine = self.engine_factory(self._phase_callback(task))
        result = await engine.generate_plan(
            manifest_path=engine.manifest_path,
            onboarding=self.onboarding,
        )
        self._record(task, result)

    def _record(self, task: Task, result: AnalysisResult) -> None:
        self.results[task.id] = result
        result.raise_for_error()
        for artifact, path in result.artifact_paths.items():
            self.pipeline.log(f"Generated {artifact}: {path}")

    def _phase_callback(self, task: Task) -> ProgressCallback:
        def on_update(update: PhaseUpdate) -> None:
            task.set_progress(update.progress)
            if self.aggregator is not None:
                self.aggregator.on_phase_update(update)

        return on_update

    def _default_engine_factory(self, engine_path: str | None) -> EngineFactory:
        def factory(on_update: ProgressCallback) -> EngineProcess:
            return EngineProcess(self.config, on_update=on_update, engine_path=engine_path)

        return factory
