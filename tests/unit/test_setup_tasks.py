"""Tests for the standard setup tasks and background run management."""
import json
from pathlib import Path

import pytest

from skene.core.task.models import TaskStatus
from skene.engine.process import EngineProcess
from skene.pipeline.pipeline import TaskPipeline
from skene.pipeline.progress import ProgressAggregator
from skene.pipeline.runs import RunManager
from skene.pipeline.tasks import CONFIG_FILE, GROWTH_PLAN_FILE, SetupTasks
from skene.utils.exceptions import BinaryNotFoundError, EngineReportedError, RunNotFoundError


def _pipeline(engine_config, engine_path=None, **build_kwargs):
    pipeline = TaskPipeline()
    aggregator = ProgressAggregator(pipeline)
    setup = SetupTasks(
        pipeline, engine_config, aggregator=aggregator, engine_path=engine_path
    )
    pipeline.configure(setup.build(**build_kwargs))
    return pipeline, aggregator, setup


class TestBuild:
    def test_default_task_order(self, engine_config):
        pipeline, _, _ = _pipeline(engine_config)
        assert [t.id for t in pipeline.tasks] == ["config", "manifest", "analyze"]
        assert all(t.status == TaskStatus.PENDING for t in pipeline.tasks)

    def test_optional_tasks(self, engine_config):
        pipeline, _, _ = _pipeline(engine_config, include_analysis=False, include_plan=True)
        assert [t.id for t in pipeline.tasks] == ["config", "manifest", "plan"]

    def test_relative_output_dir_is_under_project(self, engine_config, project_dir):
        config = engine_config.model_copy(update={"output_dir": "./skene-context"})
        _, _, setup = _pipeline(config)
        assert setup.output_dir == project_dir / "skene-context"
        assert setup.config.output_dir == str(project_dir / "skene-context")


class TestFileTasks:
    @pytest.mark.asyncio
    async def test_config_task_writes_project_config(self, engine_config, project_dir):
        pipeline, _, _ = _pipeline(engine_config, include_analysis=False)

        await pipeline.run_task("config")

        written = json.loads((project_dir / CONFIG_FILE).read_text())
        assert written["provider"] == "anthropic"
        assert written["model"] == "claude-sonnet-4-20250514"
        assert (project_dir / ".skene").is_dir()
        assert pipeline.get_task("config").progress == 1.0

    @pytest.mark.asyncio
    async def test_manifest_task_is_repeatable(self, engine_config):
        pipeline, _, _ = _pipeline(engine_config, include_analysis=False)

        await pipeline.run_task("manifest")
        await pipeline.run_task("manifest")

        out = Path(engine_config.output_dir)
        manifest = json.loads((out / "manifest.json").read_text())
        assert manifest["version"] == "1.0.0"
        assert manifest["files"] == []
        assert (out / GROWTH_PLAN_FILE).read_text().startswith("# Growth Plan")
        assert pipeline.get_task("manifest").status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_companion_failure_is_a_warning(self, engine_config):
        out = Path(engine_config.output_dir)
        # A directory where the companion file should go makes its write fail.
        (out / GROWTH_PLAN_FILE).mkdir(parents=True)
        pipeline, _, _ = _pipeline(engine_config, include_analysis=False)

        await pipeline.run_task("manifest")

        assert pipeline.get_task("manifest").status == TaskStatus.COMPLETED
        assert (out / "manifest.json").exists()
        assert any("Warning: could not write growth plan" in line for line in pipeline.logs())


class TestEngineTasks:
    @pytest.mark.asyncio
    async def test_full_run(self, engine_config, analyze_engine):
        pipeline, aggregator, setup = _pipeline(engine_config, engine_path=analyze_engine)
        seen: list[float] = []

        await pipeline.run_all(on_progress=seen.append)

        assert pipeline.is_complete()
        assert not pipeline.has_errors()
        assert seen == [pytest.approx(1 / 3), pytest.approx(2 / 3), 1.0]
        assert aggregator.progress() == 1.0
        assert setup.results["analyze"].manifest == '{"project_name": "demo"}'
        assert any("[scan_codebase] Analyzing tech stack..." in line for line in aggregator.logs())
        assert any("Generated manifest:" in line for line in pipeline.logs())

    @pytest.mark.asyncio
    async def test_engine_error_fails_the_task(self, engine_config, make_engine):
        path = make_engine(
            """
            import json
            import sys

            sys.stdin.read()
            print(json.dumps({"type": "error", "message": "disk full"}))
            sys.exit(1)
            """
        )
        pipeline, _, setup = _pipeline(engine_config, engine_path=path, include_plan=True)

        with pytest.raises(EngineReportedError, match="disk full"):
            await pipeline.run_all()

        assert pipeline.get_task("analyze").status == TaskStatus.FAILED
        assert pipeline.get_task("analyze").error == "disk full"
        assert pipeline.get_task("plan").status == TaskStatus.PENDING
        assert not setup.results["analyze"].succeeded

    @pytest.mark.asyncio
    async def test_plan_task_sends_onboarding_flag(self, engine_config, make_engine):
        path = make_engine(
            """
            import json
            import os
            import sys

            request = json.loads(sys.stdin.read())
            with open(os.path.join(request["output_dir"], "plan-request.json"), "w") as fh:
                json.dump(request, fh)
            """
        )
        pipeline, _, _ = _pipeline(
            engine_config,
            engine_path=path,
            include_analysis=False,
            include_plan=True,
            onboarding=True,
        )

        await pipeline.run_all()

        request = json.loads((Path(engine_config.output_dir) / "plan-request.json").read_text())
        assert request["command"] == "plan"
        assert request["onboarding"] is True
        assert request["manifest_path"].endswith("growth-manifest.json")

    @pytest.mark.asyncio
    async def test_custom_engine_factory(self, engine_config, analyze_engine):
        built: list[EngineProcess] = []

        def factory(on_update):
            engine = EngineProcess(engine_config, on_update=on_update, engine_path=analyze_engine)
            built.append(engine)
            return engine

        pipeline = TaskPipeline()
        setup = SetupTasks(pipeline, engine_config, engine_factory=factory)
        pipeline.configure(setup.build())

        await pipeline.run_all()

        assert len(built) == 1
        assert pipeline.get_task("analyze").progress == 1.0


class TestRunManager:
    @pytest.mark.asyncio
    async def test_run_to_completion(self, engine_config, analyze_engine):
        manager = RunManager(engine_path=analyze_engine)

        handle = manager.start(engine_config)
        await manager.wait(handle.run_id)

        assert handle.status == "completed"
        assert handle.error is None
        assert handle.pipeline.is_complete()
        assert manager.list_runs() == [handle]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, engine_config, analyze_engine):
        manager = RunManager(engine_path=analyze_engine)

        handle = manager.start(engine_config)
        manager.cancel(handle.run_id)
        await manager.wait(handle.run_id)

        assert handle.status == "cancelled"
        assert all(t.status == TaskStatus.PENDING for t in handle.pipeline.tasks)

    @pytest.mark.asyncio
    async def test_failed_run(self, engine_config, make_engine):
        path = make_engine(
            """
            import sys
            sys.exit(3)
            """
        )
        manager = RunManager(engine_path=path)

        handle = manager.start(engine_config)
        await manager.wait(handle.run_id)

        assert handle.status == "failed"
        assert "exit status 3" in str(handle.error)
        assert handle.pipeline.has_errors()

    def test_unknown_run(self):
        with pytest.raises(RunNotFoundError):
            RunManager().get("nope")

    def test_missing_engine_fails_at_start(self, engine_config, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PATH", "")
        monkeypatch.delenv("SKENE_ENGINE_PATH", raising=False)
        manager = RunManager(engine_path=str(tmp_path / "missing-engine"))

        with pytest.raises(BinaryNotFoundError):
            manager.start(engine_config)

        assert manager.list_runs() == []

    @pytest.mark.asyncio
    async def test_oldest_finished_runs_are_evicted(self, engine_config, analyze_engine):
        manager = RunManager(engine_path=analyze_engine, max_runs=2)

        first = manager.start(engine_config)
        await manager.wait(first.run_id)
        second = manager.start(engine_config)
        await manager.wait(second.run_id)
        third = manager.start(engine_config)

        assert [h.run_id for h in manager.list_runs()] == [second.run_id, third.run_id]
        with pytest.raises(RunNotFoundError):
            manager.get(first.run_id)

        await manager.wait(third.run_id)
