"""Pipeline run endpoints.

Runs are started in the background and polled for progress.  Cancellation
is cooperative: it takes effect before the next task starts, never inside
a task that is already running.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from skene.api.v1.schemas.common import ErrorResponse
from skene.api.v1.schemas.run import (
    CreateRunRequest,
    CreateRunResponse,
    RunStatusResponse,
    TaskInfo,
)
from skene.config import settings
from skene.dependencies import get_run_manager
from skene.engine.process import EngineConfig
from skene.pipeline.runs import PipelineRunHandle, RunManager
from skene.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _engine_config(request: CreateRunRequest) -> EngineConfig:
    overrides = {
        key: value
        for key, value in {
            "provider": request.provider,
            "model": request.model,
            "api_key": request.api_key,
            "base_url": request.base_url,
            "project_dir": request.project_dir,
            "output_dir": request.output_dir,
        }.items()
        if value is not None
    }
    return EngineConfig.from_settings(
        settings,
        product_docs=request.product_docs,
        exclude_folders=request.exclude_folders,
        **overrides,
    )


def _status_response(handle: PipelineRunHandle) -> RunStatusResponse:
    pipeline = handle.pipeline
    current = pipeline.current_task
    return RunStatusResponse(
        run_id=handle.run_id,
        status=handle.status,
        tasks=[
            TaskInfo(
                id=t.id,
                name=t.name,
                status=t.status.value,
                progress=t.progress,
                error=t.error,
                started_at=t.started_at,
                ended_at=t.ended_at,
            )
            for t in pipeline.tasks
        ],
        current_task=current.id if current else None,
        task_progress=pipeline.progress(),
        progress=handle.aggregator.progress(),
        is_complete=pipeline.is_complete(),
        has_errors=pipeline.has_errors(),
        error=str(handle.error) if handle.error else None,
        logs=handle.aggregator.logs(),
    )


@router.post(
    "/runs",
    response_model=CreateRunResponse,
    status_code=202,
    summary="Start a pipeline run",
    description="Configure the project, then run the engine analysis in the background.",
)
async def create_run(
    request: CreateRunRequest,
    manager: RunManager = Depends(get_run_manager),
) -> CreateRunResponse:
    handle = manager.start(
        _engine_config(request),
        include_plan=request.include_plan,
        onboarding=request.onboarding,
    )
    return CreateRunResponse(
        run_id=handle.run_id,
        status=handle.status,
        tasks=[t.id for t in handle.pipeline.tasks],
    )


@router.get(
    "/runs/{run_id}",
    response_model=RunStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get run status",
    description="Task states, unified progress and the merged log of a run.",
)
async def get_run(
    run_id: str,
    manager: RunManager = Depends(get_run_manager),
) -> RunStatusResponse:
    return _status_response(manager.get(run_id))


@router.post(
    "/runs/{run_id}/cancel",
    response_model=RunStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Cancel a run",
    description="Stop the run before its next task.  A running task finishes first.",
)
async def cancel_run(
    run_id: str,
    manager: RunManager = Depends(get_run_manager),
) -> RunStatusResponse:
    return _status_response(manager.cancel(run_id))
