"""Request/response schemas for starting and inspecting pipeline runs."""

from datetime import datetime

from pydantic import BaseModel


class CreateRunRequest(BaseModel):
    """Body for starting a setup-and-analysis run.

    Unset fields fall back to the server's configured settings.
    """

    provider: str | None = None
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    project_dir: str | None = None
    output_dir: str | None = None
    product_docs: bool = False
    exclude_folders: list[str] = []
    include_plan: bool = False
    onboarding: bool = False


class CreateRunResponse(BaseModel):
    run_id: str
    status: str
    tasks: list[str]


class TaskInfo(BaseModel):
    """Status summary for a single pipeline task."""

    id: str
    name: str
    status: str
    progress: float
    error: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None


class RunStatusResponse(BaseModel):
    """Serialised view of a run suitable for a progress display."""

    run_id: str
    status: str
    tasks: list[TaskInfo]
    current_task: str | None = None
    task_progress: float
    progress: float
    is_complete: bool
    has_errors: bool
    error: str | None = None
    logs: list[str]
