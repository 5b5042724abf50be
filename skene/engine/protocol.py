"""Wire protocol spoken with the ``skene-engine`` binary.

The orchestrator writes exactly one JSON document (an :class:`EngineRequest`)
to the engine's stdin and reads newline-delimited JSON events back from its
stdout.  Every stdout line is decoded on its own; lines that are not a valid
event are protocol noise and are skipped by the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class EngineCommand(str, Enum):
    ANALYZE = "analyze"
    PLAN = "plan"
    BUILD = "build"
    STATUS = "status"


class EngineRequest(BaseModel):
    """The single request document sent to the engine.

    Which optional fields matter is decided by ``command``: ``plan`` uses
    ``manifest_path`` and ``onboarding``, ``build`` and ``status`` use
    ``manifest_path``.  Irrelevant fields are ignored by the engine and are
    not validated here.
    """

    command: EngineCommand
    provider: str
    model: str
    api_key: str
    base_url: str | None = None
    project_dir: str
    output_dir: str
    product_docs: bool = False
    exclude_folders: list[str] = []
    debug: bool = False
    manifest_path: str | None = None
    template_path: str | None = None
    onboarding: bool | None = None

    model_config = {"frozen": True}

    def to_wire(self) -> bytes:
        """Serialise as one JSON line, omitting unset optional fields."""
        return (self.model_dump_json(exclude_none=True) + "\n").encode("utf-8")


class ProgressEvent(BaseModel):
    type: Literal["progress"]
    phase: str = ""
    step: int = 0
    total_steps: int = 0
    progress: float = 0.0
    message: str = ""


class ResultEvent(BaseModel):
    type: Literal["result"]
    manifest_path: str | None = None
    template_path: str | None = None
    docs_path: str | None = None
    plan_path: str | None = None


class ErrorEvent(BaseModel):
    type: Literal["error"]
    message: str
    code: str | None = None


EngineEvent = Annotated[
    Union[ProgressEvent, ResultEvent, ErrorEvent],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[EngineEvent] = TypeAdapter(EngineEvent)


def decode_event(line: str | bytes) -> ProgressEvent | ResultEvent | ErrorEvent | None:
    """Decode one stdout line.  Returns ``None`` for blank or malformed lines."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        return _event_adapter.validate_json(line)
    except ValidationError:
        return None
