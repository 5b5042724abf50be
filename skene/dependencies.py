"""FastAPI dependency functions for injection into endpoint handlers.

The run manager is created during the app lifespan and stored on
``app.state``; handlers look it up here.
"""

from __future__ import annotations

from fastapi import Request

from skene.pipeline.runs import RunManager


def get_run_manager(request: Request) -> RunManager:
    """Return the run manager stored on ``app.state``."""
    return request.app.state.run_manager
