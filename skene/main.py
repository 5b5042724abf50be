"""ASGI entry point: ``uvicorn skene.main:app``."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from skene.api.v1.middleware.error_handler import ErrorHandlerMiddleware
from skene.api.v1.middleware.logging_middleware import LoggingMiddleware
from skene.api.v1.router import v1_router
from skene.config import VERSION, settings
from skene.pipeline.runs import RunManager
from skene.utils.logging import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(debug=settings.debug)
    logger = get_logger("startup")
    logger.info(
        "orchestrator_starting",
        version=VERSION,
        engine_path=settings.engine_path or "<search>",
        output_dir=settings.output_dir,
    )
    app.state.run_manager = RunManager(engine_path=settings.engine_path or None)

    yield

    # Live runs stop before their next task; a running engine call finishes.
    manager: RunManager = app.state.run_manager
    live = [h for h in manager.list_runs() if h.status == "running"]
    for handle in live:
        handle.cancel_event.set()
    logger.info("orchestrator_stopping", cancelled_runs=len(live))


def create_app() -> FastAPI:
    app = FastAPI(
        title="Skene Orchestrator",
        description="Project setup and growth analysis pipeline runs",
        version=VERSION,
        lifespan=lifespan,
    )

    # Last added is outermost: logging wraps error handling.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router, prefix="/api/v1")
    return app


app = create_app()
