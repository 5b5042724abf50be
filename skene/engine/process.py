"""Child-process bridge to the external ``skene-engine`` binary.

One :class:`EngineProcess` call spawns one engine process and owns it, and
its three pipes, until the process has exited:

1. The :class:`EngineRequest` is written to stdin, which is then closed.
2. Stdout is read line by line; each line is decoded as an engine event.
3. Stderr is drained so a chatty engine never blocks on a full pipe.

The three run as separate coroutines joined with :func:`asyncio.gather`.
Writing the request and reading the events on one path in turn could
deadlock once either pipe buffer fills.

Cancellation is not supported once an invocation has started: callers that
need to interrupt the engine must kill the process themselves.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Callable

import aiofiles  # type: ignore[import-untyped]
from pydantic import BaseModel, Field

from skene.config import Settings
from skene.engine.locator import locate_engine
from skene.engine.phases import PhaseUpdate, map_phase
from skene.engine.protocol import (
    EngineCommand,
    EngineRequest,
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    decode_event,
)
from skene.utils.exceptions import (
    EngineExitError,
    EngineReportedError,
    ProcessStartError,
)
from skene.utils.logging import get_logger

logger = get_logger("engine.process")

ProgressCallback = Callable[[PhaseUpdate], None]

# Result documents can be large single lines.
STREAM_LIMIT = 16 * 1024 * 1024

MANIFEST_FILE = "growth-manifest.json"

# Result event path field -> AnalysisResult attribute.
_ARTIFACTS: dict[str, str] = {
    "manifest_path": "manifest",
    "plan_path": "growth_plan",
    "docs_path": "product_docs",
    "template_path": "growth_template",
}


class EngineConfig(BaseModel):
    """Values shared by every request an :class:`EngineProcess` sends."""

    provider: str
    model: str
    api_key: str = ""
    base_url: str = ""
    project_dir: str = "."
    output_dir: str = "./skene-context"
    verbose: bool = False
    product_docs: bool = False
    exclude_folders: list[str] = []

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "EngineConfig":
        values = {
            "provider": settings.llm_provider,
            "model": settings.llm_model,
            "api_key": settings.llm_api_key,
            "base_url": settings.llm_base_url,
            "project_dir": settings.project_dir,
            "output_dir": settings.output_dir,
            "verbose": settings.debug,
        }
        values.update(overrides)
        return cls(**values)


class AnalysisResult(BaseModel):
    """Outcome of one engine invocation.

    Attributes:
        manifest: Contents of the growth manifest, if produced.
        growth_plan: Contents of the plan / implementation prompt / status
            report, if produced.
        product_docs: Contents of the generated product docs, if produced.
        growth_template: Contents of the growth template, if produced.
        artifact_paths: Every artifact path the engine reported, keyed by
            artifact name, whether or not it could be read.
        error: The exception that failed the invocation, if any.
    """

    manifest: str | None = None
    growth_plan: str | None = None
    product_docs: str | None = None
    growth_template: str | None = None
    artifact_paths: dict[str, str] = {}
    error: Exception | None = Field(default=None, exclude=True)

    model_config = {"arbitrary_types_allowed": True}

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        """Re-raise the invocation's original exception, if it failed."""
        if self.error is not None:
            raise self.error


class EngineProcess:
    """Run engine commands and decode their streamed output.

    Parameters
    ----------
    config:
        Provider, model, credentials and directories for every request.
    on_update:
        Optional callback invoked inline on the read path for every progress
        event.  It must return quickly: decoding of later lines waits for it.
    engine_path:
        Explicit engine location, tried before every other candidate.

    Raises :class:`BinaryNotFoundError` when no engine binary can be found.
    """

    def __init__(
        self,
        config: EngineConfig,
        on_update: ProgressCallback | None = None,
        engine_path: str | None = None,
    ) -> None:
        self.config = config
        self.on_update = on_update
        self.binary_path = locate_engine(engine_path)

    @property
    def manifest_path(self) -> str:
        return str(Path(self.config.output_dir) / MANIFEST_FILE)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run_analyze(self) -> AnalysisResult:
        return await self.execute(self.build_request(EngineCommand.ANALYZE))

    async def generate_plan(
        self,
        manifest_path: str,
        onboarding: bool = False,
    ) -> AnalysisResult:
        request = self.build_request(
            EngineCommand.PLAN,
            manifest_path=manifest_path,
            onboarding=onboarding,
        )
        return await self.execute(request)

    async def generate_build(self) -> AnalysisResult:
        request = self.build_request(
            EngineCommand.BUILD, manifest_path=self.manifest_path
        )
        return await self.execute(request)

    async def check_status(self) -> AnalysisResult:
        request = self.build_request(
            EngineCommand.STATUS, manifest_path=self.manifest_path
        )
        return await self.execute(request)

    def build_request(self, command: EngineCommand, **extra) -> EngineRequest:
        cfg = self.config
        return EngineRequest(
            command=command,
            provider=cfg.provider,
            model=cfg.model,
            api_key=cfg.api_key,
            base_url=cfg.base_url or None,
            project_dir=cfg.project_dir,
            output_dir=cfg.output_dir,
            product_docs=cfg.product_docs,
            exclude_folders=list(cfg.exclude_folders),
            debug=cfg.verbose,
            **extra,
        )

    async def execute(self, request: EngineRequest) -> AnalysisResult:
        """Run one engine invocation for *request*.

        Failures of the invocation itself are returned on
        :attr:`AnalysisResult.error`; exceptions raised by the progress
        callback propagate unchanged.
        """
        result = AnalysisResult()
        try:
            await self._invoke(request, result)
        except (ProcessStartError, EngineReportedError, EngineExitError) as exc:
            logger.error(
                "engine_invocation_failed",
                command=request.command.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            result.error = exc
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _invoke(self, request: EngineRequest, result: AnalysisResult) -> None:
        logger.info(
            "engine_started",
            binary=self.binary_path,
            command=request.command.value,
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary_path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            raise ProcessStartError(self.binary_path, str(exc)) from exc

        if proc.stdin is None or proc.stdout is None or proc.stderr is None:
            raise ProcessStartError(self.binary_path, "standard streams not attached")

        streams = [
            asyncio.ensure_future(self._feed_request(proc.stdin, request.to_wire())),
            asyncio.ensure_future(self._consume_events(proc.stdout, result)),
            asyncio.ensure_future(proc.stderr.read()),
        ]
        try:
            _, reported, stderr_bytes = await asyncio.gather(*streams)
            returncode = await proc.wait()
        finally:
            for stream in streams:
                stream.cancel()
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        logger.info(
            "engine_exited",
            command=request.command.value,
            returncode=returncode,
        )

        # An error event carries the engine's own explanation, so it wins
        # over the exit status.
        if reported is not None:
            raise EngineReportedError(reported.message, reported.code)
        if returncode != 0:
            stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
            raise EngineExitError(returncode, stderr_text)

    @staticmethod
    async def _feed_request(stdin: asyncio.StreamWriter, payload: bytes) -> None:
        """Write the request once, then close stdin to signal end of input."""
        try:
            stdin.write(payload)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The exit status or an error event reports why the engine quit.
            logger.warning("engine_stdin_closed_early", payload_bytes=len(payload))
        finally:
            stdin.close()

    async def _consume_events(
        self,
        stdout: asyncio.StreamReader,
        result: AnalysisResult,
    ) -> ErrorEvent | None:
        """Decode stdout until EOF or the first error event.

        Returns the error event, if one arrived.
        """
        async for raw in _read_lines(stdout):
            event = decode_event(raw)
            if event is None:
                if raw.strip():
                    logger.debug("engine_output_skipped", line=raw[:200])
                continue

            if isinstance(event, ProgressEvent):
                self._dispatch_progress(event)
            elif isinstance(event, ResultEvent):
                await self._collect_artifacts(event, result)
            else:
                logger.warning(
                    "engine_reported_error",
                    message=event.message,
                    code=event.code,
                )
                await self._discard(stdout)
                return event
        return None

    def _dispatch_progress(self, event: ProgressEvent) -> None:
        update = PhaseUpdate(
            phase=map_phase(event.phase),
            progress=event.progress,
            message=event.message,
            engine_phase=event.phase,
        )
        logger.debug(
            "engine_progress",
            engine_phase=event.phase,
            phase=update.phase.value,
            progress=event.progress,
        )
        if self.on_update is not None:
            self.on_update(update)

    @staticmethod
    async def _collect_artifacts(event: ResultEvent, result: AnalysisResult) -> None:
        for path_field, artifact in _ARTIFACTS.items():
            path = getattr(event, path_field)
            if not path:
                continue
            result.artifact_paths[artifact] = path
            try:
                async with aiofiles.open(path, mode="r", encoding="utf-8") as fh:
                    content = await fh.read()
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning(
                    "artifact_read_failed",
                    artifact=artifact,
                    path=path,
                    error=str(exc),
                )
                continue
            setattr(result, artifact, content)

    @staticmethod
    async def _discard(stdout: asyncio.StreamReader) -> None:
        """Drain the rest of stdout unprocessed so the engine can exit."""
        while await stdout.read(65536):
            pass


async def _read_lines(stdout: asyncio.StreamReader):
    """Yield stdout lines, dropping any line longer than the stream limit.

    An oversized line is consumed in limit-sized pieces up to its newline and
    never yielded, so decoding resumes with the next line.
    """
    oversized = False
    while True:
        try:
            raw = await stdout.readuntil(b"\n")
        except asyncio.LimitOverrunError as exc:
            await stdout.readexactly(exc.consumed)
            oversized = True
            continue
        except asyncio.IncompleteReadError as exc:
            if exc.partial and not oversized:
                yield exc.partial
            elif oversized:
                logger.debug("engine_output_skipped", reason="line exceeds stream limit")
            return
        if oversized:
            logger.debug("engine_output_skipped", reason="line exceeds stream limit")
            oversized = False
            continue
        yield raw
