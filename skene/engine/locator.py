"""Locate the ``skene-engine`` binary on disk.

Candidates, in order of preference:

1. Explicit override (``SKENE_ENGINE_PATH`` / constructor argument).
2. Next to the running orchestrator's interpreter, where packaged installs
   place it.
3. The current directory, then its ``build/`` subdirectory.
4. The developer build output ``engine/target/release/``.
5. ``PATH``.

Every candidate is made absolute before it is checked so the process layer
is never handed a relative path.
"""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path

from skene.config import Settings
from skene.utils.exceptions import BinaryNotFoundError
from skene.utils.logging import get_logger

logger = get_logger("engine.locator")

ENGINE_BINARY_NAME = "skene-engine"


def engine_binary_name() -> str:
    if os.name == "nt":
        return f"{ENGINE_BINARY_NAME}.exe"
    return ENGINE_BINARY_NAME


def engine_candidates(
    override: str | None = None,
    cwd: str | Path | None = None,
    exec_dir: str | Path | None = None,
) -> list[str]:
    """Return candidate paths for the engine binary in priority order."""
    name = engine_binary_name()
    cwd = Path(cwd) if cwd is not None else Path.cwd()
    if exec_dir is None:
        exec_dir = Path(sys.executable).parent

    candidates: list[str] = []
    if override:
        candidates.append(str(override))
    candidates.append(str(Path(exec_dir) / name))
    candidates.append(str(cwd / name))
    candidates.append(str(cwd / "build" / name))
    candidates.append(str(cwd / "engine" / "target" / "release" / name))

    on_path = shutil.which(name)
    if on_path:
        candidates.append(on_path)
    return candidates


def _is_executable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def resolve_engine_binary(candidates: list[str]) -> str:
    """Pick the first candidate that exists and is executable.

    Raises :class:`BinaryNotFoundError` when none qualifies.
    """
    for candidate in candidates:
        if not candidate:
            continue
        path = os.path.abspath(candidate)
        if _is_executable_file(path):
            logger.debug("engine_binary_resolved", path=path)
            return path
        logger.debug("engine_candidate_rejected", path=path)

    raise BinaryNotFoundError(engine_binary_name(), [c for c in candidates if c])


def locate_engine(override: str | None = None) -> str:
    """Resolve the engine binary.

    Without an explicit *override* the ``SKENE_ENGINE_PATH`` setting is read
    at call time, so library callers get the same override as the server.
    """
    if not override:
        override = Settings().engine_path or None
    return resolve_engine_binary(engine_candidates(override=override))
