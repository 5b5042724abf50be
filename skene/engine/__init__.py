"""Bridge to the external analysis engine.

Public API::

    from skene.engine import (
        AnalysisPhase,
        AnalysisResult,
        EngineCommand,
        EngineConfig,
        EngineProcess,
        EngineRequest,
        PhaseUpdate,
    )
"""

from skene.engine.locator import engine_candidates, locate_engine, resolve_engine_binary
from skene.engine.phases import FALLBACK_PHASE, AnalysisPhase, PhaseUpdate, map_phase
from skene.engine.process import AnalysisResult, EngineConfig, EngineProcess
from skene.engine.protocol import (
    EngineCommand,
    EngineRequest,
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    decode_event,
)

__all__ = [
    "FALLBACK_PHASE",
    "AnalysisPhase",
    "AnalysisResult",
    "EngineCommand",
    "EngineConfig",
    "EngineProcess",
    "EngineRequest",
    "ErrorEvent",
    "PhaseUpdate",
    "ProgressEvent",
    "ResultEvent",
    "decode_event",
    "engine_candidates",
    "locate_engine",
    "map_phase",
    "resolve_engine_binary",
]
