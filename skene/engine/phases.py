"""Translation from engine-native progress phases to the orchestrator's own.

The engine reports fine-grained phase identifiers (``tech_stack``,
``growth_features`` ...).  Callers only ever see :class:`AnalysisPhase`.
Every engine phase maps through :data:`PHASE_TABLE`; anything not listed
there maps to :data:`FALLBACK_PHASE`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class AnalysisPhase(str, Enum):
    SCAN_CODEBASE = "scan_codebase"
    DETECT_FEATURES = "detect_features"
    GROWTH_LOOPS = "growth_loops"
    MONETISATION = "monetisation"
    OPPORTUNITIES = "opportunities"
    GENERATE_DOCS = "generate_docs"


PHASE_TABLE: dict[str, AnalysisPhase] = {
    "tech_stack": AnalysisPhase.SCAN_CODEBASE,
    "growth_features": AnalysisPhase.DETECT_FEATURES,
    "revenue_leakage": AnalysisPhase.GROWTH_LOOPS,
    "industry": AnalysisPhase.MONETISATION,
    "manifest": AnalysisPhase.GENERATE_DOCS,
}

# Phases the engine reports for plan/build/status and the docs analyzers
# (``plan``, ``product_overview`` ...) land here.
FALLBACK_PHASE = AnalysisPhase.OPPORTUNITIES


def map_phase(engine_phase: str) -> AnalysisPhase:
    if engine_phase in PHASE_TABLE:
        return PHASE_TABLE[engine_phase]
    return FALLBACK_PHASE


class PhaseUpdate(BaseModel):
    """Progress notification delivered to the caller's callback.

    Attributes:
        phase: Orchestrator-facing phase.
        progress: Engine-reported fraction in ``[0, 1]``.
        message: Human-readable status text.
        engine_phase: The raw phase identifier the engine sent.
    """

    phase: AnalysisPhase
    progress: float = 0.0
    message: str = ""
    engine_phase: str = ""
