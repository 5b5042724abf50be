"""Tests for the engine wire protocol and phase mapping."""
import json

import pytest
from pydantic import ValidationError

from skene.engine.phases import FALLBACK_PHASE, PHASE_TABLE, AnalysisPhase, map_phase
from skene.engine.protocol import (
    EngineCommand,
    EngineRequest,
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    decode_event,
)


def _request(**overrides) -> EngineRequest:
    values = {
        "command": EngineCommand.ANALYZE,
        "provider": "openai",
        "model": "gpt-4o",
        "api_key": "sk-test",
        "project_dir": "/work/app",
        "output_dir": "/work/app/skene-context",
    }
    values.update(overrides)
    return EngineRequest(**values)


class TestEngineRequest:
    def test_analyze_omits_unset_optionals(self):
        payload = json.loads(_request().to_wire())
        assert payload == {
            "command": "analyze",
            "provider": "openai",
            "model": "gpt-4o",
            "api_key": "sk-test",
            "project_dir": "/work/app",
            "output_dir": "/work/app/skene-context",
            "product_docs": False,
            "exclude_folders": [],
            "debug": False,
        }

    def test_plan_carries_manifest_and_onboarding(self):
        request = _request(
            command=EngineCommand.PLAN,
            manifest_path="/work/app/skene-context/growth-manifest.json",
            onboarding=False,
            base_url="http://localhost:11434/v1",
        )
        payload = json.loads(request.to_wire())
        assert payload["command"] == "plan"
        assert payload["manifest_path"].endswith("growth-manifest.json")
        assert payload["onboarding"] is False
        assert payload["base_url"] == "http://localhost:11434/v1"

    def test_wire_form_is_one_line(self):
        wire = _request(exclude_folders=["node_modules", "dist"]).to_wire()
        assert wire.endswith(b"\n")
        assert wire.count(b"\n") == 1
        assert json.loads(wire)["exclude_folders"] == ["node_modules", "dist"]

    def test_irrelevant_fields_are_not_validated(self):
        # onboarding only matters for plan, but analyze accepts it silently.
        request = _request(onboarding=True)
        assert request.onboarding is True

    def test_request_is_immutable(self):
        request = _request()
        with pytest.raises(ValidationError):
            request.model = "other"


class TestDecodeEvent:
    def test_progress(self):
        event = decode_event(
            '{"type":"progress","phase":"tech_stack","step":1,"total_steps":5,'
            '"progress":0.2,"message":"Analyzing tech stack..."}'
        )
        assert isinstance(event, ProgressEvent)
        assert event.phase == "tech_stack"
        assert event.total_steps == 5
        assert event.progress == 0.2

    def test_progress_with_omitted_fields(self):
        event = decode_event(b'{"type":"progress","phase":"plan"}\n')
        assert isinstance(event, ProgressEvent)
        assert event.progress == 0.0
        assert event.message == ""

    def test_result(self):
        event = decode_event('{"type":"result","manifest_path":"/tmp/m.json","docs_path":null}')
        assert isinstance(event, ResultEvent)
        assert event.manifest_path == "/tmp/m.json"
        assert event.docs_path is None
        assert event.plan_path is None

    def test_error(self):
        event = decode_event('{"type":"error","message":"disk full","code":"E_IO"}')
        assert isinstance(event, ErrorEvent)
        assert event.message == "disk full"
        assert event.code == "E_IO"

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "warning: cargo build is stale",
            "{not json",
            '{"type":"telemetry","value":1}',
            '{"message":"no type"}',
            '{"type":"error"}',
            "[1, 2, 3]",
        ],
    )
    def test_noise_is_rejected(self, line):
        assert decode_event(line) is None


class TestPhaseMapping:
    @pytest.mark.parametrize(
        "engine_phase,expected",
        [
            ("tech_stack", AnalysisPhase.SCAN_CODEBASE),
            ("growth_features", AnalysisPhase.DETECT_FEATURES),
            ("revenue_leakage", AnalysisPhase.GROWTH_LOOPS),
            ("industry", AnalysisPhase.MONETISATION),
            ("manifest", AnalysisPhase.GENERATE_DOCS),
        ],
    )
    def test_known_phases(self, engine_phase, expected):
        assert map_phase(engine_phase) == expected

    @pytest.mark.parametrize("engine_phase", ["plan", "product_overview", "", "Complete"])
    def test_unknown_phases_fall_back(self, engine_phase):
        assert map_phase(engine_phase) == FALLBACK_PHASE == AnalysisPhase.OPPORTUNITIES

    def test_fallback_is_not_a_table_target(self):
        assert FALLBACK_PHASE not in PHASE_TABLE.values()
