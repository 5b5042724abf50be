import sys
import textwrap
from pathlib import Path

import pytest

from skene.engine.process import EngineConfig


def write_engine(directory: Path, body: str, name: str = "skene-engine") -> str:
    """Write an executable Python script that stands in for the engine."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def make_engine(tmp_path):
    def _make(body: str, name: str = "skene-engine") -> str:
        return write_engine(tmp_path / "bin", body, name=name)

    return _make


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def engine_config(project_dir, tmp_path):
    return EngineConfig(
        provider="anthropic",
        model="claude-sonnet-4-20250514",
        api_key="test-key",
        project_dir=str(project_dir),
        output_dir=str(tmp_path / "out"),
    )


# A well-behaved analyze run: two progress events, then a result pointing at
# a manifest the script writes itself.
ANALYZE_ENGINE = """
import json
import os
import sys

request = json.loads(sys.stdin.read())
out = request["output_dir"]
os.makedirs(out, exist_ok=True)
with open(os.path.join(out, "request.json"), "w") as fh:
    json.dump(request, fh)

manifest = os.path.join(out, "growth-manifest.json")
with open(manifest, "w") as fh:
    fh.write('{"project_name": "demo"}')

def emit(payload):
    print(json.dumps(payload), flush=True)

emit({"type": "progress", "phase": "tech_stack", "step": 1, "total_steps": 2,
      "progress": 0.2, "message": "Analyzing tech stack..."})
emit({"type": "progress", "phase": "growth_features", "step": 2, "total_steps": 2,
      "progress": 0.6, "message": "Analyzing growth features..."})
emit({"type": "result", "manifest_path": manifest})
"""


@pytest.fixture
def analyze_engine(make_engine):
    return make_engine(ANALYZE_ENGINE)
