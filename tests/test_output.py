"""Tests for discovery/output.py."""

from datetime import timedelta
from pathlib import Path

import pytest

from discovery.models import (
    AgentResult,
    ConsensusResult,
    Discovery,
    DiscoveryType,
    ExplorationResult,
    ResultStatus,
    Role,
    Theory,
)
from discovery.output import _slug, print_exploration, print_roster, save_exploration
from tests.conftest import make_persona


def test_slug_basic():
    assert _slug("Why is the sky blue?") == "why-is-the-sky-blue"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("E = mc^2 (1905)")
    assert "=" not in result
    assert "(" not in result


@pytest.fixture
def exploration() -> ExplorationResult:
    theory = Theory(
        id="theory_1", name="Mass-energy equivalence", description="Rest mass is a form of energy",
        proposed_by="einstein", proposed_by_name="Einstein", mathematics="E = mc^2", agreement=95,
    )
    result = ExplorationResult(
        topic="Where does the Sun get its energy?",
        agent_results=[
            AgentResult("einstein", "Einstein", Role.STANDARD, ResultStatus.OK, "Fusion converts mass.", 95),
            AgentResult("bohr", "Bohr", Role.STANDARD, ResultStatus.DEGRADED, "Perhaps tunnelling.", 75),
            AgentResult("tenth_man", "Tenth Man", Role.SKEPTIC, ResultStatus.FAILED, "API call failed", 0),
        ],
        theories=[theory],
        consensus=ConsensusResult(agree_count=2, total=2, percent=100.0, average=85.0, is_discovery=True),
        discovery=Discovery(
            id="discovery_1", type=DiscoveryType.CONSENSUS, description="Consensus on Mass-energy equivalence",
            discovered_by=["Einstein", "Bohr"], consensus_percent=100.0,
        ),
    )
    result.completed_at = result.started_at + timedelta(seconds=12)
    return result


def test_save_exploration_creates_file(tmp_path: Path, exploration: ExplorationResult):
    path = save_exploration(exploration, tmp_path)
    assert path.exists()
    assert path.parent == tmp_path
    assert path.name.endswith("_where-does-the-sun-get-its-energy.md")


def test_save_exploration_content(tmp_path: Path, exploration: ExplorationResult):
    content = save_exploration(exploration, tmp_path).read_text(encoding="utf-8")
    assert "# Exploration: Where does the Sun get its energy?" in content
    assert "**Duration:** 12.0s" in content
    assert "### Bohr (degraded, agreement 75)" in content
    assert "### Mass-energy equivalence (by Einstein)" in content
    assert "`E = mc^2`" in content
    assert "2/2 agree (100.0%)" in content
    assert "**Discovery:** Consensus on Mass-energy equivalence" in content


def test_save_exploration_creates_output_dir(tmp_path: Path, exploration: ExplorationResult):
    nested = tmp_path / "runs" / "today"
    assert save_exploration(exploration, nested).parent == nested


def test_save_without_discovery(tmp_path: Path, exploration: ExplorationResult):
    exploration.discovery = None
    exploration.theories = []
    content = save_exploration(exploration, tmp_path).read_text(encoding="utf-8")
    assert "**Discovery:**" not in content
    assert "## Theories" not in content


def test_print_exploration(capsys, exploration: ExplorationResult):
    print_exploration(exploration)
    out = capsys.readouterr().out
    assert "Tenth Man" in out
    assert "DISCOVERY" in out


def test_print_roster_marks_missing_keys(capsys):
    print_roster([make_persona("newton", backend="claude")], available_backends={"deepseek"})
    assert "no key" in capsys.readouterr().out
