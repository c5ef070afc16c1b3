"""Tests for discovery/personas.py and config/personas.yaml."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import ConfigError
from discovery.models import Role
from discovery.personas import PersonaRegistry, list_rosters
from tests.conftest import make_persona


def test_discovery_roster_shape():
    registry = PersonaRegistry.from_yaml("discovery")
    assert len(registry) == 11
    assert registry.skeptic is not None
    assert registry.skeptic.key == "tenth_man"
    assert registry.skeptic.protocol
    roles = [p.role for p in registry]
    assert roles.count(Role.SYNTHESIZER) == 1
    assert roles.count(Role.STANDARD) == 9


def test_legends_roster_shape():
    registry = PersonaRegistry.from_yaml("legends")
    assert len(registry) == 10
    assert registry.skeptic is not None
    assert "newton" in registry


def test_registration_order_is_file_order():
    registry = PersonaRegistry.from_yaml("discovery")
    keys = [p.key for p in registry]
    assert keys[0] == "euler"
    assert keys[-2:] == ["tenth_man", "synthesizer"]


def test_backends_in_first_use_order():
    registry = PersonaRegistry.from_yaml("discovery")
    assert registry.backends() == ["deepseek", "claude", "openai"]


def test_list_rosters():
    assert list_rosters() == ["discovery", "legends"]


def test_unknown_roster_raises():
    with pytest.raises(ConfigError, match="Unknown roster"):
        PersonaRegistry.from_yaml("nobody")


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        PersonaRegistry.from_yaml("discovery", tmp_path / "missing.yaml")


def _write_roster(tmp_path: Path, personas: list[dict]) -> Path:
    path = tmp_path / "personas.yaml"
    path.write_text(yaml.dump({"rosters": {"test": personas}}), encoding="utf-8")
    return path


def test_missing_required_field_raises(tmp_path):
    path = _write_roster(tmp_path, [{"key": "x", "name": "X", "backend": "deepseek"}])
    with pytest.raises(ConfigError, match="missing fields"):
        PersonaRegistry.from_yaml("test", path)


def test_unknown_role_raises(tmp_path):
    persona = {
        "key": "x", "name": "X", "personality": "p", "expertise": ["e"],
        "approach": "a", "backend": "deepseek", "role": "oracle",
    }
    with pytest.raises(ConfigError, match="unknown role"):
        PersonaRegistry.from_yaml("test", _write_roster(tmp_path, [persona]))


def test_duplicate_keys_rejected():
    with pytest.raises(ConfigError, match="Duplicate"):
        PersonaRegistry([make_persona("a"), make_persona("a")])


def test_two_skeptics_rejected():
    with pytest.raises(ConfigError, match="skeptic"):
        PersonaRegistry([make_persona("a", role=Role.SKEPTIC), make_persona("b", role=Role.SKEPTIC)])


def test_get_and_contains():
    registry = PersonaRegistry([make_persona("a"), make_persona("b")])
    assert registry.get("a").name == "A"
    assert registry.get("zzz") is None
    assert "b" in registry
    assert registry.skeptic is None
