"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    _SETTINGS_PATH,
    KNOWLEDGE_PATH,
    PERSONAS_PATH,
    AppConfig,
    ConfigError,
    ModelConfig,
    PromptsConfig,
    load_config,
)
from discovery.models import Role


@pytest.fixture
def raw_settings() -> dict:
    return yaml.safe_load(_SETTINGS_PATH.read_text(encoding="utf-8"))


def _write(tmp_path: Path, settings: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings, allow_unicode=True), encoding="utf-8")
    return path


def test_load_config_returns_app_config():
    config = load_config()
    assert isinstance(config, AppConfig)
    assert isinstance(config.prompts, PromptsConfig)


def test_load_config_defaults():
    config = load_config()
    assert config.defaults.port == 3000
    assert config.defaults.roster == "discovery"
    assert config.defaults.auto_cycle_interval_sec == 30
    assert config.orchestrator.support_threshold == 3
    assert config.orchestrator.consensus_threshold == 95
    assert config.gateway.max_attempts == 3
    assert config.gateway.retry_delay_sec == 1.5
    assert config.gateway.attempt_timeout_sec == 90


def test_load_config_models():
    config = load_config()
    assert set(config.models) == {"deepseek", "claude", "openai", "gemini"}
    assert isinstance(config.models["deepseek"], ModelConfig)
    assert config.models["deepseek"].sdk == "deepseek"
    assert config.models["deepseek"].base_url


def test_role_profiles_and_fallbacks():
    config = load_config()
    assert set(config.prompts.roles) == set(Role)
    assert config.prompts.roles[Role.STANDARD].fallback_agreement == 75
    assert config.prompts.roles[Role.SYNTHESIZER].fallback_agreement == 75
    assert config.prompts.roles[Role.SKEPTIC].fallback_agreement == 20
    assert "{protocol}" in config.prompts.roles[Role.SKEPTIC].directive


def test_languages_loaded():
    config = load_config()
    assert set(config.prompts.languages) >= {"en", "es"}


def test_available_backends_from_env(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    config = load_config()
    assert "deepseek" in config.available_backends
    assert "claude" not in config.available_backends


def test_blank_api_key_counts_as_missing(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "   ")
    config = load_config()
    assert "openai" not in config.available_backends


def test_personas_path_falls_back_to_package_file(tmp_path, raw_settings):
    config = load_config(_write(tmp_path, raw_settings))
    assert config.personas_path == PERSONAS_PATH


def test_personas_path_next_to_settings(tmp_path, raw_settings):
    (tmp_path / "personas.yaml").write_text("rosters: {}\n", encoding="utf-8")
    config = load_config(_write(tmp_path, raw_settings))
    assert config.personas_path == tmp_path / "personas.yaml"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_bad_thinking_mode_raises(tmp_path, raw_settings):
    raw_settings["orchestrator"]["thinking_mode"] = "telepathic"
    with pytest.raises(ConfigError, match="thinking_mode"):
        load_config(_write(tmp_path, raw_settings))


def test_zero_attempts_raises(tmp_path, raw_settings):
    raw_settings["gateway"]["max_attempts"] = 0
    with pytest.raises(ConfigError, match="max_attempts"):
        load_config(_write(tmp_path, raw_settings))


def test_missing_english_raises(tmp_path, raw_settings):
    del raw_settings["languages"]["en"]
    with pytest.raises(ConfigError, match="languages.en"):
        load_config(_write(tmp_path, raw_settings))


def test_unknown_role_raises(tmp_path, raw_settings):
    raw_settings["roles"]["oracle"] = raw_settings["roles"]["standard"]
    with pytest.raises(ConfigError, match="Unknown role"):
        load_config(_write(tmp_path, raw_settings))


def test_missing_role_profile_raises(tmp_path, raw_settings):
    del raw_settings["roles"]["synthesizer"]
    with pytest.raises(ConfigError, match="synthesizer"):
        load_config(_write(tmp_path, raw_settings))


def test_knowledge_path_falls_back_to_package_file(tmp_path, raw_settings):
    config = load_config(_write(tmp_path, raw_settings))
    assert config.knowledge_path == KNOWLEDGE_PATH


def test_knowledge_path_next_to_settings(tmp_path, raw_settings):
    (tmp_path / "knowledge.yaml").write_text("constants: []\n", encoding="utf-8")
    config = load_config(_write(tmp_path, raw_settings))
    assert config.knowledge_path == tmp_path / "knowledge.yaml"
