"""Load settings.yaml into typed dataclasses. Reports which backends have API keys."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from discovery.models import Role

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
PERSONAS_PATH = Path(__file__).parent / "personas.yaml"
KNOWLEDGE_PATH = Path(__file__).parent / "knowledge.yaml"

_THINKING_MODES = {"parallel", "sequential"}


class ConfigError(Exception):
    """Raised when settings, persona or knowledge files are structurally invalid."""


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    base_url: str | None = None


@dataclass
class GatewayConfig:
    max_attempts: int = 3
    retry_delay_sec: float = 1.5
    attempt_timeout_sec: float = 90.0
    temperature: float = 0.8
    think_max_tokens: int = 4096
    respond_max_tokens: int = 2048


@dataclass
class OrchestratorSettings:
    thinking_mode: str = "parallel"
    max_responders: int = 3
    max_discussion_participants: int = 4
    support_threshold: int = 3
    agree_threshold: int = 70
    consensus_threshold: float = 95.0
    recent_theories: int = 5
    recent_discoveries: int = 3
    relevance_jitter: float = 2.0
    think_log_limit: int = 50
    seed: int | None = None


@dataclass
class LanguageConfig:
    instruction: str
    response_format: str


@dataclass
class RoleProfile:
    directive: str               # may reference {protocol}
    mission: str
    think_question: str
    respond_reminder: str
    agreement_range: str
    fallback_agreement: int


@dataclass
class PromptsConfig:
    system: str
    think: str
    respond: str
    challenge: str
    languages: dict[str, LanguageConfig] = field(default_factory=dict)
    roles: dict[Role, RoleProfile] = field(default_factory=dict)


@dataclass
class DefaultsConfig:
    host: str = "127.0.0.1"
    port: int = 3000
    roster: str = "discovery"
    topic: str = "Open Exploration"
    language: str = "en"
    auto_cycle_interval_sec: float = 30.0


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    orchestrator: OrchestratorSettings
    gateway: GatewayConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    personas_path: Path = PERSONAS_PATH
    knowledge_path: Path = KNOWLEDGE_PATH
    available_backends: set[str] = field(default_factory=set)


def _load_prompts(raw: dict) -> PromptsConfig:
    prompts_raw = raw["prompts"]
    languages = {
        code: LanguageConfig(
            instruction=str(lang["instruction"]),
            response_format=str(lang["response_format"]),
        )
        for code, lang in raw.get("languages", {}).items()
    }
    if "en" not in languages:
        raise ConfigError("languages.en is required")

    roles: dict[Role, RoleProfile] = {}
    for role_name, role_raw in raw["roles"].items():
        try:
            role = Role(role_name)
        except ValueError as exc:
            raise ConfigError(f"Unknown role in settings: {role_name}") from exc
        roles[role] = RoleProfile(
            directive=str(role_raw.get("directive", "")),
            mission=str(role_raw["mission"]),
            think_question=str(role_raw["think_question"]),
            respond_reminder=str(role_raw.get("respond_reminder", "")),
            agreement_range=str(role_raw["agreement_range"]),
            fallback_agreement=int(role_raw["fallback_agreement"]),
        )
    missing = [r.value for r in Role if r not in roles]
    if missing:
        raise ConfigError(f"Missing role profiles: {', '.join(missing)}")

    return PromptsConfig(
        system=prompts_raw["system"],
        think=prompts_raw["think"],
        respond=prompts_raw["respond"],
        challenge=prompts_raw["challenge"],
        languages=languages,
        roles=roles,
    )


def load_config(
    settings_path: Path = _SETTINGS_PATH,
    personas_path: Path | None = None,
    knowledge_path: Path | None = None,
) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ConfigError on bad values.
    Logs missing API keys but does not raise; callers check available_backends.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw.get("defaults", {})
    defaults = DefaultsConfig(
        host=str(defaults_raw.get("host", "127.0.0.1")),
        port=int(defaults_raw.get("port", 3000)),
        roster=str(defaults_raw.get("roster", "discovery")),
        topic=str(defaults_raw.get("topic", "Open Exploration")),
        language=str(defaults_raw.get("language", "en")),
        auto_cycle_interval_sec=float(defaults_raw.get("auto_cycle_interval_sec", 30)),
    )

    orch_raw = raw.get("orchestrator", {})
    orchestrator = OrchestratorSettings(
        thinking_mode=str(orch_raw.get("thinking_mode", "parallel")),
        max_responders=int(orch_raw.get("max_responders", 3)),
        max_discussion_participants=int(orch_raw.get("max_discussion_participants", 4)),
        support_threshold=int(orch_raw.get("support_threshold", 3)),
        agree_threshold=int(orch_raw.get("agree_threshold", 70)),
        consensus_threshold=float(orch_raw.get("consensus_threshold", 95)),
        recent_theories=int(orch_raw.get("recent_theories", 5)),
        recent_discoveries=int(orch_raw.get("recent_discoveries", 3)),
        relevance_jitter=float(orch_raw.get("relevance_jitter", 2.0)),
        think_log_limit=int(orch_raw.get("think_log_limit", 50)),
        seed=orch_raw.get("seed"),
    )
    if orchestrator.thinking_mode not in _THINKING_MODES:
        raise ConfigError(
            f"orchestrator.thinking_mode must be one of {sorted(_THINKING_MODES)}, "
            f"got {orchestrator.thinking_mode!r}"
        )

    gateway_raw = raw.get("gateway", {})
    gateway = GatewayConfig(
        max_attempts=int(gateway_raw.get("max_attempts", 3)),
        retry_delay_sec=float(gateway_raw.get("retry_delay_sec", 1.5)),
        attempt_timeout_sec=float(gateway_raw.get("attempt_timeout_sec", 90)),
        temperature=float(gateway_raw.get("temperature", 0.8)),
        think_max_tokens=int(gateway_raw.get("think_max_tokens", 4096)),
        respond_max_tokens=int(gateway_raw.get("respond_max_tokens", 2048)),
    )
    if gateway.max_attempts < 1:
        raise ConfigError("gateway.max_attempts must be >= 1")

    prompts = _load_prompts(raw)

    models: dict[str, ModelConfig] = {}
    available_backends: set[str] = set()

    for backend_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=backend_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            base_url=model_raw.get("base_url"),
        )
        models[backend_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_backends.add(backend_name)
            logger.info("Backend available: %s", backend_name)
        else:
            logger.info(
                "Backend skipped (no API key): %s, set %s in .env",
                backend_name,
                model_raw["api_key_env"],
            )

    personas_file = personas_path or settings_path.parent / "personas.yaml"
    if not personas_file.exists():
        personas_file = PERSONAS_PATH
    knowledge_file = knowledge_path or settings_path.parent / "knowledge.yaml"
    if not knowledge_file.exists():
        knowledge_file = KNOWLEDGE_PATH

    return AppConfig(
        defaults=defaults,
        orchestrator=orchestrator,
        gateway=gateway,
        models=models,
        prompts=prompts,
        personas_path=personas_file,
        knowledge_path=knowledge_file,
        available_backends=available_backends,
    )
