"""Shared pytest fixtures."""

import json
import random
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, GatewayConfig, OrchestratorSettings, PromptsConfig, load_config
from discovery.agent import Agent
from discovery.events import ALL_EVENTS, Event, EventBus
from discovery.experiments import ToyWorld
from discovery.gateway import ModelGateway
from discovery.models import ModelResponse, Persona, Role
from discovery.orchestrator import Orchestrator
from discovery.providers.base import AIProvider, ChatMessage, split_system

Script = Callable[[str, str], str | Exception]


def envelope(thinking: str = "Considering the evidence.", agreement: int = 80, **extra) -> str:
    """A well-formed agent reply."""
    return json.dumps({"thinking": thinking, "agreement": agreement, **extra})


def persona_name(system: str) -> str:
    """Pull the persona name out of a rendered system prompt."""
    marker = "You are "
    start = system.index(marker) + len(marker)
    return system[start:system.index(" (", start)]


def by_persona(replies: dict[str, str | Exception], default: str | None = None) -> Script:
    """Script that answers according to the calling persona's name."""
    def script(system: str, user: str) -> str | Exception:
        return replies.get(persona_name(system), default or envelope())
    return script


class MockProvider(AIProvider):
    """Test double AIProvider.

    Replies with response_content, or asks `script(system, user)` when given.
    A script may return an Exception instance to make the call fail.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        response_content: str | None = None,
        script: Script | None = None,
    ) -> None:
        self._name = provider_name
        self._response_content = response_content or envelope()
        self._script = script
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because complete is defined in the class body below.
        self.complete = AsyncMock(side_effect=self._reply)  # type: ignore[assignment]

    async def _reply(
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> ModelResponse:
        content: str | Exception = self._response_content
        if self._script is not None:
            system, turns = split_system(messages)
            content = self._script(system, turns[-1]["content"] if turns else "")
        if isinstance(content, Exception):
            raise content
        return ModelResponse(
            provider=self._name,
            model="mock-model",
            content=content,
            latency_sec=0.1,
            token_count=10,
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def complete(  # type: ignore[override]
        self,
        messages: list[ChatMessage],
        temperature: float,
        max_tokens: int,
        model: str | None = None,
    ) -> ModelResponse:
        """Default implementation; replaced by AsyncMock in __init__."""
        return await self._reply(messages, temperature, max_tokens, model)


def make_persona(
    key: str,
    name: str | None = None,
    role: Role = Role.STANDARD,
    expertise: tuple[str, ...] = ("Classical mechanics",),
    description: str = "",
    backend: str = "deepseek",
) -> Persona:
    return Persona(
        key=key,
        name=name or key.title(),
        era="1900s",
        personality=f"{key} personality",
        expertise=expertise,
        approach="Careful reasoning",
        backend=backend,
        role=role,
        description=description,
        quote="Test quote",
        protocol=("Doubt everything",) if role is Role.SKEPTIC else (),
    )


def fast_gateway(provider: AIProvider, max_attempts: int = 3, attempt_timeout_sec: float = 5.0) -> ModelGateway:
    return ModelGateway(provider, max_attempts=max_attempts, retry_delay_sec=0, attempt_timeout_sec=attempt_timeout_sec)


def make_agents(personas: list[Persona], provider: AIProvider, prompts: PromptsConfig) -> list[Agent]:
    gateway = fast_gateway(provider)
    return [Agent(p, gateway, prompts, generation=GatewayConfig(retry_delay_sec=0)) for p in personas]


class Recorder:
    """Collects every event emitted on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[Event] = []
        bus.subscribe(ALL_EVENTS, self.events.append)

    def types(self) -> list[str]:
        return [e.type for e in self.events]

    def of(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.type == event_type]


@pytest.fixture
def app_config(monkeypatch) -> AppConfig:
    for env in ("DEEPSEEK_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(env, raising=False)
    config = load_config()
    config.gateway.retry_delay_sec = 0
    config.gateway.attempt_timeout_sec = 5
    return config


@pytest.fixture
def prompts(app_config: AppConfig) -> PromptsConfig:
    return app_config.prompts


@pytest.fixture
def settings() -> OrchestratorSettings:
    return OrchestratorSettings(seed=0)


@pytest.fixture
def council_personas() -> list[Persona]:
    return [
        make_persona("newton", expertise=("Classical mechanics", "Gravitation")),
        make_persona("faraday", expertise=("Experimental design", "Electromagnetism")),
        make_persona("boltzmann", expertise=("Statistical mechanics", "Thermodynamics")),
        make_persona("bohr", expertise=("Quantum foundations",)),
        make_persona("tenth_man", name="Tenth Man", role=Role.SKEPTIC, expertise=("Critical analysis",)),
    ]


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> Recorder:
    return Recorder(bus)


@pytest.fixture
def build_orchestrator(council_personas, prompts, bus, settings) -> Callable[..., Orchestrator]:
    """Factory: an orchestrator over the council personas with a scripted provider."""

    def build(script: Script | None = None, personas: list[Persona] | None = None) -> Orchestrator:
        provider = MockProvider("deepseek", script=script)
        agents = make_agents(personas or council_personas, provider, prompts)
        return Orchestrator(agents, ToyWorld(), bus, settings, rng=random.Random(0))

    return build
