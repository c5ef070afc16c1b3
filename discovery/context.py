"""Application state shared by the HTTP server and the CLI: config, bus, orchestrator."""

import asyncio
import logging
import random
from collections.abc import Callable
from typing import Any

from config.config_loader import AppConfig, ConfigError, ModelConfig
from discovery.agent import Agent
from discovery.events import EventBus
from discovery.experiments import ExperimentFacade, ToyWorld
from discovery.gateway import ModelGateway
from discovery.knowledge import KnowledgeBase
from discovery.orchestrator import CycleInProgressError, Orchestrator, OrchestratorError
from discovery.personas import PersonaRegistry
from discovery.providers.anthropic import AnthropicProvider
from discovery.providers.base import AIProvider
from discovery.providers.deepseek import DeepSeekProvider
from discovery.providers.gemini import GeminiProvider
from discovery.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "deepseek": DeepSeekProvider,
    "gemini": GeminiProvider,
}

ProviderFactory = Callable[[ModelConfig, str | None], AIProvider]


class NotInitializedError(OrchestratorError):
    def __init__(self) -> None:
        super().__init__("System not initialized; call /api/initialize first")


def build_provider(model_cfg: ModelConfig, api_key: str | None = None) -> AIProvider:
    """Instantiate the adapter for a backend's SDK.

    Raises:
        ConfigError: Unknown sdk.
        ProviderError: No API key given or found in the environment.
    """
    cls = PROVIDER_CLASSES.get(model_cfg.sdk)
    if cls is None:
        raise ConfigError(f"Backend {model_cfg.name!r} has unknown sdk {model_cfg.sdk!r}")
    return cls(model_cfg, api_key)


def build_agents(
    config: AppConfig,
    registry: PersonaRegistry,
    api_keys: dict[str, str] | None = None,
    provider_factory: ProviderFactory = build_provider,
    knowledge: KnowledgeBase | None = None,
) -> list[Agent]:
    """One gateway per backend, shared by every persona that uses it."""
    api_keys = api_keys or {}
    gateways: dict[str, ModelGateway] = {}
    for backend in registry.backends():
        model_cfg = config.models.get(backend)
        if model_cfg is None:
            raise ConfigError(f"Roster references unknown backend {backend!r}")
        provider = provider_factory(model_cfg, api_keys.get(backend))
        gateways[backend] = ModelGateway.from_config(provider, config.gateway)

    summary = knowledge.summary() if knowledge is not None else ""

    return [
        Agent(
            persona,
            gateways[persona.backend],
            config.prompts,
            generation=config.gateway,
            think_log_limit=config.orchestrator.think_log_limit,
            knowledge=summary,
        )
        for persona in registry
    ]


class AppContext:
    """Everything the server needs, without module-level globals."""

    def __init__(
        self,
        config: AppConfig,
        bus: EventBus | None = None,
        provider_factory: ProviderFactory = build_provider,
        world_factory: Callable[[], ExperimentFacade] = ToyWorld,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.bus = bus or EventBus()
        self.orchestrator: Orchestrator | None = None
        self.roster_name: str | None = None
        self._provider_factory = provider_factory
        self._world_factory = world_factory
        self._rng = rng
        self._auto_task: asyncio.Task | None = None
        self.auto_interval_sec: float | None = None
        self._knowledge: KnowledgeBase | None = None

    @property
    def knowledge(self) -> KnowledgeBase:
        """Loaded on first use from config.knowledge_path."""
        if self._knowledge is None:
            self._knowledge = KnowledgeBase.from_yaml(self.config.knowledge_path)
        return self._knowledge

    def initialize(self, api_keys: dict[str, str] | None = None, roster: str | None = None) -> Orchestrator:
        """(Re)build personas, gateways, agents and the orchestrator.

        Raises:
            ConfigError: Unknown roster or backend.
            ProviderError: A backend the roster needs has no API key.
        """
        roster = roster or self.config.defaults.roster
        registry = PersonaRegistry.from_yaml(roster, self.config.personas_path)
        agents = build_agents(self.config, registry, api_keys, self._provider_factory, self.knowledge)

        if self.orchestrator is not None:
            if self.orchestrator.busy:
                raise CycleInProgressError()
            self.orchestrator.stop_session()

        self.orchestrator = Orchestrator(
            agents,
            self._world_factory(),
            self.bus,
            self.config.orchestrator,
            rng=self._rng,
        )
        self.orchestrator.set_language(self.config.defaults.language)
        self.roster_name = roster
        logger.info("Initialized roster %s with %d agents", roster, len(agents))
        return self.orchestrator

    def require(self) -> Orchestrator:
        if self.orchestrator is None:
            raise NotInitializedError()
        return self.orchestrator

    def roster(self) -> list[dict[str, Any]]:
        return [
            {
                "key": agent.key,
                "id": agent.id,
                "name": agent.name,
                "role": agent.role.value,
                "backend": agent.persona.backend,
                "personality": agent.persona.personality,
            }
            for agent in self.require().agents
        ]

    # ── Auto cycles ────────────────────────────────────────────

    @property
    def auto_running(self) -> bool:
        return self._auto_task is not None and not self._auto_task.done()

    async def _auto_loop(self, interval_sec: float) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            orchestrator = self.orchestrator
            if orchestrator is None or orchestrator.current_session is None or orchestrator.busy:
                continue
            try:
                await orchestrator.run_cycle()
            except OrchestratorError as exc:
                logger.info("Auto cycle skipped: %s", exc)
            except Exception:
                logger.exception("Auto cycle failed")

    async def start_auto(self, interval_sec: float | None = None) -> float:
        """Run a cycle every interval while a session is active. Must be awaited inside the event loop."""
        await self.stop_auto(announce=False)
        interval = float(interval_sec or self.config.defaults.auto_cycle_interval_sec)
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._auto_task = asyncio.create_task(self._auto_loop(interval))
        self.auto_interval_sec = interval
        self.bus.emit("auto_cycle_started", interval=interval)
        return interval

    async def stop_auto(self, announce: bool = True) -> None:
        task, self._auto_task = self._auto_task, None
        self.auto_interval_sec = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if announce:
            self.bus.emit("auto_cycle_stopped")
