"""A single deliberating agent: one persona bound to one model gateway."""

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from config.config_loader import GatewayConfig, PromptsConfig
from discovery.gateway import ModelGateway
from discovery.models import (
    AgentResult,
    Discovery,
    Persona,
    ResultStatus,
    Role,
    ThinkContext,
    Theory,
    utcnow,
)
from discovery.parsing import EnvelopeError, parse_envelope
from discovery.prompts import (
    build_challenge_message,
    build_respond_prompt,
    build_system_prompt,
    build_think_prompt,
    role_profile,
)
from discovery.providers.base import ChatMessage, ProviderError

logger = logging.getLogger(__name__)

_RECENT_INTERACTIONS = 5


@dataclass
class Interaction:
    from_agent: str
    message: str
    reply: str | None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ThinkLogEntry:
    kind: str                     # "think" or "respond"
    context: Any
    result: AgentResult
    timestamp: datetime = field(default_factory=utcnow)


class Agent:
    """Turns shared context into a prompt, calls its gateway, and parses the reply.

    think() and respond() never raise: backend failures and unparseable replies
    come back as FAILED and DEGRADED results respectively.
    """

    def __init__(
        self,
        persona: Persona,
        gateway: ModelGateway,
        prompts: PromptsConfig,
        generation: GatewayConfig | None = None,
        think_log_limit: int = 50,
        knowledge: str = "",
    ) -> None:
        self.id = uuid.uuid4().hex
        self.persona = persona
        self.knowledge = knowledge
        self.gateway = gateway
        self._prompts = prompts
        self._generation = generation or GatewayConfig()
        self.hypotheses: list[Theory] = []
        self.discoveries: list[Discovery] = []
        self.interactions: list[Interaction] = []
        self.think_log: deque[ThinkLogEntry] = deque(maxlen=think_log_limit)
        self.current_focus: str | None = None

    @property
    def key(self) -> str:
        return self.persona.key

    @property
    def name(self) -> str:
        return self.persona.name

    @property
    def role(self) -> Role:
        return self.persona.role

    @property
    def is_skeptic(self) -> bool:
        return self.persona.role is Role.SKEPTIC

    def _system_message(self, language: str) -> ChatMessage:
        return {"role": "system", "content": build_system_prompt(self.persona, self._prompts, language, self.knowledge)}

    async def _invoke(self, user_prompt: str, language: str, max_tokens: int) -> AgentResult:
        messages = [self._system_message(language), {"role": "user", "content": user_prompt}]
        start = time.monotonic()
        try:
            response = await self.gateway.generate(
                messages,
                temperature=self._generation.temperature,
                max_tokens=max_tokens,
            )
        except ProviderError as exc:
            logger.warning("[%s] backend failure: %s", self.name, exc)
            return self._failed(str(exc), time.monotonic() - start)
        except Exception as exc:
            logger.exception("[%s] unexpected error calling backend", self.name)
            return self._failed(f"Unexpected error: {exc}", time.monotonic() - start)

        return self._parse(response.content, response.latency_sec)

    def _failed(self, error: str, latency: float) -> AgentResult:
        return AgentResult(
            agent_key=self.key,
            agent_name=self.name,
            role=self.role,
            status=ResultStatus.FAILED,
            thinking=error,
            agreement=0,
            error=error,
            latency_sec=latency,
        )

    def _parse(self, text: str, latency: float) -> AgentResult:
        try:
            envelope = parse_envelope(text)
        except EnvelopeError as exc:
            logger.info("[%s] unparsed reply (%s), using raw text", self.name, exc)
            return AgentResult(
                agent_key=self.key,
                agent_name=self.name,
                role=self.role,
                status=ResultStatus.DEGRADED,
                thinking=text,
                agreement=role_profile(self._prompts, self.persona).fallback_agreement,
                error=str(exc),
                raw=text,
                latency_sec=latency,
            )

        return AgentResult(
            agent_key=self.key,
            agent_name=self.name,
            role=self.role,
            status=ResultStatus.OK,
            thinking=envelope.thinking,
            agreement=envelope.agreement,
            focus=envelope.focus,
            theory=envelope.theory,
            actions=envelope.actions,
            message_to_others=envelope.message_to_others,
            response=envelope.response,
            raw=text,
            latency_sec=latency,
        )

    async def think(self, context: ThinkContext, language: str = "en") -> AgentResult:
        """Deliberate on the shared context and return a structured result."""
        interactions = [f"{i.from_agent}: {i.message}" for i in self.interactions[-_RECENT_INTERACTIONS:]]
        hypotheses = [f"- {h.name}: {h.status.value}" for h in self.hypotheses]
        prompt = build_think_prompt(self.persona, self._prompts, context, interactions, hypotheses, language)

        result = await self._invoke(prompt, language, self._generation.think_max_tokens)
        if result.focus:
            self.current_focus = result.focus
        self.think_log.append(ThinkLogEntry(kind="think", context=context, result=result))
        return result

    async def respond(self, message: str, from_agent: str, language: str = "en") -> AgentResult:
        """Reply to a single incoming message from a peer or an observer."""
        prompt = build_respond_prompt(self.persona, self._prompts, message, from_agent, language)

        result = await self._invoke(prompt, language, self._generation.respond_max_tokens)
        self.interactions.append(
            Interaction(from_agent=from_agent, message=message, reply=result.response or result.thinking)
        )
        self.think_log.append(
            ThinkLogEntry(kind="respond", context={"from": from_agent, "message": message}, result=result)
        )
        return result

    async def challenge(self, theory: Theory, language: str = "en") -> AgentResult:
        """Critique a peer theory. Used by the skeptic after each new proposal."""
        return await self.respond(build_challenge_message(theory, self._prompts), theory.proposed_by_name, language)

    def record_hypothesis(self, theory: Theory) -> None:
        self.hypotheses.append(theory)

    def record_discovery(self, discovery: Discovery) -> None:
        self.discoveries.append(discovery)

    def get_state(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "role": self.role.value,
            "backend": self.persona.backend,
            "personality": self.persona.personality,
            "current_focus": self.current_focus,
            "hypotheses_count": len(self.hypotheses),
            "discoveries_count": len(self.discoveries),
            "interactions_count": len(self.interactions),
            "recent_thinking": [entry.result.thinking for entry in list(self.think_log)[-3:]],
        }
