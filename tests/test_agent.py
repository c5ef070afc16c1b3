"""Tests for discovery/agent.py and discovery/prompts.py."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

from discovery.agent import Agent
from discovery.models import ResultStatus, Role, ThinkContext, Theory
from discovery.prompts import build_system_prompt, build_think_prompt
from discovery.providers.base import ProviderError
from tests.conftest import MockProvider, envelope, fast_gateway, make_persona


def _agent(prompts, provider, role: Role = Role.STANDARD, **kwargs) -> Agent:
    return Agent(make_persona("newton", role=role), fast_gateway(provider, **kwargs), prompts)


async def test_think_returns_parsed_result(prompts):
    reply = envelope(
        "Orbits are ellipses",
        85,
        focus="orbits",
        theory={"name": "Inverse square", "description": "F ~ 1/r^2"},
        actions=[{"type": "PROPOSE_THEORY", "params": {"name": "Inverse square", "description": "F ~ 1/r^2"}}],
    )
    agent = _agent(prompts, MockProvider(response_content=reply))
    result = await agent.think(ThinkContext(topic="gravity"))
    assert result.status is ResultStatus.OK
    assert result.thinking == "Orbits are ellipses"
    assert result.agreement == 85
    assert result.actions[0].type == "PROPOSE_THEORY"
    assert agent.current_focus == "orbits"
    assert len(agent.think_log) == 1


async def test_malformed_reply_is_degraded_with_role_fallback(prompts):
    agent = _agent(prompts, MockProvider(response_content="I think gravity is neat."))
    result = await agent.think(ThinkContext(topic="gravity"))
    assert result.status is ResultStatus.DEGRADED
    assert result.success
    assert result.thinking == "I think gravity is neat."
    assert result.agreement == 75


async def test_skeptic_fallback_agreement(prompts):
    agent = _agent(prompts, MockProvider(response_content="not json"), role=Role.SKEPTIC)
    result = await agent.think(ThinkContext(topic="gravity"))
    assert result.agreement == 20


async def test_backend_failure_gives_failed_result(prompts):
    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=ProviderError("deepseek", "quota exceeded", 429))
    result = await _agent(prompts, provider).think(ThinkContext(topic="gravity"))
    assert result.status is ResultStatus.FAILED
    assert result.agreement == 0
    assert "quota exceeded" in result.thinking
    assert provider.complete.await_count == 3


async def test_always_timeout_fails_without_raising(prompts):
    async def hang(*args, **kwargs):
        await asyncio.sleep(10)

    provider = MockProvider()
    provider.complete = AsyncMock(side_effect=hang)
    agent = _agent(prompts, provider, max_attempts=2, attempt_timeout_sec=0.01)
    result = await agent.respond("Hello?", "Human Observer")
    assert result.status is ResultStatus.FAILED
    assert result.agreement == 0
    assert "timed out" in result.error


async def test_respond_records_interaction(prompts):
    agent = _agent(prompts, MockProvider(response_content=envelope("hm", 60, response="Show me data")))
    result = await agent.respond("Mass bends light", "Einstein")
    assert result.response == "Show me data"
    assert agent.interactions[-1].from_agent == "Einstein"
    assert agent.interactions[-1].reply == "Show me data"
    assert isinstance(agent.interactions[-1].timestamp, datetime)
    assert isinstance(agent.think_log[-1].timestamp, datetime)


async def test_recent_interactions_and_hypotheses_reach_think_prompt(prompts):
    provider = MockProvider()
    agent = _agent(prompts, provider)
    for i in range(7):
        await agent.respond(f"message {i}", "Bohr")
    agent.record_hypothesis(Theory(id="t", name="Tidal locking", description="d", proposed_by="newton",
                                   proposed_by_name="Newton"))
    await agent.think(ThinkContext(topic="moons"))

    user_prompt = provider.complete.await_args.args[0][-1]["content"]
    assert "message 6" in user_prompt
    assert "message 1" not in user_prompt
    assert "Tidal locking" in user_prompt


async def test_language_instruction_injected(prompts):
    provider = MockProvider()
    await _agent(prompts, provider).think(ThinkContext(topic="x"), language="es")
    system = provider.complete.await_args.args[0][0]["content"]
    assert "ESPAÑOL" in system


def test_unknown_language_falls_back_to_english(prompts):
    persona = make_persona("newton")
    assert build_system_prompt(persona, prompts, "klingon") == build_system_prompt(persona, prompts, "en")


def test_skeptic_prompt_carries_protocol(prompts):
    system = build_system_prompt(make_persona("tenth", role=Role.SKEPTIC), prompts, "en")
    assert "Doubt everything" in system
    assert "CHALLENGE every theory" in system


def test_think_prompt_renders_context_json(prompts):
    context = ThinkContext(topic="buoyancy", cycle=2, peer_messages=["Faraday: try the pendulum"])
    prompt = build_think_prompt(make_persona("newton"), prompts, context, [], [], "en")
    assert '"topic": "buoyancy"' in prompt
    assert "Faraday: try the pendulum" in prompt
    assert "directive" not in prompt


def test_get_state_summary(prompts):
    agent = _agent(prompts, MockProvider())
    state = agent.get_state()
    assert state["key"] == "newton"
    assert state["role"] == "standard"
    assert state["backend"] == "deepseek"
    assert state["hypotheses_count"] == 0


async def test_knowledge_summary_reaches_system_prompt(prompts):
    provider = MockProvider()
    agent = Agent(make_persona("newton"), fast_gateway(provider), prompts, knowledge="- Lorentz force: F = q(E + v x B)")
    await agent.think(ThinkContext(topic="magnets"))
    system = provider.complete.await_args.args[0][0]["content"]
    assert "VERIFIED PHYSICS" in system
    assert "- Lorentz force: F = q(E + v x B)" in system


def test_system_prompt_without_knowledge(prompts):
    system = build_system_prompt(make_persona("newton"), prompts, "en")
    assert "VERIFIED PHYSICS YOU MAY BUILD ON (cite it, do not rediscover it):\nNone loaded" in system
