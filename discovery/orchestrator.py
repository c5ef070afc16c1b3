"""Research cycles: think, propose, challenge, experiment, discuss, discover."""

import asyncio
import copy
import logging
import random
import re
import uuid
from collections.abc import Sequence
from typing import Any

from config.config_loader import OrchestratorSettings
from discovery.agent import Agent
from discovery.consensus import best_theory, compute_consensus
from discovery.events import EventBus
from discovery.experiments import ExperimentError, ExperimentFacade
from discovery.models import (
    AgentResult,
    Challenge,
    Cycle,
    Discovery,
    DiscoveryType,
    Discussion,
    ExperimentRecord,
    ExplorationResult,
    Message,
    Session,
    SupportRecord,
    Theory,
    TheoryStatus,
    ThinkContext,
    utcnow,
)

logger = logging.getLogger(__name__)

HUMAN_OBSERVER = "Human Observer"
LANGUAGES = ("en", "es")

_KNOWN_ACTIONS = {
    "PROPOSE_THEORY",
    "SUPPORT_THEORY",
    "CHALLENGE_THEORY",
    "RUN_EXPERIMENT",
    "REQUEST_DISCUSSION",
    "RECORD_DISCOVERY",
}

_WORD_RE = re.compile(r"[a-z0-9]+")
_MIN_KEYWORD_LEN = 3
_STOP_WORDS = frozenset({
    "and", "are", "but", "can", "does", "for", "from", "has", "how", "into", "its", "not",
    "that", "the", "their", "this", "was", "what", "when", "why", "with",
})

_EXPLORE_DIRECTIVE = (
    "Give your independent assessment of this topic. If you have a theory, "
    "state it, and rate how strongly you agree with the emerging view."
)


class OrchestratorError(Exception):
    """Base for precondition failures. Raised before any side effect."""


class SessionNotActiveError(OrchestratorError):
    def __init__(self) -> None:
        super().__init__("No active session; start one first")


class CycleInProgressError(OrchestratorError):
    def __init__(self) -> None:
        super().__init__("A cycle or exploration is already running")


class AgentNotFoundError(OrchestratorError):
    def __init__(self, agent_key: str) -> None:
        self.agent_key = agent_key
        super().__init__(f"Unknown agent: {agent_key}")


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _tail(items: Sequence[Any], n: int) -> list[Any]:
    return list(items[-n:]) if n > 0 else []


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _keywords(text: str) -> set[str]:
    """Lowercased word tokens, minus short words and stop words. Trailing plural 's' is dropped."""
    words = set()
    for token in _WORD_RE.findall(text.lower()):
        if len(token) < _MIN_KEYWORD_LEN or token in _STOP_WORDS:
            continue
        words.add(token[:-1] if token.endswith("s") and not token.endswith("ss") else token)
    return words


class Orchestrator:
    """Owns the shared research state and runs cycles over a fixed roster.

    Cycles and explorations are serialized by a lock; a second request while
    one is running is rejected with CycleInProgressError rather than queued.
    """

    def __init__(
        self,
        agents: Sequence[Agent],
        world: ExperimentFacade,
        bus: EventBus,
        settings: OrchestratorSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.agents = list(agents)
        self._by_key = {a.key: a for a in self.agents}
        self.skeptic = next((a for a in self.agents if a.is_skeptic), None)
        self.world = world
        self.bus = bus
        self.settings = settings or OrchestratorSettings()
        self._rng = rng or random.Random(self.settings.seed)
        self._lock = asyncio.Lock()

        self.language = "en"
        self.sessions: list[Session] = []
        self.current_session: Session | None = None
        self.cycle_count = 0
        self.theories: list[Theory] = []
        self.discoveries: list[Discovery] = []
        self.discussions: list[Discussion] = []
        self.experiments: list[ExperimentRecord] = []

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def get_agent(self, agent_key: str) -> Agent | None:
        return self._by_key.get(agent_key)

    # ── Session control ────────────────────────────────────────────

    def start_session(self, topic: str = "Open Exploration", language: str | None = None) -> Session:
        if self.current_session is not None:
            self.stop_session()
        if language is not None:
            self.set_language(language)

        session = Session(id=_new_id("session"), topic=topic, language=self.language)
        self.sessions.append(session)
        self.current_session = session
        logger.info("Session %s started: %s", session.id, topic)
        self.bus.emit("session_started", session_id=session.id, topic=topic, language=session.language)
        return session

    def stop_session(self) -> Session | None:
        """Close the current session. A running cycle is allowed to finish."""
        session = self.current_session
        if session is None:
            return None
        session.ended_at = utcnow()
        self.current_session = None
        logger.info("Session %s ended after %d cycles", session.id, len(session.cycles))
        self.bus.emit("session_ended", session_id=session.id, cycles=len(session.cycles))
        return session

    def set_language(self, language: str) -> str:
        if language not in LANGUAGES:
            logger.warning("Unsupported language %r, falling back to en", language)
            language = "en"
        self.language = language
        if self.current_session is not None:
            self.current_session.language = language
        return language

    # ── Research cycle ────────────────────────────────────────────

    async def run_cycle(self) -> Cycle:
        """Run one six-phase research cycle on the current session's topic.

        Raises:
            SessionNotActiveError: No session has been started.
            CycleInProgressError: Another cycle or exploration is running.
        """
        if self.current_session is None:
            raise SessionNotActiveError()
        if self._lock.locked():
            raise CycleInProgressError()

        async with self._lock:
            session = self.current_session
            self.cycle_count += 1
            cycle = Cycle(number=self.cycle_count)
            logger.info("Cycle %d started (%s)", cycle.number, session.topic)
            self.bus.emit("cycle_started", cycle=cycle.number, topic=session.topic)

            cycle.phases.append("thinking")
            thinkers = [a for a in self.agents if not a.is_skeptic]
            cycle.agent_results = await self._think_all(thinkers, self._build_context(session.topic, cycle.number))

            cycle.phases.append("theories")
            self._extract_theories(cycle)

            cycle.phases.append("challenge")
            await self._challenge_theories(cycle)

            cycle.phases.append("experiments")
            self._run_requested_experiments(cycle)

            cycle.phases.append("discussion")
            await self._run_discussions(cycle)

            cycle.phases.append("discovery")
            self._check_discoveries(cycle)

            cycle.consensus = compute_consensus(
                cycle.agent_results,
                agree_threshold=self.settings.agree_threshold,
                discovery_threshold=self.settings.consensus_threshold,
            )
            self.world.advance_time()
            cycle.completed_at = utcnow()
            session.cycles.append(cycle)

            failed = sum(1 for r in cycle.agent_results if not r.success)
            logger.info(
                "Cycle %d complete: %d theories, %d discoveries, %d failed agents",
                cycle.number, len(cycle.theories), len(cycle.discoveries), failed,
            )
            self.bus.emit(
                "cycle_completed",
                cycle=cycle.number,
                theories=len(cycle.theories),
                experiments=len(cycle.experiments),
                discussions=len(cycle.discussions),
                discoveries=len(cycle.discoveries),
                consensus_percent=cycle.consensus.percent,
            )
            return cycle

    def _build_context(self, topic: str, cycle_number: int) -> ThinkContext:
        peer_messages: list[str] = []
        if self.current_session and self.current_session.cycles:
            last = self.current_session.cycles[-1]
            peer_messages = [
                f"{r.agent_name}: {r.message_to_others}" for r in last.agent_results if r.message_to_others
            ]
        return ThinkContext(
            topic=topic,
            cycle=cycle_number,
            recent_theories=[
                {
                    "id": t.id,
                    "name": t.name,
                    "description": t.description,
                    "proposed_by": t.proposed_by_name,
                    "status": t.status.value,
                    "support": len(t.support),
                    "challenges": len(t.challenges),
                }
                for t in _tail(self.theories, self.settings.recent_theories)
            ],
            recent_discoveries=[d.description for d in _tail(self.discoveries, self.settings.recent_discoveries)],
            peer_messages=peer_messages,
            available_experiments=self.world.available_experiments(),
            observational_data=self.world.observational_data(),
        )

    async def _think_one(self, agent: Agent, context: ThinkContext) -> AgentResult:
        self.bus.emit("agent_thinking", agent_key=agent.key, agent_name=agent.name)
        result = await agent.think(context, self.language)
        if result.success:
            self.bus.emit(
                "agent_thought",
                agent_key=agent.key,
                agent_name=agent.name,
                status=result.status.value,
                thinking=result.thinking,
                agreement=result.agreement,
                focus=result.focus,
                actions=[a.type for a in result.actions],
            )
        else:
            self.bus.emit("agent_error", agent_key=agent.key, agent_name=agent.name, error=result.error)
        return result

    async def _think_all(self, agents: list[Agent], context: ThinkContext) -> list[AgentResult]:
        if self.settings.thinking_mode == "sequential":
            return [await self._think_one(a, context) for a in agents]
        return list(await asyncio.gather(*(self._think_one(a, context) for a in agents)))

    # ── Theories ────────────────────────────────────────────────

    def find_theory(self, ref: Any) -> Theory | None:
        """Look up by id, then by case-insensitive name (newest wins)."""
        if not isinstance(ref, str) or not ref.strip():
            return None
        for theory in self.theories:
            if theory.id == ref:
                return theory
        wanted = ref.strip().lower()
        for theory in reversed(self.theories):
            if theory.name.strip().lower() == wanted:
                return theory
        return None

    def _theory_ref(self, params: dict[str, Any]) -> Theory | None:
        return self.find_theory(params.get("theory_id") or params.get("theory") or params.get("theory_name"))

    def _make_theory(self, agent: Agent, result: AgentResult, data: dict[str, Any], cycle: int | None) -> Theory | None:
        # Stored exactly as proposed; the read endpoint returns these fields unchanged.
        name, description = data.get("name"), data.get("description")
        if not isinstance(name, str) or not isinstance(description, str) or not name.strip():
            logger.debug("[%s] theory without name/description ignored", agent.name)
            return None
        theory = Theory(
            id=_new_id("theory"),
            name=name,
            description=description,
            proposed_by=agent.key,
            proposed_by_name=agent.name,
            mathematics=data.get("mathematics"),
            predictions=data.get("predictions", []),
            tests=data.get("tests", []),
            agreement=result.agreement,
            cycle=cycle,
        )
        self.theories.append(theory)
        agent.record_hypothesis(theory)
        logger.info("[%s] proposed theory: %s", agent.name, theory.name.strip())
        self.bus.emit("theory_proposed", theory=theory)
        return theory

    def _extract_theories(self, cycle: Cycle) -> None:
        successful = [r for r in cycle.agent_results if r.success]

        # Proposals first so same-cycle support and challenges can reference them.
        for result in successful:
            agent = self._by_key[result.agent_key]
            for action in result.actions:
                if action.type == "PROPOSE_THEORY":
                    theory = self._make_theory(agent, result, {**(result.theory or {}), **action.params}, cycle.number)
                    if theory is not None:
                        cycle.theories.append(theory)
                elif action.type not in _KNOWN_ACTIONS:
                    logger.debug("[%s] unknown action %s ignored", agent.name, action.type)

        for result in successful:
            agent = self._by_key[result.agent_key]
            for action in result.actions:
                if action.type == "SUPPORT_THEORY":
                    self._add_support(agent, result, action.params)
                elif action.type == "CHALLENGE_THEORY":
                    self._add_peer_challenge(agent, result, action.params, cycle)

    def _add_support(self, agent: Agent, result: AgentResult, params: dict[str, Any]) -> None:
        theory = self._theory_ref(params)
        if theory is None:
            logger.debug("[%s] support for unknown theory ignored: %s", agent.name, params)
            return
        if theory.proposed_by == agent.key or any(s.agent_key == agent.key for s in theory.support):
            return
        theory.support.append(
            SupportRecord(
                agent_key=agent.key,
                agent_name=agent.name,
                reasoning=str(params.get("reasoning") or ""),
                agreement=result.agreement,
            )
        )
        self.bus.emit(
            "theory_supported",
            theory_id=theory.id,
            theory_name=theory.name,
            agent_key=agent.key,
            agent_name=agent.name,
            support_count=len(theory.support),
        )

    def _add_peer_challenge(self, agent: Agent, result: AgentResult, params: dict[str, Any], cycle: Cycle) -> None:
        theory = self._theory_ref(params)
        if theory is None or theory.proposed_by == agent.key:
            return
        challenge = Challenge(
            id=_new_id("challenge"),
            theory_id=theory.id,
            theory_name=theory.name,
            challenger=agent.key,
            challenger_name=agent.name,
            challenge=str(params.get("objections") or params.get("challenge") or result.thinking),
            reasoning=str(params.get("alternative_explanation") or params.get("reasoning") or result.thinking),
            agreement=result.agreement,
        )
        theory.challenges.append(challenge)
        cycle.challenges.append(challenge)
        self.bus.emit("theory_challenged", challenge=challenge, peer=True)

    async def _challenge_theories(self, cycle: Cycle) -> None:
        if self.skeptic is None:
            return
        for theory in cycle.theories:
            self.bus.emit(
                "skeptic_analyzing",
                theory_id=theory.id,
                theory_name=theory.name,
                skeptic=self.skeptic.name,
            )
            result = await self.skeptic.challenge(theory, self.language)
            if not result.success:
                self.bus.emit(
                    "agent_error",
                    agent_key=self.skeptic.key,
                    agent_name=self.skeptic.name,
                    error=result.error,
                    theory_id=theory.id,
                )
                continue
            challenge = Challenge(
                id=_new_id("challenge"),
                theory_id=theory.id,
                theory_name=theory.name,
                challenger=self.skeptic.key,
                challenger_name=self.skeptic.name,
                challenge=result.response or result.thinking,
                reasoning=result.thinking,
                agreement=result.agreement,
            )
            theory.challenges.append(challenge)
            cycle.challenges.append(challenge)
            self.bus.emit("theory_challenged", challenge=challenge, peer=False)

    # ── Experiments ────────────────────────────────────────────

    def run_experiment(
        self,
        experiment_id: str,
        parameters: dict[str, Any] | None = None,
        expected: dict[str, Any] | None = None,
        theory_id: str | None = None,
        requested_by: str | None = None,
    ) -> ExperimentRecord:
        """Run one experiment and link it to a theory when theory_id resolves.

        Raises:
            ExperimentError: Unknown experiment id or invalid parameters.
        """
        if parameters is not None and not isinstance(parameters, dict):
            raise ExperimentError(f"parameters must be an object, got {type(parameters).__name__}")
        if expected is not None and not isinstance(expected, dict):
            raise ExperimentError(f"expected must be an object, got {type(expected).__name__}")

        record = self.world.run_experiment(experiment_id, parameters, expected)
        record.requested_by = requested_by
        theory = self.find_theory(theory_id)
        if theory is not None:
            record.theory_id = theory.id
            theory.experiments.append(record)
        self.experiments.append(record)
        self.bus.emit("experiment_completed", record=record)
        return record

    def _run_requested_experiments(self, cycle: Cycle) -> None:
        for result in cycle.agent_results:
            if not result.success:
                continue
            for action in result.actions:
                if action.type != "RUN_EXPERIMENT":
                    continue
                params = action.params
                experiment_id = params.get("experiment_id") or params.get("experiment_name") or params.get("experiment")
                parameters = params.get("parameters") or {}
                theory = self._theory_ref(params)
                self.bus.emit(
                    "experiment_running",
                    agent_key=result.agent_key,
                    agent_name=result.agent_name,
                    experiment_id=experiment_id,
                    parameters=parameters,
                )
                try:
                    record = self.run_experiment(
                        experiment_id,
                        parameters,
                        params.get("expected"),
                        theory_id=theory.id if theory else None,
                        requested_by=result.agent_key,
                    )
                except Exception as exc:
                    if isinstance(exc, ExperimentError):
                        logger.warning("[%s] experiment %s failed: %s", result.agent_name, experiment_id, exc)
                    else:
                        logger.exception("[%s] experiment %s crashed", result.agent_name, experiment_id)
                    record = ExperimentRecord(
                        id=_new_id("exp"),
                        experiment_id=str(experiment_id),
                        name=str(experiment_id),
                        parameters=parameters if isinstance(parameters, dict) else {},
                        theory_id=theory.id if theory else None,
                        requested_by=result.agent_key,
                        error=str(exc),
                    )
                    self.experiments.append(record)
                    self.bus.emit("experiment_error", record=record, error=str(exc))
                cycle.experiments.append(record)

    # ── Discussions ────────────────────────────────────────────

    def _relevance(self, agent: Agent, topic: str) -> float:
        expertise = _keywords(" ".join(agent.persona.expertise))
        description = _keywords(agent.persona.description or agent.persona.personality)
        score = 0.0
        for word in _keywords(topic):
            if word in expertise:
                score += 2
            if word in description:
                score += 1
        return score + self._rng.uniform(0, self.settings.relevance_jitter)

    def select_relevant(self, topic: str, exclude_key: str | None, count: int) -> list[Agent]:
        """Top `count` agents by keyword relevance; ties keep registration order."""
        scored = [
            (self._relevance(agent, topic), index, agent)
            for index, agent in enumerate(self.agents)
            if agent.key != exclude_key
        ]
        scored.sort(key=lambda s: (-s[0], s[1]))
        return [agent for _, _, agent in scored[:count]]

    def _resolve_participants(self, refs: Any, exclude_key: str) -> list[Agent]:
        participants: list[Agent] = []
        for ref in _as_list(refs):
            if not isinstance(ref, str):
                continue
            agent = self._by_key.get(ref) or next(
                (a for a in self.agents if a.name.lower() == ref.lower()), None
            )
            if agent is not None and agent.key != exclude_key and agent not in participants:
                participants.append(agent)
        return participants

    async def _collect_reply(self, agent: Agent, message: str, initiator: Agent) -> Message | None:
        result = await agent.respond(message, initiator.name, self.language)
        if not result.success:
            self.bus.emit("agent_error", agent_key=agent.key, agent_name=agent.name, error=result.error)
            return None
        return Message(
            agent_key=agent.key,
            agent_name=agent.name,
            content=result.response or result.thinking,
            agreement=result.agreement,
            thinking=result.thinking,
        )

    async def _request_discussion(self, initiator: Agent, params: dict[str, Any]) -> Discussion:
        topic = str(params.get("topic") or "Open question")
        question = str(params.get("question") or params.get("message") or topic)
        participants = self._resolve_participants(
            params.get("participants") or params.get("relevant_agents"), initiator.key
        ) or self.select_relevant(topic, initiator.key, self.settings.max_discussion_participants)
        if self.skeptic is not None and self.skeptic is not initiator and self.skeptic not in participants:
            participants.append(self.skeptic)

        discussion = Discussion(
            id=_new_id("discussion"),
            topic=topic,
            kind="request",
            initiator=initiator.key,
            initiator_name=initiator.name,
            messages=[Message(agent_key=initiator.key, agent_name=initiator.name, content=question)],
        )
        for participant in participants:
            message = await self._collect_reply(participant, question, initiator)
            if message is None:
                continue
            discussion.messages.append(message)
            self.bus.emit("discussion_message", discussion_id=discussion.id, topic=topic, message=message)

        discussion.conclusions = [
            f"{m.agent_name}: {m.content}"
            for m in discussion.messages[1:]
            if m.agreement is not None and m.agreement >= self.settings.agree_threshold
        ]
        self.bus.emit(
            "discussion_completed",
            discussion_id=discussion.id,
            topic=topic,
            initiator=initiator.name,
            participants=[p.name for p in participants],
            message_count=len(discussion.messages),
            conclusions=discussion.conclusions,
        )
        return discussion

    async def _broadcast(self, initiator: Agent, text: str) -> Discussion:
        responders = self.select_relevant(text, initiator.key, self.settings.max_responders)
        discussion = Discussion(
            id=_new_id("discussion"),
            topic=text,
            kind="broadcast",
            initiator=initiator.key,
            initiator_name=initiator.name,
            messages=[Message(agent_key=initiator.key, agent_name=initiator.name, content=text)],
        )
        for responder in responders:
            message = await self._collect_reply(responder, text, initiator)
            if message is None:
                continue
            discussion.messages.append(message)
            self.bus.emit(
                "agent_response",
                from_agent=initiator.name,
                to_agent=responder.name,
                original_message=text,
                response=message,
            )
        self.bus.emit(
            "discussion",
            discussion_id=discussion.id,
            initiator=initiator.name,
            topic=text,
            participants=[initiator.name, *(r.name for r in responders)],
            message_count=len(discussion.messages),
        )
        return discussion

    async def _run_discussions(self, cycle: Cycle) -> None:
        for result in cycle.agent_results:
            if not result.success:
                continue
            initiator = self._by_key[result.agent_key]
            for action in result.actions:
                if action.type == "REQUEST_DISCUSSION":
                    cycle.discussions.append(await self._request_discussion(initiator, action.params))
            if result.message_to_others:
                cycle.discussions.append(await self._broadcast(initiator, result.message_to_others))
        self.discussions.extend(cycle.discussions)

    # ── Discoveries ────────────────────────────────────────────

    def _record_discovery(self, discovery: Discovery, agent_keys: list[str], cycle: Cycle | None = None) -> None:
        self.discoveries.append(discovery)
        if cycle is not None:
            cycle.discoveries.append(discovery)
        for key in agent_keys:
            agent = self._by_key.get(key)
            if agent is not None:
                agent.record_discovery(discovery)
        logger.info("Discovery (%s): %s", discovery.type.value, discovery.description)
        self.bus.emit("discovery", discovery=discovery)

    def _check_discoveries(self, cycle: Cycle) -> None:
        for theory in self.theories:
            if theory.status is not TheoryStatus.PROPOSED:
                continue
            if len(theory.support) < self.settings.support_threshold:
                continue
            confirming = [e.id for e in theory.experiments if e.supports]
            if not confirming:
                continue
            theory.status = TheoryStatus.VALIDATED
            self._record_discovery(
                Discovery(
                    id=_new_id("discovery"),
                    type=DiscoveryType.VALIDATED_THEORY,
                    description=f"Validated theory: {theory.name}",
                    discovered_by=[theory.proposed_by_name, *(s.agent_name for s in theory.support)],
                    theory=copy.deepcopy(theory),
                    cycle=cycle.number,
                    details={"support": len(theory.support), "experiments": confirming},
                ),
                [theory.proposed_by, *(s.agent_key for s in theory.support)],
                cycle,
            )

        for result in cycle.agent_results:
            if not result.success:
                continue
            for action in result.actions:
                if action.type != "RECORD_DISCOVERY":
                    continue
                params = action.params
                self._record_discovery(
                    Discovery(
                        id=_new_id("discovery"),
                        type=DiscoveryType.CONNECTION,
                        description=str(params.get("description") or params.get("discovery") or result.thinking),
                        discovered_by=[result.agent_name],
                        cycle=cycle.number,
                        details=dict(params),
                    ),
                    [result.agent_key],
                    cycle,
                )

    # ── Single-shot exploration ───────────────────────────────────

    async def explore_topic(self, topic: str) -> ExplorationResult:
        """Ask every agent once, in parallel, and apply the supermajority rule.

        Raises:
            CycleInProgressError: Another cycle or exploration is running.
        """
        if self._lock.locked():
            raise CycleInProgressError()

        async with self._lock:
            exploration = ExplorationResult(topic=topic)
            logger.info("Exploring %r with %d agents", topic, len(self.agents))
            self.bus.emit("exploration_started", topic=topic, agents=[a.name for a in self.agents])

            context = ThinkContext(
                topic=topic,
                directive=_EXPLORE_DIRECTIVE,
                recent_theories=[
                    {"name": t.name, "description": t.description, "proposed_by": t.proposed_by_name}
                    for t in _tail(self.theories, self.settings.recent_theories)
                ],
                available_experiments=self.world.available_experiments(),
                observational_data=self.world.observational_data(),
            )
            exploration.agent_results = list(
                await asyncio.gather(*(self._think_one(a, context) for a in self.agents))
            )

            for result in exploration.agent_results:
                if not result.success:
                    continue
                data = result.theory or next(
                    (a.params for a in result.actions if a.type == "PROPOSE_THEORY"), None
                )
                if data:
                    theory = self._make_theory(self._by_key[result.agent_key], result, data, None)
                    if theory is not None:
                        exploration.theories.append(theory)

            consensus = compute_consensus(
                exploration.agent_results,
                agree_threshold=self.settings.agree_threshold,
                discovery_threshold=self.settings.consensus_threshold,
            )
            exploration.consensus = consensus
            self.bus.emit("consensus", topic=topic, consensus=consensus)

            if consensus.is_discovery:
                best = best_theory(exploration.theories)
                agreeing = [
                    e for e in consensus.agreements
                    if not e.skeptic and e.agreement >= self.settings.agree_threshold
                ]
                discovery = Discovery(
                    id=_new_id("discovery"),
                    type=DiscoveryType.CONSENSUS,
                    description=f"Consensus on {best.name}" if best else f"Consensus on {topic}",
                    discovered_by=[e.agent_name for e in agreeing],
                    theory=copy.deepcopy(best),
                    consensus_percent=consensus.percent,
                    details={"topic": topic, "average_agreement": consensus.average},
                )
                self._record_discovery(discovery, [e.agent_key for e in agreeing])
                exploration.discovery = discovery

            exploration.completed_at = utcnow()
            self.bus.emit(
                "exploration_completed",
                topic=topic,
                theories=len(exploration.theories),
                consensus_percent=consensus.percent,
                discovery=exploration.discovery is not None,
            )
            return exploration

    # ── Direct queries and reads ──────────────────────────────────

    async def query_agent(self, agent_key: str, question: str) -> AgentResult:
        """Ask one agent a question as the human observer.

        Raises:
            AgentNotFoundError: agent_key is not in the roster.
        """
        agent = self._by_key.get(agent_key)
        if agent is None:
            raise AgentNotFoundError(agent_key)
        result = await agent.respond(question, HUMAN_OBSERVER, self.language)
        self.bus.emit(
            "agent_response",
            from_agent=HUMAN_OBSERVER,
            to_agent=agent.name,
            original_message=question,
            response=result,
        )
        return result

    def get_state(self) -> dict[str, Any]:
        session = self.current_session
        return {
            "session": (
                {
                    "id": session.id,
                    "topic": session.topic,
                    "language": session.language,
                    "started_at": session.started_at,
                    "cycles": len(session.cycles),
                }
                if session
                else None
            ),
            "running": self.busy,
            "language": self.language,
            "cycle_count": self.cycle_count,
            "agents": [a.get_state() for a in self.agents],
            "theories": len(self.theories),
            "validated_theories": sum(1 for t in self.theories if t.status is TheoryStatus.VALIDATED),
            "discoveries": len(self.discoveries),
            "discussions": len(self.discussions),
            "experiments": len(self.experiments),
            "recent_discoveries": [d.description for d in _tail(self.discoveries, self.settings.recent_discoveries)],
        }
