"""Pure dataclasses for the discovery council. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    STANDARD = "standard"
    SKEPTIC = "skeptic"
    SYNTHESIZER = "synthesizer"


class ResultStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"    # reply could not be parsed; raw text kept
    FAILED = "failed"        # backend call failed after retries


class TheoryStatus(str, Enum):
    PROPOSED = "proposed"
    VALIDATED = "validated"


class DiscoveryType(str, Enum):
    VALIDATED_THEORY = "validated_theory"
    CONNECTION = "connection"
    CONSENSUS = "consensus"


@dataclass(frozen=True)
class Persona:
    key: str
    name: str
    era: str
    personality: str
    expertise: tuple[str, ...]
    approach: str
    backend: str                  # key into AppConfig.models
    role: Role = Role.STANDARD
    description: str = ""
    style: str = ""
    biases: tuple[str, ...] = ()
    quirks: str = ""
    quote: str = ""
    protocol: tuple[str, ...] = ()


@dataclass
class ModelResponse:
    provider: str
    model: str
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class Action:
    type: str                     # e.g. "PROPOSE_THEORY"
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ThinkContext:
    """Shared context handed to every agent at the start of a think call."""

    topic: str
    cycle: int = 0
    directive: str | None = None
    recent_theories: list[dict[str, Any]] = field(default_factory=list)
    recent_discoveries: list[str] = field(default_factory=list)
    peer_messages: list[str] = field(default_factory=list)
    available_experiments: list[dict[str, Any]] = field(default_factory=list)
    observational_data: list[str] = field(default_factory=list)


@dataclass
class AgentResult:
    agent_key: str
    agent_name: str
    role: Role
    status: ResultStatus
    thinking: str
    agreement: int
    focus: str | None = None
    theory: dict[str, Any] | None = None
    actions: list[Action] = field(default_factory=list)
    message_to_others: str | None = None
    response: str | None = None
    error: str | None = None
    raw: str = ""
    latency_sec: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is not ResultStatus.FAILED


@dataclass
class SupportRecord:
    agent_key: str
    agent_name: str
    reasoning: str
    agreement: int | None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class Challenge:
    id: str
    theory_id: str
    theory_name: str
    challenger: str
    challenger_name: str
    challenge: str
    reasoning: str
    agreement: int | None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ExperimentRecord:
    id: str
    experiment_id: str
    name: str
    parameters: dict[str, Any]
    result: dict[str, Any] = field(default_factory=dict)
    supports: bool | None = None
    theory_id: str | None = None
    requested_by: str | None = None
    world_time: int = 0
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Theory:
    id: str
    name: str
    description: str
    proposed_by: str              # agent key
    proposed_by_name: str
    mathematics: Any = None
    predictions: Any = field(default_factory=list)   # as proposed, usually a list
    tests: Any = field(default_factory=list)
    agreement: int = 0
    cycle: int | None = None
    status: TheoryStatus = TheoryStatus.PROPOSED
    challenges: list[Challenge] = field(default_factory=list)
    support: list[SupportRecord] = field(default_factory=list)
    experiments: list[ExperimentRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Message:
    agent_key: str
    agent_name: str
    content: str
    agreement: int | None = None
    thinking: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class Discussion:
    id: str
    topic: str
    kind: str                     # "request" or "broadcast"
    initiator: str
    initiator_name: str
    messages: list[Message] = field(default_factory=list)
    conclusions: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Discovery:
    id: str
    type: DiscoveryType
    description: str
    discovered_by: list[str]
    theory: Theory | None = None  # deep snapshot at discovery time
    consensus_percent: float | None = None
    cycle: int | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class AgreementEntry:
    agent_key: str
    agent_name: str
    agreement: int
    skeptic: bool


@dataclass
class ConsensusResult:
    agree_count: int
    total: int
    percent: float
    average: float
    is_discovery: bool
    agreements: list[AgreementEntry] = field(default_factory=list)


@dataclass
class Cycle:
    number: int
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    phases: list[str] = field(default_factory=list)
    agent_results: list[AgentResult] = field(default_factory=list)
    theories: list[Theory] = field(default_factory=list)
    challenges: list[Challenge] = field(default_factory=list)
    experiments: list[ExperimentRecord] = field(default_factory=list)
    discussions: list[Discussion] = field(default_factory=list)
    discoveries: list[Discovery] = field(default_factory=list)
    consensus: ConsensusResult | None = None


@dataclass
class Session:
    id: str
    topic: str
    language: str = "en"
    started_at: datetime = field(default_factory=utcnow)
    ended_at: datetime | None = None
    cycles: list[Cycle] = field(default_factory=list)


@dataclass
class ExplorationResult:
    topic: str
    agent_results: list[AgentResult] = field(default_factory=list)
    theories: list[Theory] = field(default_factory=list)
    consensus: ConsensusResult | None = None
    discovery: Discovery | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
