"""Catalog of verified physics and open problems, loaded once from knowledge.yaml."""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from config.config_loader import KNOWLEDGE_PATH, ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Constant:
    symbol: str
    name: str
    value: float
    unit: str = ""
    uncertainty: float = 0.0


@dataclass(frozen=True)
class Law:
    name: str
    statement: str
    mathematics: str = ""
    domain: str = ""
    limitation: str = ""
    superseded_by: str = ""


@dataclass(frozen=True)
class Phenomenon:
    key: str
    name: str
    summary: str
    status: str = ""


@dataclass(frozen=True)
class Connection:
    key: str
    description: str
    questions: tuple[str, ...] = ()


@dataclass
class KnowledgeBase:
    constants: list[Constant] = field(default_factory=list)
    laws: dict[str, list[Law]] = field(default_factory=dict)
    unexplained: list[Phenomenon] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: Path = KNOWLEDGE_PATH) -> "KnowledgeBase":
        """Load and validate the catalog.

        Raises:
            FileNotFoundError: If the knowledge file is missing.
            ConfigError: If an entry is malformed.
        """
        if not path.exists():
            raise FileNotFoundError(f"Knowledge file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        try:
            knowledge = cls(
                constants=[
                    Constant(
                        symbol=str(c["symbol"]),
                        name=str(c["name"]),
                        value=float(c["value"]),
                        unit=str(c.get("unit", "")),
                        uncertainty=float(c.get("uncertainty", 0)),
                    )
                    for c in raw.get("constants", [])
                ],
                laws={
                    str(domain): [_law(entry) for entry in entries]
                    for domain, entries in (raw.get("laws") or {}).items()
                },
                unexplained=[
                    Phenomenon(
                        key=str(key),
                        name=str(entry["name"]),
                        summary=str(entry["summary"]),
                        status=str(entry.get("status", "")),
                    )
                    for key, entry in (raw.get("unexplained") or {}).items()
                ],
                connections=[
                    Connection(
                        key=str(key),
                        description=str(entry["description"]),
                        questions=tuple(str(q) for q in entry.get("questions", [])),
                    )
                    for key, entry in (raw.get("connections") or {}).items()
                ],
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ConfigError(f"Malformed knowledge file {path}: {exc!r}") from exc

        logger.debug(
            "Loaded knowledge: %d constants, %d laws, %d open problems",
            len(knowledge.constants), sum(len(v) for v in knowledge.laws.values()), len(knowledge.unexplained),
        )
        return knowledge

    def summary(self) -> str:
        """Compact plain-text rendering for system prompts."""
        if not (self.constants or self.laws or self.unexplained):
            return "None loaded"
        lines: list[str] = []
        if self.constants:
            constants = (f"{c.symbol} = {c.value:.10g} {c.unit}".rstrip() for c in self.constants)
            lines.append("Constants: " + "; ".join(constants))
        for domain, laws in self.laws.items():
            lines.append(f"{domain.replace('_', ' ').title()}:")
            for law in laws:
                maths = f" [{law.mathematics}]" if law.mathematics else ""
                lines.append(f"- {law.name}: {law.statement}{maths}")
        if self.unexplained:
            lines.append("Unexplained phenomena:")
            lines.extend(f"- {p.name}: {p.summary} ({p.status})" if p.status else f"- {p.name}: {p.summary}"
                         for p in self.unexplained)
        if self.connections:
            lines.append("Open cross-domain questions:")
            lines.extend(f"- {q}" for c in self.connections for q in c.questions)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "constants": [asdict(c) for c in self.constants],
            "laws": {domain: [asdict(law) for law in laws] for domain, laws in self.laws.items()},
            "unexplained": [asdict(p) for p in self.unexplained],
            "connections": [asdict(c) for c in self.connections],
        }


def _law(raw: dict) -> Law:
    return Law(
        name=str(raw["name"]),
        statement=str(raw["statement"]),
        mathematics=str(raw.get("mathematics", "")),
        domain=str(raw.get("domain", "")),
        limitation=str(raw.get("limitation", "")),
        superseded_by=str(raw.get("superseded_by", "")),
    )
