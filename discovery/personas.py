"""Static catalog of agent personas, loaded once from personas.yaml."""

import logging
from collections.abc import Iterator
from pathlib import Path

import yaml

from config.config_loader import PERSONAS_PATH, ConfigError
from discovery.models import Persona, Role

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("key", "name", "personality", "expertise", "approach", "backend")


def _persona_from_raw(raw: dict) -> Persona:
    missing = [f for f in _REQUIRED_FIELDS if not raw.get(f)]
    if missing:
        raise ConfigError(f"Persona {raw.get('key', '?')!r} missing fields: {', '.join(missing)}")
    try:
        role = Role(raw.get("role", Role.STANDARD.value))
    except ValueError as exc:
        raise ConfigError(f"Persona {raw['key']!r} has unknown role {raw.get('role')!r}") from exc

    return Persona(
        key=str(raw["key"]),
        name=str(raw["name"]),
        era=str(raw.get("era", "")),
        personality=str(raw["personality"]),
        expertise=tuple(str(e) for e in raw["expertise"]),
        approach=str(raw["approach"]).strip(),
        backend=str(raw["backend"]),
        role=role,
        description=str(raw.get("description", "")),
        style=str(raw.get("style", "")),
        biases=tuple(str(b) for b in raw.get("biases", [])),
        quirks=str(raw.get("quirks", "")),
        quote=str(raw.get("quote", "")),
        protocol=tuple(str(r) for r in raw.get("protocol", [])),
    )


class PersonaRegistry:
    """Ordered, read-only set of personas for one roster."""

    def __init__(self, personas: list[Persona]) -> None:
        keys = [p.key for p in personas]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate persona keys: {', '.join(duplicates)}")
        skeptics = [p.key for p in personas if p.role is Role.SKEPTIC]
        if len(skeptics) > 1:
            raise ConfigError(f"At most one skeptic per roster, got {', '.join(skeptics)}")
        self._personas = {p.key: p for p in personas}

    @classmethod
    def from_yaml(cls, roster: str, path: Path = PERSONAS_PATH) -> "PersonaRegistry":
        """Load one named roster.

        Raises:
            FileNotFoundError: If the personas file is missing.
            ConfigError: If the roster is unknown or a persona is malformed.
        """
        if not path.exists():
            raise FileNotFoundError(f"Personas file not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        rosters = raw.get("rosters", {})
        if roster not in rosters:
            raise ConfigError(f"Unknown roster {roster!r}; available: {', '.join(sorted(rosters))}")

        personas = [_persona_from_raw(p) for p in rosters[roster]]
        logger.debug("Loaded roster %s with %d personas", roster, len(personas))
        return cls(personas)

    def __iter__(self) -> Iterator[Persona]:
        return iter(self._personas.values())

    def __len__(self) -> int:
        return len(self._personas)

    def __contains__(self, key: object) -> bool:
        return key in self._personas

    def get(self, key: str) -> Persona | None:
        return self._personas.get(key)

    @property
    def skeptic(self) -> Persona | None:
        return next((p for p in self._personas.values() if p.role is Role.SKEPTIC), None)

    def backends(self) -> list[str]:
        """Backends referenced by this roster, in first-use order."""
        seen: dict[str, None] = {}
        for p in self._personas.values():
            seen.setdefault(p.backend, None)
        return list(seen)


def list_rosters(path: Path = PERSONAS_PATH) -> list[str]:
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return list(raw.get("rosters", {}))
