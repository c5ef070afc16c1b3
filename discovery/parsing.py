"""Strict decoding of agent replies into the documented JSON envelope.

Envelope::

    {
      "thinking": str,                      # required
      "agreement": int 0..100,              # required (alias: "agreement_level")
      "theory": {"name": str, "description": str, ...},   # optional
      "actions": [{"type": str, "params": {...}}],        # optional
      "message_to_others": str,             # optional
      "response": str,                      # optional, replies to a peer
      "focus": str                          # optional
    }

Anything that does not decode or validate is reported as EnvelopeError; the
caller falls back to a degraded result carrying the raw text.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from discovery.models import Action

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class EnvelopeError(ValueError):
    """Reply text is not a valid agent envelope."""


@dataclass
class Envelope:
    thinking: str
    agreement: int
    theory: dict[str, Any] | None = None
    actions: list[Action] = field(default_factory=list)
    message_to_others: str | None = None
    response: str | None = None
    focus: str | None = None


def clamp_agreement(value: float) -> int:
    """Round and clamp a self-reported agreement into [0, 100]."""
    clamped = max(0, min(100, round(value)))
    if clamped != value:
        logger.warning("Agreement %r out of range or fractional, using %d", value, clamped)
    return clamped


def _extract_json_text(text: str) -> str:
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    start, end = stripped.find("{"), stripped.rfind("}")
    if start == -1 or end < start:
        raise EnvelopeError("No JSON object in reply")
    return stripped[start:end + 1]


def _optional_str(obj: dict, key: str) -> str | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise EnvelopeError(f"'{key}' must be a string")
    return value or None


def _parse_actions(raw: Any) -> list[Action]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise EnvelopeError("'actions' must be a list")
    actions: list[Action] = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("type"), str):
            raise EnvelopeError("Each action needs a string 'type'")
        params = item.get("params") or {}
        if not isinstance(params, dict):
            raise EnvelopeError(f"Params of {item['type']} must be an object")
        actions.append(Action(type=item["type"].strip().upper(), params=params))
    return actions


def _parse_theory(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise EnvelopeError("'theory' must be an object")
    for key in ("name", "description"):
        if not isinstance(raw.get(key), str):
            raise EnvelopeError(f"theory.{key} must be a string")
    return raw


def parse_envelope(text: str) -> Envelope:
    """Decode and validate one reply.

    Raises:
        EnvelopeError: If the text is not a JSON object matching the envelope.
    """
    try:
        obj = json.loads(_extract_json_text(text))
    except json.JSONDecodeError as exc:
        raise EnvelopeError(f"Invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise EnvelopeError("Reply JSON is not an object")

    thinking = obj.get("thinking")
    if not isinstance(thinking, str):
        raise EnvelopeError("'thinking' must be a string")

    agreement = obj.get("agreement", obj.get("agreement_level"))
    if isinstance(agreement, bool) or not isinstance(agreement, (int, float)):
        raise EnvelopeError("'agreement' must be a number")
    if isinstance(agreement, float) and not math.isfinite(agreement):
        raise EnvelopeError(f"'agreement' must be finite, got {agreement!r}")

    return Envelope(
        thinking=thinking,
        agreement=clamp_agreement(agreement),
        theory=_parse_theory(obj.get("theory")),
        actions=_parse_actions(obj.get("actions")),
        message_to_others=_optional_str(obj, "message_to_others"),
        response=_optional_str(obj, "response"),
        focus=_optional_str(obj, "focus"),
    )
