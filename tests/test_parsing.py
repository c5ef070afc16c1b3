"""Tests for discovery/parsing.py."""

import json
import logging

import pytest

from discovery.parsing import EnvelopeError, clamp_agreement, parse_envelope


def test_parses_plain_json():
    env = parse_envelope(json.dumps({"thinking": "hmm", "agreement": 82}))
    assert env.thinking == "hmm"
    assert env.agreement == 82
    assert env.actions == []
    assert env.theory is None


def test_strips_markdown_fence():
    text = '```json\n{"thinking": "fenced", "agreement": 50}\n```'
    assert parse_envelope(text).thinking == "fenced"


def test_takes_span_between_outer_braces():
    text = 'Sure! Here you go: {"thinking": "inner {braces} ok", "agreement": 60} Thanks.'
    env = parse_envelope(text)
    assert env.thinking == "inner {braces} ok"


def test_agreement_level_alias():
    env = parse_envelope('{"thinking": "x", "agreement_level": 33}')
    assert env.agreement == 33


def test_actions_are_normalized():
    text = json.dumps({
        "thinking": "x",
        "agreement": 70,
        "actions": [{"type": "propose_theory", "params": {"name": "N", "description": "D"}},
                    {"type": "RUN_EXPERIMENT"}],
    })
    env = parse_envelope(text)
    assert [a.type for a in env.actions] == ["PROPOSE_THEORY", "RUN_EXPERIMENT"]
    assert env.actions[1].params == {}


def test_theory_and_optional_fields():
    text = json.dumps({
        "thinking": "x",
        "agreement": 90,
        "theory": {"name": "Equivalence", "description": "Inertial = gravitational mass"},
        "message_to_others": "Test this",
        "focus": "mass",
        "response": "",
    })
    env = parse_envelope(text)
    assert env.theory["name"] == "Equivalence"
    assert env.message_to_others == "Test this"
    assert env.focus == "mass"
    assert env.response is None


@pytest.mark.parametrize(
    "text",
    [
        "no json here at all",
        "{not valid json}",
        '["thinking", 1]',
        '{"agreement": 50}',
        '{"thinking": "x"}',
        '{"thinking": "x", "agreement": "high"}',
        '{"thinking": "x", "agreement": true}',
        '{"thinking": "x", "agreement": 50, "actions": "RUN"}',
        '{"thinking": "x", "agreement": 50, "actions": [{"params": {}}]}',
        '{"thinking": "x", "agreement": 50, "actions": [{"type": "RUN", "params": []}]}',
        '{"thinking": "x", "agreement": 50, "theory": "big idea"}',
        '{"thinking": "x", "agreement": 50, "theory": {"name": "N"}}',
        '{"thinking": "x", "agreement": NaN}',
        '{"thinking": "x", "agreement": Infinity}',
        '{"thinking": "x", "agreement": -Infinity}',
        '{"thinking": "x", "agreement": 1e400}',
    ],
)
def test_invalid_envelopes_raise(text):
    with pytest.raises(EnvelopeError):
        parse_envelope(text)


def test_out_of_range_agreement_is_clamped_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        env = parse_envelope('{"thinking": "x", "agreement": 140}')
    assert env.agreement == 100
    assert "out of range" in caplog.text


def test_clamp_agreement_bounds():
    assert clamp_agreement(-5) == 0
    assert clamp_agreement(72.6) == 73
    assert clamp_agreement(55) == 55


def test_huge_integer_agreement_is_clamped():
    env = parse_envelope('{"thinking": "x", "agreement": 1' + "0" * 400 + "}")
    assert env.agreement == 100
