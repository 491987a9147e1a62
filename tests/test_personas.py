import pytest

from assistant_bot.delivery.models import Persona
from assistant_bot.delivery.personas import (
    DEFAULT_PERSONA,
    detect,
    detect_with_source,
    profile_for,
    resolve_hint,
)


def test_explicit_hint_beats_content_markers():
    assert detect("Generated by gpt-5-nano", hint="conversational") is Persona.CONVERSATIONAL
    assert detect("Generated by gpt-5-nano", hint=Persona.HIGH_EFFORT) is Persona.HIGH_EFFORT


@pytest.mark.parametrize("hint, expected", [
    ("gpt-5-mini-2025-08-07", Persona.BALANCED),
    ("gpt-5-nano", Persona.FAST),
    ("gpt-5", Persona.HIGH_EFFORT),
    ("gpt-5-chat-latest", Persona.CONVERSATIONAL),
    ("gpt-4o", Persona.FALLBACK),
    ("high-effort", Persona.HIGH_EFFORT),
    ("GENERIC", Persona.GENERIC),
])
def test_model_names_and_values_resolve(hint, expected):
    assert resolve_hint(hint) is expected


@pytest.mark.parametrize("text, expected", [
    ("Answer [GPT-5-Nano]", Persona.FAST),
    ("[gpt-5] long reasoning", Persona.HIGH_EFFORT),
    ("gpt-5 and gpt-5-mini both mentioned", Persona.BALANCED),
    ("served by chat-latest", Persona.CONVERSATIONAL),
    ("fallback to gpt-4o", Persona.FALLBACK),
])
def test_content_markers_in_priority_order(text, expected):
    assert detect(text) is expected


def test_unknown_hint_falls_back_to_content():
    assert detect("reply from gpt-4o", hint="llama-3") is Persona.FALLBACK


def test_default_persona_without_signals():
    assert detect("Your monthly budget looks fine.") is DEFAULT_PERSONA
    assert detect("") is DEFAULT_PERSONA


def test_detection_source_is_reported():
    assert detect_with_source("x", "gpt-5") == (Persona.HIGH_EFFORT, "hint")
    assert detect_with_source("via gpt-5-nano") == (Persona.FAST, "content")
    assert detect_with_source("plain words") == (DEFAULT_PERSONA, "default")


def test_every_persona_has_a_profile():
    for persona in Persona:
        profile = profile_for(persona)
        assert profile.persona is persona
        assert profile.inter_chunk_delay_ms > 0
