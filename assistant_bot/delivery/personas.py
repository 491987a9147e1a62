"""Persona detection.

An explicit hint is authoritative. Content sniffing is only the fallback used
when no usable hint was given.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple, Union

from assistant_bot.delivery.models import Persona, PersonaProfile

PROFILES: Dict[Persona, PersonaProfile] = {
    Persona.HIGH_EFFORT: PersonaProfile(
        persona=Persona.HIGH_EFFORT,
        inter_chunk_delay_ms=800,
        display_emoji="🚀",
        display_name="GPT-5",
        markers=("gpt-5",),
    ),
    Persona.BALANCED: PersonaProfile(
        persona=Persona.BALANCED,
        inter_chunk_delay_ms=500,
        display_emoji="🔧",
        display_name="GPT-5 Mini",
        markers=("gpt-5-mini",),
    ),
    Persona.FAST: PersonaProfile(
        persona=Persona.FAST,
        inter_chunk_delay_ms=200,
        display_emoji="⚡",
        display_name="GPT-5 Nano",
        markers=("gpt-5-nano", "nano"),
    ),
    Persona.CONVERSATIONAL: PersonaProfile(
        persona=Persona.CONVERSATIONAL,
        inter_chunk_delay_ms=400,
        display_emoji="💬",
        display_name="GPT-5 Chat",
        markers=("gpt-5-chat", "chat-latest"),
    ),
    Persona.FALLBACK: PersonaProfile(
        persona=Persona.FALLBACK,
        inter_chunk_delay_ms=600,
        display_emoji="🧠",
        display_name="GPT-4o",
        markers=("gpt-4o", "gpt-4", "fallback"),
    ),
    Persona.GENERIC: PersonaProfile(
        persona=Persona.GENERIC,
        inter_chunk_delay_ms=300,
        display_emoji="🤖",
        display_name="Assistant",
        markers=("claude", "system"),
    ),
}

# More specific markers first: "gpt-5-nano" must not be read as plain "gpt-5"
DETECTION_ORDER: Tuple[Persona, ...] = (
    Persona.FAST,
    Persona.BALANCED,
    Persona.CONVERSATIONAL,
    Persona.FALLBACK,
    Persona.HIGH_EFFORT,
    Persona.GENERIC,
)

DEFAULT_PERSONA = Persona.BALANCED


def profile_for(persona: Persona) -> PersonaProfile:
    return PROFILES[persona]


def resolve_hint(hint: Union[Persona, str, None]) -> Optional[Persona]:
    """Map an explicit hint (persona, persona value or model name) to a persona."""
    if hint is None:
        return None
    if isinstance(hint, Persona):
        return hint
    value = str(hint).strip().lower()
    if not value:
        return None
    try:
        return Persona(value.replace("-", "_"))
    except ValueError:
        pass
    # A model name such as "gpt-5-nano" is an explicit hint as well
    for persona in DETECTION_ORDER:
        if any(marker == value or value.startswith(marker) for marker in PROFILES[persona].markers):
            return persona
    return None


def infer_from_text(text: str) -> Optional[Persona]:
    lowered = (text or "").lower()
    for persona in DETECTION_ORDER:
        if any(marker in lowered for marker in PROFILES[persona].markers):
            return persona
    return None


def detect(text: str, hint: Union[Persona, str, None] = None) -> Persona:
    return resolve_hint(hint) or infer_from_text(text) or DEFAULT_PERSONA


def detect_with_source(text: str, hint: Union[Persona, str, None] = None) -> Tuple[Persona, str]:
    """Same as :func:`detect`, also naming which path decided: hint, content or default."""
    persona = resolve_hint(hint)
    if persona is not None:
        return persona, "hint"
    persona = infer_from_text(text)
    if persona is not None:
        return persona, "content"
    return DEFAULT_PERSONA, "default"
