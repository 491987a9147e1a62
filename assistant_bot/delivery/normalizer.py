"""Content normalisation for LLM output before it is split and delivered.

Everything here works on the prose *outside* fenced code blocks; fenced blocks
are passed through untouched. All passes are idempotent.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, List

# Fenced block: opening ``` up to the closing ``` (or the end of text when unclosed)
_FENCE_RE = re.compile(r"(```.*?(?:```|\Z))", re.DOTALL)

_METADATA_PATTERNS = (
    # [GPT-5 • reasoning: high], [gpt-5-mini], [model: gpt-4o], [reasoning]
    re.compile(
        r"\[(?:gpt|o\d|claude|model|reasoning|analysis|context|verbosity|temperature|tokens?)"
        r"[^\]\n]{0,60}\](?!\()",
        re.IGNORECASE,
    ),
    # (confidence: 87%), (reasoning effort: high)
    re.compile(
        r"\((?:confidence|reasoning(?: effort)?|verbosity|model|tokens?)\s*:\s*[^)\n]{0,40}\)",
        re.IGNORECASE,
    ),
    # (gpt-5-nano), (o3-mini)
    re.compile(r"\((?:gpt-\d[\w.-]*|o\d(?:-mini)?)\)", re.IGNORECASE),
)

_TRAILING_WS_RE = re.compile(r"[ \t]+(?=\n)")
_HORIZONTAL_RUN_RE = re.compile(r"[ \t]{3,}")
_BLANK_LINES_RE = re.compile(r"\n{4,}")


def safe_string(value: Any) -> str:
    """Coerce whatever the LLM layer returned into text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def _map_prose(text: str, transform: Callable[[str], str]) -> str:
    parts: List[str] = _FENCE_RE.split(text)
    # re.split with one capture group: even indexes are prose, odd are fences
    return "".join(part if i % 2 else transform(part) for i, part in enumerate(parts))


def strip_metadata_markers(text: str) -> str:
    previous = None
    while previous != text:
        previous = text
        for pattern in _METADATA_PATTERNS:
            text = pattern.sub("", text)
    return text


def _clean_prose(text: str) -> str:
    text = strip_metadata_markers(text)
    text = _TRAILING_WS_RE.sub("", text)
    text = _HORIZONTAL_RUN_RE.sub("  ", text)
    return _BLANK_LINES_RE.sub("\n\n\n", text)


def normalize(raw: Any) -> str:
    """Return cleaned text; empty or whitespace-only input gives ``""``."""
    text = safe_string(raw).replace("\r\n", "\n").replace("\r", "\n")
    if not text.strip():
        return ""
    # removing a marker can merge fences or whitespace runs, so repeat until stable;
    # every pass only deletes characters
    while True:
        cleaned = _map_prose(text, _clean_prose).strip()
        if cleaned == text:
            return cleaned
        text = cleaned


_PUNCT_SPACES_RE = re.compile(r"([.!?,;:])[ \t]{2,}")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"(?<=\S)[ \t]+([,;:])(?=\s)")
_COMPRESS_BLANK_RE = re.compile(r"\n{3,}")


def _compress_prose(text: str) -> str:
    text = _PUNCT_SPACES_RE.sub(r"\1 ", text)
    text = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    return _COMPRESS_BLANK_RE.sub("\n\n", text)


def compress(text: str) -> str:
    """Tighter spacing for very long answers (TELEGRAM_COMPRESS)."""
    return _map_prose(text, _compress_prose).strip()
