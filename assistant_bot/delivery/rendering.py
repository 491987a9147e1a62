"""Rendering strategies: the same chunk text prepared for each Telegram parse mode.

The driver walks ``strategies_for(...)`` in order and moves to the next
strategy when the transport rejects the markup of the previous one.
"""

from __future__ import annotations

import html
import re
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

_FENCE_RE = re.compile(r"```([^\n`]*)\n?(.*?)(?:```|\Z)", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_BOLD_RE = re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*|__(?=\S)(.+?)(?<=\S)__")
_HEADING_RE = re.compile(r"^#{1,6}[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_BULLET_RE = re.compile(r"^([ \t]*)[-*+][ \t]+", re.MULTILINE)
_LINK_RE = re.compile(r"\[([^\]\n]+)\]\((https?://[^)\s]+)\)")


class RenderStrategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    parse_mode: Optional[str]
    render: Callable[[str], str]


def _map_outside_code(text: str, prose: Callable[[str], str], code: Callable[[str, str], str]) -> str:
    out: List[str] = []
    pos = 0
    for match in _FENCE_RE.finditer(text):
        out.append(prose(text[pos:match.start()]))
        out.append(code(match.group(1).strip(), match.group(2)))
        pos = match.end()
    out.append(prose(text[pos:]))
    return "".join(out)


# ------------------------------------------------------------------ #
# Markdown (legacy Telegram Markdown)                                 #
# ------------------------------------------------------------------ #
def _markdown_prose(text: str) -> str:
    text = _HEADING_RE.sub(r"*\1*", text)
    text = _BULLET_RE.sub(r"\1• ", text)
    return _BOLD_RE.sub(lambda m: f"*{m.group(1) or m.group(2)}*", text)


def to_markdown(text: str) -> str:
    return _map_outside_code(
        text,
        _markdown_prose,
        lambda lang, code: f"```{lang}\n{code.rstrip(chr(10))}\n```",
    )


# ------------------------------------------------------------------ #
# HTML                                                               #
# ------------------------------------------------------------------ #
def _html_prose(text: str) -> str:
    placeholders: List[str] = []

    def _stash(value: str) -> str:
        placeholders.append(value)
        return f"\x00{len(placeholders) - 1}\x00"

    text = _INLINE_CODE_RE.sub(lambda m: _stash(f"<code>{html.escape(m.group(1))}</code>"), text)
    text = _LINK_RE.sub(
        lambda m: _stash(f'<a href="{html.escape(m.group(2))}">{html.escape(m.group(1))}</a>'),
        text,
    )
    text = html.escape(text, quote=False)
    text = _HEADING_RE.sub(r"<b>\1</b>", text)
    text = _BULLET_RE.sub(r"\1• ", text)
    text = _BOLD_RE.sub(lambda m: f"<b>{m.group(1) or m.group(2)}</b>", text)
    return re.sub(r"\x00(\d+)\x00", lambda m: placeholders[int(m.group(1))], text)


def _html_code(lang: str, code: str) -> str:
    body = html.escape(code.rstrip("\n"), quote=False)
    if lang:
        return f'<pre><code class="language-{html.escape(lang)}">{body}</code></pre>'
    return f"<pre>{body}</pre>"


def to_html(text: str) -> str:
    return _map_outside_code(text, _html_prose, _html_code)


# ------------------------------------------------------------------ #
# Plain text                                                         #
# ------------------------------------------------------------------ #
def _plain_prose(text: str) -> str:
    text = _HEADING_RE.sub(r"\1", text)
    text = _BULLET_RE.sub(r"\1• ", text)
    text = _BOLD_RE.sub(lambda m: m.group(1) or m.group(2), text)
    text = _LINK_RE.sub(r"\1 (\2)", text)
    return _INLINE_CODE_RE.sub(r"\1", text)


def to_plain(text: str) -> str:
    return _map_outside_code(text, _plain_prose, lambda lang, code: code.rstrip("\n") + "\n")


MARKDOWN = RenderStrategy(name="markdown", parse_mode="Markdown", render=to_markdown)
HTML = RenderStrategy(name="html", parse_mode="HTML", render=to_html)
PLAIN = RenderStrategy(name="plain", parse_mode=None, render=to_plain)


def strategies_for(markup_enabled: bool = True) -> List[RenderStrategy]:
    """Ordered fallback chain: rich → alternate → plain."""
    if not markup_enabled:
        return [PLAIN]
    return [MARKDOWN, HTML, PLAIN]
