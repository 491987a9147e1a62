# assistant_bot/delivery/splitter.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from assistant_bot.delivery.models import Chunk
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[SPLITTER]", "blue")

# ------------------------------------------------------------------ #
# 1. Константы                                                       #
# ------------------------------------------------------------------ #
TELEGRAM_LIMIT = 4096
SAFE_CHUNK_SIZE = 3800
SEARCH_WINDOW = 400
MAX_CHUNKS = 15
# Remainder may exceed the safe chunk size by this much when absorbed into the last chunk
ABSORB_TOLERANCE = 1.1

# Break points in priority order: paragraph > line > sentence > clause > word
BREAK_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("paragraph", re.compile(r"\n\n")),
    ("line", re.compile(r"\n")),
    ("sentence", re.compile(r"[.!?…][\"')\]]? ")),
    ("clause", re.compile(r"[;,] ")),
    ("word", re.compile(r" ")),
)

FENCE = "```"
FENCE_FOOTER_RESERVE = len("\n" + FENCE)
TRUNCATION_NOTICE = "\n\n…[Response truncated - {remaining} characters remaining]"


# ------------------------------------------------------------------ #
# 2. Длина по меркам Telegram                                        #
# ------------------------------------------------------------------ #
def telegram_len(text: str) -> int:
    """Length in UTF-16 code units, the unit of Telegram's message limit."""
    return len(text.encode("utf-16-le")) // 2


def fit_offset(text: str, units: int) -> int:
    """Longest prefix of ``text`` (in characters) whose Telegram length is at most ``units``."""
    if units <= 0:
        return 0
    total = 0
    for i, char in enumerate(text):
        total += 2 if ord(char) > 0xFFFF else 1
        if total > units:
            return i
    return len(text)


# ------------------------------------------------------------------ #
# 3. Код-блоки                                                       #
# ------------------------------------------------------------------ #
class CodeSpan(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    kind: str  # "fence" | "inline"
    closed: bool
    lang: str = ""


def _is_escaped(text: str, pos: int) -> bool:
    return pos > 0 and text[pos - 1] == "\\"


def find_code_spans(text: str, in_fence: bool = False, fence_lang: str = "") -> List[CodeSpan]:
    """Locate fenced (```) and inline (`) code spans.

    ``in_fence`` starts the scan inside an already opened fence, which is the
    case for a chunk that continues a force-split code block. Inline spans do
    not cross line breaks.
    """
    spans: List[CodeSpan] = []
    fence_start: Optional[int] = 0 if in_fence else None
    lang = fence_lang
    inline_start: Optional[int] = None
    i = 0
    n = len(text)
    while i < n:
        if text.startswith(FENCE, i) and not _is_escaped(text, i):
            if fence_start is not None:
                spans.append(CodeSpan(start=fence_start, end=i + 3, kind="fence", closed=True, lang=lang))
                fence_start = None
                i += 3
                continue
            if inline_start is None:
                fence_start = i
                line_end = text.find("\n", i + 3)
                info = text[i + 3:line_end if line_end != -1 else n].strip()
                lang = info.split()[0][:20] if info else ""
                i += 3
                continue
        char = text[i]
        if fence_start is None:
            if char == "`" and not _is_escaped(text, i):
                if inline_start is None:
                    inline_start = i
                else:
                    spans.append(CodeSpan(start=inline_start, end=i + 1, kind="inline", closed=True))
                    inline_start = None
            elif char == "\n" and inline_start is not None:
                # stray backtick: an unterminated inline span ends at the line break
                spans.append(CodeSpan(start=inline_start, end=i, kind="inline", closed=False))
                inline_start = None
        i += 1

    if fence_start is not None:
        spans.append(CodeSpan(start=fence_start, end=n, kind="fence", closed=False, lang=lang))
    elif inline_start is not None:
        spans.append(CodeSpan(start=inline_start, end=n, kind="inline", closed=False))
    return spans


def span_at(spans: List[CodeSpan], offset: int) -> Optional[CodeSpan]:
    """Return the span that strictly contains ``offset`` (a cut between two chars)."""
    for span in spans:
        if span.start < offset < span.end:
            return span
    return None


def is_inside_code(text: str, offset: int) -> bool:
    return span_at(find_code_spans(text), offset) is not None


# ------------------------------------------------------------------ #
# 4. Поиск точки разрыва                                             #
# ------------------------------------------------------------------ #
def find_breakpoint(
        text: str,
        budget: int,
        search_window: int = SEARCH_WINDOW,
        spans: Optional[List[CodeSpan]] = None,
) -> Tuple[int, bool]:
    """Return ``(offset, forced)``: the rightmost acceptable cut within the window.

    ``budget`` and the returned offset are character offsets into ``text``.
    The cut falls *after* the separator, so ``text[:offset]`` keeps the
    punctuation. A candidate inside a code span is rejected and the next
    pattern is tried.
    """
    if len(text) <= budget:
        return len(text), False
    if spans is None:
        spans = find_code_spans(text)

    low = max(0, budget - search_window)
    for name, pattern in BREAK_PATTERNS:
        for match in reversed(list(pattern.finditer(text, low, budget))):
            offset = match.end()
            if not text[:offset].strip():
                continue
            if span_at(spans, offset) is None:
                logger.debug(f"Break at {offset} ({name})")
                return offset, False

    # the window sits inside a code block that fits a chunk on its own: cut before it
    span = span_at(spans, budget)
    if span is not None and span.start > 0 and text[:span.start].strip() and span.end - span.start <= budget:
        return span.start, False

    return budget, True


def _forced_cut(text: str, budget: int, search_window: int, spans: List[CodeSpan]) -> Tuple[int, Optional[CodeSpan]]:
    """Pick a forced cut; inside a fence leave room for the closing fence and prefer a line end."""
    offset = budget
    span = span_at(spans, offset)
    if span is not None and span.kind == "fence":
        offset = max(1, budget - FENCE_FOOTER_RESERVE)
        low = max(span.start + 1, offset - search_window)
        newline = text.rfind("\n", low, offset)
        if newline != -1:
            offset = newline + 1
    # never cut through a run of backticks
    backoff = 0
    while offset > 1 and backoff < 3 and text[offset - 1] == "`" and text[offset:offset + 1] == "`":
        offset -= 1
        backoff += 1
    return offset, span_at(spans, offset)


# ------------------------------------------------------------------ #
# 5. Заголовки                                                       #
# ------------------------------------------------------------------ #
def build_progress_bar(current: int, total: int, width: int = 10) -> str:
    percentage = min(100, round(current / max(total, 1) * 100))
    filled = round(percentage / 100 * width)
    return "█" * filled + "░" * (width - filled)


def part_header(index: int, total: int, show_progress: bool = False) -> str:
    header = f"📄 Part {index}/{total}"
    if show_progress:
        header += f" {build_progress_bar(index, total)}"
    return header + "\n\n"


# ------------------------------------------------------------------ #
# 6. Разбиение                                                       #
# ------------------------------------------------------------------ #
class _Piece(BaseModel):
    body: str
    reopen: str = ""
    footer: str = ""
    forced: bool = False
    splits_code: bool = False


def split(
        text: str,
        limit: int = TELEGRAM_LIMIT,
        *,
        target: Optional[int] = None,
        search_window: int = SEARCH_WINDOW,
        max_chunks: int = MAX_CHUNKS,
        title_header: str = "",
        show_progress: bool = False,
) -> List[Chunk]:
    """Split ``text`` into ordered chunks whose Telegram length never exceeds ``limit``.

    ``limit`` and ``target`` are measured with :func:`telegram_len`. The first
    chunk carries ``title_header``; every other chunk carries a ``Part i/N``
    header. Header room is reserved before the break-point search, using the
    widest possible ``Part`` header.
    """
    if not text:
        return []
    title_len = telegram_len(title_header)
    if title_len >= limit:
        raise ValueError("title header does not fit into the message limit")

    if title_len + telegram_len(text) <= limit:
        return [Chunk(index=1, total_count=1, header=title_header, body=text, is_first=True, is_last=True)]

    target = min(target or limit, limit)
    max_chunks = max(1, max_chunks)
    part_reserve = telegram_len(part_header(max_chunks, max_chunks, show_progress))

    pieces: List[_Piece] = []
    remaining = text
    reopen = ""
    fence_lang = ""

    while remaining:
        number = len(pieces) + 1
        header_len = (title_len if number == 1 else part_reserve) + telegram_len(reopen)
        budget = min(target, limit - header_len)
        if budget <= FENCE_FOOTER_RESERVE:
            raise ValueError(f"limit {limit} leaves no room for chunk content")

        if telegram_len(remaining) <= budget:
            pieces.append(_Piece(body=remaining, reopen=reopen))
            break

        if number == max_chunks:
            pieces.append(_last_piece(remaining, reopen, fence_lang, budget, limit - header_len, target, search_window))
            break

        spans = find_code_spans(remaining, in_fence=bool(reopen), fence_lang=fence_lang)
        cut_limit = fit_offset(remaining, budget)
        offset, forced = find_breakpoint(remaining, cut_limit, search_window, spans)
        open_span = None
        if forced:
            offset, open_span = _forced_cut(remaining, cut_limit, search_window, spans)
            logger.warning(f"Forced break in chunk {number} at {offset}")

        if open_span is not None and open_span.kind == "fence":
            body = remaining[:offset]
            pieces.append(_Piece(
                body=body,
                reopen=reopen,
                footer=FENCE if body.endswith("\n") else "\n" + FENCE,
                forced=True,
                splits_code=True,
            ))
            fence_lang = open_span.lang
            reopen = f"{FENCE}{fence_lang}\n"
            remaining = remaining[offset:]
        else:
            pieces.append(_Piece(
                body=remaining[:offset].rstrip(),
                reopen=reopen,
                forced=forced,
                splits_code=open_span is not None,
            ))
            reopen = ""
            fence_lang = ""
            remaining = remaining[offset:].lstrip()

    total = len(pieces)
    chunks = []
    for i, piece in enumerate(pieces, start=1):
        header = title_header if i == 1 else part_header(i, total, show_progress)
        chunks.append(Chunk(
            index=i,
            total_count=total,
            header=header + piece.reopen,
            body=piece.body,
            footer=piece.footer,
            is_first=i == 1,
            is_last=i == total,
            forced=piece.forced,
            splits_code=piece.splits_code,
        ))
    logger.debug(f"Split {len(text)} chars into {total} chunks: {[telegram_len(c.text) for c in chunks]}")
    return chunks


def _last_piece(
        remaining: str,
        reopen: str,
        fence_lang: str,
        budget: int,
        room: int,
        target: int,
        search_window: int,
) -> _Piece:
    """Chunk-cap policy: absorb the tail when it nearly fits, otherwise truncate with a notice."""
    remaining_len = telegram_len(remaining)
    if remaining_len <= min(room, int(target * ABSORB_TOLERANCE)):
        logger.info(f"Last chunk absorbs {remaining_len} remaining units")
        return _Piece(body=remaining, reopen=reopen)

    notice_reserve = telegram_len(TRUNCATION_NOTICE.format(remaining=len(remaining)))
    cut_limit = fit_offset(remaining, budget - notice_reserve - FENCE_FOOTER_RESERVE)
    spans = find_code_spans(remaining, in_fence=bool(reopen), fence_lang=fence_lang)
    offset, forced = find_breakpoint(remaining, cut_limit, search_window, spans)
    if forced:
        offset, _ = _forced_cut(remaining, cut_limit, search_window, spans)

    open_span = span_at(spans, offset)
    body = remaining[:offset]
    footer = ""
    closes_fence = open_span is not None and open_span.kind == "fence"
    if closes_fence:
        footer = FENCE if body.endswith("\n") else "\n" + FENCE
    else:
        body = body.rstrip()
    dropped = len(remaining) - offset
    footer += TRUNCATION_NOTICE.format(remaining=dropped)
    logger.warning(f"Text truncated: {dropped} characters exceeded the chunk cap")
    return _Piece(body=body, reopen=reopen, footer=footer, forced=forced, splits_code=closes_fence)
