import re

import pytest

from assistant_bot.delivery.splitter import (
    TELEGRAM_LIMIT,
    build_progress_bar,
    find_breakpoint,
    find_code_spans,
    fit_offset,
    is_inside_code,
    part_header,
    split,
    telegram_len,
)


def _squash(text: str) -> str:
    return re.sub(r"\s+", "", text)


def _prose(size: int) -> str:
    words = ["budget", "cash", "flow,", "interest", "rate.", "loan", "portfolio", "yield;", "tax!", "savings"]
    out = []
    i = 0
    length = 0
    while length < size:
        word = words[i % len(words)]
        sep = "\n\n" if i % 97 == 96 else "\n" if i % 31 == 30 else " "
        out.append(word + sep)
        length += len(word) + len(sep)
        i += 1
    return "".join(out)


# ---- 1. Простые случаи ----
def test_empty_text_gives_no_chunks():
    assert split("") == []


def test_short_text_is_a_single_chunk():
    chunks = split("Hello, world")
    assert len(chunks) == 1
    assert chunks[0].text == "Hello, world"
    assert chunks[0].is_first and chunks[0].is_last
    assert chunks[0].total_count == 1


def test_text_exactly_at_limit_is_not_split():
    text = "a" * TELEGRAM_LIMIT
    assert len(split(text)) == 1


# ---- 2. Лимит и реконструкция ----
def test_ten_thousand_letters_become_three_chunks():
    text = "A" * 10000
    chunks = split(text, 4096, target=3800)

    assert len(chunks) == 3
    assert all(len(c.text) <= 4096 for c in chunks)
    assert chunks[0].forced and chunks[1].forced
    assert "".join(c.body for c in chunks) == text
    assert chunks[1].header.startswith("📄 Part 2/3")
    assert [c.index for c in chunks] == [1, 2, 3]
    assert all(c.total_count == 3 for c in chunks)


@pytest.mark.parametrize("size", [5000, 12000, 40000])
@pytest.mark.parametrize("show_progress", [False, True])
def test_chunks_never_exceed_limit_and_rebuild_text(size, show_progress):
    text = _prose(size)
    chunks = split(text, 4096, target=3800, show_progress=show_progress, title_header="🔧 **Report** · GPT-5 Mini\n\n")

    assert all(len(c.text) <= 4096 for c in chunks)
    assert _squash("".join(c.body for c in chunks)) == _squash(text)
    assert chunks[0].header.startswith("🔧 **Report**")
    assert chunks[-1].is_last and not any(c.is_last for c in chunks[:-1])


def test_small_limits_hold_too():
    text = _prose(3000)
    chunks = split(text, 300, max_chunks=50)
    assert len(chunks) > 1
    assert all(len(c.text) <= 300 for c in chunks)
    assert _squash("".join(c.body for c in chunks)) == _squash(text)


def test_length_counted_in_utf16_units():
    assert telegram_len("abc") == 3
    assert telegram_len("📊 ") == 3
    assert telegram_len("₽") == 1
    assert fit_offset("a📊b", 2) == 1
    assert fit_offset("a📊b", 3) == 2
    assert fit_offset("a📊b", 10) == 3


def test_emoji_dense_text_respects_utf16_limit():
    text = "📊 " * 5000
    chunks = split(text, 4096, target=3800)

    assert len(chunks) > 1
    assert all(telegram_len(c.text) <= 4096 for c in chunks)
    assert _squash("".join(c.body for c in chunks)) == _squash(text)


def test_emoji_without_spaces_is_force_cut_by_units():
    text = "💰" * 3000
    chunks = split(text, 4096, target=3800)

    assert len(chunks) == 2
    assert all(telegram_len(c.text) <= 4096 for c in chunks)
    assert "".join(c.body for c in chunks) == text


# ---- 3. Приоритет точек разрыва ----
def test_paragraph_break_preferred():
    first, second = "x" * 3500, "y" * 3000
    chunks = split(f"{first}\n\n{second}", 4096, target=3800)
    assert [c.body for c in chunks] == [first, second]
    assert not chunks[0].forced


def test_sentence_break_preferred_over_word():
    text = "w" * 3500 + ". " + "z" * 100 + " " + "q" * 1000
    offset, forced = find_breakpoint(text, 3800)
    assert offset == 3502
    assert not forced


def test_breakpoint_skips_inline_code():
    text = "a" * 3500 + " `x y z`" + "b" * 1000
    offset, forced = find_breakpoint(text, 3800)
    assert offset == 3501
    assert not forced
    assert not is_inside_code(text, offset)


# ---- 4. Код-блоки ----
def test_code_spans_detected():
    text = "run `pip install` then\n```bash\nmake all\n```\nand \\`not code\\`"
    spans = find_code_spans(text)
    assert [(s.kind, s.closed) for s in spans] == [("inline", True), ("fence", True)]
    assert spans[1].lang == "bash"


def test_unterminated_inline_code_ends_at_newline():
    spans = find_code_spans("a `b c\nd e")
    assert len(spans) == 1
    assert not spans[0].closed
    assert spans[0].end == 6


def test_code_block_moves_whole_to_next_chunk():
    prose = "lorem ipsum. " * 231
    code = "```python\n" + "x = 1  # line\n" * 100 + "```"
    tail = "tail text. " * 180
    text = f"{prose}\n{code}\n{tail}"

    chunks = split(text, 4096, target=3800)

    assert len(chunks) == 2
    assert chunks[0].body == prose.rstrip()
    assert chunks[1].body.startswith("```python")
    assert not any(c.splits_code or c.forced for c in chunks)
    assert all(c.text.count("```") % 2 == 0 for c in chunks)


def test_oversized_fence_is_closed_and_reopened():
    text = "```\n" + "x" * 5000 + "\n```"
    chunks = split(text, 4096, target=3800)

    assert len(chunks) == 2
    assert chunks[0].forced and chunks[0].splits_code
    assert chunks[0].text.endswith("\n```")
    assert chunks[1].header.endswith("```\n")
    assert all(len(c.text) <= 4096 for c in chunks)
    assert all(c.text.count("```") == 2 for c in chunks)
    assert "".join(c.body for c in chunks) == text


def test_reopened_fence_keeps_language():
    code = "\n".join(f"value_{i} = compute({i})" for i in range(400))
    text = f"```python\n{code}\n```"
    chunks = split(text, 4096, target=3800)

    assert len(chunks) >= 2
    assert all(c.text.count("```") % 2 == 0 for c in chunks)
    for chunk in chunks[1:]:
        assert "```python\n" in chunk.header
    assert all(len(c.text) <= 4096 for c in chunks)


# ---- 5. Лимит числа чанков ----
def test_tail_absorbed_into_last_chunk():
    text = "a" * 1000 + "b" * 1050
    chunks = split(text, 1200, target=1000, max_chunks=2)
    assert len(chunks) == 2
    assert chunks[0].body == "a" * 1000
    assert chunks[1].body == "b" * 1050
    assert "truncated" not in chunks[1].text


def test_tail_truncated_with_notice():
    text = "word " * 5000
    chunks = split(text, 4096, target=1000, max_chunks=3)

    assert len(chunks) == 3
    assert "Response truncated" in chunks[-1].footer
    assert all(len(c.text) <= 4096 for c in chunks)


def test_truncation_closes_open_fence():
    text = "```\n" + "x" * 9000 + "\n```"
    chunks = split(text, 4096, target=3800, max_chunks=2)

    assert len(chunks) == 2
    assert chunks[-1].splits_code
    assert "\n```\n\n…[Response truncated" in chunks[-1].footer
    assert all(c.text.count("```") == 2 for c in chunks)
    assert all(len(c.text) <= 4096 for c in chunks)


# ---- 6. Заголовки ----
def test_title_header_counts_against_limit():
    title = "🚀 **Report** · GPT-5\n\n"
    chunks = split("x" * 4090, 4096, title_header=title)
    assert len(chunks) == 2
    assert chunks[0].header == title
    assert all(len(c.text) <= 4096 for c in chunks)


def test_title_that_does_not_fit_is_rejected():
    with pytest.raises(ValueError):
        split("text", 10, title_header="x" * 10)


def test_part_header_and_progress_bar():
    assert part_header(2, 5) == "📄 Part 2/5\n\n"
    assert build_progress_bar(1, 2) == "█████░░░░░"
    assert build_progress_bar(3, 3) == "█" * 10
    assert part_header(1, 4, show_progress=True).startswith("📄 Part 1/4 ██")
