import asyncio

import pytest
from aiogram.exceptions import (
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNetworkError,
    TelegramRetryAfter,
    TelegramServerError,
)
from aiogram.methods import SendMessage

from assistant_bot.delivery.rendering import strategies_for, to_html, to_markdown, to_plain
from assistant_bot.delivery.transport import AiogramTransport, SendStatus, classify_error

METHOD = SendMessage(chat_id=1, text="x")


@pytest.mark.parametrize("error, status", [
    (TelegramBadRequest(METHOD, "Bad Request: can't parse entities: Can't find end of the entity"), SendStatus.MARKUP_REJECTED),
    (TelegramBadRequest(METHOD, "Bad Request: unsupported start tag \"foo\""), SendStatus.MARKUP_REJECTED),
    (TelegramBadRequest(METHOD, "Bad Request: chat not found"), SendStatus.FATAL),
    (TelegramForbiddenError(METHOD, "Forbidden: bot was blocked by the user"), SendStatus.FATAL),
    (TelegramNetworkError(METHOD, "Connection reset"), SendStatus.TRANSIENT),
    (TelegramServerError(METHOD, "Bad Gateway"), SendStatus.TRANSIENT),
    (asyncio.TimeoutError(), SendStatus.TRANSIENT),
    (ValueError("unexpected"), SendStatus.FATAL),
])
def test_classify_error(error, status):
    assert classify_error(error).status is status


def test_retry_after_carries_the_delay():
    outcome = classify_error(TelegramRetryAfter(METHOD, "Flood control exceeded", retry_after=12))
    assert outcome.status is SendStatus.TRANSIENT
    assert outcome.retry_after == 12.0


class FakeBot:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    async def send_message(self, **kwargs):
        self.sent.append(kwargs)
        if self.error:
            raise self.error
        return "message"


@pytest.mark.asyncio
async def test_aiogram_transport_passes_options():
    bot = FakeBot()
    outcome = await AiogramTransport(bot).send_message(5, "hi", parse_mode="HTML", silent=True)

    assert outcome.ok
    assert outcome.message == "message"
    sent = bot.sent[0]
    assert sent["chat_id"] == 5
    assert sent["parse_mode"] == "HTML"
    assert sent["disable_notification"] is True
    assert sent["link_preview_options"].is_disabled


@pytest.mark.asyncio
async def test_aiogram_transport_returns_outcome_instead_of_raising():
    bot = FakeBot(TelegramBadRequest(METHOD, "Bad Request: can't parse entities"))
    outcome = await AiogramTransport(bot).send_message(5, "*broken", parse_mode="Markdown")
    assert outcome.status is SendStatus.MARKUP_REJECTED
    assert not outcome.ok


# ---- Рендеринг ----
def test_strategy_chain_order():
    assert [s.parse_mode for s in strategies_for()] == ["Markdown", "HTML", None]
    assert [s.name for s in strategies_for(False)] == ["plain"]


def test_markdown_rendering():
    text = "## Budget\n- rent\n- **food**\n```py\nx = 1\n```"
    assert to_markdown(text) == "*Budget*\n• rent\n• *food*\n```py\nx = 1\n```"


def test_html_rendering_escapes_and_keeps_code():
    text = "**Total** < 5 & `a<b` see [docs](https://example.com)\n```python\nif a < b:\n```"
    rendered = to_html(text)
    assert rendered.startswith("<b>Total</b> &lt; 5 &amp; <code>a&lt;b</code>")
    assert '<a href="https://example.com">docs</a>' in rendered
    assert '<pre><code class="language-python">if a &lt; b:</code></pre>' in rendered


def test_plain_rendering_strips_markup():
    text = "# Title\n**bold** and `code` [link](https://example.com)\n```\nraw\n```"
    assert to_plain(text) == "Title\nbold and code link (https://example.com)\nraw\n"
