# assistant_bot/delivery/transport.py
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Optional, Protocol

from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramNetworkError,
    TelegramRetryAfter,
    TelegramServerError,
)
from aiogram.types import LinkPreviewOptions
from pydantic import BaseModel, ConfigDict

from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[TRANSPORT]", "magenta")

_MARKUP_ERROR_HINTS = (
    "can't parse entities",
    "can't find end of",
    "unsupported start tag",
    "unexpected end tag",
    "can't parse",
)


class SendStatus(str, Enum):
    OK = "ok"
    MARKUP_REJECTED = "markup_rejected"
    TRANSIENT = "transient"
    FATAL = "fatal"


class SendOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: SendStatus
    error: str = ""
    retry_after: Optional[float] = None
    message: Any = None

    @property
    def ok(self) -> bool:
        return self.status is SendStatus.OK

    @classmethod
    def success(cls, message: Any = None) -> "SendOutcome":
        return cls(status=SendStatus.OK, message=message)


class Transport(Protocol):
    """Append-only message transport with a hard per-message size limit."""

    async def send_message(
            self,
            target: Any,
            text: str,
            *,
            parse_mode: Optional[str] = None,
            silent: bool = False,
    ) -> SendOutcome:
        ...


def classify_error(error: BaseException) -> SendOutcome:
    """Turn an aiogram / network exception into a structured outcome."""
    message = str(error)
    if isinstance(error, TelegramRetryAfter):
        return SendOutcome(status=SendStatus.TRANSIENT, error=message, retry_after=float(error.retry_after))
    if isinstance(error, TelegramBadRequest):
        lowered = message.lower()
        if any(hint in lowered for hint in _MARKUP_ERROR_HINTS):
            return SendOutcome(status=SendStatus.MARKUP_REJECTED, error=message)
        return SendOutcome(status=SendStatus.FATAL, error=message)
    if isinstance(error, (TelegramNetworkError, TelegramServerError, asyncio.TimeoutError, ConnectionError)):
        return SendOutcome(status=SendStatus.TRANSIENT, error=message)
    if isinstance(error, TelegramAPIError):
        return SendOutcome(status=SendStatus.FATAL, error=message)
    return SendOutcome(status=SendStatus.FATAL, error=f"{type(error).__name__}: {message}")


class AiogramTransport:
    """Transport over ``aiogram.Bot.send_message``."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_message(
            self,
            target: Any,
            text: str,
            *,
            parse_mode: Optional[str] = None,
            silent: bool = False,
    ) -> SendOutcome:
        try:
            sent = await self.bot.send_message(
                chat_id=target,
                text=text,
                parse_mode=parse_mode,
                disable_notification=silent,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except Exception as e:
            outcome = classify_error(e)
            logger.debug(f"send_message to {target} failed ({outcome.status.value}): {e}")
            return outcome
        return SendOutcome.success(sent)
