# assistant_bot/delivery/driver.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from pydantic import BaseModel

from assistant_bot.delivery.dedup import TTLCache
from assistant_bot.delivery.models import (
    Chunk,
    DeliveryResult,
    DeliveryStatus,
    FailureReason,
    Persona,
)
from assistant_bot.delivery.personas import profile_for
from assistant_bot.delivery.rendering import RenderStrategy, strategies_for
from assistant_bot.delivery.splitter import fit_offset, telegram_len
from assistant_bot.delivery.transport import SendStatus, Transport
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[DRIVER]", "yellow")

Sleep = Callable[[float], Awaitable[Any]]

DELIVERY_ERROR_NOTICE = "⚠️ Sorry, the response could not be delivered. Please try again in a moment."


class ChunkState(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    RETRY = "retry"
    FAILED = "failed"


class DriverOptions(BaseModel):
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    inter_chunk_delay_ms: Optional[int] = None  # None = persona pacing
    silent_after_first: bool = True
    markup_fallback: bool = True
    hard_limit: int = 4096


class ChunkReport(BaseModel):
    index: int
    state: ChunkState = ChunkState.PENDING
    attempts: int = 0
    retries: int = 0
    fallbacks: int = 0
    strategy: str = ""
    error: str = ""


class DeliveryDriver:
    """Sends an ordered chunk sequence through a transport.

    Each chunk runs ``PENDING -> SENDING -> {SENT | RETRY | FAILED}``. Markup
    rejections step down the rendering chain immediately; transient errors are
    retried with exponential backoff. A failed middle chunk does not stop the
    tail; a failed first chunk ends the delivery with an error notice.
    """

    def __init__(
            self,
            transport: Transport,
            *,
            error_cache: Optional[TTLCache] = None,
            sleep: Sleep = asyncio.sleep,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.error_cache = error_cache if error_cache is not None else TTLCache(60.0)
        self._sleep = sleep
        self._clock = clock

    # -------------------------------------------------------------- #
    # Один чанк                                                       #
    # -------------------------------------------------------------- #
    async def send_chunk(
            self,
            target: Any,
            chunk: Chunk,
            strategies: Sequence[RenderStrategy],
            options: DriverOptions,
            silent: bool = False,
    ) -> ChunkReport:
        report = ChunkReport(index=chunk.index)
        level = 0

        while True:
            strategy = strategies[level]
            text = strategy.render(chunk.text)
            if telegram_len(text) > options.hard_limit:
                # escaping can grow the text past the limit
                if level < len(strategies) - 1:
                    level += 1
                    report.fallbacks += 1
                    logger.warning(f"Chunk {chunk.index}: {strategy.name} rendering exceeds {options.hard_limit} units")
                    continue
                text = text[:fit_offset(text, options.hard_limit)]

            report.state = ChunkState.SENDING
            report.attempts += 1
            report.strategy = strategy.name
            outcome = await self.transport.send_message(
                target,
                text,
                parse_mode=strategy.parse_mode,
                silent=silent,
            )
            if outcome.ok:
                report.state = ChunkState.SENT
                return report

            report.error = outcome.error
            if outcome.status is SendStatus.MARKUP_REJECTED and level < len(strategies) - 1:
                level += 1
                report.fallbacks += 1
                logger.warning(
                    f"Chunk {chunk.index}: {strategy.name} markup rejected, "
                    f"falling back to {strategies[level].name}"
                )
                continue

            if outcome.status is SendStatus.TRANSIENT and report.retries < options.max_retries:
                report.retries += 1
                report.state = ChunkState.RETRY
                delay = outcome.retry_after
                if delay is None:
                    delay = options.retry_base_delay_ms * 2 ** (report.retries - 1) / 1000
                logger.warning(
                    f"Chunk {chunk.index}: attempt {report.attempts} failed ({outcome.error}), "
                    f"retry {report.retries}/{options.max_retries} in {delay:.2f}s"
                )
                await self._sleep(delay)
                continue

            report.state = ChunkState.FAILED
            logger.error(f"Chunk {chunk.index} failed after {report.attempts} attempts: {outcome.error}")
            return report

    # -------------------------------------------------------------- #
    # Последовательность чанков                                      #
    # -------------------------------------------------------------- #
    async def deliver(
            self,
            target: Any,
            chunks: List[Chunk],
            persona: Persona,
            options: Optional[DriverOptions] = None,
    ) -> DeliveryResult:
        options = options or DriverOptions()
        started = self._clock()
        strategies = strategies_for(options.markup_fallback)
        delay_ms = options.inter_chunk_delay_ms
        if delay_ms is None:
            delay_ms = profile_for(persona).inter_chunk_delay_ms

        reports: List[ChunkReport] = []
        delivered = 0
        for chunk in chunks:
            silent = options.silent_after_first and not chunk.is_first
            report = await self.send_chunk(target, chunk, strategies, options, silent=silent)
            reports.append(report)

            if report.state is ChunkState.SENT:
                delivered += 1
                logger.debug(f"Sent chunk {chunk.index}/{chunk.total_count} via {report.strategy}")
                if not chunk.is_last and delay_ms > 0:
                    await self._sleep(delay_ms / 1000)
            elif chunk.is_first:
                await self.notify_failure(target)
                return self._result(reports, len(chunks), delivered, persona, started, first_failed=True)

        return self._result(reports, len(chunks), delivered, persona, started)

    async def notify_failure(self, target: Any, text: str = DELIVERY_ERROR_NOTICE) -> bool:
        """Best-effort plain error notice, at most one per target per error window. Never raises."""
        key = (str(target), "delivery_error")
        if self.error_cache.contains(key):
            logger.debug(f"Error notice for {target} suppressed")
            return False
        self.error_cache.add(key)
        try:
            outcome = await self.transport.send_message(target, text, parse_mode=None, silent=False)
        except Exception as e:
            logger.error(f"Error notice to {target} raised: {e}")
            return False
        if not outcome.ok:
            logger.error(f"Error notice to {target} failed: {outcome.error}")
        return outcome.ok

    def _result(
            self,
            reports: List[ChunkReport],
            planned: int,
            delivered: int,
            persona: Persona,
            started: float,
            first_failed: bool = False,
    ) -> DeliveryResult:
        if delivered == planned:
            status, reason = DeliveryStatus.DELIVERED, None
        elif first_failed:
            status, reason = DeliveryStatus.FAILED, FailureReason.FIRST_CHUNK_FAILED
        elif delivered:
            status, reason = DeliveryStatus.PARTIAL, FailureReason.CHUNK_FAILED
        else:
            status, reason = DeliveryStatus.FAILED, FailureReason.CHUNK_FAILED

        elapsed_ms = int((self._clock() - started) * 1000)
        logger.info(f"{'✅' if reason is None else '⚠️'} {delivered}/{planned} chunks in {elapsed_ms}ms")
        return DeliveryResult(
            success=reason is None,
            status=status,
            chunks_planned=planned,
            chunks_delivered=delivered,
            failure_reason=reason,
            elapsed_ms=elapsed_ms,
            retries_used=sum(r.retries for r in reports),
            fallbacks_used=sum(r.fallbacks for r in reports),
            persona=persona,
        )
