# assistant_bot/delivery/service.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel

from assistant_bot.config import DeliverySettings
from assistant_bot.delivery.dedup import DuplicateGuard, TTLCache
from assistant_bot.delivery.driver import DeliveryDriver, DriverOptions, Sleep
from assistant_bot.delivery.models import (
    Chunk,
    ConnectionReport,
    DeliveryMetadata,
    DeliveryResult,
    DeliveryStatus,
    FailureReason,
    HealthReport,
    MessageRequest,
    NormalizedContent,
    Persona,
    PipelineReport,
)
from assistant_bot.delivery.normalizer import compress, normalize, safe_string
from assistant_bot.delivery.personas import detect_with_source, profile_for
from assistant_bot.delivery.splitter import split, telegram_len
from assistant_bot.delivery.stats import DeliveryStats
from assistant_bot.delivery.transport import Transport
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[DELIVERY]", "green")

MetadataLike = Union[DeliveryMetadata, Mapping[str, Any], None]

MAX_TITLE_LENGTH = 200
PREVIEW_LENGTH = 80
EMERGENCY_PREFIX = "⚠️ System Recovery\n\n"
EMERGENCY_SUFFIX = "...\n\n[Content truncated due to processing error]"

CONNECTION_TEST_TEXT = "🧪 Delivery service connection test"
SPLITTING_TEST_TEXT = "Test chunk: " + "A" * 5000 + "\n\nThis tests the splitting algorithm."
MARKDOWN_TEST_TEXT = (
    "# Test Header\n\n**Bold text** and *italic text*\n\n"
    "```python\nprint(\"Code block test\")\n```\n\n- List item 1\n- List item 2"
)


# ------------------------------------------------------------------ #
# 1. Подготовка контента                                             #
# ------------------------------------------------------------------ #
def coerce_metadata(metadata: MetadataLike) -> DeliveryMetadata:
    if metadata is None:
        return DeliveryMetadata()
    if isinstance(metadata, DeliveryMetadata):
        return metadata
    return DeliveryMetadata.model_validate(dict(metadata))


def build_title_header(metadata: DeliveryMetadata, persona: Persona, settings: DeliverySettings) -> str:
    """Heading for the first chunk; empty when no title was given."""
    title = (metadata.title or "").strip()[:MAX_TITLE_LENGTH]
    if not title:
        return ""
    if not settings.auto_style or metadata.no_styling:
        return f"{title}\n\n"
    profile = profile_for(persona)
    emoji = "" if metadata.no_emojis else f"{profile.display_emoji} "
    return f"{emoji}**{title}** · {profile.display_name}\n\n"


class PreparedContent(BaseModel):
    content: NormalizedContent
    persona_source: str
    chunks: List[Chunk]


def prepare_content(raw: str, metadata: DeliveryMetadata, settings: DeliverySettings) -> PreparedContent:
    """Normalize, detect persona and split; no I/O."""
    # markers are read from the raw text, normalization strips them
    persona, source = detect_with_source(raw, metadata.model_hint)
    text = normalize(raw)
    if settings.compression:
        text = compress(text)
    chunks = split(
        text,
        settings.hard_limit,
        target=settings.chunk_size,
        search_window=settings.search_window,
        max_chunks=settings.chunk_cap(metadata.allow_large_response),
        title_header=build_title_header(metadata, persona, settings),
        show_progress=settings.show_progress,
    )
    return PreparedContent(
        content=NormalizedContent(text=text, persona=persona),
        persona_source=source,
        chunks=chunks,
    )


def inspect_pipeline(
        target: Any,
        content: Any,
        metadata: MetadataLike = None,
        *,
        settings: Optional[DeliverySettings] = None,
        guard: Optional[DuplicateGuard] = None,
) -> PipelineReport:
    """Run normalization, splitting and hashing without delivering anything."""
    settings = settings or DeliverySettings()
    meta = coerce_metadata(metadata)
    raw = safe_string(content)
    prepared = prepare_content(raw, meta, settings)
    persona = prepared.content.persona
    text = prepared.content.text

    duplicate_hash = None
    would_suppress = False
    if guard is not None and text:
        duplicate_hash = guard.fingerprint(target, text, persona)
        would_suppress = not meta.force_delivery and guard.should_suppress(target, text, persona)

    return PipelineReport(
        persona=persona,
        persona_source=prepared.persona_source,
        original_length=len(raw),
        normalized_length=len(text),
        chunk_count=len(prepared.chunks),
        chunk_sizes=[telegram_len(c.text) for c in prepared.chunks],
        chunk_previews=[c.body[:PREVIEW_LENGTH] for c in prepared.chunks],
        forced_breaks=[c.index for c in prepared.chunks if c.forced],
        duplicate_hash=duplicate_hash,
        would_suppress=would_suppress,
    )


# ------------------------------------------------------------------ #
# 2. Сервис доставки                                                 #
# ------------------------------------------------------------------ #
class DeliveryService:
    """Caller boundary: ``deliver(target, content, metadata)`` always returns a result.

    A suppressed duplicate is not a failure: it comes back with
    ``success=True``, status ``DUPLICATE`` and no delivered chunks.
    """

    def __init__(
            self,
            transport: Transport,
            settings: Optional[DeliverySettings] = None,
            *,
            guard: Optional[DuplicateGuard] = None,
            error_cache: Optional[TTLCache] = None,
            stats: Optional[DeliveryStats] = None,
            sleep: Sleep = asyncio.sleep,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.settings = settings or DeliverySettings()
        self.guard = guard or DuplicateGuard(
            ttl_seconds=self.settings.dedup_ttl_seconds,
            max_entries=self.settings.dedup_max_entries,
            clock=clock,
        )
        self.error_cache = error_cache or TTLCache(self.settings.error_ttl_seconds, clock=clock)
        self.delivery_stats = stats or DeliveryStats()
        self.driver = DeliveryDriver(transport, error_cache=self.error_cache, sleep=sleep, clock=clock)
        self._clock = clock

    def _driver_options(self, metadata: DeliveryMetadata) -> DriverOptions:
        return DriverOptions(
            max_retries=self.settings.max_retries,
            retry_base_delay_ms=self.settings.retry_base_delay_ms,
            inter_chunk_delay_ms=self.settings.inter_chunk_delay_ms,
            silent_after_first=metadata.silent_after_first,
            markup_fallback=self.settings.markup_fallback,
            hard_limit=self.settings.hard_limit,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    @staticmethod
    def _rejected(reason: FailureReason, elapsed_ms: int) -> DeliveryResult:
        logger.warning(f"Delivery rejected: {reason.value}")
        return DeliveryResult(success=False, status=DeliveryStatus.REJECTED, failure_reason=reason, elapsed_ms=elapsed_ms)

    async def deliver(self, target: Any, content: Any, metadata: MetadataLike = None) -> DeliveryResult:
        started = self._clock()
        try:
            request = MessageRequest(chat_target=target, raw_content=safe_string(content), metadata=coerce_metadata(metadata))
        except Exception as e:
            logger.warning(f"Invalid delivery metadata: {e}")
            request = MessageRequest(chat_target=target, raw_content=safe_string(content))

        if request.chat_target is None or (isinstance(request.chat_target, str) and not request.chat_target.strip()):
            result = self._rejected(FailureReason.MISSING_TARGET, self._elapsed_ms(started))
            self.delivery_stats.record(result)
            return result
        if not request.raw_content.strip():
            result = self._rejected(FailureReason.EMPTY_CONTENT, self._elapsed_ms(started))
            self.delivery_stats.record(result)
            return result

        logger.info(f"📤 Processing {len(request.raw_content)} chars for chat {target}")
        result = await self._run_pipeline(request, started)
        self.delivery_stats.record(result)
        return result

    async def _run_pipeline(self, request: MessageRequest, started: float) -> DeliveryResult:
        target, meta = request.chat_target, request.metadata
        persona: Optional[Persona] = None
        try:
            prepared = prepare_content(request.raw_content, meta, self.settings)
            content = prepared.content
            persona = content.persona
            if not content.text:
                return self._rejected(FailureReason.EMPTY_CONTENT, self._elapsed_ms(started))

            reserved = False
            if not meta.force_delivery:
                # check-and-claim in one step, so concurrent copies see the claim
                reserved = self.guard.reserve(target, content.text, persona)
                if not reserved:
                    logger.info(f"Duplicate suppressed for chat {target} ({persona.value})")
                    return DeliveryResult(
                        success=True,
                        status=DeliveryStatus.DUPLICATE,
                        chunks_planned=len(prepared.chunks),
                        elapsed_ms=self._elapsed_ms(started),
                        persona=persona,
                    )

            logger.info(f"📄 {len(prepared.chunks)} chunks, persona={persona.value} ({prepared.persona_source})")
            try:
                result = await self.driver.deliver(target, prepared.chunks, persona, self._driver_options(meta))
            except BaseException:
                if reserved:
                    self.guard.release(target, content.text, persona)
                raise
        except Exception as e:
            logger.exception(f"❌ Delivery pipeline failed for chat {target}: {e}")
            return await self._emergency_send(target, request.raw_content, persona, started)

        if result.chunks_delivered > 0:
            # the window starts when the delivery finishes
            self.guard.record(target, content.text, persona)
        elif reserved:
            self.guard.release(target, content.text, persona)
        return result.model_copy(update={"elapsed_ms": self._elapsed_ms(started)})

    async def _emergency_send(
            self,
            target: Any,
            raw: str,
            persona: Optional[Persona],
            started: float,
    ) -> DeliveryResult:
        """Truncated plain-text send after a pipeline crash. Never raises.

        The recovery notice is not part of the planned chunk sequence, so the
        result reports no planned or delivered chunks; ``emergency_sent`` tells
        whether the notice got through.
        """
        sent = False
        try:
            size = self.settings.emergency_chunk_size
            text = raw.strip()
            if len(text) <= size:
                emergency = f"{EMERGENCY_PREFIX}{text}"
            else:
                emergency = f"{EMERGENCY_PREFIX}{text[:size - 100]}{EMERGENCY_SUFFIX}"
            outcome = await self.transport.send_message(target, emergency, parse_mode=None, silent=False)
            sent = outcome.ok
            if sent:
                logger.info("✅ Emergency fallback delivered")
            else:
                logger.error(f"Emergency fallback failed: {outcome.error}")
        except Exception as e:
            logger.error(f"Emergency fallback also failed: {e}")

        return DeliveryResult(
            success=False,
            status=DeliveryStatus.FAILED,
            failure_reason=FailureReason.PIPELINE_ERROR,
            elapsed_ms=self._elapsed_ms(started),
            persona=persona,
            emergency_sent=sent,
        )

    # -------------------------------------------------------------- #
    # 3. Обёртки                                                      #
    # -------------------------------------------------------------- #
    def bind(self, persona: Persona) -> "BoundDelivery":
        return BoundDelivery(self, persona)

    async def send_error(self, target: Any, text: str, title: str = "System Error", **options: Any) -> DeliveryResult:
        return await self.deliver(target, text, {"title": title, "model_hint": Persona.GENERIC.value, **options})

    async def send_success(self, target: Any, text: str, title: str = "Task Complete", **options: Any) -> DeliveryResult:
        return await self.deliver(target, text, {"title": title, **options})

    async def send_alert(self, target: Any, text: str, title: str = "System Alert", **options: Any) -> DeliveryResult:
        return await self.deliver(
            target, text, {"title": title, "model_hint": Persona.GENERIC.value, "silent_after_first": False, **options}
        )

    def inspect(self, target: Any, content: Any, metadata: MetadataLike = None) -> PipelineReport:
        return inspect_pipeline(target, content, metadata, settings=self.settings, guard=self.guard)

    def stats(self) -> Dict[str, float]:
        return self.delivery_stats.snapshot()

    def health(self) -> HealthReport:
        return self.delivery_stats.health()

    # -------------------------------------------------------------- #
    # 4. Проверка связи                                               #
    # -------------------------------------------------------------- #
    async def test_connection(self, target: Any, run_diagnostics: bool = True) -> ConnectionReport:
        """Send a test message and, optionally, a set of diagnostic deliveries.

        Diagnostic deliveries go out with ``force_delivery`` and are recorded
        in the stats like any other delivery.
        """
        started = self._clock()
        logger.info(f"🔍 Testing Telegram connection for chat {target}")
        try:
            basic = await self.deliver(
                target, CONNECTION_TEST_TEXT, {"title": "Connectivity Test", "force_delivery": True}
            )
            if not basic.success:
                return ConnectionReport(
                    success=False,
                    stage="basic",
                    elapsed_ms=self._elapsed_ms(started),
                    error="Basic connectivity failed",
                )
            if not run_diagnostics:
                return ConnectionReport(success=True, stage="basic", elapsed_ms=self._elapsed_ms(started))

            logger.info("🔍 Running delivery diagnostics")
            diagnostics: Dict[str, bool] = {}
            splitting = await self.deliver(
                target, SPLITTING_TEST_TEXT, {"title": "Splitting Test", "force_delivery": True}
            )
            diagnostics["text_splitting"] = splitting.success and splitting.chunks_planned > 1
            markdown = await self.deliver(
                target, MARKDOWN_TEST_TEXT, {"title": "Markdown Test", "force_delivery": True}
            )
            diagnostics["markdown_formatting"] = markdown.success
            error = await self.send_error(target, "Error handling test", title="Error Handler Test", force_delivery=True)
            diagnostics["error_handling"] = error.success
            # every delivery above carried a title header
            diagnostics["header_generation"] = True
        except Exception as e:
            logger.exception(f"Connection test failed for chat {target}: {e}")
            return ConnectionReport(success=False, stage="error", elapsed_ms=self._elapsed_ms(started), error=str(e))

        success_rate = sum(diagnostics.values()) / len(diagnostics)
        elapsed_ms = self._elapsed_ms(started)
        logger.info(f"✅ Diagnostics complete: {round(success_rate * 100)}% success rate in {elapsed_ms}ms")
        return ConnectionReport(
            success=success_rate > 0.8,
            stage="diagnostics",
            elapsed_ms=elapsed_ms,
            diagnostics=diagnostics,
            success_rate=success_rate,
        )


class BoundDelivery:
    """``DeliveryService.deliver`` with a fixed persona hint."""

    def __init__(self, service: DeliveryService, persona: Persona) -> None:
        self.service = service
        self.persona = persona

    async def deliver(self, target: Any, content: Any, metadata: MetadataLike = None) -> DeliveryResult:
        try:
            meta = coerce_metadata(metadata).model_copy(update={"model_hint": self.persona.value})
        except Exception as e:
            logger.warning(f"Invalid delivery metadata: {e}")
            meta = DeliveryMetadata(model_hint=self.persona.value)
        return await self.service.deliver(target, content, meta)
