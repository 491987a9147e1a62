# assistant_bot/routers/ai_router.py
# -*- coding: utf-8 -*-
import json

from aiogram import Router, Bot, F
from aiogram.enums import ChatAction
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from assistant_bot.delivery import ConnectionReport, DeliveryService, HealthReport
from assistant_bot.llm import LLMClient, LLMError
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[AI_ROUTER]", "cyan")


def format_health(report: HealthReport) -> str:
    icon = "🟢" if report.healthy else "🟡"
    lines = [f"{icon} Status: {report.status}"]
    lines += [f"• {issue.type}: {issue.message}" for issue in report.issues]
    lines += [f"• {key}: {round(value, 3)}" for key, value in report.performance.items()]
    return "\n".join(lines)


def format_connection(report: ConnectionReport) -> str:
    lines = [f"{'✅' if report.success else '❌'} Stage: {report.stage}, {report.elapsed_ms}ms"]
    lines += [f"• {name}: {'ok' if passed else 'failed'}" for name, passed in report.diagnostics.items()]
    if report.error:
        lines.append(f"• error: {report.error}")
    return "\n".join(lines)


def create_ai_router() -> Router:
    ai_router = Router(name="ai_router")

    @ai_router.message(Command("debug"))
    async def debug_command(message: Message, command: CommandObject, delivery: DeliveryService) -> None:
        if not command.args:
            await delivery.deliver(message.chat.id, "Usage: /debug <text>", {"force_delivery": True})
            return
        report = delivery.inspect(message.chat.id, command.args)
        body = json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False)
        await delivery.deliver(message.chat.id, f"```json\n{body}\n```", {"title": "Pipeline report"})

    @ai_router.message(Command("stats"))
    async def stats_command(message: Message, delivery: DeliveryService) -> None:
        lines = [f"• {key}: {round(value, 3)}" for key, value in delivery.stats().items()]
        await delivery.deliver(message.chat.id, "\n".join(lines), {"title": "Delivery stats", "force_delivery": True})

    @ai_router.message(Command("health"))
    async def health_command(message: Message, delivery: DeliveryService) -> None:
        text = format_health(delivery.health())
        await delivery.deliver(message.chat.id, text, {"title": "Delivery health", "force_delivery": True})

    @ai_router.message(Command("diagnostics"))
    async def diagnostics_command(message: Message, delivery: DeliveryService) -> None:
        report = await delivery.test_connection(message.chat.id)
        logger.info(f"Diagnostics for chat {message.chat.id}: success={report.success}")
        await delivery.deliver(message.chat.id, format_connection(report), {"title": "Diagnostics", "force_delivery": True})

    @ai_router.message(F.text & ~F.text.startswith("/"))
    async def handle_query(message: Message, bot: Bot, delivery: DeliveryService, llm: LLMClient) -> None:
        chat_id = message.chat.id
        query = message.text.strip()
        await bot.send_chat_action(chat_id, ChatAction.TYPING)

        try:
            answer = await llm.ask(query)
        except LLMError as e:
            logger.error(f"LLM failed for chat {chat_id}: {e}")
            await delivery.send_error(chat_id, "The assistant is unavailable right now. Please try again later.")
            return

        result = await delivery.deliver(chat_id, answer.text, {"model_hint": answer.model, "allow_large_response": True})
        logger.info(
            f"Answer for chat {chat_id}: {result.status.value}, "
            f"{result.chunks_delivered}/{result.chunks_planned} chunks, {result.elapsed_ms}ms"
        )

    return ai_router
