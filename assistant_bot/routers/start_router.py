from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message
from aiogram.utils.markdown import hbold

from assistant_bot.delivery import DeliveryService
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[START]", "green")

HELP_TEXT = (
    "Ask me anything about your finances: cash flow, budgets, loans, portfolios.\n\n"
    "/debug <text> - show how a long answer would be split\n"
    "/stats - delivery statistics\n"
    "/health - delivery health check\n"
    "/diagnostics - send a set of test messages"
)


def create_start_router() -> Router:
    start_router = Router(name="start_router")

    @start_router.message(CommandStart())
    async def start_command(message: Message, state: FSMContext) -> Message:
        logger.info(f"User {message.from_user.id} called /start in chat {message.chat.id}")
        await state.clear()
        return await message.answer(
            f"Hello, {hbold(message.from_user.first_name)}! 💼\n\n{HELP_TEXT}",
            parse_mode="HTML",
        )

    @start_router.message(Command("help"))
    async def help_command(message: Message, delivery: DeliveryService) -> None:
        await delivery.deliver(message.chat.id, HELP_TEXT, {"title": "Help", "force_delivery": True})

    return start_router
