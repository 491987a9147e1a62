# assistant_bot/middleware/dependency_injection.py
from typing import Dict, Any, Callable, Awaitable

from aiogram import Bot, BaseMiddleware
from aiogram.types import TelegramObject

from assistant_bot.delivery import DeliveryService
from assistant_bot.llm import LLMClient
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[DI_MIDDLEWARE]", "green")


class DependencyInjectionMiddleware(BaseMiddleware):
    def __init__(self, bot: Bot, delivery: DeliveryService, llm: LLMClient):
        super().__init__()
        self.bot = bot
        self.delivery = delivery
        self.llm = llm

    async def __call__(
            self,
            handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
            event: TelegramObject,
            data: Dict[str, Any]
    ) -> Any:
        data["bot"] = self.bot
        data["delivery"] = self.delivery
        data["llm"] = self.llm
        try:
            return await handler(event, data)
        except Exception as e:
            logger.error(f"Handler failed in DependencyInjectionMiddleware: {e}")
            raise
