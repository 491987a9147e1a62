from aiogram import BaseMiddleware
from aiogram.types import Update

from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[ERROR_MIDDLEWARE]", "red")


class ErrorHandlingMiddleware(BaseMiddleware):
    async def __call__(self, handler, event: Update, data):
        try:
            return await handler(event, data)
        except Exception as e:
            logger.error(f"[MIDDLEWARE] Error: {e}")
            delivery = data.get("delivery")
            message = getattr(event, "message", None)
            if delivery is not None and message is not None:
                # send_error never raises
                await delivery.send_error(message.chat.id, "Something went wrong, please try again.")
            raise
