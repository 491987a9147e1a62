# assistant_bot/middleware/logging.py
from aiogram import BaseMiddleware
from aiogram.types import Update

from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[MIDDLEWARE]", "magenta")


class LoggingMiddleware(BaseMiddleware):
    async def __call__(self, handler, event: Update, data):
        user_id = 'unknown'
        if event.message and event.message.from_user:
            user_id = event.message.from_user.id
            text = event.message.text or ""
            logger.info(f"Message from {user_id}: {len(text)} chars, chat_id={event.message.chat.id}")
        elif event.edited_message and event.edited_message.from_user:
            user_id = event.edited_message.from_user.id
            logger.debug(f"Edited message from {user_id} ignored")
        else:
            logger.debug(f"Event from {user_id}: type {type(event).__name__}")

        try:
            result = await handler(event, data)
            logger.debug(f"Handler completed for user {user_id}")
            return result
        except Exception as e:
            logger.error(f"Handler failed for user {user_id}: {e}")
            raise
