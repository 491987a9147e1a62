import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.fsm.storage.redis import RedisStorage

from assistant_bot.commands import set_bot_commands
from assistant_bot.config import (
    BOT_TOKEN,
    OPENAI_API_KEY,
    OPENAI_MODEL,
    REDIS_URL,
    USE_REDIS,
    load_delivery_settings,
    missing_bot_variables,
)
from assistant_bot.delivery import AiogramTransport, DeliveryService
from assistant_bot.llm import LLMClient
from assistant_bot.middleware.dependency_injection import DependencyInjectionMiddleware
from assistant_bot.middleware.error_handling import ErrorHandlingMiddleware
from assistant_bot.middleware.logging import LoggingMiddleware
from assistant_bot.routers.ai_router import create_ai_router
from assistant_bot.routers.start_router import create_start_router
from assistant_bot.utils.logging import configure_logger, set_log_level

logger = configure_logger("[BOT]", "green")


async def main() -> None:
    missing = missing_bot_variables()
    if missing:
        raise EnvironmentError(f"Required environment variables are not set: {', '.join(missing)}")

    bot = Bot(
        token=BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    bot_info = await bot.get_me()
    bot_name = bot_info.username
    logger.info(f"Starting assistant for @{bot_name}")

    # Storage: Redis → Memory fallback
    if USE_REDIS:
        logger.info(f"Using RedisStorage with REDIS_URL: {REDIS_URL}")
        try:
            storage = RedisStorage.from_url(REDIS_URL)
            await storage.redis.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}. Falling back to MemoryStorage.")
            storage = MemoryStorage()
    else:
        logger.info("Using MemoryStorage (Redis disabled)")
        storage = MemoryStorage()

    settings = load_delivery_settings()
    level = set_log_level(settings.debug)
    logger.info(
        f"Delivery: chunk {settings.chunk_size}/{settings.hard_limit} chars, "
        f"max {settings.chunk_cap(large=True)} chunks, {settings.max_retries} retries, log level {level}"
    )
    delivery = DeliveryService(AiogramTransport(bot), settings)
    llm = LLMClient(api_key=OPENAI_API_KEY, model=OPENAI_MODEL)

    dp = Dispatcher(storage=storage)

    # Middlewares
    dp.update.outer_middleware(DependencyInjectionMiddleware(bot=bot, delivery=delivery, llm=llm))
    dp.update.outer_middleware(ErrorHandlingMiddleware())
    dp.update.outer_middleware(LoggingMiddleware())

    # Routers
    dp.include_router(create_start_router())
    dp.include_router(create_ai_router())

    try:
        logger.info(f"Bot @{bot_name} is starting…")
        await set_bot_commands(bot)
        await dp.start_polling(bot)
    finally:
        logger.info(f"Bot @{bot_name} is shutting down…")
        await llm.close()
        await bot.session.close()
        await storage.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
