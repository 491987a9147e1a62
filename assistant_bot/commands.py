from aiogram import Bot
from aiogram.types import BotCommand, BotCommandScopeDefault


async def set_bot_commands(bot: Bot):
    """
    Registers the bot commands in the Telegram menu.
    """
    commands = [
        BotCommand(command="/start", description="Start the assistant"),
        BotCommand(command="/help", description="What the assistant can do"),
        BotCommand(command="/debug", description="Show how a text would be split"),
        BotCommand(command="/stats", description="Delivery statistics"),
        BotCommand(command="/health", description="Delivery health check"),
        BotCommand(command="/diagnostics", description="Send test messages to this chat"),
    ]
    await bot.set_my_commands(commands, scope=BotCommandScopeDefault())
