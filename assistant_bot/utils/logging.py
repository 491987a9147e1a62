# assistant_bot/utils/logging.py
import os
import sys

from loguru import logger

_configured = False
_handler_id = None


def _format(record) -> str:
    color = record["extra"].get("color", "white")
    return (
        f"<{color}>{{time:YYYY-MM-DD HH:mm:ss.SSS}}</{color}> | "
        "<b>{level:<8}</b> | "
        "<cyan>{name}:{function}:{line}</cyan> | "
        f"<{color}>{{extra[prefix]}}</{color}> <b>{{message}}</b>\n{{exception}}"
    )


def set_log_level(debug: bool, sink=None) -> str:
    """Replace the process-wide handler with one at DEBUG or INFO; returns the level name."""
    global _configured, _handler_id
    level = "DEBUG" if debug else "INFO"
    if _handler_id is None:
        logger.remove()
        logger.configure(extra={"prefix": "", "color": "white"})
    else:
        logger.remove(_handler_id)
    _handler_id = logger.add(sys.stdout if sink is None else sink, level=level, format=_format, colorize=sink is None)
    _configured = True
    return level


def configure_logger(prefix: str, color: str):
    """Configure loguru logger with a specific prefix and color."""
    # Only replace the default handler once per process
    if not _configured:
        set_log_level(os.getenv("TELEGRAM_DEBUG", "false").lower() == "true")
    return logger.bind(prefix=prefix, color=color)
