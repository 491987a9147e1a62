import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Путь до пакета (папка, где лежит .env)
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")
load_dotenv()

# --- Bot variables (checked by main.py only) ---------------------------------
BOT_TOKEN = os.getenv("BOT_TOKEN")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL")  # пусто = автоматический выбор модели
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
USE_REDIS = os.getenv("USE_REDIS", "false").lower() == "true"


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class DeliverySettings(BaseModel):
    """Thresholds and toggles of the chunked delivery pipeline."""

    hard_limit: int = Field(default=4096, gt=0)
    chunk_size: int = Field(default=3800, gt=0)
    search_window: int = Field(default=400, ge=0)
    max_chunks: int = Field(default=15, ge=1)
    inter_chunk_delay_ms: Optional[int] = Field(default=None, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    dedup_ttl_seconds: float = Field(default=5.0, gt=0)
    dedup_max_entries: int = Field(default=500, ge=1)
    error_ttl_seconds: float = Field(default=60.0, gt=0)
    emergency_chunk_size: int = Field(default=1000, gt=100)
    auto_style: bool = True
    compression: bool = False
    show_progress: bool = True
    markup_fallback: bool = True
    allow_large_responses: bool = False
    debug: bool = False

    def chunk_cap(self, large: bool = False) -> int:
        """Chunk cap for one delivery; large responses get twice the cap when enabled."""
        if large and self.allow_large_responses:
            return self.max_chunks * 2
        return self.max_chunks

    @model_validator(mode="after")
    def _chunk_fits_limit(self) -> "DeliverySettings":
        if self.chunk_size > self.hard_limit:
            self.chunk_size = self.hard_limit
        return self


def load_delivery_settings() -> DeliverySettings:
    """Build delivery settings from the environment; every variable is optional."""
    defaults = DeliverySettings()
    return DeliverySettings(
        hard_limit=_env_int("TELEGRAM_HARD_LIMIT", defaults.hard_limit),
        chunk_size=_env_int("TELEGRAM_CHUNK_SIZE", defaults.chunk_size),
        search_window=_env_int("TELEGRAM_SEARCH_WINDOW", defaults.search_window),
        max_chunks=_env_int("MAX_TELEGRAM_CHUNKS", defaults.max_chunks),
        inter_chunk_delay_ms=_env_int("TELEGRAM_DELAY_MS", None),
        max_retries=_env_int("TELEGRAM_MAX_RETRIES", defaults.max_retries),
        retry_base_delay_ms=_env_int("TELEGRAM_RETRY_DELAY", defaults.retry_base_delay_ms),
        dedup_ttl_seconds=_env_int("TELEGRAM_DEDUP_TTL", int(defaults.dedup_ttl_seconds)),
        error_ttl_seconds=_env_int("TELEGRAM_ERROR_TTL", int(defaults.error_ttl_seconds)),
        auto_style=_env_bool("TELEGRAM_AUTO_STYLE", defaults.auto_style),
        compression=_env_bool("TELEGRAM_COMPRESS", defaults.compression),
        show_progress=_env_bool("TELEGRAM_SHOW_PROGRESS", defaults.show_progress),
        markup_fallback=_env_bool("TELEGRAM_MARKDOWN_FALLBACK", defaults.markup_fallback),
        allow_large_responses=_env_bool("ALLOW_LARGE_RESPONSES", defaults.allow_large_responses),
        debug=_env_bool("TELEGRAM_DEBUG", defaults.debug),
    )


def missing_bot_variables() -> list[str]:
    return [
        name for name, value in {
            "BOT_TOKEN": BOT_TOKEN,
            "OPENAI_API_KEY": OPENAI_API_KEY,
        }.items() if not value
    ]
