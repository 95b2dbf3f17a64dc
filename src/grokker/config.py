from dataclasses import dataclass
from functools import lru_cache
import logging
import os


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int) -> int:
    if value is None:
        return default
    parsed = int(value)
    return max(minimum, parsed)


def _to_float(value: str | None, *, default: float, minimum: float) -> float:
    if value is None:
        return default
    parsed = float(value)
    return max(minimum, parsed)


def _to_log_level(value: str) -> str:
    level = value.strip().upper()
    if level not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown log level: {value}")
    return level


@dataclass(frozen=True)
class Settings:
    store_path: str
    openai_base_url: str
    openai_api_key: str
    embed_model: str
    chat_model: str
    max_chunk_size: int
    chars_per_token: float
    embed_batch_size: int
    embed_max_workers: int
    timeout_seconds: float
    max_retries: int
    retry_base_seconds: float
    retry_max_seconds: float
    retry_enabled: bool
    log_level: str


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=os.getenv("GROK_STORE_PATH", ".grok"),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        embed_model=os.getenv("GROK_EMBED_MODEL", "text-embedding-ada-002"),
        chat_model=os.getenv("GROK_CHAT_MODEL", "gpt-3.5-turbo"),
        max_chunk_size=_to_int(os.getenv("GROK_MAX_CHUNK_SIZE"), default=16384, minimum=64),
        chars_per_token=_to_float(os.getenv("GROK_CHARS_PER_TOKEN"), default=3.5, minimum=0.5),
        embed_batch_size=_to_int(os.getenv("GROK_EMBED_BATCH_SIZE"), default=100, minimum=1),
        embed_max_workers=_to_int(os.getenv("GROK_EMBED_MAX_WORKERS"), default=1, minimum=1),
        timeout_seconds=_to_float(os.getenv("GROK_TIMEOUT_SECONDS"), default=60.0, minimum=1.0),
        max_retries=_to_int(os.getenv("GROK_MAX_RETRIES"), default=2, minimum=0),
        retry_base_seconds=_to_float(os.getenv("GROK_RETRY_BASE_SECONDS"), default=1.0, minimum=0.0),
        retry_max_seconds=_to_float(os.getenv("GROK_RETRY_MAX_SECONDS"), default=30.0, minimum=0.0),
        retry_enabled=_to_bool(os.getenv("GROK_RETRY_ENABLED"), default=True),
        log_level=_to_log_level(os.getenv("GROK_LOG_LEVEL", "WARNING")),
    )
