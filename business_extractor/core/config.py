"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PLACES_BASE_URL = "https://maps.googleapis.com/maps/api/place"
MIN_PAGE_DELAY_SECONDS = 2.0


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    places_base_url: str = DEFAULT_PLACES_BASE_URL
    worker_port: int = 9000
    export_dir: str = "exports"
    max_workers: int = 8
    save_to_database: bool = True
    page_delay_seconds: float = MIN_PAGE_DELAY_SECONDS
    retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    max_backoff_seconds: float = 10.0


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    places_base_url = os.getenv("GOOGLE_PLACES_BASE_URL", DEFAULT_PLACES_BASE_URL).rstrip("/")
    worker_port = int(os.getenv("WORKER_PORT", "9000"))
    export_dir = os.getenv("EXPORT_DIR", "exports")
    max_workers = max(1, int(os.getenv("SEARCH_MAX_WORKERS", "8")))
    save_to_database = _env_flag("SAVE_TO_DATABASE", "true")
    # Google rejects a next_page_token that is used too early.
    page_delay_seconds = max(MIN_PAGE_DELAY_SECONDS, float(os.getenv("PLACES_PAGE_DELAY_SECONDS", "2.0")))
    retry_attempts = max(1, int(os.getenv("PLACES_RETRY_ATTEMPTS", "3")))
    retry_delay_seconds = float(os.getenv("PLACES_RETRY_DELAY_SECONDS", "2.0"))
    max_backoff_seconds = float(os.getenv("PLACES_MAX_BACKOFF_SECONDS", "10.0"))

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google Places requests will fail.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        places_base_url=places_base_url,
        worker_port=worker_port,
        export_dir=export_dir,
        max_workers=max_workers,
        save_to_database=save_to_database,
        page_delay_seconds=page_delay_seconds,
        retry_attempts=retry_attempts,
        retry_delay_seconds=retry_delay_seconds,
        max_backoff_seconds=max_backoff_seconds,
    )
