from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from readium.services.reader import DEFAULT_UPSTREAM_BASE_URL
from readium.services.result_cache import (
    DEFAULT_MAX_ENTRIES,
    EVICTION_FLUSH,
    EVICTION_POLICIES,
    LOCKING_GLOBAL,
    LOCKING_STRATEGIES,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5000


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    PORT: int = DEFAULT_PORT
    ENV: str = "production"
    UPSTREAM_BASE_URL: str = DEFAULT_UPSTREAM_BASE_URL

    CACHE_MAX_ENTRIES: int = DEFAULT_MAX_ENTRIES
    CACHE_EVICTION: str = EVICTION_FLUSH
    CACHE_LOCKING: str = LOCKING_GLOBAL

    EXTRACT_VOID_START_TAGS: bool = False

    FETCH_TIMEOUT_SECONDS: float = 10.0
    FETCH_MAX_RETRIES: int = 3
    FETCH_USER_AGENT: str = "Mozilla/5.0 (compatible; ReadiumBot/1.0)"

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CACHE_EVICTION", mode="before")
    @classmethod
    def _known_eviction(cls, value: object) -> str:
        selected = str(value or "").strip().lower()
        if selected not in EVICTION_POLICIES:
            # Unrecognised policy; fall back to flushing to keep the service running.
            logger.error("Unsupported CACHE_EVICTION '%s'; falling back to %s.", value, EVICTION_FLUSH)
            return EVICTION_FLUSH
        return selected

    @field_validator("CACHE_LOCKING", mode="before")
    @classmethod
    def _known_locking(cls, value: object) -> str:
        selected = str(value or "").strip().lower().replace("-", "_")
        if selected not in LOCKING_STRATEGIES:
            logger.error("Unsupported CACHE_LOCKING '%s'; falling back to %s.", value, LOCKING_GLOBAL)
            return LOCKING_GLOBAL
        return selected

    @field_validator("CACHE_MAX_ENTRIES")
    @classmethod
    def _positive_ceiling(cls, value: int) -> int:
        if value < 1:
            raise ValueError("CACHE_MAX_ENTRIES must be at least 1")
        return value

    @property
    def is_development(self) -> bool:
        return self.ENV.strip().lower() == "development"
