"""
glowroutine/core/config.py
──────────────────────────
Centralised, type-safe settings powered by pydantic-settings.
All environment variables are validated at startup; a malformed value
raises an immediate, descriptive error instead of a silent default.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_ENV: str = "development"
    APP_DEBUG: bool = True

    # Networked backend (authenticated users)
    DATABASE_URL: str = "sqlite:///./glowroutine.db"

    # On-device backend (anonymous / local-only use)
    LOCAL_STORE_PATH: Optional[str] = "./glowroutine_local.json"
    LOCAL_USER_ID: str = "local"
    SEED_DEFAULT_ROUTINE: bool = True

    REORDER_DEBOUNCE_MS: int = 500

    # Loaded routine sessions kept for database users; least recently used are closed first
    MAX_USER_SESSIONS: int = 256

    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8081"

    @field_validator("REORDER_DEBOUNCE_MS")
    @classmethod
    def debounce_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("REORDER_DEBOUNCE_MS must be >= 0.")
        return v

    @field_validator("MAX_USER_SESSIONS")
    @classmethod
    def session_cap_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_USER_SESSIONS must be >= 1.")
        return v

    @field_validator("LOCAL_USER_ID")
    @classmethod
    def local_user_must_not_be_empty(cls, v: str) -> str:
        if not v or v.strip() == "":
            raise ValueError("LOCAL_USER_ID must not be empty.")
        return v.strip()

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def reorder_debounce_seconds(self) -> float:
        return self.REORDER_DEBOUNCE_MS / 1000

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL


@lru_cache
def get_settings() -> Settings:
    """Return a cached singleton of Settings."""
    return Settings()
