"""Application settings and environment configuration loading."""

from __future__ import annotations

from pathlib import Path
from typing import Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = BACKEND_ROOT / ".env"
LOG_FORMATS = frozenset({"text", "json"})


class Settings(BaseSettings):
    """Typed runtime configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        # Load `backend/.env` regardless of current working directory.
        env_file=[DEFAULT_ENV_FILE, ".env"],
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "dev"
    database_url: str = "sqlite+aiosqlite:///./taskrank.db"

    cors_origins: str = ""

    # Database lifecycle
    db_auto_migrate: bool = False

    # Task field limits
    task_title_max_length: int = Field(default=200, ge=1)
    task_description_max_length: int = Field(default=5000, ge=0)

    # Caller policy: maximum number of active primary tasks per owner.
    # Enforced by the REST adapter only; None disables the cap.
    primary_list_limit: int | None = Field(default=None, ge=1)

    # Ordering engine
    ordering_write_concurrency: int = Field(default=8, ge=1)
    store_call_timeout_seconds: float = Field(default=10.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"
    log_use_utc: bool = False
    request_log_slow_ms: int = Field(default=1000, ge=0)
    request_log_include_health: bool = False

    @model_validator(mode="after")
    def _defaults(self) -> Self:
        self.log_format = self.log_format.strip().lower()
        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"LOG_FORMAT must be one of {sorted(LOG_FORMATS)}.",
            )
        self.log_level = self.log_level.strip().upper() or "INFO"
        # In dev, default to applying Alembic migrations at startup to avoid
        # schema drift (e.g. missing newly-added columns).
        if "db_auto_migrate" not in self.model_fields_set and self.environment == "dev":
            self.db_auto_migrate = True
        return self


settings = Settings()
