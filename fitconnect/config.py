"""Runtime settings for FitConnect.

Values come from environment variables (``ENVIRONMENT``, ``DATA_DIR``,
``FEED_MAX_LIMIT``, ...) or a ``.env`` file in the working directory. The
selected environment then overrides the logging and storage fields:

    development  DEBUG, console format
    production   at least INFO, JSON lines
    testing      in-memory database, ERROR, no log file
    staging      INFO, JSON lines

Example:
    >>> from fitconnect.config import settings
    >>> settings.feed_max_limit
    50
"""

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY_DATABASE = Path(":memory:")
DEFAULT_DATABASE_NAME = "fitconnect.db"

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class Environment(StrEnum):
    """Deployment profile selected by ``ENVIRONMENT``."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
    STAGING = "staging"


# Field overrides applied once the environment is known.
PROFILES: dict[Environment, dict[str, Any]] = {
    Environment.DEVELOPMENT: {"log_level": "DEBUG", "log_json": False},
    Environment.PRODUCTION: {"log_json": True},
    Environment.TESTING: {
        "database_path": MEMORY_DATABASE,
        "log_level": "ERROR",
        "log_to_file": False,
        "log_json": False,
    },
    Environment.STAGING: {"log_level": "INFO", "log_json": True},
}

# Production keeps a stricter configured level but never goes below this one.
PRODUCTION_MIN_LEVEL = "INFO"


class Settings(BaseSettings):
    """FitConnect settings.

    Attributes:
        environment: Active deployment profile
        data_dir: Directory holding the database and log file
        database_path: SQLite file; a bare default name is placed in ``data_dir``
        feed_default_limit: Feed page size when the caller gives none
        feed_max_limit: Upper bound on any feed page
        feed_comment_preview: Recent comments attached to each feed post (0-5)
        page_default_limit: Page size for goal, activity and notification lists
        page_max_limit: Upper bound on those lists
        api_host: Bind address for ``fitconnect serve``
        api_port: Bind port for ``fitconnect serve``
        log_level: Loguru level name
        log_to_file: Also write ``fitconnect.log`` under ``data_dir``
        log_json: Emit JSON lines
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Environment.DEVELOPMENT

    data_dir: Path = Path("./data")
    database_path: Path = Path(DEFAULT_DATABASE_NAME)

    feed_default_limit: int = Field(50, ge=1, le=200)
    feed_max_limit: int = Field(50, ge=1, le=200)
    feed_comment_preview: int = Field(5, ge=0, le=5)
    page_default_limit: int = Field(50, ge=1, le=500)
    page_max_limit: int = Field(100, ge=1, le=500)

    api_host: str = "127.0.0.1"
    api_port: int = Field(3000, ge=1, le=65535)

    log_level: str = "INFO"
    log_to_file: bool = True
    log_json: bool = False

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_data_dir(cls, v: str | Path) -> Path:
        path = Path(v).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def finalize(self) -> "Settings":
        """Place the database under ``data_dir`` and apply the profile."""
        if self.database_path == Path(DEFAULT_DATABASE_NAME):
            self.database_path = self.data_dir / DEFAULT_DATABASE_NAME

        for name, value in PROFILES[self.environment].items():
            setattr(self, name, value)

        if self.environment is Environment.PRODUCTION and LOG_LEVELS.index(
            self.log_level
        ) < LOG_LEVELS.index(PRODUCTION_MIN_LEVEL):
            self.log_level = PRODUCTION_MIN_LEVEL

        if self.database_path != MEMORY_DATABASE:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self.feed_default_limit = min(self.feed_default_limit, self.feed_max_limit)
        return self

    @property
    def log_file(self) -> Path | None:
        return self.data_dir / "fitconnect.log" if self.log_to_file else None

    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment is Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        return self.environment is Environment.TESTING

    @property
    def is_staging(self) -> bool:
        return self.environment is Environment.STAGING


def get_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings()


settings = get_settings()
