"""
Configuration for the star tracker.

Settings are read from environment variables prefixed with STARTRACKER_
(and from a local .env file when present).
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Language every translation lookup falls back to.
FALLBACK_LANG = "en"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STARTRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite:///stars.db",
        description="SQLAlchemy URL of the store",
    )
    default_lang: str = Field(
        default=FALLBACK_LANG,
        description="Language used for translated reads when the caller does not pass one",
    )
    seed_defaults: bool = Field(
        default=True,
        description="Seed default users and rewards into an empty store",
    )
    default_password: str = Field(
        default="changeme",
        description="Initial password given to seeded users",
    )
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        root.setLevel(level)
