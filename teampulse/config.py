"""
Runtime configuration for the TeamPulse service.

Values are read from the environment (prefixed with ``TEAMPULSE_``) or from a
local ``.env`` file.
"""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Settings for the TeamPulse server and CLI."""

    model_config = SettingsConfigDict(
        env_prefix="TEAMPULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Auth
    admin_email: str = Field(
        default="admin@teampulse.dev", description="Login email of the admin user"
    )
    admin_password: str = Field(
        default="password123", description="Login password of the admin user"
    )
    session_cookie_name: str = Field(default="auth_session")
    session_max_age: int = Field(
        default=60 * 60 * 24 * 7, gt=0, description="Session lifetime in seconds"
    )
    cookie_secure: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="info")

    # Dashboard
    trend_days: int = Field(
        default=7, gt=0, description="Days of history shown by the trends endpoint"
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    settings = Settings()
    logger.debug("Loaded settings for admin %s", settings.admin_email)
    return settings
