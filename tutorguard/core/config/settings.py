"""Main settings and configuration management.

This module composes the settings from the different modules (app, redis,
rate limiting, retry) into a single `Settings` class.

It loads settings from environment variables and .env files and validates
them. Unlike a module-level singleton, settings are created on demand by
`create_settings()` and cached by `get_settings()`; library components
receive the values they need explicitly.

Environment Support:
- Development: Uses .env
- Test: Uses .env.test when present
- Staging: Uses .env.staging when present
- Production: Uses .env.production when present
"""

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import SettingsConfigDict

from .app import AppSettings
from .rate_limiting import RateLimitSettings
from .redis import RedisSettings
from .retry import RetrySettings

logger = logging.getLogger(__name__)

ENV_FILES = {
    "development": ".env",
    "test": ".env.test",
    "staging": ".env.staging",
    "production": ".env.production",
}


class Settings(AppSettings, RedisSettings, RateLimitSettings, RetrySettings):
    """The main settings class that aggregates all configurations.

    Security Note:
        - REDIS_PASSWORD is a SecretStr and is never logged.
        - A missing Redis configuration outside development/test is logged
          as a warning: the rate limiter still works, but only per process.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    def validate_required_fields(self) -> None:
        """Checks deployment-critical settings.

        Raises:
            ValueError: If the environment name is unknown.
        """
        if self.APP_ENV not in ENV_FILES:
            raise ValueError(
                f"Unknown APP_ENV '{self.APP_ENV}'. Must be one of {', '.join(ENV_FILES)}."
            )

        if self.APP_ENV in ("staging", "production") and not self.redis_configured:
            logger.warning(
                f"No Redis configured in {self.APP_ENV}: rate limits are enforced per process only."
            )


def create_settings(**overrides) -> Settings:
    """Create settings instance with environment-specific configuration.

    Args:
        **overrides: Explicit field values, taking precedence over the environment.

    Returns:
        Settings: Configured settings instance
    """
    env = os.getenv("APP_ENV", "development")
    env_file = ENV_FILES.get(env, ".env")

    if env != "development" and Path(env_file).exists():
        logger.info(f"Loading environment configuration from {env_file}")
        settings_instance = Settings(_env_file=env_file, **overrides)
    else:
        settings_instance = Settings(**overrides)

    settings_instance.validate_required_fields()
    return settings_instance


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, created on first use."""
    return create_settings()
