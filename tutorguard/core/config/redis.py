"""
Redis connection settings for the shared rate limit counter store.
"""
import logging

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RedisSettings(BaseSettings):
    """
    Defines settings for the Redis connection backing the rate limiter.

    Leaving both REDIS_HOST and REDIS_URL empty disables the shared store; the
    rate limiter then runs on its process-local counters only.

    Security Note:
        - REDIS_PASSWORD must be set in production to prevent unauthorized access.
        - Use rediss:// (REDIS_SSL=True) when Redis is reached over an untrusted
          network.
    Performance Note:
        - Every rate limit check is one round trip, so keep REDIS_SOCKET_TIMEOUT
          short: a slow Redis makes every request slow before the limiter can
          fall back to local counters.
    """
    REDIS_HOST: str = ""
    REDIS_PORT: int = Field(ge=1, le=65535, default=6379)
    REDIS_PASSWORD: SecretStr = SecretStr("")
    REDIS_SSL: bool = False
    REDIS_DB: int = Field(ge=0, default=0)
    REDIS_URL: str = Field(default="", validate_default=True)
    REDIS_SOCKET_TIMEOUT: float = Field(gt=0, default=0.5)
    REDIS_CONNECT_TIMEOUT: float = Field(gt=0, default=0.5)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_url(cls, v: str | None, info: ValidationInfo) -> str:
        """
        Assembles the Redis connection URL if not provided explicitly.

        Args:
            v: Explicitly provided URL or None.
            info: Validation context with other field values.

        Returns:
            Assembled or provided Redis URL, or an empty string when no host
            is configured.
        """
        if v:
            return v

        values = info.data
        host = values.get("REDIS_HOST")
        if not host:
            return ""

        protocol = "rediss" if values.get("REDIS_SSL") else "redis"
        redis_password = values.get("REDIS_PASSWORD")
        secret = redis_password.get_secret_value() if redis_password else ""
        password = f":{secret}@" if secret else ""

        url = f"{protocol}://{password}{host}:{values.get('REDIS_PORT')}/{values.get('REDIS_DB', 0)}"
        logger.debug("Assembled REDIS_URL (password masked for security).")
        return url

    @property
    def redis_configured(self) -> bool:
        return bool(self.REDIS_URL)
