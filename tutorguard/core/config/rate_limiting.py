"""
Rate limiting settings.

Centralized configuration for rate limiting policies, allowing limits to be
adjusted per deployment without code changes. Policies are written as rate
strings (``"3/15minute"``) keyed by category name and are turned into
immutable :class:`RateLimitPolicy` objects by :meth:`build_policies`.
"""
from typing import Dict, List, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from tutorguard.domain.rate_limiting.value_objects import RateLimitPolicy

DEFAULT_RATE_LIMIT_POLICIES: Dict[str, str] = {
    "contact": "3/15minute",
    "enrollment": "2/30minute",
    "api": "100/minute",
    "auth": "5/15minute",
    "password_reset": "3/hour",
}

POLICY_DESCRIPTIONS: Dict[str, str] = {
    "contact": "Contact form submissions",
    "enrollment": "Enrollment form submissions",
    "api": "General API requests",
    "auth": "Authentication attempts",
    "password_reset": "Password reset requests",
}


class RateLimitSettings(BaseSettings):
    """
    Defines settings for the rate limiting subsystem.

    Security Note:
        - RATE_LIMIT_WHITELIST bypasses every limit for the listed client
          addresses. Keep it to loopback and monitoring hosts.
    """
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_KEY_PREFIX: str = "ratelimit"
    RATE_LIMIT_WHITELIST: Union[str, List[str]] = ["127.0.0.1", "::1", "localhost"]
    RATE_LIMIT_POLICIES: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMIT_POLICIES)
    )

    @field_validator("RATE_LIMIT_WHITELIST", mode="before")
    @classmethod
    def assemble_whitelist(cls, v: Union[str, List[str]]) -> List[str]:
        """Splits a comma-separated whitelist into a list of addresses."""
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    @field_validator("RATE_LIMIT_POLICIES")
    @classmethod
    def validate_rate_limit_policies(cls, value: Dict[str, str]) -> Dict[str, str]:
        """
        Validates every configured rate string (e.g. ``'100/minute'``).

        Raises:
            ValueError: If a category name or rate string is invalid.
        """
        if not value:
            raise ValueError("At least one rate limit policy must be configured.")
        for category, rate in value.items():
            RateLimitPolicy.from_rate_string(category, rate)
        return value

    def build_policies(self) -> List[RateLimitPolicy]:
        """Create the immutable rate limit policies from configuration."""
        return [
            RateLimitPolicy.from_rate_string(
                category, rate, description=POLICY_DESCRIPTIONS.get(category, "")
            )
            for category, rate in self.RATE_LIMIT_POLICIES.items()
        ]
