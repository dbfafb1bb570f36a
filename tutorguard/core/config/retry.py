"""
Retry settings.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings

from tutorguard.domain.retry.value_objects import PRESET_NAMES, RetryPolicy


class RetrySettings(BaseSettings):
    """
    Defines the default retry behaviour for outbound calls.

    RETRY_DEFAULT_PRESET selects one of the named presets
    (quick, standard, aggressive, patient, none).
    """
    RETRY_DEFAULT_PRESET: str = "standard"

    @field_validator("RETRY_DEFAULT_PRESET")
    @classmethod
    def validate_preset(cls, value: str) -> str:
        name = value.strip().lower()
        if name not in PRESET_NAMES:
            raise ValueError(
                f"Unknown retry preset: {value}. Must be one of {', '.join(PRESET_NAMES)}."
            )
        return name

    def default_retry_policy(self) -> RetryPolicy:
        return RetryPolicy.preset(self.RETRY_DEFAULT_PRESET)
