"""
Application-specific settings.
"""
from typing import List, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """
    Defines application-wide settings like project name, environment, logging
    and CORS origins.

    Security Note:
        - Ensure ALLOWED_ORIGINS is explicitly set to trusted domains in production
          to prevent unauthorized cross-origin requests.
    """
    PROJECT_NAME: str = "tutorguard"
    VERSION: str = "0.1.0"
    APP_ENV: str = "development"
    DEBUG: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    ALLOWED_ORIGINS: Union[str, List[str]] = ["http://localhost:3000"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """
        Splits a comma-separated string of origins into a list.

        Args:
            v: Input value as a string or list of origins.

        Returns:
            List of stripped origin strings.
        """
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return level
