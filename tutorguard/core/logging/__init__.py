"""
Logging configuration module for structured logging.

This module configures the library's logging system using structlog.
It provides structured logging capabilities with JSON formatting for production
and human-readable console output for development.

The logging configuration includes:
- Timestamp formatting
- Log level inclusion and filtering
- JSON/Console output based on environment
- Logger caching
"""

import logging

import structlog


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configures the application's logging system.

    This function sets up structlog with:
    1. ISO format timestamps
    2. Log level inclusion
    3. JSON formatting for production (when json_logs=True)
    4. Console formatting for development
    5. Standard library logger factory, filtered at ``log_level``

    Args:
        log_level: Minimum level name, e.g. ``"INFO"`` or ``"DEBUG"``.
        json_logs: Render events as JSON lines instead of console output.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger("tutorguard")
