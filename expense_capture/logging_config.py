"""
Structured logging configuration using structlog.
No print statements; media payloads (audio, images) are never logged.
"""

import logging
import sys

import structlog

from expense_capture.config import Settings, settings


def configure_logging(config: Settings | None = None) -> None:
    """
    Configure structured logging for the application.

    Uses structlog with JSON or console output based on settings.
    Context bound through contextvars (client_id, user_id) is merged into
    every event.
    """
    config = config or settings
    if config.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, config.log_level.upper()),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured structlog logger

    Example:
        logger = get_logger(__name__)
        logger.info("receipt_parsed", model="gpt-4o-mini", confidence=0.92)
    """
    return structlog.get_logger(name)
