"""
structlog configuration.

Console rendering in development, JSON lines everywhere else.
"""

import logging

import structlog

from core.config import settings


def configure_logging() -> None:
    """Install the structlog processor chain and route stdlib logging through it."""
    level = logging.DEBUG if settings.DEBUG else logging.INFO
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.APP_ENV == "development"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(levelname)s %(name)s %(message)s")


def shorten(value: str | None) -> str | None:
    """Return a shortened identifier (address, hash) for log lines."""
    if not value or len(value) <= 12:
        return value
    return f"{value[:6]}...{value[-4:]}"
