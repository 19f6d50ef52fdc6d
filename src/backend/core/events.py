"""
Application lifecycle event handlers.

Manages startup and shutdown tasks for logging, the Cosmos DB client,
and the election sweep scheduler.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from core.config import settings
from core.logging import configure_logging

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        configure_logging()
        logger.info("Starting Tally API...", environment=settings.APP_ENV)

        from repositories.provider import is_cosmos_enabled

        if is_cosmos_enabled():
            from db.cosmos_session import ensure_containers

            await ensure_containers()
            logger.info("Cosmos DB containers ready")
        else:
            logger.warning("Cosmos DB not configured; data endpoints will return configuration errors")

        if not settings.ledger_configured:
            logger.warning("Ledger not configured; deployment and ledger voting are unavailable")

        if settings.ENABLE_ELECTION_SWEEP:
            from services.background_scheduler import start_scheduler

            await start_scheduler()

        logger.info("Tally API started successfully")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("Shutting down Tally API...")

        from services.background_scheduler import stop_scheduler

        await stop_scheduler()

        from db.cosmos_session import close_cosmos

        await close_cosmos()

        logger.info("Tally API shutdown complete")

    return stop_app
