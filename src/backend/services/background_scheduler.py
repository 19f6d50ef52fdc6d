"""
Background Scheduler Service

Runs the election sweep with APScheduler:
- Activate SCHEDULED elections whose start time has passed
- Complete ACTIVE elections whose end time has passed

The sweep goes through the same state-machine guards as the request path.
Disabled unless ENABLE_ELECTION_SWEEP is set.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.exceptions import TallyError
from models.documents import ElectionDocument, ElectionStatus
from repositories.provider import ElectionRepositoryProtocol
from services.deployment_orchestrator import DeploymentOrchestrator
from services.election_state import ElectionStateMachine

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def _activate(
    election: ElectionDocument,
    elections: ElectionRepositoryProtocol,
    orchestrator: Optional[DeploymentOrchestrator],
    now: datetime,
) -> bool:
    if orchestrator is not None:
        await orchestrator.activate_election(election)
        return True
    if election.ledger_address:
        logger.warning(f"Skipping activation of deployed election {election.id}: ledger not configured")
        return False
    ElectionStateMachine.check_can_activate(election, now)
    ElectionStateMachine.transition(election, ElectionStatus.ACTIVE, now)
    election.updated_at = now
    await elections.update(election)
    return True


async def run_election_sweep(
    elections: ElectionRepositoryProtocol,
    orchestrator: Optional[DeploymentOrchestrator] = None,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """
    Activate and complete every due election once.

    A failure on one election is logged and counted; the sweep continues.
    """
    now = now or datetime.now(timezone.utc)
    result = {"activated": 0, "completed": 0, "failed": 0}

    for election in await elections.list_due_for_activation(now):
        try:
            if await _activate(election, elections, orchestrator, now):
                result["activated"] += 1
        except TallyError as e:
            result["failed"] += 1
            logger.warning(f"Could not activate election {election.id}: {e.detail}")

    for election in await elections.list_due_for_completion(now):
        try:
            ElectionStateMachine.check_can_complete(election, now)
            ElectionStateMachine.transition(election, ElectionStatus.COMPLETED, now)
            election.updated_at = now
            await elections.update(election)
            result["completed"] += 1
        except TallyError as e:
            result["failed"] += 1
            logger.warning(f"Could not complete election {election.id}: {e.detail}")

    return result


async def election_sweep_job() -> None:
    """Scheduled entry point: resolve collaborators and run one sweep."""
    from repositories.provider import get_election_repository, get_voter_repository
    from services.credential_service import VoterCredentialRegistry
    from services.ledger_client import get_ledger_client

    logger.info("Starting election sweep job...")

    try:
        elections = await get_election_repository()
        orchestrator = None
        if settings.ledger_configured:
            orchestrator = DeploymentOrchestrator(
                elections,
                VoterCredentialRegistry(await get_voter_repository()),
                await get_ledger_client(),
            )
        result = await run_election_sweep(elections, orchestrator)
        logger.info(
            f"Election sweep completed: "
            f"activated={result['activated']}, "
            f"completed={result['completed']}, "
            f"failed={result['failed']}"
        )
    except Exception as e:
        logger.error(f"Election sweep job failed: {e}", exc_info=True)


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    return _scheduler


async def start_scheduler() -> None:
    """Start the background scheduler with the sweep job."""
    scheduler = get_scheduler()

    if scheduler.running:
        logger.info("Scheduler already running")
        return

    scheduler.add_job(
        election_sweep_job,
        trigger=IntervalTrigger(minutes=settings.ELECTION_SWEEP_INTERVAL_MINUTES),
        id="election_sweep",
        name="Election Sweep",
        replace_existing=True,
        max_instances=1,
    )
    logger.info(f"Added election sweep job (every {settings.ELECTION_SWEEP_INTERVAL_MINUTES} minutes)")

    scheduler.start()
    logger.info("Background scheduler started")


async def stop_scheduler() -> None:
    """Stop the background scheduler gracefully."""
    global _scheduler

    if _scheduler and _scheduler.running:
        logger.info("Stopping background scheduler...")
        _scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")

    _scheduler = None
