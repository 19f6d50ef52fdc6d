"""
Election lifecycle state machine.

Pure status/time logic shared by the request path and the background
sweep. Nothing here performs I/O: every guard either returns normally or
raises a domain error describing the rejected precondition.

    DRAFT -> SCHEDULED -> ACTIVE -> COMPLETED
      \\          \\
       +----------+--> CANCELLED
"""

from datetime import datetime, timezone
from typing import Optional

from core.config import settings
from core.exceptions import AuthorizationError, ConflictError, ValidationError
from models.documents import BallotKind, ElectionDocument, ElectionStatus

TRANSITIONS: dict[str, frozenset[str]] = {
    ElectionStatus.DRAFT: frozenset({ElectionStatus.SCHEDULED, ElectionStatus.CANCELLED}),
    ElectionStatus.SCHEDULED: frozenset({ElectionStatus.ACTIVE, ElectionStatus.CANCELLED}),
    ElectionStatus.ACTIVE: frozenset({ElectionStatus.COMPLETED}),
    ElectionStatus.COMPLETED: frozenset(),
    ElectionStatus.CANCELLED: frozenset(),
}

DEPLOYABLE_STATUSES = frozenset({ElectionStatus.DRAFT, ElectionStatus.SCHEDULED})
BALLOT_EDITABLE_STATUSES = {
    BallotKind.QUESTIONS: frozenset({ElectionStatus.DRAFT}),
    BallotKind.CANDIDATES: frozenset({ElectionStatus.DRAFT, ElectionStatus.SCHEDULED, ElectionStatus.ACTIVE}),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ElectionStateMachine:
    """Guards and transitions for an election record."""

    # ========================================================================
    # Transitions
    # ========================================================================

    @staticmethod
    def can_transition(current: str, target: str) -> bool:
        return ElectionStatus(target) in TRANSITIONS[ElectionStatus(current)]

    @classmethod
    def transition(cls, election: ElectionDocument, target: ElectionStatus, now: Optional[datetime] = None) -> None:
        """
        Move an election to a new status and stamp the matching timestamp.

        Raises:
            ConflictError: If the transition is not allowed from the current status
        """
        if not cls.can_transition(election.status, target):
            raise ConflictError(f"Cannot move election from {election.status} to {ElectionStatus(target).value}")

        now = now or utc_now()
        election.status = target
        if target == ElectionStatus.ACTIVE:
            election.started_at = election.started_at or now
        elif target == ElectionStatus.COMPLETED:
            election.completed_at = now
        elif target == ElectionStatus.CANCELLED:
            election.cancelled_at = now

    # ========================================================================
    # Guards
    # ========================================================================

    @staticmethod
    def effective_start(election: ElectionDocument, now: datetime) -> tuple[datetime, bool]:
        """
        Start time used when publishing: max(original start, now).

        Returns:
            (start time, whether it was clamped forward)
        """
        if election.start_time < now:
            return now, True
        return election.start_time, False

    @classmethod
    def check_can_deploy(cls, election: ElectionDocument, now: datetime) -> tuple[datetime, bool]:
        """
        Guard for publishing to the ledger.

        Returns:
            The effective start time and whether it was clamped

        Raises:
            ConflictError: Already published or wrong status
            ValidationError: Less than the minimum duration remains
        """
        if election.ledger_address:
            raise ConflictError("Election is already deployed to the ledger")
        if election.status not in DEPLOYABLE_STATUSES:
            raise ConflictError(f"Election cannot be deployed while {election.status}")

        start, adjusted = cls.effective_start(election, now)
        remaining = (election.end_time - start).total_seconds()
        if remaining < settings.MIN_ELECTION_DURATION_SECONDS:
            raise ValidationError(
                f"Election must run for at least {settings.MIN_ELECTION_DURATION_SECONDS} seconds "
                f"after deployment; only {max(int(remaining), 0)} remain"
            )
        return start, adjusted

    @staticmethod
    def check_can_activate(election: ElectionDocument, now: datetime) -> None:
        if election.status != ElectionStatus.SCHEDULED:
            raise ConflictError(f"Only scheduled elections can be activated (status is {election.status})")
        if now < election.start_time:
            raise ConflictError("Election start time has not been reached")

    @staticmethod
    def check_can_complete(election: ElectionDocument, now: datetime) -> None:
        if election.status != ElectionStatus.ACTIVE:
            raise ConflictError(f"Only active elections can be completed (status is {election.status})")
        if now <= election.end_time:
            raise ConflictError("Election end time has not been reached")

    @staticmethod
    def check_can_edit(election: ElectionDocument) -> None:
        if election.status != ElectionStatus.DRAFT:
            raise ConflictError("Only draft elections can be modified")

    @staticmethod
    def check_can_delete(election: ElectionDocument) -> None:
        if election.status != ElectionStatus.DRAFT:
            raise ConflictError("Only draft elections can be deleted")

    @staticmethod
    def check_can_edit_ballot(election: ElectionDocument, kind: str) -> None:
        allowed = BALLOT_EDITABLE_STATUSES[BallotKind(kind)]
        if election.status not in allowed:
            raise ConflictError(f"Ballot cannot be modified while the election is {election.status}")

    @staticmethod
    def check_voting_open(election: ElectionDocument, now: datetime) -> None:
        if election.status != ElectionStatus.ACTIVE:
            raise ConflictError("Election is not active")
        if now > election.end_time:
            raise ConflictError("Election has ended")

    @staticmethod
    def check_results_visible(election: ElectionDocument, now: datetime, public: bool = False) -> None:
        """
        Gate serving results.

        Raises:
            AuthorizationError: Results are not available to this audience yet
        """
        if public and not election.is_public:
            raise AuthorizationError("Results for this election are not public")
        if election.status == ElectionStatus.ACTIVE and not election.real_time_results:
            raise AuthorizationError("Real-time results are not enabled for this election")
        if (
            election.status == ElectionStatus.SCHEDULED
            and election.results_release_time is not None
            and now < election.results_release_time
        ):
            raise AuthorizationError("Results have not been released yet")

    # ========================================================================
    # Schedule validation (create/update)
    # ========================================================================

    @staticmethod
    def validate_schedule(
        start_time: datetime,
        end_time: datetime,
        now: datetime,
        results_release_time: Optional[datetime] = None,
    ) -> None:
        """
        Validate a draft's times.

        With ALLOW_SAME_DAY_START the start may be any time today (UTC) or later,
        so a draft can be published immediately with its start clamped forward.
        Otherwise the start must be strictly in the future.
        """
        errors: list[str] = []
        if start_time >= end_time:
            errors.append("End time must be after start time")

        if settings.ALLOW_SAME_DAY_START:
            today = now.replace(hour=0, minute=0, second=0, microsecond=0)
            if start_time < today:
                errors.append("Start date cannot be in the past")
        elif start_time <= now:
            errors.append("Start time must be in the future")

        if results_release_time is not None and results_release_time < start_time:
            errors.append("Results release time cannot be before the start time")

        if errors:
            raise ValidationError("Invalid election schedule", errors=errors)
