"""
Election service.

Creator-facing CRUD over election drafts plus the local lifecycle
operations (cancel, complete). Publishing lives in the deployment
orchestrator.
"""

from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import AuthorizationError, NotFoundError, ValidationError
from models.documents import ElectionDocument, ElectionStatus
from repositories.provider import (
    BallotRepositoryProtocol,
    ElectionRepositoryProtocol,
    VoteRepositoryProtocol,
    VoterRepositoryProtocol,
)
from schemas.election import ElectionCreate, ElectionStats, ElectionUpdate
from services.election_state import ElectionStateMachine, utc_now

logger = structlog.get_logger(__name__)

# Fields an update may clear with an explicit null
CLEARABLE_FIELDS = frozenset({"results_release_time", "category"})


class ElectionService:
    """Create, read, update, and retire elections."""

    def __init__(
        self,
        elections: ElectionRepositoryProtocol,
        voters: VoterRepositoryProtocol,
        ballots: BallotRepositoryProtocol,
        votes: VoteRepositoryProtocol,
    ):
        self.elections = elections
        self.voters = voters
        self.ballots = ballots
        self.votes = votes

    async def create(self, creator_id: str, data: ElectionCreate) -> ElectionDocument:
        election = ElectionDocument(creator_id=creator_id, **data.model_dump())
        ElectionStateMachine.validate_schedule(
            election.start_time, election.end_time, utc_now(), election.results_release_time
        )
        await self.elections.create(election)
        logger.info("election_created", election_id=election.id, creator_id=creator_id)
        return election

    async def get(self, election_id: str, viewer_id: Optional[str] = None) -> ElectionDocument:
        """
        Get an election. Private drafts are only visible to their creator.

        Raises:
            NotFoundError: Unknown election, or a private draft of someone else
        """
        election = await self.elections.get_by_id(election_id)
        if election is None:
            raise NotFoundError("Election not found")
        if (
            election.status == ElectionStatus.DRAFT
            and not election.is_public
            and election.creator_id != viewer_id
        ):
            raise NotFoundError("Election not found")
        return election

    async def get_owned(self, election_id: str, creator_id: str) -> ElectionDocument:
        election = await self.elections.get_by_id(election_id)
        if election is None:
            raise NotFoundError("Election not found")
        if election.creator_id != creator_id:
            raise AuthorizationError("Not authorized to manage this election")
        return election

    async def list_by_creator(
        self, creator_id: str, status: Optional[str] = None, page: int = 1, per_page: int = 20
    ) -> tuple[list[ElectionDocument], int]:
        elections = await self.elections.list_by_creator(
            creator_id, status=status, offset=(page - 1) * per_page, limit=per_page
        )
        total = await self.elections.count_by_creator(creator_id, status=status)
        return elections, total

    async def list_public(
        self, category: Optional[str] = None, search: Optional[str] = None, page: int = 1, per_page: int = 20
    ) -> list[ElectionDocument]:
        return await self.elections.list_public(
            category=category, search=search, offset=(page - 1) * per_page, limit=per_page
        )

    async def update(self, election_id: str, creator_id: str, data: ElectionUpdate) -> ElectionDocument:
        election = await self.get_owned(election_id, creator_id)
        ElectionStateMachine.check_can_edit(election)

        changes = data.model_dump(exclude_unset=True)
        null_fields = sorted(k for k, v in changes.items() if v is None and k not in CLEARABLE_FIELDS)
        if null_fields:
            raise ValidationError("Invalid election update", errors=[f"{k} cannot be null" for k in null_fields])

        # Re-run field validators (timezone normalization) on the merged document
        try:
            updated = ElectionDocument.model_validate({**election.model_dump(), **changes})
        except PydanticValidationError as e:
            errors = [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
            raise ValidationError("Invalid election update", errors=errors) from e
        if {"start_time", "end_time", "results_release_time"} & changes.keys():
            ElectionStateMachine.validate_schedule(
                updated.start_time, updated.end_time, utc_now(), updated.results_release_time
            )

        updated.updated_at = utc_now()
        await self.elections.update(updated)
        logger.info("election_updated", election_id=election_id, fields=sorted(changes))
        return updated

    async def delete(self, election_id: str, creator_id: str) -> None:
        """Delete a draft and everything attached to it."""
        election = await self.get_owned(election_id, creator_id)
        ElectionStateMachine.check_can_delete(election)

        votes = await self.votes.delete_by_election(election_id)
        ballots = await self.ballots.delete_by_election(election_id)
        voters = await self.voters.delete_by_election(election_id)
        await self.elections.delete(election_id)
        logger.info("election_deleted", election_id=election_id, votes=votes, ballots=ballots, voters=voters)

    async def stats(self, creator_id: str) -> ElectionStats:
        by_status = await self.elections.count_by_status(creator_id)
        return ElectionStats(total=sum(by_status.values()), by_status=by_status)

    async def cancel(self, election_id: str, creator_id: str) -> ElectionDocument:
        election = await self.get_owned(election_id, creator_id)
        ElectionStateMachine.transition(election, ElectionStatus.CANCELLED)
        election.updated_at = utc_now()
        await self.elections.update(election)
        logger.info("election_cancelled", election_id=election_id)
        return election

    async def complete(self, election_id: str, creator_id: str) -> ElectionDocument:
        """Close an ACTIVE election ahead of its end time."""
        election = await self.get_owned(election_id, creator_id)
        ElectionStateMachine.transition(election, ElectionStatus.COMPLETED)
        election.updated_at = utc_now()
        await self.elections.update(election)
        logger.info("election_completed", election_id=election_id)
        return election
