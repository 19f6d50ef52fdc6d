"""
Repository provider for dependency injection.

Each entity has a Protocol describing the operations services rely on.
Services receive repositories through their constructors; FastAPI resolves
them through the factory functions below, and tests pass in-memory fakes.

Usage:
    from repositories.provider import get_election_repository

    async def some_endpoint(
        elections: ElectionRepositoryProtocol = Depends(get_election_repository),
    ):
        election = await elections.get_by_id(election_id)
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional, Protocol, runtime_checkable

from core.config import settings
from core.exceptions import ConfigurationError
from models.documents import (
    BallotDocument,
    BallotKind,
    ElectionDocument,
    VoteDocument,
    VoterDocument,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


def is_cosmos_enabled() -> bool:
    """Check if Cosmos DB is configured (RBAC endpoint or emulator connection string)."""
    return bool(settings.AZURE_COSMOS_ENDPOINT or settings.AZURE_COSMOS_CONNECTION_STRING)


def _require_cosmos() -> None:
    if not is_cosmos_enabled():
        raise ConfigurationError(
            "Document store not configured. Set AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING."
        )


# =============================================================================
# Repository Protocols (Interfaces)
# =============================================================================


@runtime_checkable
class ElectionRepositoryProtocol(Protocol):
    """Protocol defining election repository operations."""

    async def get_by_id(self, election_id: str) -> Optional[ElectionDocument]: ...
    async def list_by_creator(
        self, creator_id: str, status: Optional[str] = None, offset: int = 0, limit: int = 20
    ) -> list[ElectionDocument]: ...
    async def count_by_creator(self, creator_id: str, status: Optional[str] = None) -> int: ...
    async def count_by_status(self, creator_id: str) -> dict[str, int]: ...
    async def list_public(
        self, category: Optional[str] = None, search: Optional[str] = None, offset: int = 0, limit: int = 20
    ) -> list[ElectionDocument]: ...
    async def list_due_for_activation(self, now: datetime) -> list[ElectionDocument]: ...
    async def list_due_for_completion(self, now: datetime) -> list[ElectionDocument]: ...
    async def create(self, election: ElectionDocument) -> ElectionDocument: ...
    async def update(self, election: ElectionDocument) -> ElectionDocument: ...
    async def delete(self, election_id: str) -> None: ...


@runtime_checkable
class VoterRepositoryProtocol(Protocol):
    """Protocol defining voter repository operations."""

    async def get_by_id(self, election_id: str, voter_id: str) -> Optional[VoterDocument]: ...
    async def get_by_unique_id(self, election_id: str, unique_id: str) -> Optional[VoterDocument]: ...
    async def get_by_email_hash(self, election_id: str, email_hash: str) -> Optional[VoterDocument]: ...
    async def get_by_verification_token(self, election_id: str, token_hash: str) -> Optional[VoterDocument]: ...
    async def list_by_election(
        self,
        election_id: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[VoterDocument]: ...
    async def count_by_status(self, election_id: str) -> dict[str, int]: ...
    async def create(self, voter: VoterDocument) -> VoterDocument: ...
    async def update(self, voter: VoterDocument) -> VoterDocument: ...
    async def claim_vote(self, election_id: str, voter_id: str) -> bool: ...
    async def release_vote(self, election_id: str, voter_id: str) -> None: ...
    async def mark_registered(self, election_id: str, voter_id: str) -> None: ...
    async def delete(self, election_id: str, voter_id: str) -> None: ...
    async def delete_by_election(self, election_id: str) -> int: ...


@runtime_checkable
class BallotRepositoryProtocol(Protocol):
    """Protocol defining ballot repository operations."""

    async def get_active(self, election_id: str, kind: str = BallotKind.QUESTIONS) -> Optional[BallotDocument]: ...
    async def get_version(
        self, election_id: str, version: int, kind: str = BallotKind.QUESTIONS
    ) -> Optional[BallotDocument]: ...
    async def list_versions(self, election_id: str, kind: str = BallotKind.QUESTIONS) -> list[BallotDocument]: ...
    async def create(self, ballot: BallotDocument) -> BallotDocument: ...
    async def deactivate(self, election_id: str, ballot_id: str) -> None: ...
    async def set_published(self, election_id: str, ballot_id: str, published_at: Optional[datetime]) -> None: ...
    async def delete_versions(self, election_id: str, kind: str = BallotKind.QUESTIONS) -> int: ...
    async def delete_by_election(self, election_id: str) -> int: ...


@runtime_checkable
class VoteRepositoryProtocol(Protocol):
    """Protocol defining vote repository operations."""

    async def get_by_id(self, election_id: str, vote_id: str) -> Optional[VoteDocument]: ...
    async def get_for_voter(self, election_id: str, voter_id: str) -> Optional[VoteDocument]: ...
    async def get_by_tx_hash(self, election_id: str, tx_hash: str) -> Optional[VoteDocument]: ...
    async def list_confirmed(self, election_id: str) -> list[VoteDocument]: ...
    async def count_by_status(self, election_id: str) -> dict[str, int]: ...
    async def create(self, vote: VoteDocument) -> VoteDocument: ...
    async def update(self, vote: VoteDocument) -> VoteDocument: ...
    async def delete_by_election(self, election_id: str) -> int: ...


# =============================================================================
# Repository Factory Functions
# =============================================================================


@lru_cache
def _election_repository() -> ElectionRepositoryProtocol:
    from repositories.cosmos_election_repository import CosmosElectionRepository

    return CosmosElectionRepository()


@lru_cache
def _voter_repository() -> VoterRepositoryProtocol:
    from repositories.cosmos_voter_repository import CosmosVoterRepository

    return CosmosVoterRepository()


@lru_cache
def _ballot_repository() -> BallotRepositoryProtocol:
    from repositories.cosmos_ballot_repository import CosmosBallotRepository

    return CosmosBallotRepository()


@lru_cache
def _vote_repository() -> VoteRepositoryProtocol:
    from repositories.cosmos_vote_repository import CosmosVoteRepository

    return CosmosVoteRepository()


async def get_election_repository() -> ElectionRepositoryProtocol:
    """Get the election repository (Cosmos DB)."""
    _require_cosmos()
    return _election_repository()


async def get_voter_repository() -> VoterRepositoryProtocol:
    """Get the voter repository (Cosmos DB)."""
    _require_cosmos()
    return _voter_repository()


async def get_ballot_repository() -> BallotRepositoryProtocol:
    """Get the ballot repository (Cosmos DB)."""
    _require_cosmos()
    return _ballot_repository()


async def get_vote_repository() -> VoteRepositoryProtocol:
    """Get the vote repository (Cosmos DB)."""
    _require_cosmos()
    return _vote_repository()
