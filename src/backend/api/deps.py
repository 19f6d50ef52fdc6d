"""
Shared dependencies for API endpoints.

Includes:
- Creator JWT authentication
- Service construction from the repository and ledger providers
"""

from typing import Annotated, Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import settings
from core.security import decode_token
from models.documents import ElectionDocument
from repositories.provider import (
    BallotRepositoryProtocol,
    ElectionRepositoryProtocol,
    VoteRepositoryProtocol,
    VoterRepositoryProtocol,
    get_ballot_repository,
    get_election_repository,
    get_vote_repository,
    get_voter_repository,
)
from services.ballot_service import BallotService
from services.credential_service import VoterCredentialRegistry
from services.deployment_orchestrator import DeploymentOrchestrator
from services.election_service import ElectionService
from services.ledger_client import LedgerClient, get_ledger_client
from services.results_aggregator import ResultsAggregator
from services.vote_intake import VoteIntakeEngine

logger = structlog.get_logger(__name__)

# Security schemes
security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)


# =============================================================================
# Creator Authentication (JWT-based)
# =============================================================================


async def get_current_creator(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> str:
    """
    Extract the creator id from the bearer token.

    Raises:
        HTTPException: If the token is invalid or has no subject.
    """
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    creator_id = payload.get("sub")
    if creator_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return creator_id


async def get_current_creator_optional(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security_optional)],
) -> Optional[str]:
    """Creator id if a valid token was sent, else None."""
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    if payload is None:
        return None
    return payload.get("sub")


CurrentCreator = Annotated[str, Depends(get_current_creator)]


# =============================================================================
# Services
# =============================================================================


async def get_election_service(
    elections: Annotated[ElectionRepositoryProtocol, Depends(get_election_repository)],
    voters: Annotated[VoterRepositoryProtocol, Depends(get_voter_repository)],
    ballots: Annotated[BallotRepositoryProtocol, Depends(get_ballot_repository)],
    votes: Annotated[VoteRepositoryProtocol, Depends(get_vote_repository)],
) -> ElectionService:
    return ElectionService(elections, voters, ballots, votes)


async def get_credential_registry(
    voters: Annotated[VoterRepositoryProtocol, Depends(get_voter_repository)],
) -> VoterCredentialRegistry:
    return VoterCredentialRegistry(voters)


async def get_ballot_service(
    ballots: Annotated[BallotRepositoryProtocol, Depends(get_ballot_repository)],
) -> BallotService:
    return BallotService(ballots)


async def get_optional_ledger_client() -> Optional[LedgerClient]:
    """Ledger client when configured; web-path voting works without one."""
    if not settings.ledger_configured:
        return None
    return await get_ledger_client()


async def get_deployment_orchestrator(
    elections: Annotated[ElectionRepositoryProtocol, Depends(get_election_repository)],
    credentials: Annotated[VoterCredentialRegistry, Depends(get_credential_registry)],
    ledger: Annotated[LedgerClient, Depends(get_ledger_client)],
) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(elections, credentials, ledger)


async def get_vote_intake(
    elections: Annotated[ElectionRepositoryProtocol, Depends(get_election_repository)],
    voters: Annotated[VoterRepositoryProtocol, Depends(get_voter_repository)],
    ballots: Annotated[BallotRepositoryProtocol, Depends(get_ballot_repository)],
    votes: Annotated[VoteRepositoryProtocol, Depends(get_vote_repository)],
    ledger: Annotated[Optional[LedgerClient], Depends(get_optional_ledger_client)],
) -> VoteIntakeEngine:
    return VoteIntakeEngine(elections, voters, ballots, votes, ledger)


async def get_results_aggregator(
    elections: Annotated[ElectionRepositoryProtocol, Depends(get_election_repository)],
    ballots: Annotated[BallotRepositoryProtocol, Depends(get_ballot_repository)],
    votes: Annotated[VoteRepositoryProtocol, Depends(get_vote_repository)],
) -> ResultsAggregator:
    return ResultsAggregator(elections, ballots, votes)


# =============================================================================
# Resources
# =============================================================================


async def get_owned_election(
    election_id: str,
    creator_id: CurrentCreator,
    service: Annotated[ElectionService, Depends(get_election_service)],
) -> ElectionDocument:
    """The path's election, checked to belong to the caller."""
    return await service.get_owned(election_id, creator_id)


OwnedElection = Annotated[ElectionDocument, Depends(get_owned_election)]
