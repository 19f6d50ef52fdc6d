"""
Ballot endpoints.

Every save creates a new version. The question ballot is frozen once the
election leaves DRAFT; the candidate list stays editable until it ends.
Publishing marks the active version; a new save starts unpublished.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from api.deps import (
    CurrentCreator,
    OwnedElection,
    get_ballot_service,
    get_current_creator_optional,
    get_election_service,
)
from models.documents import BallotKind
from schemas.ballot import BallotCreate, BallotExport, BallotResponse
from services.ballot_service import BallotService
from services.election_service import ElectionService

router = APIRouter()

Ballots = Annotated[BallotService, Depends(get_ballot_service)]


@router.put("", response_model=BallotResponse)
async def save_ballot(
    data: BallotCreate, election: OwnedElection, creator_id: CurrentCreator, service: Ballots
) -> BallotResponse:
    ballot = await service.save_ballot(election, data, BallotKind.QUESTIONS, created_by=creator_id)
    return BallotResponse.model_validate(ballot)


@router.get("", response_model=BallotResponse)
async def get_active_ballot(
    election_id: str,
    service: Ballots,
    elections: Annotated[ElectionService, Depends(get_election_service)],
    viewer_id: Annotated[Optional[str], Depends(get_current_creator_optional)],
) -> BallotResponse:
    """Active ballot, readable by voters once the election is visible to them."""
    election = await elections.get(election_id, viewer_id)
    ballot = await service.get_active(election.id, BallotKind.QUESTIONS)
    return BallotResponse.model_validate(ballot)


@router.post("/publish", response_model=BallotResponse)
async def publish_ballot(election: OwnedElection, service: Ballots) -> BallotResponse:
    return BallotResponse.model_validate(await service.publish(election, BallotKind.QUESTIONS))


@router.post("/unpublish", response_model=BallotResponse)
async def unpublish_ballot(election: OwnedElection, service: Ballots) -> BallotResponse:
    return BallotResponse.model_validate(await service.unpublish(election, BallotKind.QUESTIONS))


@router.get("/export", response_model=BallotExport)
async def export_ballot(election: OwnedElection, service: Ballots) -> BallotExport:
    """Active question ballot as published next to the ledger contract."""
    return await service.export_for_deployment(election.id)


@router.get("/versions", response_model=list[BallotResponse])
async def list_ballot_versions(election: OwnedElection, service: Ballots) -> list[BallotResponse]:
    ballots = await service.list_versions(election.id, BallotKind.QUESTIONS)
    return [BallotResponse.model_validate(b) for b in ballots]


@router.get("/versions/{version}", response_model=BallotResponse)
async def get_ballot_version(version: int, election: OwnedElection, service: Ballots) -> BallotResponse:
    ballot = await service.get_version(election.id, version, BallotKind.QUESTIONS)
    return BallotResponse.model_validate(ballot)


@router.put("/candidates", response_model=BallotResponse)
async def save_candidates(
    data: BallotCreate, election: OwnedElection, creator_id: CurrentCreator, service: Ballots
) -> BallotResponse:
    ballot = await service.save_ballot(election, data, BallotKind.CANDIDATES, created_by=creator_id)
    return BallotResponse.model_validate(ballot)


@router.get("/candidates", response_model=BallotResponse)
async def get_candidates(
    election_id: str,
    service: Ballots,
    elections: Annotated[ElectionService, Depends(get_election_service)],
    viewer_id: Annotated[Optional[str], Depends(get_current_creator_optional)],
) -> BallotResponse:
    election = await elections.get(election_id, viewer_id)
    ballot = await service.get_active(election.id, BallotKind.CANDIDATES)
    return BallotResponse.model_validate(ballot)


@router.post("/candidates/publish", response_model=BallotResponse)
async def publish_candidates(election: OwnedElection, service: Ballots) -> BallotResponse:
    return BallotResponse.model_validate(await service.publish(election, BallotKind.CANDIDATES))


@router.post("/candidates/unpublish", response_model=BallotResponse)
async def unpublish_candidates(election: OwnedElection, service: Ballots) -> BallotResponse:
    return BallotResponse.model_validate(await service.unpublish(election, BallotKind.CANDIDATES))


@router.delete("/candidates", status_code=status.HTTP_204_NO_CONTENT)
async def delete_candidates(election: OwnedElection, service: Ballots) -> None:
    await service.delete_ballot(election, BallotKind.CANDIDATES)
