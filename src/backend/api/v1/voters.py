"""
Voter management endpoints.

Enrollment returns each voter's secret exactly once; no other endpoint
exposes it.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from api.deps import OwnedElection, get_credential_registry
from models.documents import VoterStatus
from schemas.voter import (
    VoterBulkImport,
    VoterCreate,
    VoterEnrollment,
    VoterExportEntry,
    VoterImportReport,
    VoterList,
    VoterResponse,
    VoterStats,
    VoterStatusUpdate,
    VoterVerify,
)
from services.credential_service import VoterCredentialRegistry

router = APIRouter()

Registry = Annotated[VoterCredentialRegistry, Depends(get_credential_registry)]


@router.post("", response_model=VoterEnrollment, status_code=status.HTTP_201_CREATED)
async def add_voter(data: VoterCreate, election: OwnedElection, registry: Registry) -> VoterEnrollment:
    return await registry.enroll(election, data)


@router.post("/bulk", response_model=VoterImportReport)
async def import_voters(data: VoterBulkImport, election: OwnedElection, registry: Registry) -> VoterImportReport:
    """Enroll many voters; rows that fail are reported, the rest are kept."""
    return await registry.bulk_enroll(election, data.voters)


@router.get("", response_model=VoterList)
async def list_voters(
    election: OwnedElection,
    registry: Registry,
    status_filter: Optional[VoterStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
) -> VoterList:
    status_value = status_filter.value if status_filter else None
    voters = await registry.list_voters(
        election.id, status=status_value, search=search, page=page, per_page=per_page
    )
    return VoterList(voters=voters, total=await registry.count_voters(election.id, status_value))


@router.get("/stats", response_model=VoterStats)
async def get_voter_stats(election: OwnedElection, registry: Registry) -> VoterStats:
    return await registry.stats(election.id)


@router.get("/export", response_model=list[VoterExportEntry])
async def export_voters(election: OwnedElection, registry: Registry) -> list[VoterExportEntry]:
    """Eligible voters with hashed credentials, as registered on the ledger."""
    return await registry.export_for_deployment(election.id)


@router.post("/verify", response_model=VoterResponse)
async def verify_voter(election_id: str, data: VoterVerify, registry: Registry) -> VoterResponse:
    """Redeem an emailed verification token. No creator login needed."""
    voter = await registry.verify_token(election_id, data.token)
    return registry.to_response(voter)


@router.patch("/{voter_id}/status", response_model=VoterResponse)
async def update_voter_status(
    voter_id: str, data: VoterStatusUpdate, election: OwnedElection, registry: Registry
) -> VoterResponse:
    voter = await registry.update_status(election, voter_id, data.status)
    return registry.to_response(voter)


@router.delete("/{voter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_voter(voter_id: str, election: OwnedElection, registry: Registry) -> None:
    await registry.delete_voter(election, voter_id)
