"""
Election management endpoints.

Creators manage their drafts here and drive the ledger lifecycle:
deploy, start, voter registration, activation, cancellation.
"""

from typing import Annotated, Optional, Union

from fastapi import APIRouter, Depends, Query, status

from api.deps import (
    CurrentCreator,
    OwnedElection,
    get_current_creator_optional,
    get_deployment_orchestrator,
    get_election_service,
)
from models.documents import ElectionStatus
from schemas.election import (
    ElectionCreate,
    ElectionList,
    ElectionResponse,
    ElectionStats,
    ElectionUpdate,
    PublicElectionResponse,
)
from schemas.ledger import (
    DeploymentResult,
    ExternalDeployment,
    FactoryInfo,
    PreflightResult,
    RegistrationReport,
    StartResult,
)
from services.deployment_orchestrator import DeploymentOrchestrator
from services.election_service import ElectionService

router = APIRouter()

Elections = Annotated[ElectionService, Depends(get_election_service)]
Orchestrator = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]


# ============================================================================
# Collection Endpoints
# ============================================================================


@router.post("", response_model=ElectionResponse, status_code=status.HTTP_201_CREATED)
async def create_election(data: ElectionCreate, creator_id: CurrentCreator, service: Elections) -> ElectionResponse:
    """Create a draft election."""
    election = await service.create(creator_id, data)
    return ElectionResponse.model_validate(election)


@router.get("", response_model=ElectionList)
async def list_my_elections(
    creator_id: CurrentCreator,
    service: Elections,
    status_filter: Optional[ElectionStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> ElectionList:
    elections, total = await service.list_by_creator(
        creator_id,
        status=status_filter.value if status_filter else None,
        page=page,
        per_page=per_page,
    )
    return ElectionList(
        elections=[ElectionResponse.model_validate(e) for e in elections],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/stats", response_model=ElectionStats)
async def get_my_election_stats(creator_id: CurrentCreator, service: Elections) -> ElectionStats:
    return await service.stats(creator_id)


@router.get("/public", response_model=list[PublicElectionResponse])
async def list_public_elections(
    service: Elections,
    category: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> list[PublicElectionResponse]:
    """Public SCHEDULED and ACTIVE elections."""
    elections = await service.list_public(category=category, search=search, page=page, per_page=per_page)
    return [PublicElectionResponse.model_validate(e) for e in elections]


@router.get("/factory-info", response_model=FactoryInfo)
async def get_factory_info(creator_id: CurrentCreator, orchestrator: Orchestrator) -> FactoryInfo:
    """Ledger factory owner, signer address, and whether the signer may publish."""
    return await orchestrator.factory_info()


# ============================================================================
# Single Election Endpoints
# ============================================================================


@router.get("/{election_id}", response_model=Union[ElectionResponse, PublicElectionResponse])
async def get_election(
    election_id: str,
    service: Elections,
    viewer_id: Annotated[Optional[str], Depends(get_current_creator_optional)],
) -> Union[ElectionResponse, PublicElectionResponse]:
    """Full record for the creator, public summary for anyone else."""
    election = await service.get(election_id, viewer_id)
    if election.creator_id == viewer_id:
        return ElectionResponse.model_validate(election)
    return PublicElectionResponse.model_validate(election)


@router.patch("/{election_id}", response_model=ElectionResponse)
async def update_election(
    election_id: str, data: ElectionUpdate, creator_id: CurrentCreator, service: Elections
) -> ElectionResponse:
    election = await service.update(election_id, creator_id, data)
    return ElectionResponse.model_validate(election)


@router.delete("/{election_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_election(election_id: str, creator_id: CurrentCreator, service: Elections) -> None:
    await service.delete(election_id, creator_id)


@router.post("/{election_id}/cancel", response_model=ElectionResponse)
async def cancel_election(election_id: str, creator_id: CurrentCreator, service: Elections) -> ElectionResponse:
    election = await service.cancel(election_id, creator_id)
    return ElectionResponse.model_validate(election)


@router.post("/{election_id}/complete", response_model=ElectionResponse)
async def complete_election(election_id: str, creator_id: CurrentCreator, service: Elections) -> ElectionResponse:
    election = await service.complete(election_id, creator_id)
    return ElectionResponse.model_validate(election)


# ============================================================================
# Ledger Lifecycle Endpoints
# ============================================================================


@router.post("/{election_id}/preflight", response_model=PreflightResult)
async def preflight_deployment(
    election: OwnedElection,
    orchestrator: Orchestrator,
    from_address: Optional[str] = Query(None, pattern=r"^0x[0-9a-fA-F]{40}$"),
) -> PreflightResult:
    """Dry-run the publish call without spending anything."""
    return await orchestrator.preflight(election, from_address)


@router.post("/{election_id}/deploy", response_model=DeploymentResult)
async def deploy_election(election: OwnedElection, orchestrator: Orchestrator) -> DeploymentResult:
    """
    Publish the election to the ledger.

    The response reports the auto-start and voter registration follow-ups,
    which may partially fail without undoing the publish.
    """
    return await orchestrator.deploy(election)


@router.post("/{election_id}/update-deployment", response_model=DeploymentResult)
async def update_election_deployment(
    data: ExternalDeployment, election: OwnedElection, orchestrator: Orchestrator
) -> DeploymentResult:
    """Record a deployment sent from the creator's wallet, after checking it on the ledger."""
    return await orchestrator.record_external_deployment(election, data.ledger_address, data.tx_hash)


@router.post("/{election_id}/start-on-ledger", response_model=StartResult)
async def start_election_on_ledger(election: OwnedElection, orchestrator: Orchestrator) -> StartResult:
    return await orchestrator.start_on_ledger(election)


@router.post("/{election_id}/register-voters", response_model=RegistrationReport)
async def register_voters_on_ledger(election: OwnedElection, orchestrator: Orchestrator) -> RegistrationReport:
    return await orchestrator.register_voters(election)


@router.post("/{election_id}/activate", response_model=ElectionResponse)
async def activate_election(election: OwnedElection, orchestrator: Orchestrator) -> ElectionResponse:
    election = await orchestrator.activate_election(election)
    return ElectionResponse.model_validate(election)
