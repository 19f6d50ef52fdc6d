"""
Voting and results endpoints.

Voters authenticate each call with their unique id and secret:
- POST /{election_id}/vote       web ballot, stored PENDING
- POST /{election_id}            ballot cast on the ledger by the service signer
- POST /{election_id}/prepare    unsigned castVote call for the voter's wallet
- POST /{election_id}/record     record a wallet-cast vote after on-ledger checks

Creators confirm or reject web votes and read results.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from api.deps import CurrentCreator, OwnedElection, get_results_aggregator, get_vote_intake
from schemas.results import ElectionResults
from schemas.vote import (
    LedgerVotePrepare,
    LedgerVoteRecord,
    PreparedLedgerCall,
    VoteConfirm,
    VoteReject,
    VoterCredentials,
    VoteResponse,
    VoterVoteStatus,
    VoteSubmit,
)
from services.results_aggregator import ResultsAggregator
from services.vote_intake import VoteIntakeEngine

router = APIRouter()

Intake = Annotated[VoteIntakeEngine, Depends(get_vote_intake)]
Results = Annotated[ResultsAggregator, Depends(get_results_aggregator)]


# ============================================================================
# Casting
# ============================================================================


@router.post("/{election_id}/vote", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def submit_vote(election_id: str, data: VoteSubmit, intake: Intake) -> VoteResponse:
    vote = await intake.submit_web_vote(election_id, data)
    return VoteResponse.model_validate(vote)


@router.post("/{election_id}/prepare", response_model=PreparedLedgerCall)
async def prepare_ledger_vote(election_id: str, data: LedgerVotePrepare, intake: Intake) -> PreparedLedgerCall:
    return await intake.prepare_ledger_vote(election_id, data)


@router.post("/{election_id}/record", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def record_ledger_vote(election_id: str, data: LedgerVoteRecord, intake: Intake) -> VoteResponse:
    vote = await intake.record_ledger_vote(election_id, data)
    return VoteResponse.model_validate(vote)


@router.post("/{election_id}/status", response_model=VoterVoteStatus)
async def get_vote_status(election_id: str, data: VoterCredentials, intake: Intake) -> VoterVoteStatus:
    """A voter's own participation, authenticated by their credentials."""
    return await intake.get_vote_status(election_id, data)


@router.post("/{election_id}", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def submit_ledger_vote(election_id: str, data: VoteSubmit, intake: Intake) -> VoteResponse:
    vote = await intake.submit_ledger_vote(election_id, data)
    return VoteResponse.model_validate(vote)


# ============================================================================
# Results
# ============================================================================


@router.get("/{election_id}/results", response_model=ElectionResults)
async def get_results(election_id: str, creator_id: CurrentCreator, results: Results) -> ElectionResults:
    return await results.get_results(election_id, creator_id)


@router.get("/{election_id}/results/public", response_model=ElectionResults)
async def get_public_results(election_id: str, results: Results) -> ElectionResults:
    return await results.get_public_results(election_id)


# ============================================================================
# Administration
# ============================================================================


@router.post("/{election_id}/{vote_id}/confirm", response_model=VoteResponse)
async def confirm_vote(vote_id: str, data: VoteConfirm, election: OwnedElection, intake: Intake) -> VoteResponse:
    vote = await intake.confirm_vote(election, vote_id, data)
    return VoteResponse.model_validate(vote)


@router.post("/{election_id}/{vote_id}/reject", response_model=VoteResponse)
async def reject_vote(vote_id: str, data: VoteReject, election: OwnedElection, intake: Intake) -> VoteResponse:
    vote = await intake.reject_vote(election, vote_id, data.reason)
    return VoteResponse.model_validate(vote)
