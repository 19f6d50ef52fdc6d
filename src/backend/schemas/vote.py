"""
Vote-related Pydantic schemas.

Voters authenticate every vote call with their unique id and secret.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.documents import VoteChoice, VoteStatus, VotingMethod


class VoterCredentials(BaseModel):
    voter_id: str = Field(..., min_length=1, description="The voter's unique id within the election")
    secret: str = Field(..., min_length=1)


class VoteSubmit(VoterCredentials):
    """Schema for casting a ballot through the web path."""

    choices: list[VoteChoice] = Field(default_factory=list)


class LedgerVotePrepare(VoteSubmit):
    """Request an unsigned castVote call for a client-held wallet."""

    from_address: Optional[str] = Field(None, description="Wallet that will sign; enables simulation and gas estimate")


class LedgerVoteRecord(VoteSubmit):
    """Report a broadcast castVote transaction so it can be verified and recorded."""

    tx_hash: str = Field(..., pattern=r"^0x[0-9a-fA-F]{64}$")


class VoteConfirm(BaseModel):
    tx_hash: Optional[str] = Field(None, pattern=r"^0x[0-9a-fA-F]{64}$")
    block_number: Optional[int] = Field(None, ge=0)


class VoteReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class VoteResponse(BaseModel):
    id: str
    election_id: str
    status: VoteStatus
    voting_method: VotingMethod
    vote_hash: str
    ballot_version: int
    ledger_tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    rejection_reason: Optional[str] = None
    submitted_at: datetime
    confirmed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class VoterVoteStatus(BaseModel):
    """What a voter can see about their own participation."""

    has_voted: bool
    vote: Optional[VoteResponse] = None


class PreparedLedgerCall(BaseModel):
    """Unsigned transaction fields for eth_sendTransaction."""

    to: str
    data: str
    value: str = "0x0"
    chain_id: int
    gas: Optional[int] = None
    vote_hash: str
