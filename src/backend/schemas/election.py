"""
Election-related Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from models.documents import ElectionStatus


class ElectionBase(BaseModel):
    """Fields a creator controls."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    max_voters_count: int = Field(0, ge=0)
    real_time_results: bool = False
    results_release_time: Optional[datetime] = None
    is_public: bool = False
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    allow_voter_registration: bool = False
    login_instructions: str = ""
    vote_confirmation: str = ""
    after_election_message: str = ""


class ElectionCreate(ElectionBase):
    """Schema for creating a draft election."""


class ElectionUpdate(BaseModel):
    """Partial update of a draft election."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    max_voters_count: Optional[int] = Field(None, ge=0)
    real_time_results: Optional[bool] = None
    results_release_time: Optional[datetime] = None
    is_public: Optional[bool] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    allow_voter_registration: Optional[bool] = None
    login_instructions: Optional[str] = None
    vote_confirmation: Optional[str] = None
    after_election_message: Optional[str] = None

    @model_validator(mode="after")
    def check_not_empty(self) -> "ElectionUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ElectionResponse(ElectionBase):
    """Election as returned to its creator."""

    id: str
    creator_id: str
    status: ElectionStatus
    ledger_address: Optional[str] = None
    ledger_tx_hash: Optional[str] = None
    deployed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PublicElectionResponse(BaseModel):
    """Election summary safe to show to anyone."""

    id: str
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    timezone: str
    status: ElectionStatus
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    ledger_address: Optional[str] = None

    model_config = {"from_attributes": True}


class ElectionList(BaseModel):
    """Paginated list of a creator's elections."""

    elections: list[ElectionResponse]
    total: int
    page: int
    per_page: int


class ElectionStats(BaseModel):
    """Per-status election counts for one creator."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
