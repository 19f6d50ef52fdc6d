"""
Voter-related Pydantic schemas.

Voter secrets appear only in VoterEnrollment, the one-time enrollment response.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from models.documents import VoterStatus


class VoterCreate(BaseModel):
    """Schema for enrolling one voter."""

    unique_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    vote_weight: int = Field(1, ge=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class VoterImportRow(BaseModel):
    """One row of a bulk import. Fields are optional so bad rows are reported, not rejected."""

    unique_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    vote_weight: int = 1
    metadata: dict[str, Any] = Field(default_factory=dict)


class VoterBulkImport(BaseModel):
    voters: list[VoterImportRow] = Field(..., min_length=1)


class VoterResponse(BaseModel):
    """Voter as shown to the election creator (no secret)."""

    id: str
    election_id: str
    unique_id: str
    name: str
    email: str
    status: VoterStatus
    vote_weight: int
    has_voted: bool
    voted_at: Optional[datetime] = None
    ledger_registered: bool
    verified_at: Optional[datetime] = None
    created_at: datetime


class VoterEnrollment(BaseModel):
    """Enrollment result carrying the issued credentials exactly once."""

    voter: VoterResponse
    secret: str
    verification_token: str
    verification_expires_at: datetime


class ImportRowError(BaseModel):
    index: int
    error: str


class VoterImportReport(BaseModel):
    """Per-row report of a bulk import. A batch never fails as a whole."""

    success: int = 0
    failed: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    enrolled: list[VoterEnrollment] = Field(default_factory=list)


class VoterStatusUpdate(BaseModel):
    status: VoterStatus


class VoterVerify(BaseModel):
    token: str = Field(..., min_length=1)


class VoterList(BaseModel):
    voters: list[VoterResponse]
    total: int


class VoterStats(BaseModel):
    total: int = 0
    voted: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)


class VoterExportEntry(BaseModel):
    """Credential material that is safe to publish to the ledger."""

    unique_id: str
    secret_hash: str
    vote_weight: int
