"""
Ballot-related Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.documents import BallotKind, BallotQuestion


class BallotCreate(BaseModel):
    """Schema for saving a ballot; each save creates a new version."""

    title: str = ""
    description: str = ""
    questions: list[BallotQuestion] = Field(..., min_length=1)


class BallotResponse(BaseModel):
    id: str
    election_id: str
    kind: BallotKind
    title: str
    description: str
    questions: list[BallotQuestion]
    version: int
    is_active: bool
    created_by: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExportedOption(BaseModel):
    option_id: str
    text: str
    value: Optional[str] = None


class ExportedQuestion(BaseModel):
    question_id: str
    question: str
    type: str
    options: list[ExportedOption]
    required: bool
    order: int


class BallotExport(BaseModel):
    """Active question ballot in the shape published alongside the ledger contract."""

    election_id: str
    version: int
    title: str
    description: str
    published_at: Optional[datetime] = None
    questions: list[ExportedQuestion]
