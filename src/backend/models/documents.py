"""
Cosmos DB document models for Tally.

These Pydantic models define the document structure stored in Cosmos DB.
Ballot questions and vote choices are embedded in their parent documents.

Container Strategy:
- elections: Election configuration and lifecycle state (partition: /id)
- voters: Enrolled voters with encrypted credentials (partition: /election_id)
- ballots: Versioned ballot definitions (partition: /election_id)
- votes: Submitted votes (partition: /election_id)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Enums
# ============================================================================


class ElectionStatus(str, Enum):
    """Election lifecycle status."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"  # Published on the ledger, waiting for start time
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class VoterStatus(str, Enum):
    """Voter eligibility status."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class VoteStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class VotingMethod(str, Enum):
    WEB = "web"
    LEDGER = "ledger"  # Client wallet or server-relayed castVote


class QuestionType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"
    TEXT = "text"
    RANKING = "ranking"


class BallotKind(str, Enum):
    QUESTIONS = "questions"
    CANDIDATES = "candidates"  # Candidate lists may be edited after publish


# ============================================================================
# Base Document Model
# ============================================================================


class CosmosDocument(BaseModel):
    """
    Base class for Cosmos DB documents.

    All documents have:
    - id: Unique identifier
    - _ts: Timestamp (managed by Cosmos DB)
    - _etag: ETag for optimistic concurrency (managed by Cosmos DB)
    """

    id: str = Field(default_factory=lambda: str(uuid4()))

    class Config:
        # Allow extra fields for Cosmos DB system properties (_ts, _etag, etc.)
        extra = "allow"
        use_enum_values = True


# ============================================================================
# Election Documents
# ============================================================================


class ElectionDocument(CosmosDocument):
    """
    Election document stored in the 'elections' container.

    Partition key: /id
    Invariant: start_time < end_time.
    """

    creator_id: str
    title: str
    description: str = ""
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    max_voters_count: int = 0

    status: ElectionStatus = ElectionStatus.DRAFT

    # Results visibility
    real_time_results: bool = False
    results_release_time: Optional[datetime] = None

    # Visibility metadata
    is_public: bool = False
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    # Voter-facing messages, mirrored onto the ledger at publish time
    allow_voter_registration: bool = False
    login_instructions: str = ""
    vote_confirmation: str = ""
    after_election_message: str = ""

    # Ledger mirror
    ledger_address: Optional[str] = None
    ledger_tx_hash: Optional[str] = None
    deployed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None

    # Timestamps
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator(
        "start_time", "end_time", "results_release_time", "deployed_at", "started_at", mode="after"
    )
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


# ============================================================================
# Voter Documents
# ============================================================================


class VoterDocument(CosmosDocument):
    """
    Voter document stored in the 'voters' container.

    Partition key: /election_id
    Unique keys: /unique_id, /email_hash (scoped to the partition)
    The raw secret is never stored; only its ciphertext and keyed hash.
    """

    election_id: str
    unique_id: str
    name: str
    email: str  # enc:v1: ciphertext
    email_hash: str
    secret: str  # enc:v1: ciphertext
    secret_hash: str

    status: VoterStatus = VoterStatus.PENDING
    vote_weight: int = 1
    has_voted: bool = False
    voted_at: Optional[datetime] = None
    ledger_registered: bool = False

    verification_token_hash: Optional[str] = None
    verification_token_expires_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Ballot Documents
# ============================================================================


class QuestionOption(BaseModel):
    """Embedded option within a ballot question."""

    option_id: str
    text: str
    value: Optional[str] = None


class QuestionValidation(BaseModel):
    min_selections: Optional[int] = None
    max_selections: Optional[int] = None
    max_length: Optional[int] = None


class BallotQuestion(BaseModel):
    """Embedded question within BallotDocument."""

    question_id: str
    question: str
    type: QuestionType
    options: list[QuestionOption] = Field(default_factory=list)
    required: bool = False
    order: int = 0
    validation: QuestionValidation = Field(default_factory=QuestionValidation)

    class Config:
        use_enum_values = True


class BallotDocument(CosmosDocument):
    """
    Ballot document stored in the 'ballots' container.

    Partition key: /election_id
    Exactly one version per (election, kind) has is_active = True.
    Version numbers are unique per kind (unique key /kind + /version).
    """

    election_id: str
    kind: BallotKind = BallotKind.QUESTIONS
    title: str = ""
    description: str = ""
    questions: list[BallotQuestion] = Field(default_factory=list)
    version: int = 1
    is_active: bool = True
    created_by: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    def ordered_questions(self) -> list[BallotQuestion]:
        return sorted(self.questions, key=lambda q: q.order)


# ============================================================================
# Vote Documents
# ============================================================================


class VoteChoice(BaseModel):
    """One answered question. Which field is used depends on the question type."""

    question_id: str
    selected_options: list[str] = Field(default_factory=list)
    text_answer: Optional[str] = None
    ranking_order: list[str] = Field(default_factory=list)


class VoteDocument(CosmosDocument):
    """
    Vote document stored in the 'votes' container.

    Partition key: /election_id
    vote_weight is copied from the voter at submission time.
    """

    election_id: str
    voter_id: str
    ballot_id: str
    ballot_version: int
    choices: list[VoteChoice] = Field(default_factory=list)
    vote_weight: int = 1
    vote_hash: str

    status: VoteStatus = VoteStatus.PENDING
    voting_method: VotingMethod = VotingMethod.WEB
    ledger_tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    rejection_reason: Optional[str] = None

    submitted_at: datetime = Field(default_factory=utc_now)
    confirmed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
