"""Document models module."""

from models.documents import (
    BallotDocument,
    BallotKind,
    BallotQuestion,
    ElectionDocument,
    ElectionStatus,
    QuestionType,
    VoteChoice,
    VoteDocument,
    VoterDocument,
    VoterStatus,
    VoteStatus,
)

__all__ = [
    "ElectionDocument",
    "ElectionStatus",
    "VoterDocument",
    "VoterStatus",
    "BallotDocument",
    "BallotKind",
    "BallotQuestion",
    "QuestionType",
    "VoteDocument",
    "VoteChoice",
    "VoteStatus",
]
