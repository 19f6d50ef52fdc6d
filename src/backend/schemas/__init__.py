"""Schemas module initialization."""

from schemas.ballot import BallotCreate, BallotResponse
from schemas.election import ElectionCreate, ElectionResponse, ElectionUpdate
from schemas.ledger import DeploymentResult, ElectionPayload, TxReceipt
from schemas.results import ElectionResults
from schemas.vote import VoteResponse, VoteSubmit
from schemas.voter import VoterCreate, VoterImportReport, VoterResponse

__all__ = [
    "ElectionCreate",
    "ElectionUpdate",
    "ElectionResponse",
    "VoterCreate",
    "VoterResponse",
    "VoterImportReport",
    "BallotCreate",
    "BallotResponse",
    "VoteSubmit",
    "VoteResponse",
    "ElectionPayload",
    "TxReceipt",
    "DeploymentResult",
    "ElectionResults",
]
