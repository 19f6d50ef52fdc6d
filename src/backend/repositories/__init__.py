"""Repository modules for document storage access."""

from repositories.cosmos_ballot_repository import CosmosBallotRepository
from repositories.cosmos_election_repository import CosmosElectionRepository
from repositories.cosmos_vote_repository import CosmosVoteRepository
from repositories.cosmos_voter_repository import CosmosVoterRepository

__all__ = [
    "CosmosElectionRepository",
    "CosmosVoterRepository",
    "CosmosBallotRepository",
    "CosmosVoteRepository",
]
