"""
Cosmos DB Vote repository.

Votes are partitioned by election_id so tallying reads a single partition.
A voter may have several vote rows over time (rejected ones stay for audit),
but at most one that is not REJECTED.
"""

import logging
from typing import Optional

from db.cosmos_session import (
    VOTES_CONTAINER,
    create_item,
    delete_item,
    query_items,
    read_item,
    replace_item,
)
from models.documents import VoteDocument, VoteStatus

logger = logging.getLogger(__name__)


class CosmosVoteRepository:
    """Repository for vote operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, election_id: str, vote_id: str) -> Optional[VoteDocument]:
        item = await read_item(VOTES_CONTAINER, vote_id, partition_key=election_id)
        if item is None:
            return None
        return VoteDocument(**item)

    async def get_for_voter(self, election_id: str, voter_id: str) -> Optional[VoteDocument]:
        """Get the voter's current (non-rejected) vote, if any."""
        query = """
            SELECT * FROM c
            WHERE c.election_id = @election_id
              AND c.voter_id = @voter_id
              AND c.status != @rejected
            ORDER BY c.submitted_at DESC
        """
        results = await query_items(
            VOTES_CONTAINER,
            query,
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@voter_id", "value": voter_id},
                {"name": "@rejected", "value": VoteStatus.REJECTED.value},
            ],
            partition_key=election_id,
            max_items=1,
        )
        if not results:
            return None
        return VoteDocument(**results[0])

    async def get_by_tx_hash(self, election_id: str, tx_hash: str) -> Optional[VoteDocument]:
        query = """
            SELECT * FROM c
            WHERE c.election_id = @election_id
              AND c.ledger_tx_hash = @tx_hash
        """
        results = await query_items(
            VOTES_CONTAINER,
            query,
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@tx_hash", "value": tx_hash.lower()},
            ],
            partition_key=election_id,
            max_items=1,
        )
        if not results:
            return None
        return VoteDocument(**results[0])

    async def list_confirmed(self, election_id: str) -> list[VoteDocument]:
        """All CONFIRMED votes of an election, the only input to tallying."""
        query = """
            SELECT * FROM c
            WHERE c.election_id = @election_id
              AND c.status = @confirmed
        """
        results = await query_items(
            VOTES_CONTAINER,
            query,
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@confirmed", "value": VoteStatus.CONFIRMED.value},
            ],
            partition_key=election_id,
        )
        return [VoteDocument(**row) for row in results]

    async def count_by_status(self, election_id: str) -> dict[str, int]:
        query = """
            SELECT c.status, COUNT(1) as count FROM c
            WHERE c.election_id = @election_id
            GROUP BY c.status
        """
        results = await query_items(
            VOTES_CONTAINER,
            query,
            parameters=[{"name": "@election_id", "value": election_id}],
            partition_key=election_id,
        )
        return {row["status"]: int(row["count"]) for row in results}

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, vote: VoteDocument) -> VoteDocument:
        await create_item(VOTES_CONTAINER, vote.model_dump(mode="json"))
        logger.debug(f"Created vote for election {vote.election_id}")
        return vote

    async def update(self, vote: VoteDocument) -> VoteDocument:
        await replace_item(VOTES_CONTAINER, vote.model_dump(mode="json"))
        return vote

    async def delete_by_election(self, election_id: str) -> int:
        rows = await query_items(
            VOTES_CONTAINER,
            "SELECT c.id FROM c WHERE c.election_id = @election_id",
            parameters=[{"name": "@election_id", "value": election_id}],
            partition_key=election_id,
        )
        for row in rows:
            await delete_item(VOTES_CONTAINER, row["id"], partition_key=election_id)
        return len(rows)
