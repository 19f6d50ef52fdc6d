"""
Cosmos DB Voter repository.

Voters are partitioned by election_id. The per-election uniqueness of
unique_id and email_hash is enforced by the container's unique key policy.
The has_voted flag is only ever flipped through claim_vote, a conditional
patch that succeeds for exactly one caller.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from db.cosmos_session import (
    VOTERS_CONTAINER,
    create_item,
    delete_item,
    patch_item,
    query_items,
    read_item,
    replace_item,
)
from models.documents import VoterDocument

logger = logging.getLogger(__name__)


class CosmosVoterRepository:
    """Repository for voter operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, election_id: str, voter_id: str) -> Optional[VoterDocument]:
        item = await read_item(VOTERS_CONTAINER, voter_id, partition_key=election_id)
        if item is None:
            return None
        return VoterDocument(**item)

    async def get_by_unique_id(self, election_id: str, unique_id: str) -> Optional[VoterDocument]:
        return await self._get_by_field(election_id, "unique_id", unique_id)

    async def get_by_email_hash(self, election_id: str, email_hash: str) -> Optional[VoterDocument]:
        return await self._get_by_field(election_id, "email_hash", email_hash)

    async def get_by_verification_token(self, election_id: str, token_hash: str) -> Optional[VoterDocument]:
        return await self._get_by_field(election_id, "verification_token_hash", token_hash)

    async def list_by_election(
        self,
        election_id: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[VoterDocument]:
        """
        List voters of an election.

        Search matches name or unique_id; emails are encrypted and not searchable.
        """
        clauses = ["c.election_id = @election_id"]
        parameters: list[dict[str, Any]] = [{"name": "@election_id", "value": election_id}]
        if status:
            clauses.append("c.status = @status")
            parameters.append({"name": "@status", "value": status})
        if search:
            clauses.append("(CONTAINS(c.name, @search, true) OR CONTAINS(c.unique_id, @search, true))")
            parameters.append({"name": "@search", "value": search})

        query = f"SELECT * FROM c WHERE {' AND '.join(clauses)} ORDER BY c.created_at ASC"
        if limit is not None:
            query += " OFFSET @offset LIMIT @limit"
            parameters += [
                {"name": "@offset", "value": offset},
                {"name": "@limit", "value": limit},
            ]

        results = await query_items(VOTERS_CONTAINER, query, parameters=parameters, partition_key=election_id)
        return [VoterDocument(**row) for row in results]

    async def count_by_status(self, election_id: str) -> dict[str, int]:
        """Get voter counts per status within an election."""
        query = """
            SELECT c.status, COUNT(1) as count FROM c
            WHERE c.election_id = @election_id
            GROUP BY c.status
        """
        results = await query_items(
            VOTERS_CONTAINER,
            query,
            parameters=[{"name": "@election_id", "value": election_id}],
            partition_key=election_id,
        )
        return {row["status"]: int(row["count"]) for row in results}

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, voter: VoterDocument) -> VoterDocument:
        """Create a voter. A duplicate unique_id or email raises ConflictError."""
        await create_item(VOTERS_CONTAINER, voter.model_dump(mode="json"))
        return voter

    async def update(self, voter: VoterDocument) -> VoterDocument:
        voter.updated_at = datetime.now(timezone.utc)
        await replace_item(VOTERS_CONTAINER, voter.model_dump(mode="json"))
        return voter

    async def claim_vote(self, election_id: str, voter_id: str) -> bool:
        """
        Atomically flip has_voted from false to true.

        Returns:
            True for the single caller that performed the flip, False otherwise
        """
        now = datetime.now(timezone.utc).isoformat()
        result = await patch_item(
            VOTERS_CONTAINER,
            voter_id,
            election_id,
            [
                {"op": "set", "path": "/has_voted", "value": True},
                {"op": "set", "path": "/voted_at", "value": now},
                {"op": "set", "path": "/updated_at", "value": now},
            ],
            filter_predicate="FROM c WHERE c.has_voted = false",
        )
        return result is not None

    async def release_vote(self, election_id: str, voter_id: str) -> None:
        """Reset has_voted after a vote is rejected."""
        await patch_item(
            VOTERS_CONTAINER,
            voter_id,
            election_id,
            [
                {"op": "set", "path": "/has_voted", "value": False},
                {"op": "set", "path": "/voted_at", "value": None},
                {"op": "set", "path": "/updated_at", "value": datetime.now(timezone.utc).isoformat()},
            ],
        )

    async def mark_registered(self, election_id: str, voter_id: str) -> None:
        """Record that the voter exists on the ledger without touching voting state."""
        await patch_item(
            VOTERS_CONTAINER,
            voter_id,
            election_id,
            [
                {"op": "set", "path": "/ledger_registered", "value": True},
                {"op": "set", "path": "/updated_at", "value": datetime.now(timezone.utc).isoformat()},
            ],
        )

    async def delete(self, election_id: str, voter_id: str) -> None:
        await delete_item(VOTERS_CONTAINER, voter_id, partition_key=election_id)

    async def delete_by_election(self, election_id: str) -> int:
        """Delete every voter in an election partition. Returns the number deleted."""
        rows = await query_items(
            VOTERS_CONTAINER,
            "SELECT c.id FROM c WHERE c.election_id = @election_id",
            parameters=[{"name": "@election_id", "value": election_id}],
            partition_key=election_id,
        )
        for row in rows:
            await delete_item(VOTERS_CONTAINER, row["id"], partition_key=election_id)
        logger.info(f"Deleted {len(rows)} voters for election {election_id}")
        return len(rows)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _get_by_field(self, election_id: str, field: str, value: str) -> Optional[VoterDocument]:
        results = await query_items(
            VOTERS_CONTAINER,
            f"SELECT * FROM c WHERE c.election_id = @election_id AND c.{field} = @value",
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@value", "value": value},
            ],
            partition_key=election_id,
            max_items=1,
        )
        if not results:
            return None
        return VoterDocument(**results[0])
