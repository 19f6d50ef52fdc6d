"""
Cosmos DB Ballot repository.

Ballot versions live side by side in the election's partition; the
service layer keeps exactly one version per kind active.
"""

import logging
from datetime import datetime
from typing import Optional

from db.cosmos_session import (
    BALLOTS_CONTAINER,
    create_item,
    delete_item,
    patch_item,
    query_items,
)
from models.documents import BallotDocument, BallotKind

logger = logging.getLogger(__name__)


class CosmosBallotRepository:
    """Repository for ballot operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_active(self, election_id: str, kind: str = BallotKind.QUESTIONS) -> Optional[BallotDocument]:
        """Get the active ballot version for an election."""
        query = """
            SELECT * FROM c
            WHERE c.election_id = @election_id
              AND c.kind = @kind
              AND c.is_active = true
            ORDER BY c.version DESC
        """
        results = await query_items(
            BALLOTS_CONTAINER,
            query,
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@kind", "value": str(BallotKind(kind).value)},
            ],
            partition_key=election_id,
            max_items=1,
        )
        if not results:
            return None
        return BallotDocument(**results[0])

    async def get_version(
        self, election_id: str, version: int, kind: str = BallotKind.QUESTIONS
    ) -> Optional[BallotDocument]:
        query = """
            SELECT * FROM c
            WHERE c.election_id = @election_id
              AND c.kind = @kind
              AND c.version = @version
        """
        results = await query_items(
            BALLOTS_CONTAINER,
            query,
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@kind", "value": str(BallotKind(kind).value)},
                {"name": "@version", "value": version},
            ],
            partition_key=election_id,
            max_items=1,
        )
        if not results:
            return None
        return BallotDocument(**results[0])

    async def list_versions(self, election_id: str, kind: str = BallotKind.QUESTIONS) -> list[BallotDocument]:
        """All versions, newest first."""
        query = """
            SELECT * FROM c
            WHERE c.election_id = @election_id
              AND c.kind = @kind
            ORDER BY c.version DESC
        """
        results = await query_items(
            BALLOTS_CONTAINER,
            query,
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@kind", "value": str(BallotKind(kind).value)},
            ],
            partition_key=election_id,
        )
        return [BallotDocument(**row) for row in results]

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, ballot: BallotDocument) -> BallotDocument:
        await create_item(BALLOTS_CONTAINER, ballot.model_dump(mode="json"))
        logger.debug(f"Created ballot v{ballot.version} for election {ballot.election_id}")
        return ballot

    async def deactivate(self, election_id: str, ballot_id: str) -> None:
        await patch_item(
            BALLOTS_CONTAINER,
            ballot_id,
            election_id,
            [{"op": "set", "path": "/is_active", "value": False}],
        )

    async def set_published(self, election_id: str, ballot_id: str, published_at: Optional[datetime]) -> None:
        await patch_item(
            BALLOTS_CONTAINER,
            ballot_id,
            election_id,
            [{"op": "set", "path": "/published_at", "value": published_at.isoformat() if published_at else None}],
        )

    async def delete_versions(self, election_id: str, kind: str = BallotKind.QUESTIONS) -> int:
        """Delete every version of one ballot kind."""
        rows = await query_items(
            BALLOTS_CONTAINER,
            "SELECT c.id FROM c WHERE c.election_id = @election_id AND c.kind = @kind",
            parameters=[
                {"name": "@election_id", "value": election_id},
                {"name": "@kind", "value": str(BallotKind(kind).value)},
            ],
            partition_key=election_id,
        )
        for row in rows:
            await delete_item(BALLOTS_CONTAINER, row["id"], partition_key=election_id)
        logger.info(f"Deleted {len(rows)} {BallotKind(kind).value} ballot versions for election {election_id}")
        return len(rows)

    async def delete_by_election(self, election_id: str) -> int:
        rows = await query_items(
            BALLOTS_CONTAINER,
            "SELECT c.id FROM c WHERE c.election_id = @election_id",
            parameters=[{"name": "@election_id", "value": election_id}],
            partition_key=election_id,
        )
        for row in rows:
            await delete_item(BALLOTS_CONTAINER, row["id"], partition_key=election_id)
        return len(rows)
