"""
Cosmos DB Election repository.

Elections are partitioned by their own id. Listing queries (per creator,
public, sweep candidates) are cross-partition.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter

from db.cosmos_session import (
    ELECTIONS_CONTAINER,
    create_item,
    delete_item,
    query_count,
    query_items,
    read_item,
    replace_item,
)
from models.documents import ElectionDocument, ElectionStatus

logger = logging.getLogger(__name__)

_DATETIME = TypeAdapter(datetime)


def to_json_time(value: datetime) -> str:
    """Serialize a datetime exactly as documents store it, for range filters."""
    return _DATETIME.dump_python(value, mode="json")


class CosmosElectionRepository:
    """Repository for election operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, election_id: str) -> Optional[ElectionDocument]:
        """Get an election by ID (point read)."""
        item = await read_item(ELECTIONS_CONTAINER, election_id, partition_key=election_id)
        if item is None:
            return None
        return ElectionDocument(**item)

    async def list_by_creator(
        self,
        creator_id: str,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[ElectionDocument]:
        """List a creator's elections, newest first."""
        where, parameters = self._creator_filter(creator_id, status)
        parameters += [
            {"name": "@offset", "value": offset},
            {"name": "@limit", "value": limit},
        ]
        query = f"""
            SELECT * FROM c
            WHERE {where}
            ORDER BY c.created_at DESC
            OFFSET @offset LIMIT @limit
        """
        results = await query_items(ELECTIONS_CONTAINER, query, parameters=parameters)
        return [ElectionDocument(**row) for row in results]

    async def count_by_creator(self, creator_id: str, status: Optional[str] = None) -> int:
        where, parameters = self._creator_filter(creator_id, status)
        return await query_count(
            ELECTIONS_CONTAINER,
            f"SELECT VALUE COUNT(1) FROM c WHERE {where}",
            parameters=parameters,
        )

    async def count_by_status(self, creator_id: str) -> dict[str, int]:
        """Get election counts per status for one creator."""
        query = """
            SELECT c.status, COUNT(1) as count FROM c
            WHERE c.creator_id = @creator_id
            GROUP BY c.status
        """
        results = await query_items(
            ELECTIONS_CONTAINER,
            query,
            parameters=[{"name": "@creator_id", "value": creator_id}],
        )
        return {row["status"]: int(row["count"]) for row in results}

    async def list_public(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[ElectionDocument]:
        """List public elections that are published (scheduled or active), soonest first."""
        clauses = ["c.is_public = true", "c.status IN (@scheduled, @active)"]
        parameters: list[dict[str, Any]] = [
            {"name": "@scheduled", "value": ElectionStatus.SCHEDULED.value},
            {"name": "@active", "value": ElectionStatus.ACTIVE.value},
            {"name": "@offset", "value": offset},
            {"name": "@limit", "value": limit},
        ]
        if category:
            clauses.append("c.category = @category")
            parameters.append({"name": "@category", "value": category})
        if search:
            clauses.append("(CONTAINS(c.title, @search, true) OR CONTAINS(c.description, @search, true))")
            parameters.append({"name": "@search", "value": search})

        query = f"""
            SELECT * FROM c
            WHERE {' AND '.join(clauses)}
            ORDER BY c.start_time ASC
            OFFSET @offset LIMIT @limit
        """
        results = await query_items(ELECTIONS_CONTAINER, query, parameters=parameters)
        return [ElectionDocument(**row) for row in results]

    async def list_due_for_activation(self, now: datetime) -> list[ElectionDocument]:
        """Scheduled elections whose start time has passed."""
        return await self._list_by_status_and_time(ElectionStatus.SCHEDULED, "start_time", now)

    async def list_due_for_completion(self, now: datetime) -> list[ElectionDocument]:
        """Active elections whose end time has passed."""
        return await self._list_by_status_and_time(ElectionStatus.ACTIVE, "end_time", now)

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, election: ElectionDocument) -> ElectionDocument:
        await create_item(ELECTIONS_CONTAINER, election.model_dump(mode="json"))
        logger.debug(f"Created election {election.id}")
        return election

    async def update(self, election: ElectionDocument) -> ElectionDocument:
        election.updated_at = datetime.now(timezone.utc)
        await replace_item(ELECTIONS_CONTAINER, election.model_dump(mode="json"))
        return election

    async def delete(self, election_id: str) -> None:
        await delete_item(ELECTIONS_CONTAINER, election_id, partition_key=election_id)
        logger.info(f"Deleted election {election_id}")

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _creator_filter(creator_id: str, status: Optional[str]) -> tuple[str, list[dict[str, Any]]]:
        where = "c.creator_id = @creator_id"
        parameters: list[dict[str, Any]] = [{"name": "@creator_id", "value": creator_id}]
        if status:
            where += " AND c.status = @status"
            parameters.append({"name": "@status", "value": status})
        return where, parameters

    async def _list_by_status_and_time(
        self, status: ElectionStatus, field: str, now: datetime
    ) -> list[ElectionDocument]:
        query = f"""
            SELECT * FROM c
            WHERE c.status = @status
              AND c.{field} <= @now
        """
        results = await query_items(
            ELECTIONS_CONTAINER,
            query,
            parameters=[
                {"name": "@status", "value": status.value},
                {"name": "@now", "value": to_json_time(now)},
            ],
        )
        return [ElectionDocument(**row) for row in results]
