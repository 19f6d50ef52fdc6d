"""
Azure Cosmos DB session management for document storage.

Elections live in their own partition; voters, ballots and votes are
partitioned by election_id so every per-election query stays in one partition.
Uses the async SDK with DefaultAzureCredential (RBAC) or a connection string
for the local emulator.
"""

import logging
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from core.config import settings
from core.exceptions import ConfigurationError, ConflictError

logger = logging.getLogger(__name__)

# Container names
ELECTIONS_CONTAINER = "elections"
VOTERS_CONTAINER = "voters"
BALLOTS_CONTAINER = "ballots"
VOTES_CONTAINER = "votes"

# Container definitions: partition key path and unique key paths
CONTAINER_DEFINITIONS: dict[str, dict[str, Any]] = {
    ELECTIONS_CONTAINER: {"partition_key": "/id", "unique_keys": []},
    VOTERS_CONTAINER: {"partition_key": "/election_id", "unique_keys": [["/unique_id"], ["/email_hash"]]},
    BALLOTS_CONTAINER: {"partition_key": "/election_id", "unique_keys": [["/kind", "/version"]]},
    VOTES_CONTAINER: {"partition_key": "/election_id", "unique_keys": []},
}

# Global client instances (lazy-initialized)
_cosmos_client: CosmosClient | None = None
_database: DatabaseProxy | None = None
_credential: DefaultAzureCredential | None = None


async def get_cosmos_client() -> CosmosClient:
    """
    Get or create the Cosmos DB client.

    Supports two authentication modes:
    1. Connection string (for local development with Cosmos DB Emulator)
    2. DefaultAzureCredential/RBAC (for Azure deployment)
    """
    global _cosmos_client, _credential

    if _cosmos_client is None:
        if settings.AZURE_COSMOS_CONNECTION_STRING:
            # Format: AccountEndpoint=https://...;AccountKey=...;
            conn_parts = dict(
                part.split("=", 1) for part in settings.AZURE_COSMOS_CONNECTION_STRING.split(";") if "=" in part
            )
            endpoint = conn_parts.get("AccountEndpoint", "")
            key = conn_parts.get("AccountKey", "")

            if not endpoint or not key:
                raise ConfigurationError("AZURE_COSMOS_CONNECTION_STRING must contain AccountEndpoint and AccountKey")

            # Emulator uses a self-signed cert
            _cosmos_client = CosmosClient(
                url=endpoint,
                credential=key,
                connection_verify=not settings.AZURE_COSMOS_DISABLE_SSL,
            )
            logger.info(f"Initialized Cosmos DB client for {endpoint} (connection string mode)")
        else:
            if not settings.AZURE_COSMOS_ENDPOINT:
                raise ConfigurationError("Either AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING must be set")

            _credential = DefaultAzureCredential()
            _cosmos_client = CosmosClient(
                url=settings.AZURE_COSMOS_ENDPOINT,
                credential=_credential,
            )
            logger.info(f"Initialized Cosmos DB client for {settings.AZURE_COSMOS_ENDPOINT} (RBAC mode)")

    return _cosmos_client


async def get_database() -> DatabaseProxy:
    """Get the Cosmos DB database proxy."""
    global _database

    if _database is None:
        client = await get_cosmos_client()
        _database = client.get_database_client(settings.AZURE_COSMOS_DATABASE)
        logger.info(f"Connected to database: {settings.AZURE_COSMOS_DATABASE}")

    return _database


async def get_container(container_name: str) -> ContainerProxy:
    """Get a container proxy for the specified container."""
    database = await get_database()
    return database.get_container_client(container_name)


async def ensure_containers() -> None:
    """
    Create the database and containers if they do not exist.

    Unique key policies can only be set at creation time, so this must run
    before the first voter is written.
    """
    client = await get_cosmos_client()
    database = await client.create_database_if_not_exists(id=settings.AZURE_COSMOS_DATABASE)
    for name, definition in CONTAINER_DEFINITIONS.items():
        unique_key_policy = None
        if definition["unique_keys"]:
            unique_key_policy = {"uniqueKeys": [{"paths": paths} for paths in definition["unique_keys"]]}
        await database.create_container_if_not_exists(
            id=name,
            partition_key=PartitionKey(path=definition["partition_key"]),
            unique_key_policy=unique_key_policy,
        )
        logger.info(f"Ensured container {name}")


async def close_cosmos() -> None:
    """
    Close Cosmos DB connections.

    Should be called during application shutdown.
    """
    global _cosmos_client, _database, _credential

    if _cosmos_client is not None:
        await _cosmos_client.close()
        _cosmos_client = None
        _database = None
        logger.info("Closed Cosmos DB client")

    if _credential is not None:
        await _credential.close()
        _credential = None


# ============================================================================
# Utility Functions for Common Operations
# ============================================================================


async def create_item(container_name: str, item: dict[str, Any]) -> dict[str, Any]:
    """
    Create a new item in the specified container.

    Raises:
        ConflictError: If the id or a unique key already exists in the partition
    """
    container = await get_container(container_name)
    try:
        return await container.create_item(body=item)
    except CosmosResourceExistsError as e:
        raise ConflictError(f"Duplicate {container_name} item") from e


async def read_item(
    container_name: str,
    item_id: str,
    partition_key: str,
) -> dict[str, Any] | None:
    """Read an item by ID and partition key. Returns None if not found."""
    container = await get_container(container_name)
    try:
        return await container.read_item(item=item_id, partition_key=partition_key)
    except CosmosResourceNotFoundError:
        return None


async def replace_item(container_name: str, item: dict[str, Any]) -> dict[str, Any]:
    """Replace an existing item."""
    container = await get_container(container_name)
    return await container.replace_item(item=item["id"], body=item)


async def patch_item(
    container_name: str,
    item_id: str,
    partition_key: str,
    operations: list[dict[str, Any]],
    filter_predicate: str | None = None,
) -> dict[str, Any] | None:
    """
    Apply partial-document patch operations in a single server-side write.

    With a filter_predicate the patch only applies when the stored document
    matches it; a failed precondition returns None instead of raising.

    Example:
        claimed = await patch_item(
            'voters', voter_id, election_id,
            [{'op': 'set', 'path': '/has_voted', 'value': True}],
            filter_predicate='FROM c WHERE c.has_voted = false',
        )
    """
    container = await get_container(container_name)
    kwargs: dict[str, Any] = {}
    if filter_predicate:
        kwargs["filter_predicate"] = filter_predicate
    try:
        return await container.patch_item(
            item=item_id,
            partition_key=partition_key,
            patch_operations=operations,
            **kwargs,
        )
    except CosmosAccessConditionFailedError:
        return None


async def delete_item(
    container_name: str,
    item_id: str,
    partition_key: str,
) -> None:
    """Delete an item by ID and partition key."""
    container = await get_container(container_name)
    await container.delete_item(item=item_id, partition_key=partition_key)


async def query_items(
    container_name: str,
    query: str,
    parameters: list[dict[str, Any]] | None = None,
    partition_key: str | None = None,
    max_items: int | None = None,
) -> list[dict[str, Any]]:
    """
    Query items using SQL-like syntax.

    Example:
        results = await query_items(
            'voters',
            'SELECT * FROM c WHERE c.unique_id = @unique_id',
            parameters=[{'name': '@unique_id', 'value': 'V-001'}],
            partition_key=election_id,
        )
    """
    container = await get_container(container_name)

    # Cross-partition queries are enabled automatically when no partition_key is given
    query_kwargs: dict[str, Any] = {
        "query": query,
    }

    if parameters:
        query_kwargs["parameters"] = parameters

    if partition_key:
        query_kwargs["partition_key"] = partition_key

    if max_items:
        query_kwargs["max_item_count"] = max_items

    items: list[dict[str, Any]] = []
    async for item in container.query_items(**query_kwargs):
        items.append(item)
        if max_items and len(items) >= max_items:
            break

    return items


async def query_count(
    container_name: str,
    query: str,
    parameters: list[dict[str, Any]] | None = None,
    partition_key: str | None = None,
) -> int:
    """Execute a SELECT VALUE COUNT(1) query and return the integer result."""
    results = await query_items(container_name, query, parameters, partition_key)
    if results:
        result = results[0]
        if isinstance(result, (int, float)):
            return int(result)
    return 0
