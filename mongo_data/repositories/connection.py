"""
Collection provider.

Resolves a bound collection handle for an entity type from either a
RepositoryConfig or a raw connection string plus optional collection name.

Connection Management:
- One MongoClient (and one AsyncMongoClient) per connection string, created
  under a lock so concurrent first calls share it
- Clients are created once and reused across repositories
- PyMongo handles the connection pool internally; clients connect lazily
"""

import logging
import threading
from typing import Dict, Optional, Type

from pymongo import AsyncMongoClient, MongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.collection import Collection

from .config import RepositoryConfig
from .entity import Entity

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "mongo_data"


class MongoConnections:
    """Class-level client cache keyed by connection string."""

    _clients: Dict[str, MongoClient] = {}
    _async_clients: Dict[str, AsyncMongoClient] = {}
    _lock = threading.Lock()

    @classmethod
    def client(cls, uri: str, server_selection_timeout_ms: int = 30000) -> MongoClient:
        """Get the shared blocking client for a connection string."""
        with cls._lock:
            if uri not in cls._clients:
                cls._clients[uri] = MongoClient(
                    uri,
                    tz_aware=True,
                    serverSelectionTimeoutMS=server_selection_timeout_ms,
                )
            return cls._clients[uri]

    @classmethod
    def async_client(cls, uri: str, server_selection_timeout_ms: int = 30000) -> AsyncMongoClient:
        """Get the shared asyncio client for a connection string."""
        with cls._lock:
            if uri not in cls._async_clients:
                cls._async_clients[uri] = AsyncMongoClient(
                    uri,
                    tz_aware=True,
                    serverSelectionTimeoutMS=server_selection_timeout_ms,
                )
            return cls._async_clients[uri]

    @classmethod
    def reset(cls) -> None:
        """
        Close blocking clients and forget all cached clients.

        Async clients must be closed on their event loop; use aclose() there.
        """
        with cls._lock:
            clients, cls._clients = cls._clients, {}
            cls._async_clients = {}
        for client in clients.values():
            client.close()
        logger.info("Mongo connections reset")

    @classmethod
    async def aclose(cls) -> None:
        """Close and forget cached asyncio clients."""
        with cls._lock:
            clients, cls._async_clients = cls._async_clients, {}
        for client in clients.values():
            await client.close()


def _collection_name(model_cls: Type[Entity], override: Optional[str]) -> str:
    return override or model_cls.collection_name()


def get_collection(model_cls: Type[Entity], config: RepositoryConfig) -> Collection:
    """Blocking collection for an entity type from structured configuration."""
    return get_collection_from_connection_string(
        model_cls,
        config.mongodb_uri,
        config.collection,
        database=config.database,
        server_selection_timeout_ms=config.server_selection_timeout_ms,
    )


def get_collection_from_connection_string(
    model_cls: Type[Entity],
    connection_string: str,
    collection_name: Optional[str] = None,
    database: str = DEFAULT_DATABASE,
    server_selection_timeout_ms: int = 30000,
) -> Collection:
    """
    Blocking collection for an entity type from a raw connection string.

    Args:
        model_cls: Entity type (names the collection unless overridden)
        connection_string: MongoDB connection string
        collection_name: Collection name override
        database: Database used when the connection string names none

    Returns:
        pymongo Collection
    """
    client = MongoConnections.client(connection_string, server_selection_timeout_ms)
    db = client.get_default_database(default=database)
    name = _collection_name(model_cls, collection_name)
    logger.info(f"Repository bound to {db.name}.{name}")
    return db[name]


def get_async_collection(model_cls: Type[Entity], config: RepositoryConfig) -> AsyncCollection:
    """Asyncio collection for an entity type from structured configuration."""
    return get_async_collection_from_connection_string(
        model_cls,
        config.mongodb_uri,
        config.collection,
        database=config.database,
        server_selection_timeout_ms=config.server_selection_timeout_ms,
    )


def get_async_collection_from_connection_string(
    model_cls: Type[Entity],
    connection_string: str,
    collection_name: Optional[str] = None,
    database: str = DEFAULT_DATABASE,
    server_selection_timeout_ms: int = 30000,
) -> AsyncCollection:
    """Asyncio collection for an entity type from a raw connection string."""
    client = MongoConnections.async_client(connection_string, server_selection_timeout_ms)
    db = client.get_default_database(default=database)
    name = _collection_name(model_cls, collection_name)
    logger.info(f"Async repository bound to {db.name}.{name}")
    return db[name]
