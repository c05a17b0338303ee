"""
Repository Configuration and Factory

Provides configuration loading and factory functions that hand out one
repository per entity type, sharing connection pools.
"""

import os
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional, Type

from mongo_data.common.config import Config, int_env

from .entity import Entity

if TYPE_CHECKING:
    from .repository import AsyncRepository, Repository

logger = logging.getLogger(__name__)


@dataclass
class RepositoryConfig:
    """
    Configuration for repository initialization.

    Loaded from environment variables with sensible defaults.
    """
    # Connection string (required)
    mongodb_uri: str

    # Used when the connection string names no database
    database: str = "mongo_data"

    # Overrides the collection name derived from the entity type
    collection: Optional[str] = None

    server_selection_timeout_ms: int = 30000

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - MONGODB_URI (required): MongoDB connection string
        - MONGODB_DATABASE: Database name when the URI has none
        - MONGODB_COLLECTION: Collection name override
        - MONGODB_SERVER_SELECTION_TIMEOUT_MS: Client server selection timeout

        Returns:
            RepositoryConfig instance

        Raises:
            ValueError: If MONGODB_URI is not set
        """
        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            raise ValueError("MONGODB_URI environment variable is required")

        return cls(
            mongodb_uri=mongodb_uri,
            database=os.getenv("MONGODB_DATABASE", "mongo_data"),
            collection=os.getenv("MONGODB_COLLECTION") or None,
            server_selection_timeout_ms=int_env("MONGODB_SERVER_SELECTION_TIMEOUT_MS", 30000),
        )

    @classmethod
    def from_settings(cls) -> "RepositoryConfig":
        """
        Build configuration from the values Config loaded at import time (.env included).

        Raises:
            ValueError: If MONGODB_URI is not configured
        """
        Config.validate()
        return cls(
            mongodb_uri=Config.MONGODB_URI,
            database=Config.MONGODB_DATABASE,
            collection=Config.MONGODB_COLLECTION,
            server_selection_timeout_ms=Config.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
        )


# One repository per entity type (connection pools are shared underneath)
_repositories: Dict[Type[Entity], "Repository"] = {}
_async_repositories: Dict[Type[Entity], "AsyncRepository"] = {}


def get_repository(model_cls: Type[Entity], config: Optional[RepositoryConfig] = None) -> "Repository":
    """
    Get the blocking repository for an entity type.

    Args:
        model_cls: Entity type
        config: Explicit configuration (default: loaded from environment)

    Returns:
        Repository bound to the entity's collection

    Raises:
        ValueError: If MongoDB URI is not configured
    """
    if model_cls not in _repositories:
        from .repository import Repository
        _repositories[model_cls] = Repository.from_config(
            model_cls, config or RepositoryConfig.from_env()
        )
        logger.info(f"Initialized repository for {model_cls.__name__}")

    return _repositories[model_cls]


def get_async_repository(
    model_cls: Type[Entity], config: Optional[RepositoryConfig] = None
) -> "AsyncRepository":
    """Get the asyncio repository for an entity type."""
    if model_cls not in _async_repositories:
        from .repository import AsyncRepository
        _async_repositories[model_cls] = AsyncRepository.from_config(
            model_cls, config or RepositoryConfig.from_env()
        )
        logger.info(f"Initialized async repository for {model_cls.__name__}")

    return _async_repositories[model_cls]


def reset_repositories() -> None:
    """
    Reset repository singletons and close pooled blocking clients.

    Used for testing or when configuration changes.
    """
    from .connection import MongoConnections

    _repositories.clear()
    _async_repositories.clear()
    MongoConnections.reset()
    logger.info("Repository singletons reset")
