"""
Repository Pattern for MongoDB Operations

Generic data-access layer: one parameterized repository provides CRUD,
paged/ordered queries, counting, indexing and transient-failure retry for any
entity carrying an identity and audit timestamps.

Public API:
- Model / Entity: entity base class and the contract it satisfies
- Repository / AsyncRepository: blocking and asyncio repositories
- get_repository() / get_async_repository(): per-entity singletons from environment config
- RepositoryConfig: connection configuration
- RetryPolicy: bounded retry for transient connection failures
- build_query / combine_updates: query and update composition

Usage:
    from mongo_data.repositories import Model, get_repository

    class User(Model):
        __collection__ = "users"
        name: str

    users = get_repository(User)
    users.insert(User(name="ada"))
    first = users.first(users.filter.eq("name", "ada"))
    users.update(first.id, users.updater.set("name", "grace"))
"""

from .entity import Entity, Model, creation_time, generate_id
from .builders import FilterBuilder, IndexKeysBuilder, ProjectionBuilder, UpdateBuilder
from .query import QuerySpec, build_query, first_query, last_query
from .update import combine_updates, set_field
from .retry import MAX_ATTEMPTS, RetryPolicy
from .config import (
    RepositoryConfig,
    get_async_repository,
    get_repository,
    reset_repositories,
)
from .connection import MongoConnections
from .repository import AsyncRepository, Repository

__all__ = [
    # Entities
    "Entity",
    "Model",
    "creation_time",
    "generate_id",
    # Builders
    "FilterBuilder",
    "UpdateBuilder",
    "ProjectionBuilder",
    "IndexKeysBuilder",
    # Query / update composition
    "QuerySpec",
    "build_query",
    "first_query",
    "last_query",
    "combine_updates",
    "set_field",
    # Execution
    "RetryPolicy",
    "MAX_ATTEMPTS",
    # Repositories
    "Repository",
    "AsyncRepository",
    "get_repository",
    "get_async_repository",
    "reset_repositories",
    "RepositoryConfig",
    "MongoConnections",
]
