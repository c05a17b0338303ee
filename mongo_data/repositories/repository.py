"""
Repository Facade

Generic CRUD, paging, counting and index management for any entity type.
Repository is the blocking form over a pymongo Collection; AsyncRepository is
the asyncio form over an AsyncCollection. Both expose the same operation
names with the same semantics.

Every public operation that touches the store is composed from the query
builder and update combinator and submitted through the retry policy exactly
once, at its outermost layer.

Error Handling:
- Fail-fast: store errors propagate unchanged (after retries for transient ones)
- Not found is None, never an exception
- Unacknowledged writes return False
"""

from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from pymongo import IndexModel

from mongo_data.common.logger import get_logger

from .builders import FilterBuilder, IndexKeysBuilder, ProjectionBuilder, UpdateBuilder
from .config import RepositoryConfig
from .connection import (
    get_async_collection,
    get_async_collection_from_connection_string,
    get_collection,
    get_collection_from_connection_string,
)
from .entity import Entity
from .query import QuerySpec, build_query, first_query
from .retry import RetryPolicy
from .update import combine_updates, set_field

TEntity = TypeVar("TEntity", bound=Entity)

# Target of an update: identity, entity, or filter document
UpdateTarget = Union[str, Entity, Mapping[str, Any]]
IndexKeys = Union[str, List[Tuple[str, Any]]]


class _RepositoryBase(Generic[TEntity]):
    """Query composition shared by the blocking and asyncio repositories."""

    def __init__(
        self,
        model_cls: Type[TEntity],
        collection: Any,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Args:
            model_cls: Entity type stored in the collection
            collection: Bound pymongo collection handle
            retry_policy: Retry policy (default: 3 attempts, transient failures only)
        """
        self._model_cls = model_cls
        self._collection = collection
        self._logger = get_logger(__name__, collection=collection.name)
        self._retry = retry_policy or RetryPolicy(logger=self._logger)

        self.filter = FilterBuilder(model_cls)
        self.updater = UpdateBuilder(model_cls)
        self.project = ProjectionBuilder(model_cls)
        self.index_keys = IndexKeysBuilder(model_cls)

    @property
    def collection(self) -> Any:
        """The bound collection handle."""
        return self._collection

    @property
    def model_cls(self) -> Type[TEntity]:
        return self._model_cls

    def _query(
        self,
        filter: Optional[Mapping[str, Any]],
        order_by: Optional[str],
        page_index: Optional[int],
        page_size: Optional[int],
        descending: Optional[bool],
        projection: Optional[Mapping[str, Any]],
    ) -> QuerySpec:
        spec = build_query(
            filter,
            order_by=order_by,
            page_index=page_index,
            page_size=page_size,
            descending=descending,
            projection=projection,
            model_cls=self._model_cls,
        )
        self._logger.debug(f"query {spec}")
        return spec

    def _target_filter(self, target: UpdateTarget) -> Dict[str, Any]:
        if isinstance(target, str):
            return self.filter.id(target)
        if isinstance(target, Mapping):
            return dict(target)
        return self.filter.id(target.id)

    def _hydrate(
        self, document: Optional[Mapping[str, Any]], partial: bool = False
    ) -> Optional[TEntity]:
        if document is None:
            return None
        if partial:
            # Projected documents may lack required fields
            return self._model_cls.from_partial_document(document)
        return self._model_cls.from_document(document)

    @staticmethod
    def _index_models(keys: Iterable[IndexKeys]) -> List[IndexModel]:
        return [IndexModel(k) for k in keys]


class Repository(_RepositoryBase[TEntity]):
    """
    Blocking repository over a pymongo Collection.

    Usage:
        class User(Model):
            name: str

        users = Repository.from_connection_string(User, "mongodb://localhost/app")
        users.insert(User(name="ada"))
        page = list(users.find(users.filter.eq("name", "ada"), page_index=0, page_size=20))
        users.update_field(page[0], "name", "grace")
    """

    @classmethod
    def from_config(
        cls, model_cls: Type[TEntity], config: Optional[RepositoryConfig] = None
    ) -> "Repository[TEntity]":
        """Bind to the collection described by a RepositoryConfig (default: from environment)."""
        return cls(model_cls, get_collection(model_cls, config or RepositoryConfig.from_env()))

    @classmethod
    def from_connection_string(
        cls,
        model_cls: Type[TEntity],
        connection_string: str,
        collection_name: Optional[str] = None,
    ) -> "Repository[TEntity]":
        """Bind to a collection from a raw connection string and optional collection name."""
        return cls(
            model_cls,
            get_collection_from_connection_string(model_cls, connection_string, collection_name),
        )

    # ===== Delete =====

    def delete(self, id: str) -> bool:
        """Delete by identity. Returns the store's acknowledgment."""
        return self._retry.execute(
            lambda: self._collection.delete_one(self.filter.id(id)).acknowledged,
            "delete",
        )

    def delete_entity(self, entity: TEntity) -> bool:
        """Delete an entity by its identity."""
        return self.delete(entity.id)

    def delete_where(self, filter: Mapping[str, Any]) -> bool:
        """Delete every entity matching the filter."""
        return self._retry.execute(
            lambda: self._collection.delete_many(dict(filter)).acknowledged,
            "delete_where",
        )

    def delete_all(self, filter: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Delete all entities, or all matching the filter.

        ⚠️ With no filter this clears the collection.
        """
        if not filter:
            self._logger.warning("Deleting all documents")
        return self._retry.execute(
            lambda: self._collection.delete_many(dict(filter or {})).acknowledged,
            "delete_all",
        )

    # ===== Find =====

    def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        page_index: Optional[int] = None,
        page_size: Optional[int] = None,
        descending: Optional[bool] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[TEntity]:
        """
        Find entities matching the filter.

        The query and its first batch are fetched under the retry policy;
        remaining documents stream lazily from the cursor. Call again to
        re-execute; an interrupted stream is not restarted.

        Args:
            filter: Filter document (None matches all)
            order_by: Attribute to sort on (default: identity)
            page_index: Zero-based page number (requires page_size)
            page_size: Page size; None returns all matches
            descending: Sort direction (default: see query module)
            projection: Projection document; matches are then hydrated
                without validation and only the projected fields are set

        Returns:
            Iterator over matching entities

        Raises:
            ValueError: If page_index is given without page_size
        """
        spec = self._query(filter, order_by, page_index, page_size, descending, projection)

        def open_cursor():
            cursor = self._collection.find(**spec.find_kwargs())
            return cursor, next(cursor, None)

        cursor, head = self._retry.execute(open_cursor, "find")
        return self._stream(cursor, head, partial=projection is not None)

    def _stream(
        self,
        cursor: Iterator[Mapping[str, Any]],
        head: Optional[Mapping[str, Any]],
        partial: bool,
    ) -> Iterator[TEntity]:
        if head is None:
            return
        yield self._hydrate(head, partial)
        for document in cursor:
            yield self._hydrate(document, partial)

    def find_all(
        self,
        order_by: Optional[str] = None,
        page_index: Optional[int] = None,
        page_size: Optional[int] = None,
        descending: Optional[bool] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[TEntity]:
        """Find with a match-all filter."""
        return self.find(None, order_by, page_index, page_size, descending, projection)

    # ===== First / Last / Get =====

    def _first(self, spec: QuerySpec) -> Optional[TEntity]:
        return self._hydrate(next(self._collection.find(**spec.find_kwargs()), None))

    def first(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[TEntity]:
        """Head of the ordered result (identity ascending by default), or None."""
        spec = first_query(filter, order_by, descending, self._model_cls)
        return self._retry.execute(lambda: self._first(spec), "first")

    def last(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[TEntity]:
        """Tail of the ordered result: first() with the direction flipped."""
        return self.first(filter, order_by, not descending)

    def get(self, id: str) -> Optional[TEntity]:
        """Entity with the given identity, or None."""
        return self.first(self.filter.id(id))

    # ===== Insert =====

    def insert(self, entity: TEntity) -> bool:
        """Insert one entity as constructed (no timestamps are touched)."""
        document = entity.to_document()
        return self._retry.execute(
            lambda: self._collection.insert_one(document).acknowledged,
            "insert",
        )

    def insert_many(self, entities: Iterable[TEntity]) -> bool:
        """Insert entities in one bulk write. An empty batch is a no-op."""
        documents = [e.to_document() for e in entities]
        if not documents:
            return True
        return self._retry.execute(
            lambda: self._collection.insert_many(documents).acknowledged,
            "insert_many",
        )

    # ===== Replace =====

    def replace(self, entity: TEntity) -> bool:
        """Overwrite the stored document with the entity, keyed by identity."""
        document = entity.to_document()
        return self._retry.execute(
            lambda: self._collection.replace_one(self.filter.id(entity.id), document).acknowledged,
            "replace",
        )

    def replace_many(self, entities: Iterable[TEntity]) -> bool:
        """
        Replace entities one at a time, in order.

        Not atomic: each replace is its own write, and concurrent writers
        may interleave between them.

        Returns:
            True if every replace was acknowledged
        """
        acknowledged = True
        for entity in entities:
            acknowledged = self.replace(entity) and acknowledged
        return acknowledged

    # ===== Update =====

    def update_where(self, filter: Mapping[str, Any], *updates: Mapping[str, Any]) -> bool:
        """
        Apply the combined updates to every entity matching the filter.

        modifiedAt is always set to the server's current time, so calling
        with no updates touches the matching entities.
        """
        update = combine_updates(*updates)
        return self._retry.execute(
            lambda: self._collection.update_many(dict(filter), update).acknowledged,
            "update",
        )

    def update(self, id: str, *updates: Mapping[str, Any]) -> bool:
        """Update the entity with the given identity."""
        return self.update_where(self.filter.id(id), *updates)

    def update_entity(self, entity: TEntity, *updates: Mapping[str, Any]) -> bool:
        """Update an entity by its identity."""
        return self.update(entity.id, *updates)

    def update_field(self, target: UpdateTarget, field: str, value: Any) -> bool:
        """Set a single field on an identity, entity or filter target."""
        return self.update_where(
            self._target_filter(target), set_field(field, value, self._model_cls)
        )

    # ===== Counting =====

    def _count(self, filter: Optional[Mapping[str, Any]]) -> int:
        return self._collection.count_documents(dict(filter or {}))

    def any(self, filter: Optional[Mapping[str, Any]] = None) -> bool:
        """True if count(filter) > 0 (a full count, not a short-circuit)."""
        return self._retry.execute(lambda: self._count(filter) > 0, "any")

    def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Exact number of entities matching the filter."""
        return self._retry.execute(lambda: self._count(filter), "count")

    def estimated_count(self, **options: Any) -> int:
        """Approximate collection size from metadata (options e.g. maxTimeMS)."""
        return self._retry.execute(
            lambda: self._collection.estimated_document_count(**options),
            "estimated_count",
        )

    # ===== Indexing =====

    def create_index(self, keys: IndexKeys, **options: Any) -> str:
        """Create one index. Returns its name."""
        name = self._retry.execute(
            lambda: self._collection.create_index(keys, **options),
            "create_index",
        )
        self._logger.info(f"Created index: {name}")
        return name

    def create_indexes(self, *keys: IndexKeys) -> List[str]:
        """Create several indexes in one command. Returns their names."""
        models = self._index_models(keys)
        names = self._retry.execute(
            lambda: self._collection.create_indexes(models),
            "create_indexes",
        )
        self._logger.info(f"Created indexes: {', '.join(names)}")
        return names

    def drop_index(self, name: str) -> None:
        """Drop one index by name."""
        self._retry.execute(lambda: self._collection.drop_index(name), "drop_index")
        self._logger.info(f"Dropped index: {name}")

    def drop_all_indexes(self) -> None:
        """Drop every index except the one on _id."""
        self._retry.execute(lambda: self._collection.drop_indexes(), "drop_all_indexes")
        self._logger.info("Dropped all indexes")


class AsyncRepository(_RepositoryBase[TEntity]):
    """
    Asyncio repository over a pymongo AsyncCollection.

    Same operations as Repository; each is a coroutine that suspends only
    while awaiting the store. Find returns a list.
    """

    @classmethod
    def from_config(
        cls, model_cls: Type[TEntity], config: Optional[RepositoryConfig] = None
    ) -> "AsyncRepository[TEntity]":
        """Bind to the collection described by a RepositoryConfig (default: from environment)."""
        return cls(model_cls, get_async_collection(model_cls, config or RepositoryConfig.from_env()))

    @classmethod
    def from_connection_string(
        cls,
        model_cls: Type[TEntity],
        connection_string: str,
        collection_name: Optional[str] = None,
    ) -> "AsyncRepository[TEntity]":
        """Bind to a collection from a raw connection string and optional collection name."""
        return cls(
            model_cls,
            get_async_collection_from_connection_string(model_cls, connection_string, collection_name),
        )

    # ===== Delete =====

    async def delete(self, id: str) -> bool:
        async def operation():
            result = await self._collection.delete_one(self.filter.id(id))
            return result.acknowledged

        return await self._retry.execute_async(operation, "delete")

    async def delete_entity(self, entity: TEntity) -> bool:
        return await self.delete(entity.id)

    async def delete_where(self, filter: Mapping[str, Any]) -> bool:
        async def operation():
            result = await self._collection.delete_many(dict(filter))
            return result.acknowledged

        return await self._retry.execute_async(operation, "delete_where")

    async def delete_all(self, filter: Optional[Mapping[str, Any]] = None) -> bool:
        if not filter:
            self._logger.warning("Deleting all documents")

        async def operation():
            result = await self._collection.delete_many(dict(filter or {}))
            return result.acknowledged

        return await self._retry.execute_async(operation, "delete_all")

    # ===== Find =====

    async def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        page_index: Optional[int] = None,
        page_size: Optional[int] = None,
        descending: Optional[bool] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> List[TEntity]:
        """Find entities matching the filter; the whole result is fetched under retry."""
        spec = self._query(filter, order_by, page_index, page_size, descending, projection)

        async def operation():
            return await self._collection.find(**spec.find_kwargs()).to_list(length=None)

        documents = await self._retry.execute_async(operation, "find")
        partial = projection is not None
        return [self._hydrate(d, partial) for d in documents]

    async def find_all(
        self,
        order_by: Optional[str] = None,
        page_index: Optional[int] = None,
        page_size: Optional[int] = None,
        descending: Optional[bool] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> List[TEntity]:
        return await self.find(None, order_by, page_index, page_size, descending, projection)

    # ===== First / Last / Get =====

    async def _first(self, spec: QuerySpec) -> Optional[TEntity]:
        documents = await self._collection.find(**spec.find_kwargs()).to_list(length=1)
        return self._hydrate(documents[0] if documents else None)

    async def first(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[TEntity]:
        spec = first_query(filter, order_by, descending, self._model_cls)
        return await self._retry.execute_async(lambda: self._first(spec), "first")

    async def last(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[TEntity]:
        return await self.first(filter, order_by, not descending)

    async def get(self, id: str) -> Optional[TEntity]:
        return await self.first(self.filter.id(id))

    # ===== Insert =====

    async def insert(self, entity: TEntity) -> bool:
        document = entity.to_document()

        async def operation():
            result = await self._collection.insert_one(document)
            return result.acknowledged

        return await self._retry.execute_async(operation, "insert")

    async def insert_many(self, entities: Iterable[TEntity]) -> bool:
        documents = [e.to_document() for e in entities]
        if not documents:
            return True

        async def operation():
            result = await self._collection.insert_many(documents)
            return result.acknowledged

        return await self._retry.execute_async(operation, "insert_many")

    # ===== Replace =====

    async def replace(self, entity: TEntity) -> bool:
        document = entity.to_document()

        async def operation():
            result = await self._collection.replace_one(self.filter.id(entity.id), document)
            return result.acknowledged

        return await self._retry.execute_async(operation, "replace")

    async def replace_many(self, entities: Iterable[TEntity]) -> bool:
        """Replace entities sequentially, awaiting each before the next."""
        acknowledged = True
        for entity in entities:
            acknowledged = await self.replace(entity) and acknowledged
        return acknowledged

    # ===== Update =====

    async def update_where(self, filter: Mapping[str, Any], *updates: Mapping[str, Any]) -> bool:
        update = combine_updates(*updates)

        async def operation():
            result = await self._collection.update_many(dict(filter), update)
            return result.acknowledged

        return await self._retry.execute_async(operation, "update")

    async def update(self, id: str, *updates: Mapping[str, Any]) -> bool:
        return await self.update_where(self.filter.id(id), *updates)

    async def update_entity(self, entity: TEntity, *updates: Mapping[str, Any]) -> bool:
        return await self.update(entity.id, *updates)

    async def update_field(self, target: UpdateTarget, field: str, value: Any) -> bool:
        return await self.update_where(
            self._target_filter(target), set_field(field, value, self._model_cls)
        )

    # ===== Counting =====

    async def _count(self, filter: Optional[Mapping[str, Any]]) -> int:
        return await self._collection.count_documents(dict(filter or {}))

    async def any(self, filter: Optional[Mapping[str, Any]] = None) -> bool:
        async def operation():
            return await self._count(filter) > 0

        return await self._retry.execute_async(operation, "any")

    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        return await self._retry.execute_async(lambda: self._count(filter), "count")

    async def estimated_count(self, **options: Any) -> int:
        return await self._retry.execute_async(
            lambda: self._collection.estimated_document_count(**options),
            "estimated_count",
        )

    # ===== Indexing =====

    async def create_index(self, keys: IndexKeys, **options: Any) -> str:
        name = await self._retry.execute_async(
            lambda: self._collection.create_index(keys, **options),
            "create_index",
        )
        self._logger.info(f"Created index: {name}")
        return name

    async def create_indexes(self, *keys: IndexKeys) -> List[str]:
        models = self._index_models(keys)
        names = await self._retry.execute_async(
            lambda: self._collection.create_indexes(models),
            "create_indexes",
        )
        self._logger.info(f"Created indexes: {', '.join(names)}")
        return names

    async def drop_index(self, name: str) -> None:
        await self._retry.execute_async(lambda: self._collection.drop_index(name), "drop_index")
        self._logger.info(f"Dropped index: {name}")

    async def drop_all_indexes(self) -> None:
        await self._retry.execute_async(lambda: self._collection.drop_indexes(), "drop_all_indexes")
        self._logger.info("Dropped all indexes")
