"""
Query Builder

Composes filter, projection, sort key/direction and paging into one frozen
QuerySpec that every find/first/last path executes. There is a single query
representation; convenience entry points only fill in defaults.

Default ordering rules:
- no sort key: the identity field (_id) is the implicit sort key
- unpaged, unordered fetch: identity ascending
- paged or ordered fetch without a direction: descending
- first: ascending unless overridden, limit 1
- last(filter, order, descending) is first(filter, order, not descending)

Paging: skip = page_index * page_size, limit = page_size. A page index without
a page size is rejected; negative values reach the store as-is.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from pymongo import ASCENDING, DESCENDING

from .builders import resolve_field
from .entity import ID_FIELD, Entity


@dataclass(frozen=True)
class QuerySpec:
    """
    One retrievable query over a collection.

    Attributes:
        filter: MongoDB filter document ({} matches all)
        sort_key: Document key to sort on
        descending: Sort direction
        skip: Number of documents to skip
        limit: Maximum documents to return (0 = no limit)
        projection: Fields to include/exclude (None = whole document)
    """
    filter: Mapping[str, Any]
    sort_key: str = ID_FIELD
    descending: bool = False
    skip: int = 0
    limit: int = 0
    projection: Optional[Mapping[str, Any]] = None

    @property
    def sort(self) -> List[Tuple[str, int]]:
        """Sort as pymongo (key, direction) pairs."""
        return [(self.sort_key, DESCENDING if self.descending else ASCENDING)]

    def find_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for Collection.find / AsyncCollection.find."""
        kwargs: Dict[str, Any] = {
            "filter": dict(self.filter),
            "sort": self.sort,
        }
        if self.projection is not None:
            kwargs["projection"] = dict(self.projection)
        if self.skip:
            kwargs["skip"] = self.skip
        if self.limit:
            kwargs["limit"] = self.limit
        return kwargs


def build_query(
    filter: Optional[Mapping[str, Any]] = None,
    order_by: Optional[str] = None,
    page_index: Optional[int] = None,
    page_size: Optional[int] = None,
    descending: Optional[bool] = None,
    projection: Optional[Mapping[str, Any]] = None,
    model_cls: Optional[Type[Entity]] = None,
) -> QuerySpec:
    """
    Build a QuerySpec, filling in defaults.

    Args:
        filter: Filter document; None matches all
        order_by: Attribute or document key to sort on (default: identity)
        page_index: Zero-based page number; requires page_size
        page_size: Documents per page; None means unpaged
        descending: Sort direction; None applies the default rules
        projection: Projection document
        model_cls: Entity type used to resolve attribute names

    Returns:
        Frozen QuerySpec

    Raises:
        ValueError: If page_index is given without page_size
    """
    if page_index is not None and page_size is None:
        raise ValueError("page_index requires page_size")

    paged = page_size is not None
    if descending is None:
        # Directionless sorts descend, except the implicit identity ordering
        # of a plain unpaged fetch
        descending = paged or order_by is not None

    skip = 0
    limit = 0
    if paged:
        skip = (page_index or 0) * page_size
        limit = page_size

    return QuerySpec(
        filter=dict(filter or {}),
        sort_key=resolve_field(model_cls, order_by) if order_by else ID_FIELD,
        descending=descending,
        skip=skip,
        limit=limit,
        projection=projection,
    )


def first_query(
    filter: Optional[Mapping[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    model_cls: Optional[Type[Entity]] = None,
) -> QuerySpec:
    """Query for the head of the ordered result: page 0 of size 1."""
    return build_query(
        filter,
        order_by=order_by,
        page_index=0,
        page_size=1,
        descending=descending,
        model_cls=model_cls,
    )


def last_query(
    filter: Optional[Mapping[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    model_cls: Optional[Type[Entity]] = None,
) -> QuerySpec:
    """Query for the tail of the ordered result by flipping the sort and taking the head."""
    return first_query(filter, order_by, not descending, model_cls)
