"""
Definition builders bound to an entity type.

Each builder turns attribute names into document keys (``id`` -> ``_id``,
``created_at`` -> ``createdAt``) and returns plain MongoDB documents, so
builder output and hand-written filter/update dicts are interchangeable:

    users.filter.eq("name", "ada")          == {"name": "ada"}
    users.updater.set("name", "grace")      == {"$set": {"name": "grace"}}
    users.index_keys.ascending("createdAt") == [("createdAt", 1)]
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from pymongo import ASCENDING, DESCENDING

from .entity import ID_FIELD, Entity, to_store_id


def resolve_field(model_cls: Optional[Type[Entity]], field: str) -> str:
    """Resolve an attribute name to a document key for the given entity type."""
    if model_cls is None:
        return "_id" if field == "id" else field
    return model_cls.document_key(field)


class _Builder:
    def __init__(self, model_cls: Optional[Type[Entity]] = None):
        self.model_cls = model_cls

    def _key(self, field: str) -> str:
        return resolve_field(self.model_cls, field)


class FilterBuilder(_Builder):
    """Builds filter documents."""

    @property
    def empty(self) -> Dict[str, Any]:
        """Match-all filter."""
        return {}

    def _value(self, key: str, value: Any) -> Any:
        if key == ID_FIELD:
            if isinstance(value, (list, tuple, set)):
                return [to_store_id(v) for v in value]
            if isinstance(value, str):
                return to_store_id(value)
        return value

    def _op(self, op: str, field: str, value: Any) -> Dict[str, Any]:
        key = self._key(field)
        return {key: {op: self._value(key, value)}}

    def id(self, id: str) -> Dict[str, Any]:
        """Identity-equality filter."""
        return {ID_FIELD: to_store_id(id)}

    def eq(self, field: str, value: Any) -> Dict[str, Any]:
        key = self._key(field)
        return {key: self._value(key, value)}

    def ne(self, field: str, value: Any) -> Dict[str, Any]:
        return self._op("$ne", field, value)

    def gt(self, field: str, value: Any) -> Dict[str, Any]:
        return self._op("$gt", field, value)

    def gte(self, field: str, value: Any) -> Dict[str, Any]:
        return self._op("$gte", field, value)

    def lt(self, field: str, value: Any) -> Dict[str, Any]:
        return self._op("$lt", field, value)

    def lte(self, field: str, value: Any) -> Dict[str, Any]:
        return self._op("$lte", field, value)

    def in_(self, field: str, values: Iterable[Any]) -> Dict[str, Any]:
        return self._op("$in", field, list(values))

    def nin(self, field: str, values: Iterable[Any]) -> Dict[str, Any]:
        return self._op("$nin", field, list(values))

    def exists(self, field: str, exists: bool = True) -> Dict[str, Any]:
        return {self._key(field): {"$exists": exists}}

    def regex(self, field: str, pattern: str, options: str = "") -> Dict[str, Any]:
        condition: Dict[str, Any] = {"$regex": pattern}
        if options:
            condition["$options"] = options
        return {self._key(field): condition}

    def and_(self, *filters: Mapping[str, Any]) -> Dict[str, Any]:
        """Conjunction; an empty conjunction matches everything."""
        parts = [dict(f) for f in filters if f]
        if not parts:
            return {}
        if len(parts) == 1:
            return parts[0]
        return {"$and": parts}

    def or_(self, *filters: Mapping[str, Any]) -> Dict[str, Any]:
        return {"$or": [dict(f) for f in filters]}

    def not_(self, field: str, condition: Mapping[str, Any]) -> Dict[str, Any]:
        return {self._key(field): {"$not": dict(condition)}}


class UpdateBuilder(_Builder):
    """Builds update operator documents."""

    def set(self, field: str, value: Any) -> Dict[str, Any]:
        return {"$set": {self._key(field): value}}

    def unset(self, field: str) -> Dict[str, Any]:
        return {"$unset": {self._key(field): ""}}

    def inc(self, field: str, amount: Any = 1) -> Dict[str, Any]:
        return {"$inc": {self._key(field): amount}}

    def mul(self, field: str, factor: Any) -> Dict[str, Any]:
        return {"$mul": {self._key(field): factor}}

    def min(self, field: str, value: Any) -> Dict[str, Any]:
        return {"$min": {self._key(field): value}}

    def max(self, field: str, value: Any) -> Dict[str, Any]:
        return {"$max": {self._key(field): value}}

    def push(self, field: str, value: Any) -> Dict[str, Any]:
        return {"$push": {self._key(field): value}}

    def push_each(self, field: str, values: Iterable[Any]) -> Dict[str, Any]:
        return {"$push": {self._key(field): {"$each": list(values)}}}

    def add_to_set(self, field: str, value: Any) -> Dict[str, Any]:
        return {"$addToSet": {self._key(field): value}}

    def pull(self, field: str, value: Any) -> Dict[str, Any]:
        return {"$pull": {self._key(field): value}}

    def rename(self, field: str, new_name: str) -> Dict[str, Any]:
        return {"$rename": {self._key(field): self._key(new_name)}}

    def current_date(self, field: str) -> Dict[str, Any]:
        """Set a field to the server's current time."""
        return {"$currentDate": {self._key(field): True}}


class ProjectionBuilder(_Builder):
    """Builds projection documents."""

    def include(self, *fields: str) -> Dict[str, int]:
        return {self._key(f): 1 for f in fields}

    def exclude(self, *fields: str) -> Dict[str, int]:
        return {self._key(f): 0 for f in fields}

    def combine(self, *projections: Mapping[str, Any]) -> Dict[str, Any]:
        combined: Dict[str, Any] = {}
        for projection in projections:
            combined.update(projection)
        return combined


class IndexKeysBuilder(_Builder):
    """Builds index key lists."""

    def ascending(self, field: str) -> List[Tuple[str, Any]]:
        return [(self._key(field), ASCENDING)]

    def descending(self, field: str) -> List[Tuple[str, Any]]:
        return [(self._key(field), DESCENDING)]

    def text(self, field: str) -> List[Tuple[str, Any]]:
        return [(self._key(field), "text")]

    def hashed(self, field: str) -> List[Tuple[str, Any]]:
        return [(self._key(field), "hashed")]

    def combine(self, *keys: List[Tuple[str, Any]]) -> List[Tuple[str, Any]]:
        """Compound index keys, in the given order."""
        combined: List[Tuple[str, Any]] = []
        for part in keys:
            combined.extend(part)
        return combined
