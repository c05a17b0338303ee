"""
Entity Contract

Defines the minimal shape every stored object must satisfy (identity plus
audit timestamps) and a pydantic base model that implements it.

Document layout:
    {"_id": ObjectId(...), "modifiedAt": datetime, ...}

The creation instant is read from the identity; "createdAt" is stored only
for entities whose creation time was assigned explicitly.

The identity is a string in Python and a BSON ObjectId in the store whenever
the string is a valid ObjectId; caller-assigned identities that are not
ObjectIds are stored as-is.
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, Mapping, Optional, Protocol, Type, TypeVar, Union, runtime_checkable

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

ID_FIELD = "_id"
CREATED_AT_FIELD = "createdAt"
MODIFIED_AT_FIELD = "modifiedAt"


def generate_id() -> str:
    """Generate a new time-ordered identity."""
    return str(ObjectId())


def to_store_id(id: Union[str, ObjectId]) -> Union[str, ObjectId]:
    """Convert an identity to the value stored under _id."""
    if isinstance(id, ObjectId):
        return id
    if ObjectId.is_valid(id):
        return ObjectId(id)
    return id


def creation_time(id: str) -> Optional[datetime]:
    """
    Derive the creation instant encoded in an identity.

    Returns:
        UTC datetime (second precision) for ObjectId identities, None otherwise
    """
    if not ObjectId.is_valid(id):
        return None
    return ObjectId(id).generation_time


@runtime_checkable
class Entity(Protocol):
    """
    Capabilities a repository needs from its entity type.

    Any class providing these members can be stored; inheritance from
    Model is a convenience, not a requirement.
    """

    id: str
    modified_at: Optional[datetime]

    @property
    def created_on(self) -> Optional[datetime]:
        ...

    def re_id(self) -> None:
        ...

    def to_document(self) -> Dict[str, Any]:
        ...

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Entity":
        ...

    @classmethod
    def from_partial_document(cls, document: Mapping[str, Any]) -> "Entity":
        ...

    @classmethod
    def collection_name(cls) -> str:
        ...

    @classmethod
    def document_key(cls, field: str) -> str:
        ...


TModel = TypeVar("TModel", bound="Model")


class Model(BaseModel):
    """
    Base class for stored entities.

    Attributes:
        id: Identity, generated at construction unless supplied
        created_at: Explicitly assigned creation instant, None otherwise
            (read created_on for the effective value)
        modified_at: Set by the store on every update, None until the first one

    Subclasses may set ``__collection__`` to override the collection name,
    which otherwise defaults to the class name.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        validate_assignment=False,
        arbitrary_types_allowed=True,
    )

    __collection__: ClassVar[Optional[str]] = None

    id: str = Field(default_factory=generate_id, alias=ID_FIELD)
    created_at: Optional[datetime] = Field(default=None, alias=CREATED_AT_FIELD)
    modified_at: Optional[datetime] = Field(default=None, alias=MODIFIED_AT_FIELD)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, ObjectId):
            return str(value)
        return value

    @property
    def object_id(self) -> ObjectId:
        """Identity as an ObjectId (raises InvalidId for non-ObjectId identities)."""
        return ObjectId(self.id)

    @property
    def created_on(self) -> Optional[datetime]:
        """Creation instant: the assigned value, else the one encoded in the identity."""
        return self.created_at or creation_time(self.id)

    def re_id(self) -> None:
        """
        Assign a fresh identity, e.g. before inserting a clone.

        The clone is a new record, so an assigned creation instant is dropped
        (created_on follows the new identity) and the modification timestamp
        is cleared.
        """
        self.id = generate_id()
        self.created_at = None
        self.modified_at = None

    def to_document(self) -> Dict[str, Any]:
        """
        Serialize to a MongoDB document keyed by field aliases.

        createdAt is written only when assigned; otherwise it is derived from
        the stored identity on read.
        """
        document = self.model_dump(by_alias=True)
        document[ID_FIELD] = to_store_id(self.id)
        if self.created_at is None:
            del document[CREATED_AT_FIELD]
        return document

    @classmethod
    def from_document(cls: Type[TModel], document: Mapping[str, Any]) -> TModel:
        """Hydrate an entity from a MongoDB document."""
        return cls.model_validate(dict(document))

    @classmethod
    def from_partial_document(cls: Type[TModel], document: Mapping[str, Any]) -> TModel:
        """
        Hydrate an entity from a projected document without validation.

        Only the loaded fields are listed in ``model_fields_set``; fields the
        projection left out hold their defaults, and required ones are unset.
        """
        values = dict(document)
        if isinstance(values.get(ID_FIELD), ObjectId):
            values[ID_FIELD] = str(values[ID_FIELD])
        return cls.model_construct(**values)

    @classmethod
    def collection_name(cls) -> str:
        """Collection name for this entity type."""
        return cls.__collection__ or cls.__name__

    @classmethod
    def document_key(cls, field: str) -> str:
        """
        Resolve an attribute name to its document key.

        Dotted paths resolve their first segment only; unknown names and
        names that are already document keys pass through unchanged.
        """
        head, dot, rest = field.partition(".")
        info = cls.model_fields.get(head)
        if info is not None and info.alias:
            head = info.alias
        return f"{head}{dot}{rest}"
