"""
Update Combinator

Merges field-level update operations into a single atomic update document and
always appends the server-side "modified now" timestamp.
"""

from typing import Any, Dict, Mapping, Optional, Type

from .builders import UpdateBuilder
from .entity import MODIFIED_AT_FIELD, Entity

CURRENT_DATE = "$currentDate"


def combine_updates(*updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Combine update documents into one.

    Operators are merged in the order given; a later operation on the same
    operator and field wins. ``$currentDate`` on ``modifiedAt`` is always
    present and always the last operation, even with zero updates, so every
    acknowledged write advances the modification timestamp.

    Args:
        *updates: Update documents, e.g. {"$set": {"name": "x"}}

    Returns:
        Combined update document
    """
    combined: Dict[str, Dict[str, Any]] = {}
    for update in updates:
        for operator, fields in update.items():
            combined.setdefault(operator, {}).update(fields)

    timestamp = combined.pop(CURRENT_DATE, {})
    timestamp.pop(MODIFIED_AT_FIELD, None)
    timestamp[MODIFIED_AT_FIELD] = True
    combined[CURRENT_DATE] = timestamp
    return combined


def set_field(field: str, value: Any, model_cls: Optional[Type[Entity]] = None) -> Dict[str, Any]:
    """Single-field set operation, resolved against the entity's document keys."""
    return UpdateBuilder(model_cls).set(field, value)
