"""Helpers for ObjectId references stored in documents."""

from typing import Any, Optional

from bson import ObjectId


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Convert ``value`` to an ObjectId, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def as_reference(value: Any) -> Any:
    """
    Canonical form of a reference used in query filters.

    Valid ids become ObjectIds. Anything else is returned unchanged, so a
    malformed id still yields a filter that simply matches nothing.
    """
    oid = to_object_id(value)
    return oid if oid is not None else value


def same_reference(left: Any, right: Any) -> bool:
    """Compare two references regardless of ObjectId/str representation."""
    if left is None or right is None:
        return False
    return str(left) == str(right)
