from datetime import datetime
from typing import Any

from bson import ObjectId

from errors import ValidationError


def parse_object_id(value: Any, label: str) -> ObjectId:
    """Parse a hex id string, raising a 400 naming the kind of id on failure."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label} ID")
    return ObjectId(value)


def serialize(value: Any) -> Any:
    """Convert a stored document into JSON-safe data.

    ObjectIds become hex strings and datetimes ISO 8601 strings. Key names
    are kept as stored, so ``_id`` stays ``_id``.
    """
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def serialize_many(docs: list) -> list:
    return [serialize(doc) for doc in docs]
