"""
JSON serialization utilities for documents.

Documents are stored as JSON text. This module handles values that are not
natively JSON-serializable, such as UUIDs, datetimes, decimals and pydantic
models.

Example:
    >>> from docstore.serialization import json_dumps, json_loads
    >>> from uuid import uuid4
    >>>
    >>> data = {"owner": uuid4()}
    >>> json_str = json_dumps(data)
    >>> parsed = json_loads(json_str)
"""

import json
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class DocumentJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for document bodies.

    Supports:
    - UUID objects: string representation
    - datetime and date objects: ISO 8601 string
    - Decimal objects: string representation (no precision loss)
    - pydantic models: ``model_dump(mode="json")``
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """Serialize object to JSON text using DocumentJSONEncoder."""
    return json.dumps(obj, cls=DocumentJSONEncoder)


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize JSON text.

    Note: UUID, datetime and Decimal values come back as strings; converting
    them is the application's responsibility.
    """
    return json.loads(s)


def to_document(record: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    """
    Normalise a record into a plain, mutable document dict.

    Args:
        record: A mapping or a pydantic model instance

    Returns:
        Shallow copy of the record as a dict

    Raises:
        TypeError: If the record is neither a mapping nor a pydantic model
    """
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    if isinstance(record, Mapping):
        return dict(record)
    raise TypeError(f"Documents must be mappings or pydantic models, got {type(record).__name__}")


__all__ = [
    "DocumentJSONEncoder",
    "json_dumps",
    "json_loads",
    "to_document",
]
