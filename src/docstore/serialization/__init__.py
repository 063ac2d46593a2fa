"""
Serialization utilities for docstore.

Example:
    >>> from docstore.serialization import json_dumps, json_loads
"""

from docstore.serialization.json import (
    DocumentJSONEncoder,
    json_dumps,
    json_loads,
    to_document,
)

__all__ = [
    "DocumentJSONEncoder",
    "json_dumps",
    "json_loads",
    "to_document",
]
