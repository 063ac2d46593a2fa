"""
Storage backends for docstore.

Example:
    >>> from docstore.storage import SQLiteStorage
    >>> storage = SQLiteStorage(":memory:")
"""

from docstore.storage.interface import Row, Storage
from docstore.storage.sqlite import NOTIFY_FUNCTION, SQLiteStorage

__all__ = [
    "NOTIFY_FUNCTION",
    "Row",
    "SQLiteStorage",
    "Storage",
]
