"""
docstore - JSON document collections on SQLite with live queries.

This library provides:
- Collections of JSON documents addressed by id, stored in SQLite tables
- A criteria compiler turning structured filters into parameterized SQL
- Immutable, awaitable query builders with sorting and pagination
- Live snapshots of documents and queries driven by row-change events
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("docstore-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from docstore.bus import (
    CHANGE,
    PROFILE,
    ChangeBus,
    ChangeEvent,
    ProfileEvent,
    Unsubscribe,
)
from docstore.collection import CollectionRef
from docstore.compiler import Clause, compile_criteria, compile_raw
from docstore.config import StorageConfig
from docstore.criteria import (
    And,
    Condition,
    Match,
    Or,
    QueryOptions,
    RawFragment,
    Unescaped,
    expand_eq,
    parse_criteria,
    raw,
)
from docstore.database import DocumentStore
from docstore.document import DocumentRef
from docstore.exceptions import (
    DocStoreError,
    InvalidCriteriaError,
    InvalidNameError,
    StorageError,
    UnsupportedOperatorError,
)
from docstore.query import Query
from docstore.storage import SQLiteStorage, Storage

__all__ = [
    "__version__",
    # Store and handles
    "DocumentStore",
    "CollectionRef",
    "DocumentRef",
    "Query",
    # Criteria
    "Condition",
    "Match",
    "And",
    "Or",
    "RawFragment",
    "Unescaped",
    "raw",
    "parse_criteria",
    "expand_eq",
    "QueryOptions",
    # Compiler
    "Clause",
    "compile_criteria",
    "compile_raw",
    # Storage
    "Storage",
    "SQLiteStorage",
    "StorageConfig",
    # Change bus
    "CHANGE",
    "PROFILE",
    "ChangeBus",
    "ChangeEvent",
    "ProfileEvent",
    "Unsubscribe",
    # Exceptions
    "DocStoreError",
    "InvalidNameError",
    "InvalidCriteriaError",
    "UnsupportedOperatorError",
    "StorageError",
]
