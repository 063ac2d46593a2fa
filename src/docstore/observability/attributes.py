"""
Standard span attributes for docstore.

Database attributes follow OpenTelemetry semantic conventions; the rest are
namespaced under ``docstore.``.
"""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite')."""

ATTR_DB_NAME = "db.name"
"""Database name or file path."""

ATTR_DB_OPERATION = "db.operation"
"""Statement kind (e.g., 'SELECT', 'UPDATE')."""

ATTR_DB_STATEMENT = "db.statement"
"""SQL text, with placeholders rather than bound values."""

# =============================================================================
# Document Store Attributes
# =============================================================================

ATTR_TABLE = "docstore.table"
"""Collection (table) name an operation targets."""

ATTR_PARAM_COUNT = "docstore.param_count"
"""Number of bound parameters (integer)."""

ATTR_ROW_COUNT = "docstore.row_count"
"""Number of rows returned by a read (integer)."""

# =============================================================================
# Change Bus Attributes
# =============================================================================

ATTR_CHANNEL = "docstore.bus.channel"
"""Bus channel an event was published on (e.g., 'change')."""

ATTR_HANDLER_COUNT = "docstore.bus.handler_count"
"""Number of handlers a publication was dispatched to (integer)."""

ATTR_CHANGE_KIND = "docstore.change.kind"
"""Row change kind: 'insert', 'update' or 'delete'."""

ATTR_ROW_LOCATOR = "docstore.change.row_locator"
"""Storage row locator of a changed row (integer)."""

__all__ = [
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_STATEMENT",
    "ATTR_TABLE",
    "ATTR_PARAM_COUNT",
    "ATTR_ROW_COUNT",
    "ATTR_CHANNEL",
    "ATTR_HANDLER_COUNT",
    "ATTR_CHANGE_KIND",
    "ATTR_ROW_LOCATOR",
]
