"""
Configuration for docstore storage backends.

This module provides:
- StorageConfig: Connection settings for the SQLite storage backend
"""

from __future__ import annotations

from dataclasses import dataclass

MEMORY_DATABASE = ":memory:"


@dataclass(frozen=True)
class StorageConfig:
    """
    Configuration for a storage connection.

    Attributes:
        database: Path to the SQLite database file, or ':memory:' for a
            private in-memory database
        wal_mode: Enable write-ahead logging (ignored for in-memory databases)
        busy_timeout: Milliseconds to wait when the database is locked
        enable_tracing: Emit OpenTelemetry spans when OpenTelemetry is installed

    Example:
        >>> config = StorageConfig(database="documents.db", wal_mode=True)
        >>> store = DocumentStore.sqlite(config)
    """

    database: str = MEMORY_DATABASE
    wal_mode: bool = False
    busy_timeout: int = 5000
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        if not self.database:
            raise ValueError("database must be a file path or ':memory:'")
        if self.busy_timeout < 0:
            raise ValueError(f"busy_timeout must be non-negative, got {self.busy_timeout}")

    @property
    def is_memory(self) -> bool:
        """True when the configuration targets a private in-memory database."""
        return self.database == MEMORY_DATABASE


__all__ = ["MEMORY_DATABASE", "StorageConfig"]
