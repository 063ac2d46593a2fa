"""Library exceptions for the docstore package."""


class DocStoreError(Exception):
    """Base exception for docstore library."""

    pass


class InvalidNameError(DocStoreError):
    """Raised when a collection name cannot be used as a table identifier."""

    def __init__(self, name: str, reason: str = "must not contain quote characters") -> None:
        self.name = name
        super().__init__(f"Invalid collection name {name!r}: {reason}")


class InvalidCriteriaError(DocStoreError):
    """
    Raised when criteria are malformed.

    Typical causes:
    - ``and``/``or`` combined with sibling keys, or both given at once
    - a composite operand that is not a list
    - a field name that is empty or contains quote characters
    - an unknown sort direction
    """

    pass


class UnsupportedOperatorError(DocStoreError):
    """Raised when a field condition uses an operator the compiler cannot translate."""

    def __init__(self, operator: str) -> None:
        self.operator = operator
        super().__init__(f"Unsupported operator: {operator}")


class StorageError(DocStoreError):
    """
    Raised when the storage collaborator itself cannot serve a request.

    Driver errors (``sqlite3.Error`` subclasses) are not wrapped in this
    exception; they propagate unchanged to the caller.
    """

    pass


__all__ = [
    "DocStoreError",
    "InvalidNameError",
    "InvalidCriteriaError",
    "UnsupportedOperatorError",
    "StorageError",
]
