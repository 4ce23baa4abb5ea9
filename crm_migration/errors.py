"""Exception hierarchy for the migration engine."""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for all migration errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(MigrationError):
    """Raised when required settings are missing or invalid."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message, {"missing": missing or []})
        self.missing = missing or []


class StagingNotFoundError(MigrationError):
    """Raised when the staging directory for an import does not exist."""


class StoreConnectionError(MigrationError):
    """Raised when the source or target store cannot be reached at all."""

    def __init__(self, store: str, message: str):
        super().__init__(f"{store}: {message}", {"store": store})
        self.store = store


class SourceReadError(MigrationError):
    """Raised when a page read fails part way through a table."""

    def __init__(self, table: str, offset: int, message: str):
        super().__init__(
            f"Failed reading {table} at offset {offset}: {message}",
            {"table": table, "offset": offset},
        )
        self.table = table
        self.offset = offset


class SourceTableNotFound(SourceReadError):
    """Raised when the source has no such table (or no staged file for it)."""

    def __init__(self, table: str, message: str = "table not found"):
        super().__init__(table, 0, message)


class LoadError(MigrationError):
    """Raised when a table's transaction or constraint toggle fails."""

    def __init__(self, table: str, message: str):
        super().__init__(f"Failed loading {table}: {message}", {"table": table})
        self.table = table


class MigrationCancelled(MigrationError):
    """Raised when a cancellation request is honoured."""
