"""Data models for the migration engine."""

from .migration import (
    MigrationRun,
    ReconciliationResult,
    RunMode,
    RunStatus,
    TableResult,
    TableStatus,
)
from .record import (
    Batch,
    InsertOutcome,
    Record,
    RecordOutcome,
)

__all__ = [
    "MigrationRun",
    "ReconciliationResult",
    "RunMode",
    "RunStatus",
    "TableResult",
    "TableStatus",
    "Batch",
    "InsertOutcome",
    "Record",
    "RecordOutcome",
]
