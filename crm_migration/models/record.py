"""Record models for migration data."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

# A row exactly as the source returns it: field name -> JSON-like value.
Record = Dict[str, Any]

# A bounded slice of records handed to the loader in one step.
Batch = List[Record]


class InsertOutcome(str, Enum):
    """Outcome of inserting a single record into the target."""
    LOADED = "loaded"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class RecordOutcome:
    """Result of attempting to load one record."""
    outcome: InsertOutcome
    error: Optional[str] = None
    error_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.outcome == InsertOutcome.LOADED


def record_key(record: Record) -> Optional[str]:
    """Best-effort identifier of a record for log and error messages."""
    for key in ("id", "uuid", "email"):
        if record.get(key) is not None:
            return str(record[key])
    return None
