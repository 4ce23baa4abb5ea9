"""Base loader interface for the target store."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime
import logging

from ..cancellation import CancellationToken
from ..config import DEFAULT_BATCH_SIZE
from ..models.record import Batch, InsertOutcome, Record, RecordOutcome, record_key

logger = logging.getLogger(__name__)

MAX_RECORDED_ERRORS = 100


@dataclass
class LoadResult:
    """Result of loading one table."""
    table: str
    loaded: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_attempted(self) -> int:
        return self.loaded + self.skipped_duplicates + self.failed

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add(self, outcome: RecordOutcome, record: Optional[Record] = None) -> None:
        """Count one record's outcome."""
        if outcome.success:
            self.loaded += 1
        elif outcome.outcome == InsertOutcome.DUPLICATE:
            self.skipped_duplicates += 1
        else:
            self.failed += 1
            if len(self.errors) < MAX_RECORDED_ERRORS:
                self.errors.append({
                    "record_id": record_key(record) if record else None,
                    "error": outcome.error,
                    "error_code": outcome.error_code,
                })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "loaded": self.loaded,
            "skipped_duplicates": self.skipped_duplicates,
            "failed": self.failed,
            "total_attempted": self.total_attempted,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }


class BaseLoader(ABC):
    """
    Base class for table loaders.

    A loader writes one table's records into the target and reports a typed
    outcome per record; individual record failures never abort a table.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        """
        Initialize the loader.

        Args:
            batch_size: Number of records per batch
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size

    def _resolve_batch_size(self, batch_size: Optional[int]) -> int:
        if batch_size is None:
            return self.batch_size
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        return batch_size

    @abstractmethod
    def load(
        self,
        table: str,
        records: List[Record],
        batch_size: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> LoadResult:
        """
        Load every record of a table.

        Args:
            table: Target table name
            records: Transformed records
            batch_size: Records per batch (defaults to ``self.batch_size``)
            cancel_token: Checked between batches

        Returns:
            LoadResult with per-outcome counts

        Raises:
            LoadError: the table's transaction could not be opened or committed
            MigrationCancelled: cancellation was requested between batches
            StoreConnectionError: the target went away
        """
        pass

    @abstractmethod
    def load_record(self, table: str, record: Record) -> RecordOutcome:
        """
        Insert a single record.

        Args:
            table: Target table name
            record: Transformed record

        Returns:
            RecordOutcome (loaded, duplicate or failed)
        """
        pass

    def load_batch(self, table: str, records: Batch, result: LoadResult) -> None:
        """Insert a batch one record at a time, counting each outcome into ``result``."""
        for record in records:
            result.add(self.load_record(table, record), record)

    def _batch_iterator(
        self,
        records: List[Record],
        batch_size: int
    ) -> Iterator[Batch]:
        """Iterate over records in batches."""
        for i in range(0, len(records), batch_size):
            yield records[i:i + batch_size]
