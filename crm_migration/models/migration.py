"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import uuid


class RunStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    RUNNING = "running"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TableStatus(str, Enum):
    """Status of a single table within a run."""
    PENDING = "pending"
    EXTRACTING = "extracting"
    TRANSFORMING = "transforming"
    LOADING = "loading"
    COMPLETED = "completed"
    EMPTY = "empty"  # Source table absent or without rows
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunMode(str, Enum):
    """Which pipeline a run executed."""
    MIGRATE = "migrate"  # Source store straight into the target
    EXPORT = "export"  # Source store into staged JSON files
    IMPORT = "import"  # Staged JSON files into the target
    VERIFY = "verify"  # Reconciliation only


@dataclass(frozen=True)
class ReconciliationResult:
    """Row-count comparison of one table between source and target."""
    table: str
    source_count: Optional[int]
    target_count: Optional[int]
    error: Optional[str] = None

    @property
    def matches(self) -> bool:
        if self.error or self.source_count is None or self.target_count is None:
            return False
        return self.source_count == self.target_count

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "matches": self.matches,
            "error": self.error,
        }


@dataclass
class TableResult:
    """Progress and counts of one table in a migration run."""
    name: str
    rank: int
    status: TableStatus = TableStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    extracted: int = 0
    loaded: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    error: Optional[str] = None
    resume_offset: Optional[int] = None  # First unread offset after a read failure
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "rank": self.rank,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "extracted": self.extracted,
            "loaded": self.loaded,
            "skipped_duplicates": self.skipped_duplicates,
            "failed": self.failed,
            "error": self.error,
            "resume_offset": self.resume_offset,
            "errors": self.errors,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def mark_failed(self, error: str) -> None:
        self.status = TableStatus.FAILED
        self.error = error


@dataclass
class MigrationRun:
    """
    A complete migration run.

    Created when the orchestrator starts, appended to once per table and
    sealed when it is written out. A sealed run rejects further changes.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    mode: RunMode = RunMode.MIGRATE
    status: RunStatus = RunStatus.PENDING

    # Timing
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Progress
    tables: List[TableResult] = field(default_factory=list)
    reconciliation: List[ReconciliationResult] = field(default_factory=list)

    errors: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    _sealed: bool = field(default=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "mode": self.mode.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "tables": [t.to_dict() for t in self.tables],
            "reconciliation": [r.to_dict() for r in self.reconciliation],
            "totals": {
                "extracted": self.total_extracted,
                "loaded": self.total_loaded,
                "skipped_duplicates": self.total_skipped_duplicates,
                "failed": self.total_failed,
            },
            "errors": self.errors,
            "metadata": self.metadata,
        }

    def to_import_log(self) -> Dict[str, Any]:
        """Audit summary written next to the staged data after a load."""
        return {
            "importedAt": (self.finished_at or datetime.utcnow()).isoformat(),
            "tablesImported": len(self.tables) - len(self.failed_tables),
            "tablesFailed": len(self.failed_tables),
            "totalRecords": self.total_loaded,
            "duration": f"{self.duration_seconds or 0.0:.2f}s",
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def failed_tables(self) -> List[TableResult]:
        return [t for t in self.tables if t.status == TableStatus.FAILED]

    @property
    def mismatched_tables(self) -> List[ReconciliationResult]:
        return [r for r in self.reconciliation if not r.matches]

    @property
    def total_extracted(self) -> int:
        return sum(t.extracted for t in self.tables)

    @property
    def total_loaded(self) -> int:
        return sum(t.loaded for t in self.tables)

    @property
    def total_skipped_duplicates(self) -> int:
        return sum(t.skipped_duplicates for t in self.tables)

    @property
    def total_failed(self) -> int:
        return sum(t.failed for t in self.tables)

    def add_table(self, name: str, rank: int) -> TableResult:
        """Append the result slot for the next table."""
        self._check_open()
        table = TableResult(name=name, rank=rank)
        self.tables.append(table)
        return table

    def get_table(self, name: str) -> Optional[TableResult]:
        """Get a table result by name."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def add_reconciliation(self, result: ReconciliationResult) -> None:
        self._check_open()
        self.reconciliation.append(result)

    def seal(self) -> None:
        """Stamp the finish time and freeze the run."""
        if self.finished_at is None:
            self.finished_at = datetime.utcnow()
        self._sealed = True

    def _check_open(self) -> None:
        if self._sealed:
            raise RuntimeError(f"Migration run {self.id} is already written and cannot change")
