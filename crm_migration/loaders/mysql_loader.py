"""MySQL table loader."""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pymysql

from .base import BaseLoader, LoadResult
from ..cancellation import CancellationToken
from ..config import DEFAULT_BATCH_SIZE
from ..connections import MySQLTarget, is_duplicate_key_error, mysql_error_code, quote_identifier
from ..errors import LoadError
from ..models.record import InsertOutcome, Record, RecordOutcome, record_key

logger = logging.getLogger(__name__)


class MySQLLoader(BaseLoader):
    """
    Loads a table into MySQL inside one transaction.

    Foreign-key checks are switched off for the transaction so rows can
    reference parents committed in the same run, or parents that no longer
    exist. Records are inserted one by one: their column sets may differ,
    and duplicate keys must be told apart per record. A duplicate key is
    skipped, which is what makes re-running the migration safe. Any other
    row error is counted and the load carries on without rolling back.
    """

    def __init__(self, target: MySQLTarget, batch_size: int = DEFAULT_BATCH_SIZE):
        """
        Initialize the MySQL loader.

        Args:
            target: Connected MySQL target
            batch_size: Number of records per batch
        """
        super().__init__(batch_size)
        self.target = target
        self._statements: Dict[Tuple[str, Tuple[str, ...]], str] = {}

    def load(
        self,
        table: str,
        records: List[Record],
        batch_size: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> LoadResult:
        batch_size = self._resolve_batch_size(batch_size)
        result = LoadResult(table=table)
        result.started_at = datetime.utcnow()

        try:
            self.target.begin()
            self.target.set_foreign_key_checks(False)
        except pymysql.err.MySQLError as e:
            self._abandon(table)
            raise LoadError(table, f"could not open transaction: {e}") from e

        total = len(records)
        done = 0
        try:
            for batch in self._batch_iterator(records, batch_size):
                if cancel_token:
                    cancel_token.raise_if_cancelled(f"{table} at record {done}/{total}")
                self.load_batch(table, batch, result)
                done += len(batch)
                logger.info(f"   Imported {done}/{total} records...")
        except Exception:
            self._abandon(table)
            raise

        try:
            self.target.set_foreign_key_checks(True)
            self.target.commit()
        except pymysql.err.MySQLError as e:
            self._abandon(table)
            raise LoadError(table, f"could not commit: {e}") from e

        result.completed_at = datetime.utcnow()
        return result

    def load_record(self, table: str, record: Record) -> RecordOutcome:
        if not record:
            return RecordOutcome(InsertOutcome.FAILED, error="record has no columns")

        columns = tuple(record.keys())
        sql = self._insert_statement(table, columns)

        try:
            self.target.execute(sql, [record[column] for column in columns])
        except pymysql.err.MySQLError as e:
            code = mysql_error_code(e)
            if is_duplicate_key_error(e):
                logger.debug(f"Skipping duplicate {record_key(record)} in {table}")
                return RecordOutcome(InsertOutcome.DUPLICATE, error=str(e), error_code=code)

            logger.error(f"Error importing record {record_key(record)} in {table}: {e}")
            return RecordOutcome(InsertOutcome.FAILED, error=str(e), error_code=code)
        except (ValueError, TypeError) as e:
            # Raised by the driver while formatting the statement, before it reaches the server.
            logger.error(f"Error importing record {record_key(record)} in {table}: {e}")
            return RecordOutcome(InsertOutcome.FAILED, error=str(e))

        return RecordOutcome(InsertOutcome.LOADED)

    def _insert_statement(self, table: str, columns: Sequence[str]) -> str:
        key = (table, tuple(columns))
        if key not in self._statements:
            column_list = ", ".join(_escape_percent(quote_identifier(c)) for c in columns)
            placeholders = ", ".join(["%s"] * len(columns))
            self._statements[key] = (
                f"INSERT INTO {_escape_percent(quote_identifier(table))} ({column_list}) VALUES ({placeholders})"
            )
        return self._statements[key]

    def _abandon(self, table: str) -> None:
        """Roll the table back and restore FK checks while another error propagates."""
        try:
            self.target.rollback()
        except Exception as e:
            logger.warning(f"Rollback of {table} failed: {e}")
        try:
            self.target.set_foreign_key_checks(True)
        except Exception as e:
            logger.warning(f"Could not re-enable foreign key checks after {table}: {e}")


def _escape_percent(identifier: str) -> str:
    """Double ``%`` so the driver's parameter formatting leaves identifiers intact."""
    return identifier.replace("%", "%%")
