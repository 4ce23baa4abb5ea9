"""Post-load row-count reconciliation."""

import logging
from typing import Iterable, List, Optional

import pymysql

from ..errors import SourceReadError, SourceTableNotFound
from ..extractors.base import BaseExtractor
from ..models.migration import ReconciliationResult

logger = logging.getLogger(__name__)


class Verifier:
    """
    Compares source and target row counts per table.

    Counts are plain aggregates, not content comparisons. A mismatch or a
    count that cannot be taken is reported in the result, never raised;
    only an unreachable store stops verification.
    """

    def __init__(self, extractor: BaseExtractor, target):
        """
        Initialize the verifier.

        Args:
            extractor: Extractor for the source the run read from
            target: Target connection exposing ``count(table)``
        """
        self.extractor = extractor
        self.target = target

    def verify(self, table: str) -> ReconciliationResult:
        """Count a table on both sides and report whether they agree."""
        errors = []

        source_count: Optional[int] = None
        try:
            source_count = self.extractor.count(table)
        except SourceTableNotFound:
            source_count = 0
        except SourceReadError as e:
            errors.append(f"source count failed: {e.message}")

        target_count: Optional[int] = None
        try:
            target_count = self.target.count(table)
        except pymysql.err.MySQLError as e:
            errors.append(f"target count failed: {e}")

        result = ReconciliationResult(
            table=table,
            source_count=source_count,
            target_count=target_count,
            error="; ".join(errors) or None,
        )

        if result.matches:
            logger.info(f"  ✓ {table}: source={source_count}, target={target_count}")
        else:
            logger.warning(
                f"  ✗ {table}: source={source_count}, target={target_count}"
                + (f" ({result.error})" if result.error else "")
            )
        return result

    def verify_all(self, tables: Iterable[str]) -> List[ReconciliationResult]:
        return [self.verify(table) for table in tables]
