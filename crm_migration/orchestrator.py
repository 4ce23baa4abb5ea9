"""Migration orchestrator - runs the ranked tables through extract, transform and load."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .cancellation import CancellationToken
from .catalog import TableSpec
from .config import DEFAULT_BATCH_SIZE
from .errors import (
    LoadError,
    MigrationCancelled,
    SourceReadError,
    SourceTableNotFound,
    StoreConnectionError,
)
from .extractors.base import BaseExtractor
from .loaders.base import BaseLoader
from .models.migration import (
    MigrationRun,
    RunMode,
    RunStatus,
    TableResult,
    TableStatus,
)
from .models.record import Record
from .services.staging import StagingArea
from .services.transformer import FieldTransformer
from .services.verifier import Verifier

logger = logging.getLogger(__name__)

# Statuses a table can be left in when a lost store aborts the run
IN_FLIGHT = (TableStatus.EXTRACTING, TableStatus.TRANSFORMING, TableStatus.LOADING)


class MigrationOrchestrator:
    """
    Orchestrates a migration run.

    Handles:
    - Processing tables in rank order, parents before children
    - Extraction, transformation and loading of each table
    - Isolating per-table failures so the run always carries on
    - Row-count reconciliation once every table is done
    - Cooperative cancellation between tables and batches
    - Writing the run report and import log
    """

    def __init__(
        self,
        extractor: BaseExtractor,
        loader: Optional[BaseLoader] = None,
        verifier: Optional[Verifier] = None,
        transformer: Optional[FieldTransformer] = None,
        staging: Optional[StagingArea] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel_token: Optional[CancellationToken] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            extractor: Where records are read from (source store or staged files)
            loader: Target loader; required by ``run``
            verifier: Reconciles counts after loading; skipped when absent
            transformer: Field value converter
            staging: Staging area for exports, import logs and run reports
            batch_size: Records per loader batch
            cancel_token: Polled before each table and between batches
        """
        self.extractor = extractor
        self.loader = loader
        self.verifier = verifier
        self.transformer = transformer or FieldTransformer()
        self.staging = staging
        self.batch_size = batch_size
        self.cancel_token = cancel_token or CancellationToken()

        # Runtime state
        self.current_run: Optional[MigrationRun] = None

    def run(
        self,
        table_specs: Iterable[TableSpec],
        mode: RunMode = RunMode.MIGRATE
    ) -> MigrationRun:
        """
        Migrate every table, then reconcile counts.

        A table that fails is recorded and skipped; only an unreachable store
        stops the run, and that error is raised after the report is written.

        Args:
            table_specs: Tables to migrate, in any order
            mode: ``MIGRATE`` for a direct run, ``IMPORT`` for a staged load

        Returns:
            The sealed MigrationRun
        """
        if self.loader is None:
            raise ValueError("A loader is required to run a migration")

        run = self._start(mode, self._order(table_specs))
        logger.info(f"=== MIGRATING {len(run.tables)} TABLES ({mode.value}) ===")

        try:
            for table in run.tables:
                self.cancel_token.raise_if_cancelled(f"before {table.name}")
                self._migrate_table(table)

            self._reconcile(run)
            run.status = RunStatus.COMPLETED
            logger.info("=== MIGRATION COMPLETED ===")

        except MigrationCancelled as e:
            self._cancel(run, e)

        except StoreConnectionError as e:
            self._abort(run, e)
            raise

        finally:
            self._finish(run, import_log=True)

        return run

    def export(self, table_specs: Iterable[TableSpec]) -> MigrationRun:
        """
        Stage every table as ``<table>.json`` for a later import.

        Also writes ``_metadata.json`` describing the export.
        """
        if self.staging is None:
            raise ValueError("A staging area is required to export")

        run = self._start(RunMode.EXPORT, self._order(table_specs))
        self.staging.create()
        logger.info(f"=== EXPORTING {len(run.tables)} TABLES TO {self.staging.data_dir} ===")

        try:
            for table in run.tables:
                self.cancel_token.raise_if_cancelled(f"before {table.name}")
                self._export_table(table)

            run.status = RunStatus.COMPLETED
            logger.info("=== EXPORT COMPLETED ===")

        except MigrationCancelled as e:
            self._cancel(run, e)

        except StoreConnectionError as e:
            self._abort(run, e)
            raise

        finally:
            run.seal()
            self.staging.write_metadata(self._export_metadata(run))
            self.staging.write_run_report(run)

        return run

    def verify(self, table_specs: Iterable[TableSpec]) -> MigrationRun:
        """Reconcile source and target row counts without moving any data."""
        if self.verifier is None:
            raise ValueError("A verifier is required to verify")

        run = self._start(RunMode.VERIFY, self._order(table_specs))

        try:
            self._reconcile(run)
            run.status = RunStatus.COMPLETED

        except MigrationCancelled as e:
            self._cancel(run, e)

        except StoreConnectionError as e:
            self._abort(run, e)
            raise

        finally:
            self._finish(run, import_log=False)

        return run

    def _order(self, table_specs: Iterable[TableSpec]) -> List[TableSpec]:
        """Sort by rank; ties keep their given order."""
        specs = list(table_specs)
        seen = set()
        for spec in specs:
            if spec.name in seen:
                raise ValueError(f"Duplicate table in migration: {spec.name}")
            seen.add(spec.name)
        return sorted(specs, key=lambda s: s.rank)

    def _start(self, mode: RunMode, specs: List[TableSpec]) -> MigrationRun:
        run = MigrationRun(mode=mode)
        run.started_at = datetime.utcnow()
        for spec in specs:
            run.add_table(spec.name, spec.rank)
        run.metadata["source"] = self.extractor.describe()
        run.status = RunStatus.RUNNING
        self.current_run = run
        return run

    def _read_table(self, table: TableResult) -> List[Record]:
        """
        Read a whole table, recording empty or failed reads on the result.

        Returns an empty list when there is nothing to load; the table's
        status is then already final.
        """
        table.status = TableStatus.EXTRACTING
        try:
            records = self.extractor.extract_all(table.name)
        except SourceTableNotFound as e:
            table.status = TableStatus.EMPTY
            logger.warning(f"  {table.name}: not found in {self.extractor.source_name}, skipping ({e.message})")
            return []
        except SourceReadError as e:
            table.extracted = 0
            table.resume_offset = e.offset
            table.mark_failed(e.message)
            logger.error(f"  ✗ {table.name}: {e.message}")
            return []

        table.extracted = len(records)
        if not records:
            table.status = TableStatus.EMPTY
            logger.info(f"  {table.name}: no data")
        return records

    def _migrate_table(self, table: TableResult) -> None:
        """Run one table through extract, transform and load."""
        table.started_at = datetime.utcnow()
        logger.info(f"Migrating {table.name} (rank {table.rank})...")

        try:
            records = self._read_table(table)
            if not records:
                return

            table.status = TableStatus.TRANSFORMING
            transformed = [self.transformer.transform_record(r) for r in records]

            table.status = TableStatus.LOADING
            result = self.loader.load(
                table.name,
                transformed,
                batch_size=self.batch_size,
                cancel_token=self.cancel_token,
            )

            table.loaded = result.loaded
            table.skipped_duplicates = result.skipped_duplicates
            table.failed = result.failed
            table.errors = result.errors
            table.status = TableStatus.COMPLETED
            logger.info(
                f"  ✓ {table.name}: {result.loaded} loaded, "
                f"{result.skipped_duplicates} duplicates skipped, {result.failed} failed"
            )

        except LoadError as e:
            table.mark_failed(e.message)
            logger.error(f"  ✗ {table.name}: {e.message}")

        except MigrationCancelled:
            table.status = TableStatus.CANCELLED
            raise

        finally:
            table.completed_at = datetime.utcnow()

    def _export_table(self, table: TableResult) -> None:
        """Read one table and stage it."""
        table.started_at = datetime.utcnow()
        logger.info(f"Exporting {table.name}...")

        try:
            records = self._read_table(table)
            if table.status == TableStatus.FAILED:
                # A file from an earlier export would be imported as if it were current
                if self.staging.remove_table(table.name):
                    logger.warning(f"  Removed stale {table.name}.json from an earlier export")
                return

            # Empty tables are staged too, replacing any file from an earlier export
            path = self.staging.write_table(table.name, records)
            if records:
                table.status = TableStatus.COMPLETED
                logger.info(f"  ✓ {table.name}: {len(records)} records -> {path.name}")

        finally:
            table.completed_at = datetime.utcnow()

    def _reconcile(self, run: MigrationRun) -> None:
        """Compare source and target row counts for every table."""
        if self.verifier is None:
            logger.info("No verifier configured, skipping reconciliation")
            return

        run.status = RunStatus.VERIFYING
        logger.info("=== VERIFYING ROW COUNTS ===")

        for table in run.tables:
            self.cancel_token.raise_if_cancelled(f"before verifying {table.name}")
            run.add_reconciliation(self.verifier.verify(table.name))

        mismatched = run.mismatched_tables
        if mismatched:
            logger.warning(f"{len(mismatched)} table(s) do not match: {', '.join(r.table for r in mismatched)}")
        else:
            logger.info(f"All {len(run.reconciliation)} tables match")

    def _cancel(self, run: MigrationRun, error: MigrationCancelled) -> None:
        run.status = RunStatus.CANCELLED
        run.errors.append({
            "error": error.message,
            "timestamp": datetime.utcnow().isoformat(),
        })
        pending = sum(1 for t in run.tables if t.status == TableStatus.PENDING)
        logger.warning(f"{error.message}; {pending} table(s) not started")

    def _abort(self, run: MigrationRun, error: StoreConnectionError) -> None:
        run.errors.append({
            "error": error.message,
            "store": error.store,
            "timestamp": datetime.utcnow().isoformat(),
        })
        logger.error(f"Migration aborted: {error.message}")
        for table in run.tables:
            if table.status in IN_FLIGHT:
                table.mark_failed(error.message)

    def _finish(self, run: MigrationRun, import_log: bool) -> None:
        run.seal()
        if self.staging is None:
            return
        if import_log:
            self.staging.write_import_log(run)
        self.staging.write_run_report(run)

    def _export_metadata(self, run: MigrationRun) -> dict:
        exported = [t for t in run.tables if t.status == TableStatus.COMPLETED]
        return {
            "exportedAt": (run.finished_at or datetime.utcnow()).isoformat(),
            "supabaseUrl": self.extractor.describe(),
            "tablesExported": len(exported),
            "tablesFailed": len(run.failed_tables),
            "totalTables": len(run.tables),
            "tableCounts": {t.name: t.extracted for t in run.tables if t.status != TableStatus.PENDING},
            "duration": f"{run.duration_seconds or 0.0:.2f}s",
        }
