"""Command-line entry points for the CRM migration."""

import argparse
import logging
import signal
import sys
from typing import Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .catalog import default_table_specs
from .config import MigrationSettings
from .connections import MySQLTarget, SupabaseSource
from .errors import ConfigurationError, StagingNotFoundError, StoreConnectionError
from .extractors import StagedJsonExtractor, SupabaseExtractor
from .loaders import MySQLLoader
from .models.migration import MigrationRun, RunMode, RunStatus, TableStatus
from .orchestrator import MigrationOrchestrator
from .services.staging import StagingArea
from .services.verifier import Verifier

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CANCELLED = 130


def run_export(settings: MigrationSettings, token: CancellationToken) -> MigrationRun:
    """Export every source table to the staging directory."""
    staging = StagingArea(settings.data_dir)

    with SupabaseSource.from_settings(settings) as source:
        source.ping()
        orchestrator = MigrationOrchestrator(
            SupabaseExtractor(source, page_size=settings.page_size),
            staging=staging,
            cancel_token=token,
        )
        return orchestrator.export(default_table_specs())


def run_import(settings: MigrationSettings, token: CancellationToken) -> MigrationRun:
    """Load the staged export into MySQL."""
    staging = StagingArea(settings.data_dir)
    staging.ensure_exists()

    metadata = staging.read_metadata()
    if metadata:
        print(f"Export from: {metadata.get('supabaseUrl')}")
        print(f"Exported at: {metadata.get('exportedAt')}")
        print(f"Tables exported: {metadata.get('tablesExported')}")

    extractor = StagedJsonExtractor(staging, page_size=settings.page_size)
    with MySQLTarget.from_settings(settings) as target:
        orchestrator = MigrationOrchestrator(
            extractor,
            loader=MySQLLoader(target, batch_size=settings.batch_size),
            verifier=Verifier(extractor, target),
            staging=staging,
            batch_size=settings.batch_size,
            cancel_token=token,
        )
        return orchestrator.run(default_table_specs(), mode=RunMode.IMPORT)


def run_migrate(settings: MigrationSettings, token: CancellationToken) -> MigrationRun:
    """Copy every table straight from Supabase into MySQL, then verify."""
    settings.require_source()
    settings.require_target()

    with SupabaseSource.from_settings(settings) as source, \
            MySQLTarget.from_settings(settings) as target:
        source.ping()
        extractor = SupabaseExtractor(source, page_size=settings.page_size)
        orchestrator = MigrationOrchestrator(
            extractor,
            loader=MySQLLoader(target, batch_size=settings.batch_size),
            verifier=Verifier(extractor, target),
            staging=StagingArea(settings.data_dir),
            batch_size=settings.batch_size,
            cancel_token=token,
        )
        return orchestrator.run(default_table_specs(), mode=RunMode.MIGRATE)


def run_verify(settings: MigrationSettings, token: CancellationToken) -> MigrationRun:
    """Compare Supabase and MySQL row counts."""
    settings.require_source()
    settings.require_target()

    with SupabaseSource.from_settings(settings) as source, \
            MySQLTarget.from_settings(settings) as target:
        source.ping()
        extractor = SupabaseExtractor(source, page_size=settings.page_size)
        orchestrator = MigrationOrchestrator(
            extractor,
            verifier=Verifier(extractor, target),
            staging=StagingArea(settings.data_dir),
            cancel_token=token,
        )
        return orchestrator.verify(default_table_specs())


COMMANDS: Dict[str, Callable[[MigrationSettings, CancellationToken], MigrationRun]] = {
    "export": run_export,
    "import": run_import,
    "migrate": run_migrate,
    "verify": run_verify,
}


def print_summary(run: MigrationRun) -> None:
    """Print the end-of-run summary block."""
    title = "CANCELLED" if run.status == RunStatus.CANCELLED else "COMPLETE"

    print("\n" + "=" * 60)
    print(f"{run.mode.value.upper()} {title}")
    print("=" * 60)
    print(f"Status: {run.status.value}")

    if run.mode != RunMode.VERIFY:
        by_status: Dict[TableStatus, int] = {}
        for table in run.tables:
            by_status[table.status] = by_status.get(table.status, 0) + 1
        print(
            f"Tables: {len(run.tables)} "
            f"({by_status.get(TableStatus.COMPLETED, 0)} completed, "
            f"{by_status.get(TableStatus.EMPTY, 0)} empty, "
            f"{by_status.get(TableStatus.FAILED, 0)} failed)"
        )
        print(f"Records Extracted: {run.total_extracted}")

    if run.mode in (RunMode.MIGRATE, RunMode.IMPORT):
        print(f"Records Loaded: {run.total_loaded}")
        print(f"Duplicates Skipped: {run.total_skipped_duplicates}")
        print(f"Records Failed: {run.total_failed}")

    for table in run.failed_tables:
        resume = f" (resume at offset {table.resume_offset})" if table.resume_offset else ""
        print(f"  ✗ {table.name}: {table.error}{resume}")

    if run.reconciliation:
        matched = len(run.reconciliation) - len(run.mismatched_tables)
        print(f"Verified: {matched}/{len(run.reconciliation)} tables match")
        for result in run.mismatched_tables:
            detail = result.error or f"source={result.source_count}, target={result.target_count}"
            print(f"  ✗ {result.table}: {detail}")

    if run.duration_seconds is not None:
        print(f"Duration: {run.duration_seconds:.2f} seconds")


def _install_interrupt_handler(token: CancellationToken) -> None:
    """First Ctrl-C cancels at the next safe point; a second one interrupts at once."""
    def handler(signum, frame):
        logger.warning("Interrupt received, stopping after the current batch (Ctrl-C again to abort)")
        token.cancel("cancelled by operator")
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-migrate",
        description="Migrate the CRM database from Supabase to MySQL"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    subparsers.add_parser("export", help="Export Supabase tables to JSON files")
    subparsers.add_parser("import", help="Import exported JSON files into MySQL")
    subparsers.add_parser("migrate", help="Migrate directly from Supabase to MySQL and verify")
    subparsers.add_parser("verify", help="Compare row counts between Supabase and MySQL")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command not in COMMANDS:
        parser.print_help()
        return EXIT_FATAL

    token = CancellationToken()
    _install_interrupt_handler(token)

    try:
        settings = MigrationSettings.from_env()
        logger.debug(f"Settings: {settings.describe()}")
        run = COMMANDS[args.command](settings, token)

    except (ConfigurationError, StagingNotFoundError, StoreConnectionError) as e:
        logger.error(e.message)
        print(f"\n❌ {e.message}")
        return EXIT_FATAL

    except KeyboardInterrupt:
        print("\nMigration aborted by user")
        return EXIT_CANCELLED

    print_summary(run)

    if run.status == RunStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
