"""
On-disk staging of exported tables.

One JSON array per table lets the export and the load run independently:
``export`` writes ``<table>.json`` plus ``_metadata.json``; ``import`` reads
them back and leaves ``_import_log.json``. Full run reports go to ``logs/``.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dateutil import parser as date_parser

from ..errors import SourceReadError, SourceTableNotFound, StagingNotFoundError
from ..models.migration import MigrationRun
from ..models.record import Record

logger = logging.getLogger(__name__)

METADATA_FILE = "_metadata.json"
IMPORT_LOG_FILE = "_import_log.json"
REPORTS_DIR = "logs"


class StagingArea:
    """A directory of staged table exports."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    @property
    def reports_dir(self) -> Path:
        return self.data_dir / REPORTS_DIR

    def exists(self) -> bool:
        return self.data_dir.is_dir()

    def ensure_exists(self) -> None:
        """Fail when there is nothing staged to import."""
        if not self.exists():
            raise StagingNotFoundError(
                f"Data directory not found: {self.data_dir}. Run the export first."
            )

    def create(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def table_path(self, table: str) -> Path:
        return self.data_dir / f"{table}.json"

    def has_table(self, table: str) -> bool:
        return self.table_path(table).is_file()

    def remove_table(self, table: str) -> bool:
        """Delete a staged table file; returns whether one existed."""
        path = self.table_path(table)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def write_table(self, table: str, records: List[Record]) -> Path:
        """Stage all records of a table as one JSON array."""
        path = self.table_path(table)
        self._write_json(path, records)
        return path

    def read_table(self, table: str) -> List[Record]:
        """
        Load a staged table.

        Raises:
            SourceTableNotFound: no file was staged for the table
            SourceReadError: the file is unreadable or not a JSON array
        """
        path = self.table_path(table)
        if not path.is_file():
            raise SourceTableNotFound(table, f"No data file found at {path}")

        try:
            with open(path, encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, ValueError) as e:
            raise SourceReadError(table, 0, f"Cannot read {path}: {e}") from e

        if not isinstance(records, list):
            raise SourceReadError(table, 0, f"{path} does not contain a JSON array")
        return records

    def write_metadata(self, metadata: Dict[str, Any]) -> Path:
        path = self.data_dir / METADATA_FILE
        self._write_json(path, metadata)
        return path

    def read_metadata(self) -> Optional[Dict[str, Any]]:
        """
        Read export metadata, if an export left any.

        ``exportedAt`` is also returned parsed, as ``exported_at``.
        """
        path = self.data_dir / METADATA_FILE
        if not path.is_file():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable export metadata {path}: {e}")
            return None

        exported_at = metadata.get("exportedAt")
        if exported_at:
            try:
                metadata["exported_at"] = date_parser.isoparse(exported_at)
            except (ValueError, OverflowError):
                logger.warning(f"Unparseable exportedAt in {path}: {exported_at!r}")
        return metadata

    def write_import_log(self, run: MigrationRun) -> Path:
        path = self.data_dir / IMPORT_LOG_FILE
        self._write_json(path, run.to_import_log())
        return path

    def write_run_report(self, run: MigrationRun) -> Path:
        """Save the full run report under ``logs/``."""
        stamp = (run.finished_at or datetime.utcnow()).strftime("%Y%m%d_%H%M%S")
        path = self.reports_dir / f"migration_report_{run.mode.value}_{stamp}.json"
        self._write_json(path, run.to_dict())
        logger.info(f"Saved migration report to {path}")
        return path

    def _write_json(self, path: Path, data: Any) -> None:
        # Write beside the destination and swap in, so a crash never leaves half a file.
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
        os.replace(tmp_path, path)
