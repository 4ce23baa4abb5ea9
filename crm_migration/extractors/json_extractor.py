"""Extractor over staged JSON exports."""

import logging
from typing import Dict, List

from .base import BaseExtractor
from ..config import DEFAULT_PAGE_SIZE
from ..models.record import Record
from ..services.staging import StagingArea

logger = logging.getLogger(__name__)


class StagedJsonExtractor(BaseExtractor):
    """
    Serves staged ``<table>.json`` files through the paged extractor contract.

    A file is parsed once and then sliced per page, so the loader-only entry
    point runs through the same pipeline as a direct migration.
    """

    source_name = "staged-json"

    def __init__(self, staging: StagingArea, page_size: int = DEFAULT_PAGE_SIZE):
        super().__init__(page_size)
        self.staging = staging
        self._cache: Dict[str, List[Record]] = {}

    def _records(self, table: str) -> List[Record]:
        if table not in self._cache:
            # Keep one table in memory at a time; tables are read sequentially.
            self._cache.clear()
            self._cache[table] = self.staging.read_table(table)
        return self._cache[table]

    def extract_batch(self, table: str, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> List[Record]:
        records = self._records(table)
        return records[offset:offset + limit]

    def count(self, table: str) -> int:
        return len(self._records(table))

    def describe(self) -> str:
        return str(self.staging.data_dir)
