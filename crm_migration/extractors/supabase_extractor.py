"""Supabase (PostgREST) table extractor."""

import logging
from typing import List

from .base import BaseExtractor
from ..config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from ..connections import SupabaseSource
from ..models.record import Record

logger = logging.getLogger(__name__)


class SupabaseExtractor(BaseExtractor):
    """Extractor reading tables straight from the Supabase source project."""

    source_name = "supabase"
    max_page_size = MAX_PAGE_SIZE

    def __init__(self, source: SupabaseSource, page_size: int = DEFAULT_PAGE_SIZE):
        """
        Initialize the Supabase extractor.

        Args:
            source: Connected source client
            page_size: Rows requested per page, capped at ``MAX_PAGE_SIZE``
        """
        super().__init__(page_size)
        self.source = source

    def extract_batch(self, table: str, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> List[Record]:
        rows = self.source.select(table, offset, limit)
        logger.debug(f"{table}: fetched {len(rows)} rows at offset {offset}")
        return rows

    def count(self, table: str) -> int:
        return self.source.count(table)

    def describe(self) -> str:
        return self.source.url
