"""Base extractor interface."""

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional
import logging

from ..config import DEFAULT_PAGE_SIZE
from ..models.record import Record

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """
    Base class for table extractors.

    An extractor reads one table as a sequence of ``[offset, offset + limit)``
    pages. The sequence is lazy and can be resumed from any offset, so a
    failed read does not force earlier pages to be fetched again.
    """

    #: Short label used in logs and reports.
    source_name = "source"

    #: Most rows the source returns per request, or None when unbounded.
    max_page_size: Optional[int] = None

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        """
        Initialize the extractor.

        Args:
            page_size: Default number of rows requested per page
        """
        self.page_size = self._effective_page_size(page_size)

    def _effective_page_size(self, page_size: int) -> int:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if self.max_page_size is not None and page_size > self.max_page_size:
            # A short page ends the stream, so never ask for more than the source returns.
            logger.warning(
                f"Page size {page_size} exceeds the {self.source_name} row limit, using {self.max_page_size}"
            )
            return self.max_page_size
        return page_size

    @abstractmethod
    def extract_batch(self, table: str, offset: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> List[Record]:
        """
        Read one page of a table.

        Args:
            table: Table name
            offset: Starting offset
            limit: Maximum rows to return

        Returns:
            Rows in the source's natural order

        Raises:
            SourceReadError: the page could not be read
            SourceTableNotFound: the table does not exist in the source
            StoreConnectionError: the source is unreachable
        """
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Number of rows the source holds for a table."""
        pass

    def stream(
        self,
        table: str,
        page_size: Optional[int] = None,
        start_offset: int = 0
    ) -> Iterator[List[Record]]:
        """
        Stream a table page by page.

        Stops after a page shorter than ``page_size`` or an empty page.
        ``page_size`` is capped at ``max_page_size``.

        Args:
            table: Table name
            page_size: Rows per page (defaults to ``self.page_size``)
            start_offset: Offset of the first page

        Yields:
            Pages of records
        """
        page_size = self.page_size if page_size is None else self._effective_page_size(page_size)
        offset = start_offset

        while True:
            batch = self.extract_batch(table, offset=offset, limit=page_size)
            if not batch:
                break

            yield batch
            offset += len(batch)

            if len(batch) < page_size:
                break

    def extract(
        self,
        table: str,
        page_size: Optional[int] = None,
        start_offset: int = 0
    ) -> Iterator[Record]:
        """Lazily yield every record of a table, one page request at a time."""
        for batch in self.stream(table, page_size, start_offset):
            yield from batch

    def extract_all(self, table: str, page_size: Optional[int] = None) -> List[Record]:
        """
        Read a whole table into memory.

        Nothing is returned unless every page was read, so callers never see
        a partial table.
        """
        records = list(self.extract(table, page_size))
        logger.debug(f"Read {len(records)} rows of {table} from {self.source_name}")
        return records

    def describe(self) -> str:
        """Where the records come from, for metadata and reports."""
        return self.source_name
