"""
Shared fixtures for the migration tests.

Provides an in-memory Supabase-like source and an in-memory MySQL-like
target so the pipeline can run end to end without either store.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pymysql
import pytest

from crm_migration.errors import SourceReadError, SourceTableNotFound, StoreConnectionError
from crm_migration.extractors import SupabaseExtractor
from crm_migration.loaders import MySQLLoader
from crm_migration.services.staging import StagingArea
from crm_migration.services.verifier import Verifier

INSERT_PATTERN = re.compile(r"^INSERT INTO `([^`]+)` \((.*)\) VALUES \((.*)\)$")


class FakeSource:
    """Paged in-memory source speaking the SupabaseSource interface."""

    def __init__(
        self,
        tables: Dict[str, List[Dict[str, Any]]],
        url: str = "https://test.supabase.co",
        max_rows: Optional[int] = None,
    ):
        self.tables = tables
        self.url = url
        # Server-side row limit; PostgREST silently returns fewer rows than asked.
        self.max_rows = max_rows
        self.calls: List[Tuple[str, int, int]] = []
        self.failures: Set[Tuple[str, int]] = set()

    def fail_at(self, table: str, offset: int) -> None:
        self.failures.add((table, offset))

    def select(self, table: str, offset: int, limit: int) -> List[Dict[str, Any]]:
        self.calls.append((table, offset, limit))
        if (table, offset) in self.failures:
            raise SourceReadError(table, offset, "HTTP 500 - upstream error")
        if table not in self.tables:
            raise SourceTableNotFound(table, "HTTP 404")
        if self.max_rows is not None:
            limit = min(limit, self.max_rows)
        return [dict(row) for row in self.tables[table][offset:offset + limit]]

    def count(self, table: str) -> int:
        if table not in self.tables:
            raise SourceTableNotFound(table, "HTTP 404")
        return len(self.tables[table])

    def calls_for(self, table: str) -> List[Tuple[str, int, int]]:
        return [call for call in self.calls if call[0] == table]


class FakeTarget:
    """
    MySQL-like target with one transaction and primary keys on ``id``.

    Raises real PyMySQL exceptions so the loader's error classification is
    exercised as it is against a server.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self.pending: List[Tuple[str, Dict[str, Any]]] = []
        self.in_transaction = False
        self.fk_checks = True
        self.events: List[Tuple[str, Any]] = []
        self.reject_ids: Set[Any] = set()
        self.fail_commit: Set[str] = set()
        self.fail_begin = False
        self.lose_connection_on: Set[Any] = set()
        self.count_errors: Set[str] = set()
        self._current_table: Optional[str] = None

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def begin(self) -> None:
        self.events.append(("begin", None))
        if self.fail_begin:
            raise pymysql.err.OperationalError(1205, "Lock wait timeout exceeded")
        self.in_transaction = True
        self.pending = []

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        if sql.startswith("SET FOREIGN_KEY_CHECKS"):
            self.fk_checks = sql.endswith("1")
            self.events.append(("fk", 1 if self.fk_checks else 0))
            return 0

        if params is not None:
            # PyMySQL interpolates with %, so a stray % in the statement fails here as it does there.
            sql = sql % tuple("?" for _ in params)

        match = INSERT_PATTERN.match(sql)
        assert match, f"unexpected statement: {sql}"
        table = match.group(1)
        columns = re.findall(r"`([^`]+)`", match.group(2))
        assert len(columns) == len(params)
        row = dict(zip(columns, params))
        self._current_table = table

        key = row.get("id")
        if key in self.lose_connection_on:
            raise StoreConnectionError("target", "Lost connection to MySQL server during query")
        if key in self.reject_ids:
            raise pymysql.err.DataError(1406, f"Data too long for column 'name' at row {key}")
        committed = self.tables.get(table, {})
        staged = {r.get("id") for t, r in self.pending if t == table}
        if key is not None and (key in committed or key in staged):
            raise pymysql.err.IntegrityError(1062, f"Duplicate entry '{key}' for key 'PRIMARY'")

        self.pending.append((table, row))
        return 1

    def commit(self) -> None:
        self.events.append(("commit", None))
        if self._current_table in self.fail_commit:
            raise pymysql.err.OperationalError(1213, "Deadlock found when trying to get lock")
        for table, row in self.pending:
            self.tables.setdefault(table, {})[row.get("id")] = row
        self.pending = []
        self.in_transaction = False

    def rollback(self) -> None:
        self.events.append(("rollback", None))
        self.pending = []
        self.in_transaction = False

    def set_foreign_key_checks(self, enabled: bool) -> None:
        self.execute(f"SET FOREIGN_KEY_CHECKS = {1 if enabled else 0}")

    def count(self, table: str) -> int:
        if table in self.count_errors:
            raise pymysql.err.ProgrammingError(1146, f"Table 'gsl_crm.{table}' doesn't exist")
        return len(self.tables.get(table, {}))


def make_rows(count: int, start: int = 1, **extra) -> List[Dict[str, Any]]:
    """Rows with sequential ids and a couple of typed fields."""
    return [
        {
            "id": i,
            "name": f"row-{i}",
            "is_active": i % 2 == 0,
            "created_at": "2024-03-05T14:30:00.000Z",
            **extra,
        }
        for i in range(start, start + count)
    ]


@pytest.fixture
def fake_target():
    return FakeTarget()


@pytest.fixture
def source_tables():
    return {
        "branches": make_rows(3),
        "dashboard_users": make_rows(5, branch_id=1),
        "universities": make_rows(4, tags=["uk", "russell"]),
        "leads": make_rows(7, branch_id=1, meta={"source": "web"}),
    }


@pytest.fixture
def fake_source(source_tables):
    return FakeSource(source_tables)


@pytest.fixture
def extractor(fake_source):
    return SupabaseExtractor(fake_source, page_size=2)


@pytest.fixture
def loader(fake_target):
    return MySQLLoader(fake_target, batch_size=3)


@pytest.fixture
def verifier(extractor, fake_target):
    return Verifier(extractor, fake_target)


@pytest.fixture
def staging(tmp_path):
    return StagingArea(tmp_path / "data")
