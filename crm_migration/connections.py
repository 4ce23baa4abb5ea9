"""
Source and target store connections.

Both are constructed once by the CLI, handed to the extractors, loader and
verifier, and closed once at exit. Nothing here is shared module state.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pymysql
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import MigrationSettings
from .errors import SourceReadError, SourceTableNotFound, StoreConnectionError

logger = logging.getLogger(__name__)

# MySQL server error codes
DUPLICATE_KEY_CODES = frozenset({1062, 1586})  # ER_DUP_ENTRY, ER_DUP_ENTRY_WITH_KEY_NAME
LOST_CONNECTION_CODES = frozenset({2003, 2006, 2013, 2055})


def quote_identifier(name: str) -> str:
    """Quote a MySQL identifier with backticks."""
    return "`" + name.replace("`", "``") + "`"


def mysql_error_code(exc: BaseException) -> Optional[int]:
    """Numeric MySQL error code carried by a PyMySQL exception, if any."""
    if isinstance(exc, pymysql.err.MySQLError) and exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def is_duplicate_key_error(exc: BaseException) -> bool:
    return isinstance(exc, pymysql.err.IntegrityError) and mysql_error_code(exc) in DUPLICATE_KEY_CODES


def is_connection_lost(exc: BaseException) -> bool:
    return isinstance(exc, pymysql.err.OperationalError) and mysql_error_code(exc) in LOST_CONNECTION_CODES


class SupabaseSource:
    """
    Read-only PostgREST client for the Supabase source project.

    Exposes the paged ``select`` and the exact ``count`` the extractor and
    verifier need.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        retry_config: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the source client.

        Args:
            url: Supabase project URL
            api_key: Anon or service-role key
            session: Custom requests session
            timeout: Per-request timeout in seconds
            retry_config: ``max_retries`` / ``backoff_factor`` overrides
        """
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.retry_config = retry_config or {"max_retries": 3, "backoff_factor": 2.0}
        self._session = session or self._create_session()
        self._session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        })

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> "SupabaseSource":
        settings.require_source()
        return cls(settings.source_url, settings.source_key)

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self.retry_config.get("max_retries", 3),
            backoff_factor=self.retry_config.get("backoff_factor", 2.0),
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=frozenset({"GET", "HEAD"}),
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    def _request(
        self,
        method: str,
        table: str,
        offset: int,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> requests.Response:
        url = f"{self.rest_url}/{table}"
        try:
            response = self._session.request(
                method, url, params=params, headers=headers, timeout=self.timeout
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            if isinstance(e, requests.exceptions.ReadTimeout):
                raise SourceReadError(table, offset, f"Request timed out: {e}") from e
            raise StoreConnectionError("source", f"Cannot reach {self.url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise SourceReadError(table, offset, f"Request failed: {e}") from e

        if response.status_code == 404:
            raise SourceTableNotFound(table, f"HTTP 404 - {response.text}")
        if response.status_code >= 400:
            raise SourceReadError(table, offset, f"HTTP {response.status_code} - {response.text}")
        return response

    def select(self, table: str, offset: int, limit: int) -> List[Dict[str, Any]]:
        """Read rows ``[offset, offset + limit)`` in the engine's default order."""
        response = self._request(
            "GET", table, offset, params={"select": "*", "offset": offset, "limit": limit}
        )
        try:
            rows = response.json()
        except ValueError as e:
            raise SourceReadError(table, offset, f"Invalid JSON in response: {e}") from e

        if not isinstance(rows, list):
            raise SourceReadError(table, offset, f"Expected a JSON array, got {type(rows).__name__}")
        return rows

    def count(self, table: str) -> int:
        """Exact row count of a table."""
        response = self._request(
            "HEAD", table, 0,
            params={"select": "*"},
            headers={"Prefer": "count=exact"},
        )
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1] if "/" in content_range else ""
        if not total.isdigit():
            raise SourceReadError(table, 0, f"Missing row count in Content-Range: {content_range!r}")
        return int(total)

    def ping(self) -> None:
        """Check the REST endpoint answers; raises StoreConnectionError otherwise."""
        try:
            response = self._session.get(f"{self.rest_url}/", timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise StoreConnectionError("source", f"Cannot reach {self.url}: {e}") from e
        if response.status_code >= 500:
            raise StoreConnectionError("source", f"HTTP {response.status_code} from {self.url}")

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "SupabaseSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MySQLTarget:
    """
    A single MySQL connection used for the whole run.

    Autocommit is off; the loader owns transaction boundaries.
    """

    def __init__(
        self,
        host: str,
        port: int = 3306,
        user: str = "root",
        password: str = "",
        database: str = "gsl_crm",
        ssl: bool = False,
        connect_timeout: int = 10
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.ssl = ssl
        self.connect_timeout = connect_timeout
        self._connection: Optional[pymysql.connections.Connection] = None

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> "MySQLTarget":
        settings.require_target()
        return cls(
            host=settings.target_host,
            port=settings.target_port,
            user=settings.target_user,
            password=settings.target_password,
            database=settings.target_database,
            ssl=settings.target_ssl,
        )

    def connect(self) -> "MySQLTarget":
        """Open the connection; raises StoreConnectionError when unreachable."""
        if self._connection is not None:
            return self

        params: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
            "charset": "utf8mb4",
            "autocommit": False,
            "connect_timeout": self.connect_timeout,
        }
        if self.ssl:
            params["ssl"] = {"check_hostname": True}

        try:
            self._connection = pymysql.connect(**params)
        except pymysql.err.MySQLError as e:
            raise StoreConnectionError(
                "target", f"Cannot connect to {self.host}:{self.port}/{self.database}: {e}"
            ) from e

        logger.info(f"Connected to MySQL {self.host}:{self.port}/{self.database}")
        return self

    @property
    def connection(self) -> pymysql.connections.Connection:
        if self._connection is None:
            raise RuntimeError("MySQL target is not connected")
        return self._connection

    def _translate(self, e: pymysql.err.MySQLError) -> None:
        if is_connection_lost(e):
            raise StoreConnectionError("target", f"Lost connection to {self.host}: {e}") from e

    def begin(self) -> None:
        try:
            self.connection.begin()
        except pymysql.err.MySQLError as e:
            self._translate(e)
            raise

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """Run one statement and return the affected row count."""
        try:
            with self.connection.cursor() as cursor:
                return cursor.execute(sql, params)
        except pymysql.err.MySQLError as e:
            self._translate(e)
            raise

    def commit(self) -> None:
        try:
            self.connection.commit()
        except pymysql.err.MySQLError as e:
            self._translate(e)
            raise

    def rollback(self) -> None:
        try:
            self.connection.rollback()
        except pymysql.err.MySQLError as e:
            self._translate(e)
            raise

    def set_foreign_key_checks(self, enabled: bool) -> None:
        self.execute(f"SET FOREIGN_KEY_CHECKS = {1 if enabled else 0}")

    def count(self, table: str) -> int:
        """Row count of a target table."""
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}")
                row = cursor.fetchone()
        except pymysql.err.MySQLError as e:
            self._translate(e)
            raise
        return int(row[0]) if row else 0

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            except pymysql.err.Error as e:
                logger.warning(f"Error closing MySQL connection: {e}")
            self._connection = None

    def __enter__(self) -> "MySQLTarget":
        return self.connect()

    def __exit__(self, *exc_info) -> None:
        self.close()
