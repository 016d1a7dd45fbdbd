"""Host probe for SQLite-backed sites."""

import logging
import platform
import sqlite3
import time
import traceback
from pathlib import Path
from typing import Any

import psutil

from perfcheck.collector import CollectorConfig

logger = logging.getLogger(__name__)

AUTOLOAD_SIZE_SQL = (
    "SELECT SUM(LENGTH(CAST(option_value AS BLOB))) FROM options WHERE autoload = 'yes'"
)
PLATFORM_VERSION_SQL = "SELECT option_value FROM options WHERE option_name = 'version'"


class TrackedConnection:
    """
    sqlite3 connection wrapper that counts every query.

    With save_queries on, each query is also logged as a
    (sql, duration_seconds, caller) tuple.
    """

    def __init__(self, connection: sqlite3.Connection, save_queries: bool = False) -> None:
        self._connection = connection
        self._save_queries = save_queries
        self._num_queries = 0
        self._queries: list[tuple[str, float, str]] = []

    @property
    def raw(self) -> sqlite3.Connection:
        """Get the wrapped connection."""
        return self._connection

    @property
    def num_queries(self) -> int:
        return self._num_queries

    @property
    def queries(self) -> list[tuple[str, float, str]]:
        return list(self._queries)

    def execute(self, sql: str, parameters: Any = ()) -> sqlite3.Cursor:
        """Run a query, counting and optionally timing it."""
        self._num_queries += 1
        if not self._save_queries:
            return self._connection.execute(sql, parameters)

        start = time.perf_counter()
        try:
            return self._connection.execute(sql, parameters)
        finally:
            duration = time.perf_counter() - start
            self._queries.append((sql, duration, _caller_trace()))

    def commit(self) -> None:
        self._connection.commit()

    def close(self) -> None:
        self._connection.close()


def _caller_trace() -> str:
    """Comma-joined names of the functions that led to the query."""
    # Drop this helper and TrackedConnection.execute
    stack = traceback.extract_stack()[:-2]
    return ", ".join(frame.name for frame in stack)


class SiteProbe:
    """RuntimeProbe implementation over a site database and this process."""

    def __init__(
        self,
        connection: TrackedConnection,
        object_cache: bool = False,
    ) -> None:
        """
        Initialize the SiteProbe.

        Args:
            connection: Tracked connection the site runs its queries on.
            object_cache: Whether an external object cache is configured.
        """
        self._connection = connection
        self._object_cache = object_cache
        self._process = psutil.Process()

    @property
    def connection(self) -> TrackedConnection:
        return self._connection

    def query_count(self) -> int:
        return self._connection.num_queries

    def peak_memory_bytes(self) -> int:
        mem = self._process.memory_info()
        # Only Windows reports a true peak working set
        return getattr(mem, "peak_wset", mem.rss)

    def memory_limit(self) -> str | None:
        # No host-level limit; the collector falls back to its config
        return None

    def query_log(self) -> list[tuple[str, float, str]]:
        return self._connection.queries

    def autoload_size(self) -> int | None:
        # Probe reads bypass the tracker so they don't inflate the count
        row = self._connection.raw.execute(AUTOLOAD_SIZE_SQL).fetchone()
        return row[0] if row else None

    def runtime_version(self) -> str:
        return platform.python_version()

    def database_version(self) -> str:
        row = self._connection.raw.execute("SELECT sqlite_version()").fetchone()
        return str(row[0]) if row else ""

    def platform_version(self) -> str:
        row = self._connection.raw.execute(PLATFORM_VERSION_SQL).fetchone()
        return str(row[0]) if row and row[0] is not None else ""

    def object_cache_active(self) -> bool:
        return self._object_cache


def load_autoloaded_options(connection: TrackedConnection) -> dict[str, str]:
    """Load every autoloaded option, the way a site boots on each request."""
    try:
        rows = connection.execute(
            "SELECT option_name, option_value FROM options WHERE autoload = 'yes'"
        ).fetchall()
    except sqlite3.Error:
        logger.debug("Site has no readable options table", exc_info=True)
        return {}
    return {name: value for name, value in rows}


def open_site(
    path: Path | str,
    config: CollectorConfig | None = None,
    object_cache: bool = False,
) -> SiteProbe:
    """
    Open a site database and wrap it in a SiteProbe.

    Raises:
        FileNotFoundError: If the database file does not exist.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Site database not found: {path}")

    config = config or CollectorConfig()
    logger.debug("Opening site database %s (save_queries=%s)", path, config.save_queries)
    connection = TrackedConnection(sqlite3.connect(path), save_queries=config.save_queries)
    return SiteProbe(connection, object_cache=object_cache)
