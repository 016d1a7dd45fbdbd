"""Metrics collection engine for perfcheck."""

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from perfcheck.models import MetricsSnapshot, SlowQueryRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

SLOW_QUERY_THRESHOLD = 0.1  # Seconds

_MEMORY_LIMIT_RE = re.compile(r"^(\d+)([GMK])?$", re.IGNORECASE)
_UNIT_POWERS = {"K": 1, "M": 2, "G": 3}


@dataclass(slots=True, frozen=True)
class CollectorConfig:
    """Explicit collector settings.

    Attributes:
        save_queries: Whether the probe keeps a per-query log. Without it no
            slow queries can be reported.
        memory_limit: Memory ceiling in shorthand notation ("256M", "1G").
        slow_query_threshold: Queries strictly slower than this many seconds
            are reported as slow.
    """

    save_queries: bool = False
    memory_limit: str = "256M"
    slow_query_threshold: float = SLOW_QUERY_THRESHOLD


class RuntimeProbe(Protocol):
    """Read-only view of the host counters the collector samples."""

    def query_count(self) -> int: ...

    def peak_memory_bytes(self) -> int: ...

    def memory_limit(self) -> str | None: ...

    def query_log(self) -> Sequence[Sequence[Any]] | None: ...

    def autoload_size(self) -> int | None: ...

    def runtime_version(self) -> str: ...

    def database_version(self) -> str: ...

    def platform_version(self) -> str: ...

    def object_cache_active(self) -> bool: ...


def parse_memory_limit(text: str | None) -> int:
    """
    Convert a shorthand memory limit to bytes.

    Accepts "<integer><unit>" with unit G, M or K (any case), or a bare
    integer taken as bytes. Anything else, including "-1", yields 0.
    """
    if not text:
        return 0
    match = _MEMORY_LIMIT_RE.match(text.strip())
    if match is None:
        return 0
    value = int(match.group(1))
    unit = match.group(2)
    if unit:
        value *= 1024 ** _UNIT_POWERS[unit.upper()]
    return value


def filter_slow_queries(
    entries: Iterable[Sequence[Any]],
    threshold: float = SLOW_QUERY_THRESHOLD,
) -> list[SlowQueryRecord]:
    """
    Pick the slow entries out of a query log.

    Each entry is a (sql, duration, caller) sequence; missing members default
    to empty values. Result is sorted slowest first, ties keep log order.
    """
    records: list[SlowQueryRecord] = []
    for entry in entries:
        if not isinstance(entry, Sequence) or isinstance(entry, (str, bytes)):
            logger.debug("Skipping malformed query log entry %r", entry)
            continue
        duration = _to_float(entry[1]) if len(entry) > 1 else 0.0
        if duration <= threshold:
            continue
        records.append(
            SlowQueryRecord(
                sql=str(entry[0]) if len(entry) > 0 and entry[0] is not None else "",
                duration_seconds=duration,
                caller=str(entry[2]) if len(entry) > 2 and entry[2] is not None else "",
            )
        )
    # sorted() is stable, so equal durations stay in log order
    return sorted(records, key=lambda r: r.duration_seconds, reverse=True)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class MetricsCollector:
    """
    Builds MetricsSnapshot objects from a RuntimeProbe.

    Collection fails soft: a counter the probe cannot provide is reported as
    zero or empty instead of aborting the snapshot.
    """

    def __init__(self, probe: RuntimeProbe, config: CollectorConfig | None = None) -> None:
        """
        Initialize the MetricsCollector.

        Args:
            probe: Source of the host counters.
            config: Collector settings. Defaults to CollectorConfig().
        """
        self._probe = probe
        self._config = config or CollectorConfig()

    @property
    def config(self) -> CollectorConfig:
        """Get the collector settings."""
        return self._config

    def collect(self) -> MetricsSnapshot:
        """Collect a snapshot of the current site state."""
        probe = self._probe

        query_count = self._read_count("query count", probe.query_count)
        memory_used = self._read_count("peak memory", probe.peak_memory_bytes)

        # An explicit limit on the probe wins over the configured one
        limit_text = self._read("memory limit", probe.memory_limit, None)
        memory_limit = parse_memory_limit(limit_text or self._config.memory_limit)

        slow_queries = self._collect_slow_queries()

        autoload_size = self._read_count("autoload size", probe.autoload_size)

        return MetricsSnapshot(
            query_count=query_count,
            memory_used_bytes=memory_used,
            memory_limit_bytes=memory_limit,
            slow_queries=tuple(slow_queries),
            autoload_size_bytes=autoload_size,
            runtime_version=str(self._read("runtime version", probe.runtime_version, "")),
            database_version=str(self._read("database version", probe.database_version, "")),
            platform_version=str(self._read("platform version", probe.platform_version, "")),
            object_cache_active=bool(
                self._read("object cache", probe.object_cache_active, False)
            ),
            query_log_enabled=self._config.save_queries,
        )

    def _collect_slow_queries(self) -> list[SlowQueryRecord]:
        """Extract slow queries, only when query logging is switched on."""
        if not self._config.save_queries:
            return []
        entries = self._read("query log", self._probe.query_log, None)
        if not entries:
            return []
        if not isinstance(entries, Iterable):
            logger.debug("Query log is not iterable: %r", entries)
            return []
        return filter_slow_queries(entries, self._config.slow_query_threshold)

    def _read_count(self, label: str, getter: Callable[[], Any]) -> int:
        """Read a non-negative integer counter, 0 when it is missing or not numeric."""
        value = self._read(label, getter, 0)
        try:
            return max(0, int(value))
        except (TypeError, ValueError, OverflowError):
            logger.debug("Non-numeric %s %r, using 0", label, value)
            return 0

    @staticmethod
    def _read(label: str, getter: Callable[[], T | None], default: T) -> T:
        """Call a probe getter, falling back to default when it has nothing."""
        try:
            value = getter()
        except Exception:
            logger.debug("Could not read %s, using %r", label, default, exc_info=True)
            return default
        if value is None:
            logger.debug("No %s available, using %r", label, default)
            return default
        return value
