"""Data models for perfcheck."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class StatusLevel(str, Enum):
    """Health status levels for a classified metric."""

    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"
    NEUTRAL = "neutral"


class MetricKind(str, Enum):
    """Metrics that the classifier knows how to grade."""

    QUERY_COUNT = "query_count"
    MEMORY_PERCENT = "memory_percent"
    SLOW_QUERY_COUNT = "slow_query_count"
    AUTOLOAD_SIZE_KB = "autoload_size_kb"


@dataclass(slots=True, frozen=True)
class SlowQueryRecord:
    """A logged query that ran longer than the slow threshold."""

    sql: str
    duration_seconds: float
    caller: str  # Comma-joined call trace


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    """Immutable point-in-time view of the site's performance counters."""

    query_count: int
    memory_used_bytes: int
    memory_limit_bytes: int
    slow_queries: tuple[SlowQueryRecord, ...] = ()
    autoload_size_bytes: int = 0
    runtime_version: str = ""
    database_version: str = ""
    platform_version: str = ""
    object_cache_active: bool = False
    query_log_enabled: bool = False
    memory_percent: float = field(init=False)
    slow_query_count: int = field(init=False)

    def __post_init__(self) -> None:
        # Frozen dataclass: derived fields go through object.__setattr__
        percent = 0.0
        if self.memory_limit_bytes > 0:
            percent = self.memory_used_bytes * 100 / self.memory_limit_bytes
        object.__setattr__(self, "memory_percent", percent)
        object.__setattr__(self, "slow_query_count", len(self.slow_queries))

    @property
    def autoload_size_kb(self) -> float:
        return self.autoload_size_bytes / 1024

    @property
    def memory_used_mb(self) -> float:
        return self.memory_used_bytes / (1024**2)

    @property
    def memory_limit_mb(self) -> float:
        return self.memory_limit_bytes / (1024**2)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["slow_queries"] = [asdict(record) for record in self.slow_queries]
        data["autoload_size_kb"] = self.autoload_size_kb
        return data


@dataclass(slots=True, frozen=True)
class StatusCard:
    """Classified view of one metric, ready for rendering."""

    title: str = ""
    value: str = ""
    description: str = ""
    status: StatusLevel = StatusLevel.NEUTRAL
    progress: float | None = None  # 0.0 - 100.0
    icon: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "title": self.title,
            "value": self.value,
            "description": self.description,
            "status": self.status.value,
            "progress": self.progress,
            "icon": self.icon,
        }
