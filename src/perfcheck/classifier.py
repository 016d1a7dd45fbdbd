"""Threshold classification of collected metrics."""

from collections.abc import Callable

from perfcheck.models import MetricKind, MetricsSnapshot, StatusCard, StatusLevel

QUERY_WARNING = 100
QUERY_CRITICAL = 200
MEMORY_WARNING = 60.0  # Percent of limit
MEMORY_CRITICAL = 80.0
SLOW_QUERY_CRITICAL = 5
AUTOLOAD_EXCELLENT_KB = 300.0
AUTOLOAD_WARNING_KB = 500.0
AUTOLOAD_CRITICAL_KB = 800.0

AUTOLOAD_ADVICE = (
    "Remove unused plugins (they often leave autoloaded data behind)",
    "Clean up the options table with a database optimization tool",
    "Contact plugin developers if their plugins store excessive autoloaded data",
)


def _classify_queries(snapshot: MetricsSnapshot) -> StatusCard:
    count = snapshot.query_count
    status, description = StatusLevel.GOOD, "Normal range"
    if count > QUERY_CRITICAL:
        status, description = StatusLevel.CRITICAL, "Very high - investigate"
    elif count > QUERY_WARNING:
        status, description = StatusLevel.WARNING, "Higher than normal"

    return StatusCard(
        title="Database Queries",
        value=f"{count:,}",
        description=description,
        status=status,
        icon="database",
    )


def _classify_memory(snapshot: MetricsSnapshot) -> StatusCard:
    percent = snapshot.memory_percent
    status, description = StatusLevel.GOOD, "Healthy usage"
    if percent > MEMORY_CRITICAL:
        status, description = StatusLevel.CRITICAL, "Near limit"
    elif percent > MEMORY_WARNING:
        status, description = StatusLevel.WARNING, "Moderate usage"

    return StatusCard(
        title="Memory Usage",
        value=f"{snapshot.memory_used_mb:.1f} MB / {snapshot.memory_limit_mb:.0f} MB",
        description=description,
        status=status,
        progress=min(max(percent, 0.0), 100.0),
        icon="performance",
    )


def _classify_slow_queries(snapshot: MetricsSnapshot) -> StatusCard:
    count = snapshot.slow_query_count
    status, description = StatusLevel.GOOD, "No slow queries detected"
    if not snapshot.query_log_enabled:
        status, description = StatusLevel.NEUTRAL, "Query logging not enabled"
    elif count > SLOW_QUERY_CRITICAL:
        status, description = StatusLevel.CRITICAL, "Multiple slow queries found"
    elif count > 0:
        status, description = StatusLevel.WARNING, "Some slow queries detected"

    return StatusCard(
        title="Slow Queries",
        value=f"{count:,}",
        description=description,
        status=status,
        icon="clock",
    )


def _classify_autoload(snapshot: MetricsSnapshot) -> StatusCard:
    size_kb = snapshot.autoload_size_kb
    if size_kb > AUTOLOAD_CRITICAL_KB:
        status, description = StatusLevel.CRITICAL, "Critical - cleanup recommended"
    elif size_kb > AUTOLOAD_WARNING_KB:
        status, description = StatusLevel.WARNING, "Warning - consider cleanup"
    elif size_kb > AUTOLOAD_EXCELLENT_KB:
        status, description = StatusLevel.GOOD, "Good"
    else:
        status, description = StatusLevel.GOOD, "Excellent"

    return StatusCard(
        title="Autoloaded Options",
        value=f"{size_kb:,.2f} KB",
        description=description,
        status=status,
        icon="admin-settings",
    )


_CLASSIFIERS: dict[MetricKind, Callable[[MetricsSnapshot], StatusCard]] = {
    MetricKind.QUERY_COUNT: _classify_queries,
    MetricKind.MEMORY_PERCENT: _classify_memory,
    MetricKind.SLOW_QUERY_COUNT: _classify_slow_queries,
    MetricKind.AUTOLOAD_SIZE_KB: _classify_autoload,
}


def classify(kind: MetricKind | str, snapshot: MetricsSnapshot) -> StatusCard:
    """
    Grade one metric of a snapshot.

    Args:
        kind: Metric to grade, as a MetricKind or its string value.
        snapshot: Snapshot to read the metric from.

    Returns:
        StatusCard for the metric. Unknown metric names get an empty
        neutral card.
    """
    try:
        kind = MetricKind(kind)
    except ValueError:
        return StatusCard()
    return _CLASSIFIERS[kind](snapshot)


def classify_all(snapshot: MetricsSnapshot) -> dict[MetricKind, StatusCard]:
    """Grade every known metric, in MetricKind order."""
    return {kind: classify(kind, snapshot) for kind in MetricKind}


def autoload_advice(card: StatusCard) -> tuple[str, ...]:
    """Cleanup suggestions for an autoload card that is not healthy."""
    if card.status in (StatusLevel.WARNING, StatusLevel.CRITICAL):
        return AUTOLOAD_ADVICE
    return ()
