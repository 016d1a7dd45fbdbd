"""Tests for the perfcheck dashboard application."""

from dataclasses import dataclass, field

import pytest

from perfcheck.app import (
    DatabaseHealth,
    PerfcheckApp,
    SlowQueryLog,
    StatusCardWidget,
    format_bytes,
    progress_bar,
)
from perfcheck.classifier import AUTOLOAD_ADVICE
from perfcheck.collector import CollectorConfig, MetricsCollector
from perfcheck.models import StatusLevel


@dataclass
class StaticProbe:
    """Probe returning fixed counters and counting collections."""

    queries: int = 50
    memory: int = 32 * 1024**2
    log: list = field(default_factory=list)
    autoload: int = 100 * 1024
    version: str = "6.4.2"
    reads: int = 0

    def query_count(self):
        self.reads += 1
        return self.queries

    def peak_memory_bytes(self):
        return self.memory

    def memory_limit(self):
        return None

    def query_log(self):
        return self.log

    def autoload_size(self):
        return self.autoload

    def runtime_version(self):
        return "3.12.0"

    def database_version(self):
        return "3.45.1"

    def platform_version(self):
        return self.version

    def object_cache_active(self):
        return False


def make_app(save_queries: bool = False, **probe_fields) -> tuple[PerfcheckApp, StaticProbe]:
    """Build an app over a StaticProbe."""
    probe = StaticProbe(**probe_fields)
    collector = MetricsCollector(probe, CollectorConfig(save_queries=save_queries))
    return PerfcheckApp(collector), probe


def test_format_bytes_bytes():
    """Test format_bytes with byte values."""
    assert format_bytes(500) == "500B"


def test_format_bytes_kilobytes():
    """Test format_bytes with kilobyte values."""
    assert format_bytes(2048) == "2.0K"


def test_format_bytes_megabytes():
    """Test format_bytes with megabyte values."""
    assert format_bytes(5242880) == "5.0M"


def test_format_bytes_gigabytes():
    """Test format_bytes with gigabyte values."""
    assert format_bytes(1073741824) == "1.0G"


def test_progress_bar_fill():
    """Test progress_bar fills proportionally and caps at full width."""
    assert progress_bar(50.0, "green", width=10).count("█") == 5
    assert progress_bar(100.0, "green", width=10).count("░") == 0
    assert progress_bar(0.0, "green", width=10).count("░") == 10


@pytest.mark.asyncio
async def test_app_creation():
    """Test PerfcheckApp can be instantiated."""
    app, _ = make_app()
    assert app.title == "perfcheck"
    assert app.sub_title == "Performance Checkup"
    assert app.snapshot is None


@pytest.mark.asyncio
async def test_app_compose():
    """Test PerfcheckApp composes every tab."""
    app, _ = make_app()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#card-query_count") is not None
        assert pilot.app.query_one("#card-memory_percent") is not None
        assert pilot.app.query_one("#card-slow_query_count") is not None
        assert pilot.app.query_one("#environment-table") is not None
        assert pilot.app.query_one(SlowQueryLog) is not None
        assert pilot.app.query_one("#database-health") is not None


@pytest.mark.asyncio
async def test_app_collects_on_mount():
    """Test a snapshot is taken and shown once the app is mounted."""
    app, probe = make_app(queries=150)
    async with app.run_test() as pilot:
        await pilot.pause()

        assert app.snapshot is not None
        assert probe.reads == 1

        widget = pilot.app.query_one("#card-query_count", StatusCardWidget)
        assert widget.card is not None
        assert widget.card.status is StatusLevel.WARNING
        assert widget.has_class("status-warning")
        assert not widget.has_class("status-good")


@pytest.mark.asyncio
async def test_app_rescan_binding():
    """Test that 'r' takes a fresh snapshot."""
    app, probe = make_app()
    async with app.run_test() as pilot:
        await pilot.pause()
        first = app.snapshot

        probe.queries = 250
        await pilot.press("r")
        await pilot.pause()

        assert probe.reads == 2
        assert app.snapshot is not first
        assert app.snapshot.query_count == 250
        widget = pilot.app.query_one("#card-query_count", StatusCardWidget)
        assert widget.card.status is StatusLevel.CRITICAL


@pytest.mark.asyncio
async def test_app_quit_binding():
    """Test that 'q' binding triggers quit."""
    app, _ = make_app()
    async with app.run_test() as pilot:
        await pilot.press("q")
        # App should be exiting
        assert pilot.app._exit


@pytest.mark.asyncio
async def test_slow_query_card_neutral_without_logging():
    """Test the slow query card is neutral and the table hidden without logging."""
    app, _ = make_app(save_queries=False, log=[("SELECT 1", 0.5, "main")])
    async with app.run_test() as pilot:
        await pilot.pause()

        widget = pilot.app.query_one("#card-slow_query_count", StatusCardWidget)
        assert widget.card.status is StatusLevel.NEUTRAL

        slow_log = pilot.app.query_one(SlowQueryLog)
        assert slow_log.row_count == 0
        assert slow_log.query_one("#slow-table").display is False


@pytest.mark.asyncio
async def test_slow_query_table_lists_queries():
    """Test slow queries are listed slowest first."""
    log = [
        ("SELECT [fast]", 0.05, "main"),
        ("SELECT b", 0.15, "main"),
        ("SELECT c", 0.30, "main"),
    ]
    app, _ = make_app(save_queries=True, log=log)
    async with app.run_test() as pilot:
        await pilot.pause()

        slow_log = pilot.app.query_one(SlowQueryLog)
        assert slow_log.row_count == 2
        assert slow_log.query_one("#slow-table").display is True

        widget = pilot.app.query_one("#card-slow_query_count", StatusCardWidget)
        assert widget.card.status is StatusLevel.WARNING


@pytest.mark.asyncio
async def test_database_health_advice():
    """Test cleanup advice is shown for a bloated options table."""
    app, _ = make_app(autoload=900 * 1024)
    async with app.run_test() as pilot:
        await pilot.pause()

        health = pilot.app.query_one("#database-health", DatabaseHealth)
        assert health.advice == AUTOLOAD_ADVICE


@pytest.mark.asyncio
async def test_database_health_no_advice_when_good():
    """Test no advice is shown for a small options table."""
    app, _ = make_app(autoload=10 * 1024)
    async with app.run_test() as pilot:
        await pilot.pause()

        health = pilot.app.query_one("#database-health", DatabaseHealth)
        assert health.advice == ()


@pytest.mark.asyncio
async def test_bracketed_version_renders_as_text():
    """Test a version string with markup-like brackets does not stop the update."""
    app, _ = make_app(save_queries=True, version="6.4[/beta]", autoload=900 * 1024)
    async with app.run_test() as pilot:
        await pilot.pause()

        table = pilot.app.query_one("#environment-table")
        assert table.row_count == 5
        assert str(table.get_row_at(0)[1]) == "6.4[/beta]"

        # Tabs updated after the environment table still got their data
        health = pilot.app.query_one("#database-health", DatabaseHealth)
        assert health.advice == AUTOLOAD_ADVICE
        slow_log = pilot.app.query_one(SlowQueryLog)
        assert slow_log.query_one("#slow-table").display is False
