"""perfcheck - Textual dashboard application."""

import logging

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, VerticalScroll
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Header, Static, TabbedContent, TabPane

from perfcheck.classifier import (
    AUTOLOAD_CRITICAL_KB,
    AUTOLOAD_EXCELLENT_KB,
    AUTOLOAD_WARNING_KB,
    autoload_advice,
    classify_all,
)
from perfcheck.collector import MetricsCollector
from perfcheck.models import MetricKind, MetricsSnapshot, StatusCard, StatusLevel

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    StatusLevel.GOOD: "green",
    StatusLevel.WARNING: "yellow",
    StatusLevel.CRITICAL: "red",
    StatusLevel.NEUTRAL: "grey50",
}

OVERVIEW_METRICS = (
    MetricKind.QUERY_COUNT,
    MetricKind.MEMORY_PERCENT,
    MetricKind.SLOW_QUERY_COUNT,
)

QUERY_LOG_GUIDE = """\
[b]Enable query logging to track slow queries[/b]

Slow queries can only be reported when every query is timed and logged.
Restart perfcheck with the [b]--save-queries[/b] option to turn it on.

[yellow]Important:[/yellow] query logging adds overhead to every query. Only
enable it on development or staging sites, not in production."""


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{size:d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def progress_bar(percent: float, color: str, width: int = 20) -> str:
    """Render a percentage as a markup bar of the given width."""
    filled = min(int(percent / (100 / width)), width)
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled)


class StatusCardWidget(Static):
    """Card widget showing one classified metric."""

    DEFAULT_CSS = """
    StatusCardWidget {
        width: 1fr;
        height: auto;
        min-height: 6;
        padding: 1;
        margin: 0 1;
        border-left: thick $primary;
        background: $surface;
    }
    StatusCardWidget.status-good { border-left: thick green; }
    StatusCardWidget.status-warning { border-left: thick yellow; }
    StatusCardWidget.status-critical { border-left: thick red; }
    StatusCardWidget.status-neutral { border-left: thick grey; }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize StatusCardWidget."""
        super().__init__("Loading...", *args, **kwargs)
        self._card: StatusCard | None = None

    @property
    def card(self) -> StatusCard | None:
        """Get the card currently shown."""
        return self._card

    def update_card(self, card: StatusCard) -> None:
        """Show a new classified card."""
        self._card = card
        for level in StatusLevel:
            self.set_class(level is card.status, f"status-{level.value}")
        self.update(self._get_card_text(card))

    @staticmethod
    def _get_card_text(card: StatusCard) -> str:
        color = STATUS_COLORS[card.status]
        lines = [
            f"[dim]{card.title}[/dim]",
            f"[b]{card.value}[/b]",
            f"[{color}]{card.description}[/{color}]",
        ]
        if card.progress is not None:
            # Escaped bracket opens the bar container
            lines.append(f"\\[{progress_bar(card.progress, color)}] {card.progress:5.1f}%")
        return "\n".join(lines)


class EnvironmentTable(Container):
    """Server environment facts from a snapshot."""

    DEFAULT_CSS = """
    EnvironmentTable {
        height: auto;
        margin-top: 1;
        border: solid $primary;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the environment table."""
        yield DataTable(id="environment-table", show_header=False)

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#environment-table", DataTable)
        table.add_column("Setting", key="setting", width=20)
        table.add_column("Value", key="value")

    def update_environment(self, snapshot: MetricsSnapshot) -> None:
        """Refill the table from a snapshot."""
        table = self.query_one("#environment-table", DataTable)
        table.clear()
        cache = "[green]Active[/green]" if snapshot.object_cache_active else "[yellow]Not Active[/yellow]"
        query_log = "[green]Enabled[/green]" if snapshot.query_log_enabled else "[grey50]Disabled[/grey50]"
        table.add_row("Platform Version", Text(snapshot.platform_version or "unknown"))
        table.add_row("Python Version", Text(snapshot.runtime_version or "unknown"))
        table.add_row("Database Version", Text(snapshot.database_version or "unknown"))
        table.add_row("Object Cache", cache)
        table.add_row("Query Logging", query_log)


class SlowQueryLog(Container):
    """Slow query table, or a notice when there is nothing to list."""

    DEFAULT_CSS = """
    SlowQueryLog {
        height: 1fr;
    }
    #slow-notice {
        padding: 1;
    }
    #slow-table {
        height: 1fr;
        border: solid $primary;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the slow query log."""
        yield Static("", id="slow-notice")
        yield DataTable(id="slow-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#slow-table", DataTable)
        table.cursor_type = "row"
        table.add_column("Time (s)", key="time", width=10)
        table.add_column("SQL Query", key="sql")
        table.add_column("Called By", key="caller", width=40)

    def update_queries(self, snapshot: MetricsSnapshot) -> None:
        """Show the slow queries of a snapshot."""
        notice = self.query_one("#slow-notice", Static)
        table = self.query_one("#slow-table", DataTable)
        table.clear()

        if not snapshot.query_log_enabled:
            notice.update(QUERY_LOG_GUIDE)
            table.display = False
            return

        if not snapshot.slow_queries:
            notice.update(
                "[green][b]No slow queries detected![/b][/green]\n"
                "All logged queries completed in under 100ms."
            )
            table.display = False
            return

        notice.update("The following queries took longer than 100ms to execute:")
        table.display = True
        for index, record in enumerate(snapshot.slow_queries):
            table.add_row(
                f"{record.duration_seconds:.4f}",
                Text(record.sql),
                Text(record.caller[-40:]),
                key=str(index),
            )

    @property
    def row_count(self) -> int:
        """Get the number of listed slow queries."""
        return self.query_one("#slow-table", DataTable).row_count


class DatabaseHealth(Static):
    """Autoloaded options report."""

    DEFAULT_CSS = """
    DatabaseHealth {
        height: auto;
        padding: 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize DatabaseHealth."""
        super().__init__(*args, **kwargs)
        self._advice: tuple[str, ...] = ()

    @property
    def advice(self) -> tuple[str, ...]:
        """Get the cleanup advice currently shown."""
        return self._advice

    def update_autoload(self, snapshot: MetricsSnapshot, card: StatusCard) -> None:
        """Render the autoload card with its guidance."""
        color = STATUS_COLORS[card.status]
        lines = [
            "[b]Autoloaded Options[/b]",
            "",
            f"Total Size: {card.value} ({format_bytes(snapshot.autoload_size_bytes)})",
            f"Status:     [{color}]{card.description}[/{color}]",
            "",
            "[b]What is autoloaded data?[/b]",
            "Autoloaded options are loaded on every request, so their total size",
            "is paid for by every page the site serves.",
            "",
            "[b]Recommended limits[/b]",
            f"  Under {AUTOLOAD_EXCELLENT_KB:.0f} KB: Excellent",
            f"  {AUTOLOAD_EXCELLENT_KB:.0f}-{AUTOLOAD_WARNING_KB:.0f} KB: Good",
            f"  {AUTOLOAD_WARNING_KB:.0f}-{AUTOLOAD_CRITICAL_KB:.0f} KB: Warning - consider cleanup",
            f"  Over {AUTOLOAD_CRITICAL_KB:.0f} KB: Critical - cleanup recommended",
        ]
        advice = autoload_advice(card)
        self._advice = advice
        if advice:
            lines += ["", "[yellow][b]How to fix:[/b][/yellow]"]
            lines += [f"  - {tip}" for tip in advice]
        self.update("\n".join(lines))


class PerfcheckApp(App):
    """Main perfcheck application."""

    TITLE = "perfcheck"
    SUB_TITLE = "Performance Checkup"

    CSS = """
    #overview-cards {
        height: auto;
        margin-top: 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "rescan", "Re-scan"),
    ]

    def __init__(self, collector: MetricsCollector) -> None:
        """
        Initialize the PerfcheckApp.

        Args:
            collector: Collector sampled on mount and on every re-scan.
        """
        super().__init__()
        self._collector = collector
        self._snapshot: MetricsSnapshot | None = None

    @property
    def snapshot(self) -> MetricsSnapshot | None:
        """Get the snapshot currently displayed."""
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Header()
        with TabbedContent(initial="overview"):
            with TabPane("Health Overview", id="overview"):
                with VerticalScroll():
                    with Horizontal(id="overview-cards"):
                        for kind in OVERVIEW_METRICS:
                            yield StatusCardWidget(id=f"card-{kind.value}")
                    yield EnvironmentTable()
            with TabPane("Slow Query Log", id="slow-queries"):
                yield SlowQueryLog()
            with TabPane("Database Health", id="database"):
                with VerticalScroll():
                    yield DatabaseHealth("Loading...", id="database-health")
        yield Footer()

    def on_mount(self) -> None:
        """Take the first snapshot once the widgets are in place."""
        self.call_after_refresh(self.action_rescan)

    def action_rescan(self) -> None:
        """Collect a fresh snapshot and refresh every tab."""
        snapshot = self._collector.collect()
        self._snapshot = snapshot
        self._update_ui(snapshot)

    def _update_ui(self, snapshot: MetricsSnapshot) -> None:
        """Update the UI with the new snapshot."""
        cards = classify_all(snapshot)

        try:
            for kind in OVERVIEW_METRICS:
                widget = self.query_one(f"#card-{kind.value}", StatusCardWidget)
                widget.update_card(cards[kind])
            self.query_one(EnvironmentTable).update_environment(snapshot)
            self.query_one(SlowQueryLog).update_queries(snapshot)
            self.query_one("#database-health", DatabaseHealth).update_autoload(
                snapshot, cards[MetricKind.AUTOLOAD_SIZE_KB]
            )
        except NoMatches:
            # A re-scan racing shutdown must not crash the app
            logger.debug("Dashboard update skipped", exc_info=True)
