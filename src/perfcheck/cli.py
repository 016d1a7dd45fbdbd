"""
perfcheck CLI - Command-line interface.

Report on a site's performance signals or open the interactive dashboard.
"""

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from perfcheck.app import PerfcheckApp
from perfcheck.classifier import autoload_advice, classify_all
from perfcheck.collector import SLOW_QUERY_THRESHOLD, CollectorConfig, MetricsCollector
from perfcheck.models import MetricKind, MetricsSnapshot, StatusCard
from perfcheck.probe import SiteProbe, load_autoloaded_options, open_site

app = typer.Typer(
    name="perfcheck",
    help="perfcheck - Spot common performance red flags on a site",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    "good": "green",
    "warning": "yellow",
    "critical": "red",
    "neutral": "dim",
}

SiteArgument = typer.Argument(..., help="Path to the site's SQLite database")
SaveQueriesOption = typer.Option(
    False, "--save-queries", "-s", help="Time and log every query to find slow ones"
)
MemoryLimitOption = typer.Option("256M", "--memory-limit", "-m", help="Memory limit, e.g. 256M or 1G")
ObjectCacheOption = typer.Option(False, "--object-cache", help="Site runs an external object cache")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def _open_collector(
    site: Path,
    save_queries: bool,
    memory_limit: str,
    object_cache: bool,
    verbose: bool,
) -> tuple[SiteProbe, MetricsCollector]:
    """Build the probe and collector for one run, exiting if the site is missing."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    config = CollectorConfig(
        save_queries=save_queries,
        memory_limit=memory_limit,
        slow_query_threshold=SLOW_QUERY_THRESHOLD,
    )
    try:
        probe = open_site(site, config, object_cache=object_cache)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    # Boot the site once so there is a request's worth of queries to measure
    load_autoloaded_options(probe.connection)
    return probe, MetricsCollector(probe, config)


def _status_text(card: StatusCard) -> str:
    style = STATUS_STYLES[card.status.value]
    return f"[{style}]{card.status.value.upper()}[/{style}]"


def _print_report(snapshot: MetricsSnapshot, cards: dict[MetricKind, StatusCard]) -> None:
    table = Table(title="Performance Checkup")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Details")

    for card in cards.values():
        table.add_row(card.title, card.value, _status_text(card), card.description)
    console.print(table)

    env = Table(title="Server Environment", show_header=False)
    env.add_column("Setting", style="bold")
    env.add_column("Value")
    env.add_row("Platform Version", escape(snapshot.platform_version or "unknown"))
    env.add_row("Python Version", escape(snapshot.runtime_version or "unknown"))
    env.add_row("Database Version", escape(snapshot.database_version or "unknown"))
    env.add_row("Object Cache", "Active" if snapshot.object_cache_active else "Not Active")
    env.add_row("Query Logging", "Enabled" if snapshot.query_log_enabled else "Disabled")
    console.print(env)

    if snapshot.slow_queries:
        slow = Table(title=f"Slow Queries ({snapshot.slow_query_count})")
        slow.add_column("Time (s)", justify="right")
        slow.add_column("SQL Query", overflow="fold")
        slow.add_column("Called By", style="dim", overflow="fold")
        for record in snapshot.slow_queries:
            slow.add_row(f"{record.duration_seconds:.4f}", escape(record.sql), escape(record.caller))
        console.print(slow)

    advice = autoload_advice(cards[MetricKind.AUTOLOAD_SIZE_KB])
    if advice:
        console.print("\n[yellow]Autoloaded options need attention:[/yellow]")
        for tip in advice:
            console.print(f"  - {tip}")


@app.command()
def report(
    site: Path = SiteArgument,
    save_queries: bool = SaveQueriesOption,
    memory_limit: str = MemoryLimitOption,
    object_cache: bool = ObjectCacheOption,
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
    verbose: bool = VerboseOption,
):
    """Collect and classify the site's metrics once."""
    probe, collector = _open_collector(site, save_queries, memory_limit, object_cache, verbose)
    try:
        snapshot = collector.collect()
    finally:
        probe.connection.close()
    cards = classify_all(snapshot)

    if as_json:
        payload = {
            "metrics": snapshot.to_dict(),
            "cards": {kind.value: card.to_dict() for kind, card in cards.items()},
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    _print_report(snapshot, cards)


@app.command()
def dashboard(
    site: Path = SiteArgument,
    save_queries: bool = SaveQueriesOption,
    memory_limit: str = MemoryLimitOption,
    object_cache: bool = ObjectCacheOption,
    verbose: bool = VerboseOption,
):
    """Open the interactive dashboard."""
    probe, collector = _open_collector(site, save_queries, memory_limit, object_cache, verbose)
    try:
        PerfcheckApp(collector).run()
    finally:
        probe.connection.close()


def main() -> None:
    """Entry point for perfcheck."""
    app()


if __name__ == "__main__":
    main()
