"""
CLI interface for Gas Bottle Tracker.

Provides command-line access to all tracker functionality.
"""

import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from gas_bottle_tracker.config.loader import TrackerConfig, default_config, load_config
from gas_bottle_tracker.core.errors import DataImportError, ValidationError
from gas_bottle_tracker.core.stats import StatsResult, days_between
from gas_bottle_tracker.tracker import GasBottleTracker

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _configure_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True
    )


def _open_tracker(ctx: typer.Context) -> GasBottleTracker:
    return GasBottleTracker(ctx.obj["config"])


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    )
):
    """Gas Bottle Tracker CLI."""
    try:
        config: TrackerConfig = load_config(config_path) if config_path else default_config()
    except Exception as e:
        err_console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _configure_logging(config.log_level)
    ctx.obj = {"config": config}

    if ctx.invoked_subcommand is None:
        console.print("Gas Bottle Tracker - Use --help to see available commands")


@app.command()
def add(
    ctx: typer.Context,
    connection_date: Optional[str] = typer.Argument(
        None,
        help="Refill date (YYYY-MM-DD), defaults to today"
    ),
    cost: Optional[float] = typer.Option(
        None,
        "--cost",
        help="Amount paid, defaults to the configured bottle price"
    )
):
    """Record a new gas bottle connection."""
    with _open_tracker(ctx) as tracker:
        try:
            connection = tracker.add_connection(connection_date or date.today().isoformat(), cost)
        except ValidationError as e:
            console.print(f"[red]Please enter valid connection details:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)
        console.print(
            f"[green]✓[/] Connection added successfully! "
            f"{_format_date(connection.date)} {_format_currency(connection.cost)} (id {connection.id})"
        )


@app.command()
def delete(
    ctx: typer.Context,
    connection_id: int = typer.Argument(..., help="Id of the connection to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")
):
    """Delete a single connection."""
    if not yes:
        typer.confirm("Are you sure you want to delete this connection?", abort=True)
    with _open_tracker(ctx) as tracker:
        if tracker.delete_connection(connection_id):
            console.print("[green]✓[/] Connection deleted successfully!")
        else:
            console.print(f"[yellow]No connection with id {connection_id}[/]")


@app.command()
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")
):
    """Clear the whole connection history."""
    if not yes:
        typer.confirm(
            "Are you sure you want to clear all connection history? This action cannot be undone.",
            abort=True
        )
    with _open_tracker(ctx) as tracker:
        tracker.clear_history()
        console.print("[green]✓[/] History cleared successfully!")


@app.command()
def settings(
    ctx: typer.Context,
    weight: Optional[float] = typer.Option(None, "--weight", "-w", help="Bottle weight in kg"),
    price: Optional[float] = typer.Option(None, "--price", "-p", help="Bottle price")
):
    """Show or update bottle settings."""
    with _open_tracker(ctx) as tracker:
        current = tracker.snapshot().settings
        if weight is not None or price is not None:
            try:
                current = tracker.update_settings(
                    weight if weight is not None else current.bottle_weight,
                    price if price is not None else current.bottle_price
                )
            except ValidationError as e:
                console.print(f"[red]Please enter valid settings values:[/] {str(e)}")
                sys.exit(EXIT_CODE_FAIL)
            console.print("[green]✓[/] Settings updated successfully!")
        console.print(f"Bottle weight: {current.bottle_weight:g} KG")
        console.print(f"Bottle price: {_format_currency(current.bottle_price)}")


@app.command()
def history(ctx: typer.Context):
    """List connections, newest first."""
    with _open_tracker(ctx) as tracker:
        connections = tracker.snapshot().connections

    if not connections:
        console.print("\n[bold]No connections yet[/]")
        console.print("Add your first gas bottle connection to start tracking!\n")
        return

    table = Table(title="Connection History")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Cost", justify="right")
    table.add_column("Lasted", justify="right")

    for index, connection in enumerate(connections):
        lasted = ""
        if index > 0:
            lasted = f"{days_between(connection.day, connections[index - 1].day)} days"
        table.add_row(
            str(connection.id),
            _format_date(connection.date),
            _format_currency(connection.cost),
            lasted
        )
    console.print(table)


@app.command()
def stats(ctx: typer.Context):
    """Show usage and cost statistics."""
    with _open_tracker(ctx) as tracker:
        result = tracker.stats()
    _display_stats(result)


@app.command()
def report(
    ctx: typer.Context,
    start_date: str = typer.Argument(..., help="First day of the period (YYYY-MM-DD)"),
    end_date: str = typer.Argument(..., help="Last day of the period (YYYY-MM-DD)"),
    export_path: Optional[Path] = typer.Option(
        None,
        "--export",
        "-e",
        help="Write the report as JSON to this file"
    )
):
    """Report on connections within a date range."""
    with _open_tracker(ctx) as tracker:
        try:
            period = tracker.report(start_date, end_date)
        except ValidationError as e:
            console.print(f"[red]Error:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)
        document = tracker.report_document(period)

    console.print(f"\n[bold]Report {start_date} to {end_date}[/bold]")
    console.print("-" * 40)
    console.print(f"Connections: {period.total_connections}")
    console.print(f"Total spent: {_format_currency(period.total_spent)}")
    console.print(f"Average cost: {_format_currency(period.avg_cost)}")
    console.print(f"Cost per day: {_format_currency(period.cost_per_day)}")
    console.print(f"Period: {period.period_days} days")
    console.print(f"Projected annual: {_format_currency(period.projected_annual)}")

    if export_path is not None:
        export_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        console.print(f"[green]✓[/] Report exported to {export_path}")


@app.command()
def export(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, help="Output file")
):
    """Export connections, settings and statistics as JSON."""
    with _open_tracker(ctx) as tracker:
        document = tracker.export_data()
    target = path or Path(f"gas-bottle-tracker-{date.today().isoformat()}.json")
    target.write_text(json.dumps(document, indent=2), encoding="utf-8")
    console.print(f"[green]✓[/] Data exported to {target}")


@app.command("import")
def import_(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="JSON file produced by export")
):
    """Replace all data with an exported JSON file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error importing data:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    with _open_tracker(ctx) as tracker:
        try:
            snapshot = tracker.import_data(text)
        except ValidationError as e:
            console.print(f"[red]Invalid data format:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)
        except DataImportError as e:
            console.print(f"[red]Error importing data:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Data imported successfully! ({len(snapshot.connections)} connections)")


@app.command()
def status(ctx: typer.Context):
    """Show remote sync status."""
    with _open_tracker(ctx) as tracker:
        console.print(f"User: {tracker.user_id}")
        console.print(f"Sync status: {tracker.sync_status.value}")


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"£{amount:,.2f}"


def _format_date(value: str) -> str:
    return date.fromisoformat(value[:10]).strftime("%a, %d %b %Y")


def _display_stats(result: StatsResult) -> None:
    """Display statistics in a clean, financial format."""
    console.print("\n[bold]Gas Bottle Statistics[/bold]")
    console.print("-" * 40)
    console.print(f"Total connections: {result.total_connections}")
    console.print(f"Total spent: {_format_currency(result.total_spent)}")
    console.print(f"Average cost: {_format_currency(result.avg_cost)}")
    console.print(f"Total gas: {result.total_gas:g} KG")

    cost = result.cost_per_day
    console.print("\n[bold]Cost per day[/bold]")
    console.print(f"Daily rate: {_format_currency(cost.daily_rate)}")
    console.print(f"Average days between: {cost.days_between:.1f} days")
    console.print(f"Total days: {cost.total_days} days")
    console.print(f"Recent cost/day: {_format_currency(result.recent_cost_per_day)}")
    console.print(f"Overall cost/day: {_format_currency(result.overall_cost_per_day)}")
    console.print(f"Recent days between: {result.recent_days_between} days")
    console.print(f"Projected monthly: {_format_currency(result.projected_monthly)}")

    comparison = result.current_vs_previous
    if comparison.has_data:
        console.print("\n[bold]Current vs previous bottle[/bold]")
        console.print(f"Current: {comparison.current_days} days ({_format_currency(comparison.current_cost_per_day)}/day)")
        console.print(f"Previous: {comparison.previous_days} days ({_format_currency(comparison.previous_cost_per_day)}/day)")
        console.print(f"Trend: {comparison.trend}")

    averages = result.bottle_averages
    console.print("\n[bold]Bottle lifespan[/bold]")
    console.print(f"Average: {averages.average_days:.1f} days, median: {averages.median_days:.1f} days")
    console.print(f"Longest: {averages.longest_days} days, shortest: {averages.shortest_days} days")

    summary = result.comprehensive
    console.print("\n[bold]Projections[/bold]")
    console.print(f"Monthly spend: {_format_currency(summary.monthly_projection)}")
    console.print(f"Annual spend: {_format_currency(summary.annual_projection)}")
    console.print(f"Cost per KG: {_format_currency(summary.cost_per_kg)}")
    console.print(f"Yearly gas: {result.gas_usage.projected_yearly_gas:,.1f} KG")

    efficiency = result.efficiency
    console.print(f"\n[bold]Efficiency:[/bold] {efficiency.rating} (score {efficiency.score})")
    for factor in efficiency.factors:
        console.print(f"  - {factor}")


if __name__ == "__main__":
    app()
