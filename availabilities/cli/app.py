"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..adapters.mock_event_store import DEFAULT_DATA_FILE, MockEventStore
from ..adapters.sqlite_event_store import SqliteEventStore
from ..config import AppConfig, load_config
from ..domain.exceptions import AvailabilityError
from ..domain.models import AvailabilityReport, EventKind
from ..services.availability_service import AvailabilityService

app = typer.Typer(
    name="availabilities",
    help="Find the open slots of a calendar for the next seven days",
    add_completion=False
)

console = Console()
err_console = Console(stderr=True)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="SQLite database file. Defaults to database_path from the config"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
):
    """
    Weekly availability finder.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_store(config: AppConfig, db: Optional[Path]) -> SqliteEventStore:
    store = SqliteEventStore(db or Path(config.database_path), timezone=config.timezone)
    store.migrate()
    return store


def _render_report(report: AvailabilityReport) -> Table:
    window = report.window
    table = Table(
        title=f"Availability {window.start.format('YYYY-MM-DD HH:mm')} - {window.end.format('YYYY-MM-DD HH:mm')}"
    )
    table.add_column("Date", style="cyan", no_wrap=True)
    table.add_column("Day")
    table.add_column("Slots", justify="right")
    table.add_column("Open slots", style="green")

    for date_key, slots in report.availability.items():
        table.add_row(date_key, _day_name(date_key), str(len(slots)), ", ".join(slots) or "-")

    return table


def _day_name(date_key: str) -> str:
    return pendulum.from_format(date_key, "YYYY-MM-DD").format("dddd")


@app.command()
def init_db(
    config_file: ConfigOption = None,
    db: DbOption = None,
):
    """
    Create the events table.
    """
    try:
        config = load_config(config_file)
        with _open_store(config, db) as store:
            console.print(f"\n[green]✓ Database ready:[/green] {store.db_path}\n")

    except (FileNotFoundError, ValueError, AvailabilityError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def add_event(
    kind: Annotated[EventKind, typer.Argument(help="opening or appointment")],
    starts_at: Annotated[str, typer.Argument(help="Start, e.g. '2020-01-01 09:00'")],
    ends_at: Annotated[str, typer.Argument(help="End, e.g. '2020-01-01 12:00'")],
    weekly: Annotated[bool, typer.Option("--weekly", help="Repeat the opening every week")] = False,
    config_file: ConfigOption = None,
    db: DbOption = None,
):
    """
    Store an opening or an appointment.

    Examples:

        availabilities add-event opening "2020-01-06 09:00" "2020-01-06 12:00" --weekly

        availabilities add-event appointment "2020-01-06 10:00" "2020-01-06 10:30"
    """
    try:
        config = load_config(config_file)
        with _open_store(config, db) as store:
            event_id = store.add_event(kind, starts_at, ends_at, weekly_recurring=weekly or None)
        console.print(f"\n[green]✓ Stored {kind.value} #{event_id}[/green]\n")

    except (FileNotFoundError, ValueError, AvailabilityError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def show(
    date: Annotated[Optional[str], typer.Argument(help="Start date/time, e.g. 2020-01-01 or '2020-01-01 09:00'. Defaults to now")] = None,
    config_file: ConfigOption = None,
    db: DbOption = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use the bundled mock events instead of the database")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the availability as JSON")] = False,
):
    """
    Show the open slots for the seven days starting at DATE.

    Examples:

        availabilities show 2020-01-06

        availabilities show --mock --json
    """
    try:
        config = load_config(config_file)

        if mock:
            store = MockEventStore(data_file=DEFAULT_DATA_FILE, timezone=config.timezone)
            report = asyncio.run(AvailabilityService(store, config=config).compute_availability_report(date))
        else:
            with _open_store(config, db) as store:
                report = asyncio.run(AvailabilityService(store, config=config).compute_availability_report(date))

    except (FileNotFoundError, ValueError, AvailabilityError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(report.availability, indent=2))
    else:
        console.print()
        console.print(_render_report(report))
        console.print()

    for failed in report.diagnostics:
        err_console.print(f"[yellow]⚠ Could not fetch {failed.category}: {failed.error}[/yellow]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]availabilities[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
