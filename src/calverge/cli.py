"""
Command-line interface for calverge.
"""

import logging
import signal
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from calverge.config import config_from_options
from calverge.config import load_config_file
from calverge.models import CalendarNotFound
from calverge.models import CalendarSyncError
from calverge.models import PermissionDenied
from calverge.models import SyncConfiguration
from calverge.models import SyncMode
from calverge.models import SyncReport
from calverge.provenance import ProvenanceCodec
from calverge.sync import CalendarSynchronizer
from calverge.sync.utils import in_window
from calverge.sync.utils import sync_window

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Mirror events from source calendars into one target calendar via EDS.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _make_store():
    """Return the EDS-backed calendar store (imports PyGObject lazily)."""
    from calverge.eds_client import EDSCalendarStore

    return EDSCalendarStore()


_USAGE_EXAMPLES = (
    "\n[bold]Examples:[/]\n"
    "  calverge sync --config sync-config.json\n"
    "  calverge sync --target <target-id> --sources <source1,source2>\n"
    "  calverge sync --target <target-id> --sources <source1,source2> --mode busy-only\n"
    "  calverge sync --target <target-id> --sources <source1,source2> --no-include-details"
)


def _build_config(
    config_path: Path | None,
    target: str | None,
    sources: str | None,
    mode: str,
    include_details: bool,
    name: str | None,
    dry_run: bool,
) -> SyncConfiguration:
    try:
        if config_path is not None:
            if target or sources:
                console.print("[yellow]Warning:[/] --config given; ignoring --target/--sources")
            return load_config_file(config_path, dry_run=dry_run)
        if target and sources:
            return config_from_options(
                target,
                sources,
                mode=mode,
                include_details=include_details,
                name=name,
                dry_run=dry_run,
            )
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    console.print(
        "[bold red]Error:[/] Either provide [cyan]--config <path>[/] "
        "OR [cyan]--target[/] and [cyan]--sources[/]"
    )
    console.print(_USAGE_EXAMPLES)
    raise typer.Exit(1)


def _print_info_panel(cfg: SyncConfiguration, operation: str) -> None:
    if operation == "clear":
        op_line = Text("CLEAR (remove synced events, no resync)", style="bold red")
    else:
        op_line = Text("SYNC", style="bold green")

    info = Text()
    info.append("  Config:    ", style="bold")
    info.append(f"{cfg.display_name}\n")
    info.append("  Target:    ", style="bold")
    info.append(f"{cfg.target_calendar_id}\n", style="dim")
    info.append("  Sources:   ", style="bold")
    info.append(f"{', '.join(cfg.source_calendar_ids)}\n", style="dim")
    info.append("  Mode:      ", style="bold")
    info.append(cfg.sync_mode.description)
    if cfg.sync_mode is SyncMode.FULL:
        info.append("\n  Details:   ", style="bold")
        info.append("included" if cfg.include_details else "title and location only")
    info.append("\n  Operation: ")
    info.append_text(op_line)
    if cfg.dry_run:
        info.append("\n  Run:       ")
        info.append("DRY RUN", style="bold magenta")

    console.print(Panel(info, title="[bold]Calverge[/bold]"))


def _print_results(report: SyncReport) -> None:
    results = Table(show_header=True, header_style="bold cyan")
    results.add_column("Source")
    results.add_column("Synced", justify="right")
    results.add_column("Cleaned", justify="right")
    results.add_column("Failures", justify="right")
    for result in report.sources:
        failures = Text(str(len(result.failures)))
        if result.failures:
            failures.stylize("bold red")
        results.add_row(result.calendar.title, str(result.synced), str(result.cleaned), failures)
    results.add_row(
        Text("Total", style="bold"),
        Text(str(report.total_synced), style="bold"),
        Text(str(report.total_cleaned), style="bold"),
        Text(str(len(report.failures)), style="bold"),
    )
    console.print(Panel(results, title=f"[bold]Results — {report.display_name}[/bold]", expand=False))

    for source_id in report.skipped_source_ids:
        console.print(f"[yellow]Warning:[/] source calendar skipped: {source_id}")

    if report.failures:
        failed = Table(show_header=True, header_style="bold red")
        failed.add_column("Operation")
        failed.add_column("Event")
        failed.add_column("Error", overflow="fold")
        for failure in report.failures:
            failed.add_row(failure.operation, failure.title, failure.error)
        console.print(failed)

    if report.cancelled:
        console.print("[yellow]Sync cancelled — remaining sources were not processed.[/]")


@contextmanager
def _cancel_on_interrupt(synchronizer: CalendarSynchronizer):
    """First Ctrl-C finishes the current source and stops; a second one aborts."""

    def _handler(signum, frame):
        console.print("[yellow]Interrupt received — stopping after the current calendar[/]")
        synchronizer.cancel()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _run(cfg: SyncConfiguration, operation: str) -> None:
    """Core runner: display panel, run, show results."""
    _print_info_panel(cfg, operation)

    synchronizer = CalendarSynchronizer(cfg, _make_store())
    try:
        with _cancel_on_interrupt(synchronizer):
            if operation == "clear":
                report = synchronizer.clear()
            else:
                report = synchronizer.run()
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e

    _print_results(report)


# ---------------------------------------------------------------------------
# Subcommands: sync / clear share the same options
# ---------------------------------------------------------------------------

_CONFIG_OPT = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to JSON configuration file"),
]
_TARGET_OPT = Annotated[
    str | None,
    typer.Option("--target", "-t", help="Target calendar ID (where events will be synced to)"),
]
_SOURCES_OPT = Annotated[
    str | None,
    typer.Option("--sources", "-s", help="Source calendar IDs (comma-separated)"),
]
_MODE_OPT = Annotated[
    str,
    typer.Option("--mode", "-m", help="Sync mode: 'full' or 'busy-only'"),
]
_DETAILS_OPT = Annotated[
    bool,
    typer.Option(
        "--include-details/--no-include-details",
        help="Copy notes, alarms and recurrence rules (full mode only)",
    ),
]
_NAME_OPT = Annotated[
    str | None,
    typer.Option("--name", help="Display name recorded in synced events"),
]
_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]


@app.command()
def sync(
    config: _CONFIG_OPT = None,
    target: _TARGET_OPT = None,
    sources: _SOURCES_OPT = None,
    mode: _MODE_OPT = SyncMode.FULL.value,
    include_details: _DETAILS_OPT = True,
    name: _NAME_OPT = None,
    dry_run: _DRY_RUN = False,
) -> None:
    """Sync calendars using command-line arguments or a JSON config file.

    Future events (now to one year ahead) of every source are copied into the
    target after removing the copies made by the previous run.
    """
    _run(
        _build_config(config, target, sources, mode, include_details, name, dry_run),
        "sync",
    )


@app.command()
def clear(
    config: _CONFIG_OPT = None,
    target: _TARGET_OPT = None,
    sources: _SOURCES_OPT = None,
    dry_run: _DRY_RUN = False,
) -> None:
    """Remove future synced events of the given sources without re-syncing.

    Past events and events not created by calverge are never touched.
    """
    _run(
        _build_config(config, target, sources, SyncMode.FULL.value, True, None, dry_run),
        "clear",
    )


# ---------------------------------------------------------------------------
# Subcommand: calendars
# ---------------------------------------------------------------------------


@app.command()
def calendars() -> None:
    """List all available calendars with their IDs."""
    store = _make_store()
    try:
        if not store.request_access():
            raise PermissionDenied()
        entries = store.list_calendars()
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Title", style="bold")
    table.add_column("ID", style="dim", overflow="fold")
    table.add_column("Permissions")
    table.add_column("Source")

    for calendar in entries:
        if calendar.writable:
            permissions = Text("Read/Write", style="green")
        else:
            permissions = Text("Read Only", style="yellow")
        table.add_row(calendar.title, calendar.id, permissions, calendar.account)

    console.print(table)


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status(
    config: _CONFIG_OPT = None,
    target: _TARGET_OPT = None,
) -> None:
    """Show how many future events in the target were synced, per source."""
    if config is not None:
        try:
            target = load_config_file(config).target_calendar_id
        except CalendarSyncError as e:
            console.print(f"[bold red]Error:[/] {e}")
            raise typer.Exit(1) from None
    if not target:
        console.print("[bold red]Error:[/] Provide [cyan]--config[/] or [cyan]--target[/].")
        raise typer.Exit(1)

    store = _make_store()
    try:
        if not store.request_access():
            raise PermissionDenied()
        by_id = {c.id: c for c in store.list_calendars()}
        target_calendar = by_id.get(target)
        if target_calendar is None:
            raise CalendarNotFound(target)
        start, end = sync_window(datetime.now(timezone.utc))
        events = store.query_events([target_calendar], start, end)
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    counts: Counter = Counter()
    for event in events:
        if not in_window(event, start, end):
            continue
        tag = ProvenanceCodec.decode(event.notes)
        if tag is not None:
            counts[(tag.source_id, tag.config_name, tag.mode.value)] += 1

    if not counts:
        console.print(f"[yellow]No synced events found in {target_calendar.title}.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Source")
    table.add_column("Config")
    table.add_column("Mode")
    table.add_column("Events", justify="right")
    for (source_id, config_name, mode_value), count in sorted(counts.items()):
        source = by_id.get(source_id)
        source_cell = Text(source.title if source else "(not found)", style="bold")
        source_cell.append(f"\n{source_id}", style="dim")
        table.add_row(source_cell, config_name, mode_value, str(count))

    console.print(Panel(table, title=f"[bold]{target_calendar.title}[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
