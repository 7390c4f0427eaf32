import logging
import time
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .blocking import load_catalog
from .config import CONFIG_FILE, config, get_match_config, profile_names
from .database import CatalogStore, refresh_library
from .grouping import group_duplicates
from .matching import calculate_similarity, get_similarity_breakdown
from .models import DuplicateGroup, InvalidEntryError, MatchConfig, ScanEvent, ScanStatus
from .report import group_table, print_groups, write_groups_json
from .resolution import plan_resolution
from .scanner import scan_parallel

app = typer.Typer(help="Find near-duplicate recordings in your music catalog.")

# Sub-apps
get_app = typer.Typer(help="Fetch data (library scan)")
dupes_app = typer.Typer(help="Find, compare and resolve duplicates")
config_app = typer.Typer(help="Show configuration and matching profiles")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
):
    """Get. Find. Keep."""
    level = logging.DEBUG if verbose else getattr(logging, config["LOG_LEVEL"], logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _resolve_profile(profile: Optional[str]) -> MatchConfig:
    try:
        return get_match_config(profile)
    except ValueError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(1)


def _load_entries(match_config: MatchConfig, use_sql: bool):
    store = CatalogStore(config["DB_PATH"])
    entries = load_catalog(
        store, match_config, use_candidate_query=use_sql and config["USE_CANDIDATE_QUERY"]
    )
    if not entries:
        console.print(
            "[yellow]No candidate tracks in the catalog. Run 'dupe get library' first.[/yellow]"
        )
        raise typer.Exit(0)
    return entries


@get_app.command(name="library")
def get_library():
    """
    Scan the music library paths and update the catalog.

    Run this first: every duplicate command reads from the catalog database.
    """
    if not config.get("LIBRARY_ROOTS"):
        console.print(
            "[bold red]No library roots configured. Set DUPE_LIBRARY_ROOTS or edit "
            f"{CONFIG_FILE}.[/bold red]"
        )
        raise typer.Exit(1)
    for library_path in config["LIBRARY_ROOTS"]:
        try:
            refresh_library(config["DB_PATH"], library_path)
        except (OSError, ValueError) as e:
            console.print(f"[bold red]Skipping {library_path}: {e}[/bold red]")
    console.print("\n[bold green]✓ Catalog refresh complete.[/bold green]")


def _stream_groups(entries, match_config: MatchConfig, exhaustive: bool) -> List[DuplicateGroup]:
    groups: List[DuplicateGroup] = []
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} pairs"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[green]Comparing", total=None)

        def on_event(event: ScanEvent) -> None:
            if event.status is ScanStatus.GROUP:
                groups.append(event.group)
                progress.console.print(group_table(event.group))

        scanner = scan_parallel(
            entries,
            match_config,
            on_event,
            max_workers=config["SCAN_WORKERS"] or None,
            batch_size=config["SCAN_BATCH_SIZE"],
            exhaustive=exhaustive,
        )
        try:
            while scanner.running:
                stats = scanner.stats
                progress.update(task, completed=stats.pairs_compared, total=stats.pairs_total or None)
                time.sleep(0.1)
        except KeyboardInterrupt:
            progress.console.print("[yellow]Cancelling scan...[/yellow]")
            scanner.cancel()
        status = scanner.wait()
        progress.update(task, completed=scanner.stats.pairs_compared)

    if status is ScanStatus.CANCELLED:
        console.print(f"[yellow]Scan cancelled; {len(groups)} complete groups found so far.[/yellow]")
    elif status is ScanStatus.FAILED:
        console.print("[bold red]Scan failed; see the log for details.[/bold red]")
        raise typer.Exit(1)
    return groups


@dupes_app.command(name="find")
def dupes_find(
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Matching profile"),
    exhaustive: bool = typer.Option(
        False, "--exhaustive", help="Compare every pair instead of blocking first (slow)"
    ),
    stream: bool = typer.Option(
        False, "--stream", help="Scan in parallel and show groups as they are found"
    ),
    use_sql: bool = typer.Option(
        True, "--sql/--no-sql", help="Pre-filter candidates with a database query"
    ),
    json_out: Optional[str] = typer.Option(None, "--json", help="Also write groups to this JSON file"),
):
    """Group duplicate recordings in the catalog."""
    match_config = _resolve_profile(profile)
    entries = _load_entries(match_config, use_sql and not exhaustive)
    console.print(f"[cyan]Checking {len(entries)} tracks with profile '{match_config.name}'[/cyan]")
    try:
        if stream:
            groups = _stream_groups(entries, match_config, exhaustive)
        else:
            groups = group_duplicates(entries, match_config, exhaustive=exhaustive)
            print_groups(groups, console)
    except InvalidEntryError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(1)

    files = sum(len(g) for g in groups)
    console.print(f"[bold green]{len(groups)} duplicate groups[/bold green] covering {files} files")
    if json_out:
        path = write_groups_json(groups, match_config, json_out)
        console.print(f"[bold green]✓ Wrote JSON:[/bold green] {path}")


@dupes_app.command(name="compare")
def dupes_compare(
    first: str = typer.Argument(..., help="Path of the first catalog entry"),
    second: str = typer.Argument(..., help="Path of the second catalog entry"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Matching profile"),
):
    """Explain how two catalog entries score against each other."""
    match_config = _resolve_profile(profile)
    store = CatalogStore(config["DB_PATH"])
    entries = []
    for key in (first, second):
        entry = store.get_entry(key)
        if entry is None:
            console.print(f"[bold red]Not in catalog: {key}[/bold red]")
            raise typer.Exit(1)
        entries.append(entry)
    console.print(
        f"[bold]{entries[0].display_name()}[/bold] vs [bold]{entries[1].display_name()}[/bold]"
    )
    console.print(get_similarity_breakdown(entries[0], entries[1], match_config))
    console.print(f"Overall similarity: {calculate_similarity(entries[0], entries[1], match_config):.1f}%")


@dupes_app.command(name="resolve")
def dupes_resolve(
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Matching profile"),
    use_sql: bool = typer.Option(True, "--sql/--no-sql", help="Pre-filter candidates with a database query"),
):
    """Preview which file of each duplicate group would be kept."""
    match_config = _resolve_profile(profile)
    groups = group_duplicates(_load_entries(match_config, use_sql), match_config)
    print_groups(groups, console, resolve=True)
    manual = sum(1 for _, decision in plan_resolution(groups) if decision is None)
    console.print(
        f"[bold green]{len(groups) - manual} groups resolved[/bold green], "
        f"[bold yellow]{manual} need manual review[/bold yellow]"
    )


@config_app.command(name="show")
def config_show():
    """Show current configuration values."""
    for k, v in config.items():
        console.print(f"[cyan]{k}[/cyan]=[white]{v}[/white]")


@config_app.command(name="profiles")
def config_profiles():
    """List matching profiles and their settings."""
    table = Table(title="Matching profiles")
    table.add_column("Profile", style="cyan")
    table.add_column("Settings")
    for name in profile_names():
        try:
            summary = get_match_config(name).summary()
        except (TypeError, ValueError) as e:
            summary = f"[red]invalid: {e}[/red]"
        table.add_row(name, summary)
    console.print(table)


# Mount sub-apps
app.add_typer(get_app, name="get")
app.add_typer(dupes_app, name="dupes")
app.add_typer(config_app, name="config")


if __name__ == "__main__":
    app()
