"""Command-line interface for inboxsync.

Built with Typer for commands and Rich for output. Every command builds
a SyncEngine from the environment, runs one core operation and renders
its result.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .engine import SyncEngine
from .errors import AuthError, RemoteError, StorageError, ValidationError
from .logs import setup_logging
from .sync.processor import RunResult

# Create the main app
app = typer.Typer(
    name="inboxsync",
    help="Sync project inboxes into Notion databases.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

T = TypeVar("T")

STATUS_STYLES = {
    "ok": "green",
    "partial": "yellow",
    "failed": "red",
    "cancelled": "dim",
}


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def _run_with_engine(operation: Callable[[SyncEngine], Awaitable[T]]) -> T:
    """Build an engine, run one async operation, always close the engine."""
    config = get_config()
    setup_logging(config.log_level)

    async def runner() -> T:
        engine = SyncEngine.from_config(config)
        try:
            return await operation(engine)
        finally:
            await engine.aclose()

    try:
        return asyncio.run(runner())
    except AuthError as e:
        print_error(f"{e}. Update NOTION_TOKEN and try again.")
        raise typer.Exit(2)
    except (ValidationError, StorageError, RemoteError) as e:
        print_error(str(e))
        raise typer.Exit(1)


def format_run_table(results: list[RunResult]) -> Table:
    """Create a rich table for run results."""
    table = Table(title="Sync Results", show_header=True, header_style="bold magenta")
    table.add_column("Project", style="cyan")
    table.add_column("Status")
    table.add_column("Synced", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Error", max_width=50)

    for result in results:
        style = STATUS_STYLES.get(result.status, "white")
        table.add_row(
            result.project_name or result.project_id,
            f"[{style}]{result.status}[/{style}]",
            str(result.synced),
            str(result.skipped),
            str(result.failed),
            result.error or "-",
        )

    return table


# ============================================================================
# Commands
# ============================================================================


@app.command()
def run(
    project: Optional[str] = typer.Option(
        None, "--project", "-p", help="Project id, slug or name (default: all active)"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Stop processing items after this many seconds"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Preview changes without writing anything"
    ),
) -> None:
    """Sync inbox items into Notion."""
    config = get_config()
    if timeout is not None:
        config.run_timeout = timeout

    if dry_run:
        print_warning("DRY RUN MODE, nothing will be written")

    results = _run_with_engine(lambda engine: engine.processor.run(project, dry_run=dry_run))

    if not results:
        console.print("[dim]No active projects to sync.[/dim]")
        return

    console.print(format_run_table(results))

    if dry_run:
        for result in results:
            for planned in result.planned:
                console.print(
                    f"  [dim][DRY RUN][/dim] Would {planned.action} "
                    f"{result.project_id}/{planned.item_id}: {planned.title}"
                )

    for result in results:
        for item_error in result.errors[:5]:
            console.print(f"  [red]- {result.project_id}/{item_error.item_id}: {item_error.message}[/red]")
        for warning in result.warnings[:5]:
            print_warning(warning)

    if any(r.error_kind == "auth" for r in results):
        print_error("Notion rejected the token. Update NOTION_TOKEN and try again.")
        raise typer.Exit(2)
    if any(r.status in ("failed", "partial") for r in results):
        raise typer.Exit(1)

    total = sum(r.synced for r in results)
    if dry_run:
        print_success(f"Would sync {total} items")
    else:
        print_success(f"Synced {total} items")


@app.command()
def reverse(
    project: str = typer.Argument(..., help="Project id, slug or name"),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Preview changes without writing anything"
    ),
) -> None:
    """Pull status, title and tag changes from Notion."""
    if dry_run:
        print_warning("DRY RUN MODE, nothing will be written")

    result = _run_with_engine(lambda engine: engine.reverser.reverse(project, dry_run=dry_run))

    console.print(
        f"[green]Pulled: {result.pulled}[/green]  [dim]Skipped: {result.skipped}[/dim]"
    )
    if result.conflicts:
        table = Table(title="Conflicts", show_header=True, header_style="bold magenta")
        table.add_column("Item", style="cyan")
        table.add_column("Field")
        table.add_column("Kept")
        table.add_column("Local", max_width=30)
        table.add_column("Remote", max_width=30)
        for conflict in result.conflicts:
            table.add_row(
                conflict.item_id,
                conflict.field,
                conflict.resolution.value,
                str(conflict.local_value),
                str(conflict.remote_value),
            )
        console.print(table)

    if result.errors:
        print_error(f"{len(result.errors)} errors occurred")
        for error in result.errors[:5]:
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(1)


@app.command()
def stats(
    project: str = typer.Argument(..., help="Project id, slug or name"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Recompute from the ledger"),
) -> None:
    """Show sync counters for a project."""

    async def load(engine: SyncEngine) -> Any:
        found = await engine.store.get_project(project)
        if found is None:
            raise ValidationError(f"Unknown project: {project}")
        return found, await engine.ledger.stats_for(found.id, refresh=refresh)

    found, project_stats = _run_with_engine(load)

    last_run = project_stats.last_run_at.strftime("%Y-%m-%d %H:%M") if project_stats.last_run_at else "never"
    console.print(
        Panel(
            f"[green]Synced:[/green]  {project_stats.synced}\n"
            f"[dim]Skipped:[/dim] {project_stats.skipped} (last run)\n"
            f"[red]Failed:[/red]  {project_stats.failed}\n"
            f"[yellow]Pending:[/yellow] {project_stats.pending}\n"
            f"Last run: {last_run}",
            title=f"Stats: {found.name}",
        )
    )


@app.command()
def databases() -> None:
    """List Notion databases shared with the integration."""

    async def load(engine: SyncEngine) -> Any:
        if engine.remote is None:
            raise ValidationError("Notion not configured. Set NOTION_TOKEN.")
        return await engine.remote.list_databases()

    refs = _run_with_engine(load)
    if not refs:
        console.print("[dim]No databases shared with this integration.[/dim]")
        return

    table = Table(title="Notion Databases", show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan")
    table.add_column("ID", style="dim")
    for ref in refs:
        table.add_row(ref.title, ref.id)
    console.print(table)


@app.command()
def logs(
    limit: int = typer.Option(20, "--limit", "-l", help="Max entries to show"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Filter by project id"),
) -> None:
    """Show recent sync activity."""
    entries = _run_with_engine(lambda engine: engine.ledger.recent_logs(limit, project))
    if not entries:
        console.print("[dim]No activity yet.[/dim]")
        return

    table = Table(title="Activity", show_header=True, header_style="bold magenta")
    table.add_column("When", style="dim")
    table.add_column("Level")
    table.add_column("Project", style="cyan")
    table.add_column("Message")
    for entry in entries:
        level_style = "yellow" if entry.level == "warning" else "red" if entry.level == "error" else "white"
        table.add_row(
            entry.created_at[:19].replace("T", " "),
            f"[{level_style}]{entry.level}[/{level_style}]",
            entry.project_id or "-",
            entry.message,
        )
    console.print(table)


@app.command()
def status() -> None:
    """Show configuration and project overview."""
    config = get_config()

    problems = config.validate()
    providers = config.configured_providers()
    console.print(
        Panel(
            f"Data dir: {config.data_dir}\n"
            f"Ledger:   {config.db_path}\n"
            f"Notion:   {'configured' if config.has_notion_config() else '[red]not configured[/red]'}\n"
            f"AI:       {', '.join(providers) if providers else 'passthrough only'}",
            title="inboxsync",
        )
    )
    for problem in problems:
        print_warning(problem)

    async def load(engine: SyncEngine) -> Any:
        rows = []
        for project in await engine.store.read_projects():
            rows.append((project, await engine.ledger.stats_for(project.id)))
        return rows

    rows = _run_with_engine(load)

    if not rows:
        console.print("[dim]No projects configured.[/dim]")
        return

    table = Table(title="Projects", show_header=True, header_style="bold magenta")
    table.add_column("Project", style="cyan")
    table.add_column("Active")
    table.add_column("Synced", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Pending", justify="right", style="yellow")
    for project, project_stats in rows:
        table.add_row(
            project.name,
            "yes" if project.active else "no",
            str(project_stats.synced),
            str(project_stats.failed),
            str(project_stats.pending),
        )
    console.print(table)


if __name__ == "__main__":
    app()
