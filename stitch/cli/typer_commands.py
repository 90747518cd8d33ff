"""
Stitch CLI - Typer Commands

Entry points: the interactive shell (no subcommand) plus one-shot commands
for listing, showing and deleting saved projects and reading the logs.
"""

import logging

import typer
from rich.console import Console
from rich.markup import escape

from stitch.cli.commands import ShellState
from stitch.cli.interactive import shell_loop
from stitch.cli.render import print_notification, project_detail_panel, projects_table
from stitch.config import ResumeFlagsStore, StitchConfig, load_config
from stitch.engine import ProjectSummary, StateEngine
from stitch.exceptions import ConfigError, NotFoundError, StoreError
from stitch.logging.viewer import calculate_stats, format_entry_line, format_stats, query_logs
from stitch.persistence.repository import ProjectRepository

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="stitch",
    help="Row counter for knitting and crochet projects",
    add_completion=False,
    invoke_without_command=True,
)


def _load_config() -> StitchConfig:
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1)


def _open_repository(config: StitchConfig) -> ProjectRepository:
    repository = ProjectRepository(config.db_path)
    try:
        repository.initialize()
    except StoreError as e:
        console.print(f"[bold red]Cannot open project store:[/bold red] {escape(e.message)}")
        raise typer.Exit(1)
    return repository


@app.callback()
def callback(ctx: typer.Context) -> None:
    """
    Row counter for knitting and crochet projects.

    Run without a command to open the interactive counter shell.
    """
    if ctx.invoked_subcommand is None:
        _start_shell()


def _start_shell() -> None:
    """Build the engine, restore the last project and run the shell."""
    config = _load_config()
    repository = _open_repository(config)

    engine = StateEngine(
        repository,
        notify=print_notification,
        resume=ResumeFlagsStore(config.resume_path),
        settings=config.settings,
    )
    with engine:
        engine.load_initial_project()
        shell_loop(ShellState(engine, config=config))


@app.command(name="list")
def list_projects() -> None:
    """List saved projects, most recently modified first."""
    config = _load_config()
    with _open_repository(config) as repository:
        try:
            projects = repository.list_all()
        except StoreError as e:
            console.print(f"[bold red]Error:[/bold red] {escape(e.message)}")
            raise typer.Exit(1)

    if not projects:
        console.print("[dim]No saved projects.[/dim]")
        return
    console.print(projects_table([ProjectSummary.from_project(p) for p in projects]))


@app.command()
def show(project_id: str = typer.Argument(..., help="Project id")) -> None:
    """Show one saved project with its counters and ETAs."""
    config = _load_config()
    with _open_repository(config) as repository:
        try:
            project = repository.get(project_id)
        except StoreError as e:
            console.print(f"[bold red]Error:[/bold red] {escape(e.message)}")
            raise typer.Exit(1)

    if project is None:
        console.print(f"[red]No project found with id '{escape(project_id)}'[/red]")
        raise typer.Exit(1)
    console.print(project_detail_panel(project))


@app.command()
def delete(
    project_id: str = typer.Argument(..., help="Project id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Permanently delete a saved project."""
    config = _load_config()
    with _open_repository(config) as repository:
        try:
            project = repository.get(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found", "delete", project_id)

            if not yes and not typer.confirm(f'Delete "{project.name}"? This cannot be undone.'):
                console.print("[dim]Cancelled.[/dim]")
                raise typer.Exit(0)

            repository.delete(project_id)
        except NotFoundError:
            console.print(f"[red]No project found with id '{escape(project_id)}'[/red]")
            raise typer.Exit(1)
        except StoreError as e:
            console.print(f"[bold red]Error deleting project:[/bold red] {escape(e.message)}")
            raise typer.Exit(1)

    console.print(f"[green]Deleted project '{escape(project.name)}'[/green]")


@app.command()
def logs(
    log_type: str = typer.Option("all", "--type", "-t", help="Log type: engine, store, all"),
    since: str = typer.Option(
        None, "--since", "-s", help="Time filter (ISO or relative: 1h, 30m, 2d)"
    ),
    project: str = typer.Option(None, "--project", "-p", help="Filter by project id"),
    tail: int = typer.Option(20, "--tail", "-n", help="Show last N entries"),
    stats: bool = typer.Option(False, "--stats", help="Show statistics instead of entries"),
) -> None:
    """View and analyze Stitch logs."""

    def print_entry(entry: dict) -> None:
        line = format_entry_line(entry)
        if entry.get("_source") == "store":
            style = "green" if entry.get("success", True) else "red"
        else:
            style = "red" if entry.get("event_type") == "error" else "cyan"
        console.print(f"[{style}]{escape(line)}[/{style}]", highlight=False)

    try:
        entries = query_logs(
            log_type=log_type,
            since=since,
            project_id=project,
            limit=tail if not stats else 1000,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except OSError as e:
        console.print(f"[red]Error reading logs:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if not entries:
        console.print("[dim]No log entries found[/dim]")
        return

    if stats:
        console.print(format_stats(calculate_stats(entries)))
    else:
        for entry in reversed(entries[:tail]):
            print_entry(entry)


def run() -> None:
    """Entry point wrapper that invokes the Typer app."""
    app()


if __name__ == "__main__":
    run()
