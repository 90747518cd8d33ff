"""
Stitch CLI - Rendering

Turns engine snapshots into rich panels and tables.
"""

from datetime import datetime

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from stitch.engine import EngineSnapshot, ProjectSummary, Severity
from stitch.engine.eta import estimate
from stitch.engine.timer import elapsed_at, format_elapsed
from stitch.persistence.models import Project
from stitch.state import ProjectStatus

console = Console()

SEVERITY_STYLES = {
    Severity.INFO: "cyan",
    Severity.SUCCESS: "green",
    Severity.ERROR: "bold red",
}


def format_timestamp(epoch_ms: int) -> str:
    """Local date and time for a lastModified stamp."""
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M")


def print_notification(message: str, severity: Severity) -> None:
    """Notification sink for the interactive shell."""
    console.print(Text(message, style=SEVERITY_STYLES[severity]))


def counter_table(project: Project, etas: dict[str, str], show_eta: bool) -> Table:
    """Counters of a project, main counter first."""
    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Counter")
    table.add_column("Value", justify="right")
    table.add_column("Target", justify="right")
    if show_eta:
        table.add_column("ETA")

    for counter in project.counters:
        name = Text(counter.name, style="bold" if counter.is_main else "")
        target = str(counter.target) if counter.target is not None else "-"
        row = [Text(counter.id), name, str(counter.value), target]
        if show_eta:
            row.append(etas.get(counter.id, ""))
        table.add_row(*row)
    return table


def timer_text(elapsed: str, paused: bool) -> Text:
    text = Text(f"Timer {elapsed}", style="bold")
    if paused:
        text.append("  (paused)", style="yellow")
    return text


def project_panel(snapshot: EngineSnapshot) -> Panel:
    """Main view of the active project."""
    project = snapshot.project

    if snapshot.status == ProjectStatus.EPHEMERAL:
        badge = "[yellow]unsaved*[/yellow]" if snapshot.is_dirty else "[dim]unsaved[/dim]"
    else:
        badge = "[green]saved[/green]"

    parts: list = []
    if snapshot.show_timer:
        parts.append(timer_text(snapshot.elapsed, project.timer.is_paused))
    parts.append(counter_table(project, snapshot.etas, snapshot.show_timer))
    if project.pattern_url:
        parts.append(Text(f"Pattern: {project.pattern_url}", style="dim"))
    if project.notes:
        parts.append(Text(project.notes, style="italic"))

    return Panel(
        Group(*parts),
        title=f"[bold]{escape(project.name)}[/bold] {badge}",
        subtitle=f"[dim]{escape(project.id or 'not saved yet')}[/dim]",
        border_style="blue",
    )


def show_snapshot(snapshot: EngineSnapshot) -> None:
    console.print(project_panel(snapshot))


def projects_table(summaries: tuple[ProjectSummary, ...] | list[ProjectSummary], active_id: str | None = None) -> Table:
    """Saved projects, most recent first."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name")
    table.add_column("Main counter", justify="right")
    table.add_column("Last modified")

    for summary in summaries:
        name = Text(summary.name)
        if active_id and summary.id == active_id:
            name.stylize("bold green")
            name.append(" (active)")
        table.add_row(
            Text(summary.id),
            name,
            Text(f"{summary.main_counter_name}: {summary.main_counter_value}"),
            format_timestamp(summary.last_modified),
        )
    return table


def show_projects(summaries: tuple[ProjectSummary, ...] | list[ProjectSummary], active_id: str | None = None) -> None:
    if not summaries:
        console.print("[dim]No saved projects yet. Use 'save' to keep the current one.[/dim]")
        return
    console.print(projects_table(summaries, active_id))


def project_detail_panel(project: Project, now: int | None = None) -> Panel:
    """Read-only view of a stored project, used by ``stitch show``."""
    etas = {}
    for counter in project.counters:
        eta = estimate(counter, project, now)
        if eta is not None:
            etas[counter.id] = eta

    elapsed = format_elapsed(elapsed_at(project.timer, now))
    parts: list = [
        timer_text(elapsed, project.timer.is_paused),
        counter_table(project, etas, show_eta=True),
        Text(f"Last modified {format_timestamp(project.last_modified)}", style="dim"),
        Text(f"{len(project.increment_history)} increments recorded", style="dim"),
    ]
    if project.pattern_url:
        parts.append(Text(f"Pattern: {project.pattern_url}", style="dim"))
    if project.notes:
        parts.append(Text(project.notes, style="italic"))

    return Panel(
        Group(*parts),
        title=f"[bold]{escape(project.name)}[/bold]",
        subtitle=f"[dim]{escape(project.id or '')}[/dim]",
    )
