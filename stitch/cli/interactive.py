"""
Stitch CLI - Interactive Shell

The command loop behind a bare ``stitch`` invocation. Ticks the timer
before every command, runs it against the engine and redraws the project.
"""

import logging
import sys

from prompt_toolkit import PromptSession
from rich.markup import escape

from stitch.cli.commands import ShellState, dispatch
from stitch.cli.prompt import create_prompt_session
from stitch.cli.render import console, show_snapshot
from stitch.engine import StateEngine
from stitch.exceptions import StitchError, ValidationError
from stitch.state import ProjectStatus

logger = logging.getLogger(__name__)


def shell_loop(state: ShellState, session: PromptSession | None = None) -> None:
    """
    Main interactive loop.

    Features: command history (up/down arrows), tab completion for commands
    and counter/project ids.
    """
    engine: StateEngine = state.engine

    if not sys.stdin.isatty():
        console.print("[red]Error: the Stitch shell requires an interactive terminal.[/red]")
        console.print("[dim]Use 'stitch list' or 'stitch show <id>' in scripts.[/dim]")
        return

    if session is None:
        session = create_prompt_session(
            counter_ids=lambda: [c.id for c in engine.active_project.counters],
            project_ids=lambda: [p.id or "" for p in engine.context.saved_projects],
        )

    console.print("[dim]Type 'help' for commands, 'quit' to exit[/dim]")
    show_snapshot(engine.snapshot())

    while state.running:
        try:
            line = session.prompt("stitch> ")
        except KeyboardInterrupt:
            continue
        except EOFError:
            break

        engine.tick()
        try:
            redraw = dispatch(state, line)
        except ValidationError as e:
            console.print(f"[red]{escape(e.message)}[/red]")
            continue
        except StitchError as e:
            logger.error(f"Command failed: {e}")
            console.print(f"[bold red]Error:[/bold red] {escape(e.message)}")
            continue

        if redraw:
            show_snapshot(engine.snapshot())

    finish_session(engine)
    console.print("[dim]Bye.[/dim]")


def finish_session(engine: StateEngine) -> None:
    """
    Accrue the timer one last time and keep it.

    A persisted project is written silently so time spent since the last
    change (a long 'watch', say) survives. An ephemeral project is only
    in memory, so the user is told what is being left behind.
    """
    engine.tick()
    if engine.context.status == ProjectStatus.PERSISTED:
        try:
            engine.save_active_project(explicit=False)
        except ValidationError as e:
            console.print(f"[red]Timer not saved: {escape(e.message)}[/red]")
    if engine.is_dirty:
        console.print("[yellow]Unsaved changes in this project were not saved.[/yellow]")
