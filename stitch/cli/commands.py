"""
Stitch CLI - Shell Command Handlers

One handler per shell command. Handlers translate arguments into engine
intents; they never touch the project directly.
"""

import shlex
import time
from collections.abc import Callable
from dataclasses import dataclass

from rich.live import Live
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from stitch.cli.prompt import SHELL_COMMANDS, TIMER_CHOICES
from stitch.cli.render import console, project_panel, show_projects, timer_text
from stitch.config import StitchConfig, save_settings
from stitch.engine import Confirmation, StateEngine
from stitch.engine.timer import elapsed_at, format_elapsed
from stitch.exceptions import ValidationError
from stitch.persistence.models import MAIN_COUNTER_ID


def parse_command(line: str) -> tuple[str, list[str]]:
    """
    Split a shell line into command and arguments.

    Quotes group words ('rename main "Front rows"'). Returns ("", []) for blank input.

    Raises:
        ValidationError: On unbalanced quotes
    """
    try:
        parts = shlex.split(line)
    except ValueError as e:
        raise ValidationError(f"Could not parse command: {e}")
    if not parts:
        return "", []
    return parts[0].lower(), parts[1:]


@dataclass
class ShellState:
    """What command handlers act on."""

    engine: StateEngine
    ask: Callable[[str], bool] = lambda question: Confirm.ask(escape(question), console=console)
    running: bool = True
    # Where settings changes are written; None keeps them for this session only
    config: StitchConfig | None = None


def resolve_confirmation(state: ShellState, confirmation: Confirmation | None) -> None:
    """Ask the user about an issued confirmation and accept or cancel it."""
    if confirmation is None:
        return
    console.print(f"[bold yellow]{escape(confirmation.title)}[/bold yellow]")
    if state.ask(confirmation.message):
        state.engine.confirm()
    else:
        state.engine.cancel()
        console.print("[dim]Cancelled.[/dim]")


def _counter_arg(args: list[str]) -> str:
    return args[0] if args else MAIN_COUNTER_ID


def _require_args(args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise ValidationError(f"Usage: {usage}")


def handle_help(state: ShellState, args: list[str]) -> None:
    console.print("\n[bold]Commands:[/bold]")
    usages = {
        "+": "+ [counter]",
        "-": "- [counter]",
        "reset": "reset [counter]",
        "add": "add [name]",
        "del": "del <counter>",
        "rename": "rename <counter> <name>",
        "target": "target <counter> <n|none>",
        "name": "name <text>",
        "notes": "notes <text>",
        "pattern": "pattern <url>",
        "load": "load <project>",
        "delete": "delete [project]",
        "watch": "watch [seconds]",
        "timer": "timer [on|off]",
    }
    for cmd, desc in SHELL_COMMANDS.items():
        console.print(f"  {escape(f'{usages.get(cmd, cmd):<26}')} - {desc}")
    console.print()


def handle_increment(state: ShellState, args: list[str]) -> None:
    state.engine.increment_counter(_counter_arg(args))


def handle_decrement(state: ShellState, args: list[str]) -> None:
    state.engine.decrement_counter(_counter_arg(args))


def handle_reset(state: ShellState, args: list[str]) -> None:
    state.engine.reset_counter(_counter_arg(args))


def handle_add(state: ShellState, args: list[str]) -> None:
    if args:
        state.engine.add_sub_counter(" ".join(args))
    else:
        state.engine.add_sub_counter()


def handle_delete_counter(state: ShellState, args: list[str]) -> None:
    _require_args(args, 1, "del <counter>")
    resolve_confirmation(state, state.engine.request_delete_counter(args[0]))


def handle_rename(state: ShellState, args: list[str]) -> None:
    _require_args(args, 2, "rename <counter> <name>")
    state.engine.rename_counter(args[0], " ".join(args[1:]))


def handle_target(state: ShellState, args: list[str]) -> None:
    _require_args(args, 1, "target <counter> <n|none>")
    counter_id = args[0]
    if len(args) == 1:
        suggestion = state.engine.toggle_target(counter_id)
        if suggestion is not None:
            console.print(f"[dim]No target set. Try: target {escape(counter_id)} {suggestion}[/dim]")
        return

    raw = args[1].lower()
    if raw in ("none", "off", "clear"):
        state.engine.set_target(counter_id, None)
        return
    try:
        target = int(raw)
    except ValueError:
        raise ValidationError("Please enter a valid positive number for the target.", {"target": args[1]})
    state.engine.set_target(counter_id, target)


def handle_name(state: ShellState, args: list[str]) -> None:
    _require_args(args, 1, "name <text>")
    state.engine.update_project(name=" ".join(args))


def handle_notes(state: ShellState, args: list[str]) -> None:
    state.engine.update_project(notes=" ".join(args))


def handle_pattern(state: ShellState, args: list[str]) -> None:
    state.engine.update_project(pattern_url=" ".join(args))


def handle_pause(state: ShellState, args: list[str]) -> None:
    paused = state.engine.toggle_timer_pause()
    console.print("[yellow]Timer paused.[/yellow]" if paused else "[green]Timer running.[/green]")


def handle_timer(state: ShellState, args: list[str]) -> None:
    """Show or hide the timer and ETAs. Toggles without an argument."""
    settings = state.engine.context.settings
    if not args:
        show = not settings.show_timer
    elif args[0].lower() in TIMER_CHOICES:
        show = args[0].lower() == "on"
    else:
        raise ValidationError("Usage: timer [on|off]", {"value": args[0]})

    settings.show_timer = show
    if state.config is not None:
        state.config.settings = settings
        save_settings(state.config)
    console.print("[dim]Timer shown.[/dim]" if show else "[dim]Timer hidden.[/dim]")


def handle_save(state: ShellState, args: list[str]) -> None:
    state.engine.save_active_project(explicit=True)


def handle_projects(state: ShellState, args: list[str]) -> None:
    snapshot = state.engine.snapshot()
    show_projects(snapshot.saved_projects, snapshot.project.id)


def handle_status(state: ShellState, args: list[str]) -> None:
    stats = state.engine.context.get_stats()
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    for key, value in stats.items():
        if key == "duration_seconds":
            value = format_elapsed(int(value * 1000))
        table.add_row(key.replace("_", " "), escape(str(value)))
    console.print(table)


def handle_load(state: ShellState, args: list[str]) -> None:
    _require_args(args, 1, "load <project>")
    resolve_confirmation(state, state.engine.request_load_project(args[0]))


def handle_delete_project(state: ShellState, args: list[str]) -> None:
    if args:
        confirmation = state.engine.request_delete_project(args[0])
    else:
        confirmation = state.engine.request_delete_active_project()
    resolve_confirmation(state, confirmation)


def handle_new(state: ShellState, args: list[str]) -> None:
    resolve_confirmation(state, state.engine.request_start_new_project())


def handle_watch(state: ShellState, args: list[str]) -> None:
    """Live timer, ticking at the configured cadence until Ctrl+C or the duration ends."""
    engine = state.engine
    duration: float | None = None
    if args:
        try:
            duration = float(args[0])
        except ValueError:
            raise ValidationError("Usage: watch [seconds]", {"seconds": args[0]})

    interval = engine.context.settings.tick_interval_seconds
    started = time.monotonic()
    console.print("[dim]Watching timer (Ctrl+C to stop)[/dim]")

    def render():
        timer = engine.active_project.timer
        return timer_text(format_elapsed(elapsed_at(timer)), timer.is_paused)

    try:
        with Live(render(), console=console, refresh_per_second=4) as live:
            while duration is None or time.monotonic() - started < duration:
                time.sleep(interval)
                engine.tick()
                live.update(render())
    except KeyboardInterrupt:
        pass
    console.print(project_panel(engine.snapshot()))


def handle_quit(state: ShellState, args: list[str]) -> None:
    state.running = False


COMMAND_HANDLERS: dict[str, Callable[[ShellState, list[str]], None]] = {
    "+": handle_increment,
    "-": handle_decrement,
    "reset": handle_reset,
    "add": handle_add,
    "del": handle_delete_counter,
    "rename": handle_rename,
    "target": handle_target,
    "name": handle_name,
    "notes": handle_notes,
    "pattern": handle_pattern,
    "pause": handle_pause,
    "timer": handle_timer,
    "save": handle_save,
    "projects": handle_projects,
    "status": handle_status,
    "load": handle_load,
    "delete": handle_delete_project,
    "new": handle_new,
    "watch": handle_watch,
    "help": handle_help,
    "quit": handle_quit,
    "exit": handle_quit,
    "q": handle_quit,
}

# Commands that leave the project view unchanged and should not re-render it
NO_RENDER_COMMANDS = {"help", "projects", "status", "watch", "quit", "exit", "q"}


def dispatch(state: ShellState, line: str) -> bool:
    """
    Run one shell line.

    Returns:
        True if the project view should be redrawn

    Raises:
        ValidationError: For unknown commands or bad arguments
    """
    command, args = parse_command(line)
    if not command:
        return False
    handler = COMMAND_HANDLERS.get(command)
    if handler is None:
        raise ValidationError(f"Unknown command: {command}. Type 'help' for commands.")
    handler(state, args)
    return state.running and command not in NO_RENDER_COMMANDS


__all__ = [
    "COMMAND_HANDLERS",
    "ShellState",
    "dispatch",
    "parse_command",
    "resolve_confirmation",
]
