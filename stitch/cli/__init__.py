"""
Stitch CLI components.

Split into focused modules:
- typer_commands.py: CLI entry points (shell, list, show, delete, logs)
- interactive.py: Interactive shell loop
- commands.py: Shell command handlers
- prompt.py: Prompt with history and completion
- render.py: Rich views of engine snapshots
"""

from stitch.cli.commands import COMMAND_HANDLERS, ShellState, dispatch, parse_command, resolve_confirmation
from stitch.cli.interactive import shell_loop
from stitch.cli.prompt import SHELL_COMMANDS, StitchCompleter, create_prompt_session, get_history_path
from stitch.cli.typer_commands import app, run

__all__ = [
    # Typer app
    "app",
    "run",
    # Shell
    "shell_loop",
    "ShellState",
    "dispatch",
    "parse_command",
    "resolve_confirmation",
    "COMMAND_HANDLERS",
    # Prompt
    "SHELL_COMMANDS",
    "StitchCompleter",
    "create_prompt_session",
    "get_history_path",
]
