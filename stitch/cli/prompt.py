"""
Shell prompt with command history and tab completion.

Uses prompt_toolkit to provide:
- Command history (arrow up/down), persisted across sessions
- Tab completion for shell commands, counter ids and project ids
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style

if TYPE_CHECKING:
    from prompt_toolkit.document import Document


# Shell commands with descriptions
SHELL_COMMANDS = {
    "+": "Increment a counter (main by default)",
    "-": "Decrement a counter (main by default)",
    "reset": "Reset a counter to zero",
    "add": "Add a sub-counter",
    "del": "Delete a sub-counter",
    "rename": "Rename a counter",
    "target": "Set or clear a counter target",
    "name": "Rename the project",
    "notes": "Set project notes",
    "pattern": "Set the pattern link",
    "pause": "Pause or resume the timer",
    "timer": "Show or hide the timer and ETAs",
    "save": "Save the project",
    "projects": "List saved projects",
    "status": "Show session status",
    "load": "Load a saved project",
    "delete": "Delete a project (active by default)",
    "new": "Start a new project",
    "watch": "Show the live timer",
    "help": "Show available commands",
    "quit": "Exit Stitch",
}

# Commands whose first argument is a counter id / project id
COUNTER_ARG_COMMANDS = {"+", "-", "reset", "del", "rename", "target"}
PROJECT_ARG_COMMANDS = {"load", "delete"}
TIMER_CHOICES = ("on", "off")


class StitchCompleter(Completer):
    """Completer for shell commands and the ids they take."""

    def __init__(
        self,
        counter_ids: Callable[[], Iterable[str]] | None = None,
        project_ids: Callable[[], Iterable[str]] | None = None,
    ):
        """
        Initialize completer.

        Args:
            counter_ids: Returns ids of the active project's counters
            project_ids: Returns ids of saved projects
        """
        self.counter_ids = counter_ids or (lambda: [])
        self.project_ids = project_ids or (lambda: [])

    def get_completions(self, document: Document, complete_event):
        """Generate completions for the current input."""
        text = document.text_before_cursor
        parts = text.split()

        # Still typing the command word
        if not parts or (len(parts) == 1 and not text.endswith(" ")):
            word = parts[0] if parts else ""
            for cmd, desc in SHELL_COMMANDS.items():
                if cmd.startswith(word):
                    yield Completion(cmd, start_position=-len(word), display_meta=desc)
            return

        # Only the first argument is completed
        if len(parts) > 2 or (len(parts) == 2 and text.endswith(" ")):
            return

        command = parts[0]
        partial = parts[1] if len(parts) == 2 else ""
        if command in COUNTER_ARG_COMMANDS:
            candidates, meta = self.counter_ids(), "counter"
        elif command in PROJECT_ARG_COMMANDS:
            candidates, meta = self.project_ids(), "project"
        elif command == "timer":
            candidates, meta = TIMER_CHOICES, "setting"
        else:
            return

        for candidate in candidates:
            if candidate.startswith(partial):
                yield Completion(candidate, start_position=-len(partial), display_meta=meta)


def get_history_path() -> Path:
    """Get path to command history file."""
    # Store in ~/.stitch/history
    stitch_dir = Path.home() / ".stitch"
    stitch_dir.mkdir(exist_ok=True)
    return stitch_dir / "history"


def create_prompt_session(
    counter_ids: Callable[[], Iterable[str]] | None = None,
    project_ids: Callable[[], Iterable[str]] | None = None,
) -> PromptSession:
    """
    Create a prompt session with history and completion.

    Returns:
        Configured PromptSession
    """
    style = Style.from_dict({"prompt": "ansicyan bold"})

    session: PromptSession = PromptSession(
        history=FileHistory(str(get_history_path())),
        auto_suggest=AutoSuggestFromHistory(),
        completer=StitchCompleter(counter_ids, project_ids),
        complete_while_typing=False,  # Only complete on Tab
        style=style,
    )
    return session
