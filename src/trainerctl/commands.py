"""
Command definitions and auto-completion for REPL.

Defines all available commands with metadata and provides a completer
for prompt_toolkit auto-completion.
"""

from dataclasses import dataclass
from typing import Any, List

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .core import (
    GRADE_MAX,
    GRADE_MIN,
    MIN_STEP_INTERVAL_SECONDS,
    STEP_INTERVAL_INCREMENT,
    TIRE_SIZES,
)
from .waveform import WorkoutMode


@dataclass
class Command:
    """Command definition with metadata."""

    name: str
    aliases: List[str]
    description: str
    usage: str
    handler: str


# Define all available commands
COMMANDS = [
    Command(
        name="scan",
        aliases=["sc"],
        description="Scan for trainers",
        usage="scan",
        handler="cmd_scan",
    ),
    Command(
        name="connect",
        aliases=["c"],
        description="Connect to a trainer (cached or first found if no address)",
        usage="connect [address|#]",
        handler="cmd_connect",
    ),
    Command(
        name="disconnect",
        aliases=["dc"],
        description="Disconnect from trainer",
        usage="disconnect",
        handler="cmd_disconnect",
    ),
    Command(
        name="init",
        aliases=["i"],
        description="Send init/unlock command to the control point",
        usage="init",
        handler="cmd_init",
    ),
    Command(
        name="resistance",
        aliases=["r"],
        description="Queue resistance in percent",
        usage="resistance <0-100>",
        handler="cmd_resistance",
    ),
    Command(
        name="grade",
        aliases=["g"],
        description="Queue a virtual grade in percent",
        usage="grade <-10..20>",
        handler="cmd_grade",
    ),
    Command(
        name="mode",
        aliases=["m"],
        description="Select workout waveform",
        usage="mode <random|hilly|mountain|pyramid>",
        handler="cmd_mode",
    ),
    Command(
        name="range",
        aliases=["rg"],
        description="Set workout grade range",
        usage="range <min> <max>",
        handler="cmd_range",
    ),
    Command(
        name="interval",
        aliases=["iv"],
        description="Set seconds between workout steps (min 10)",
        usage="interval <seconds>",
        handler="cmd_interval",
    ),
    Command(
        name="start",
        aliases=["s"],
        description="Start a workout",
        usage="start",
        handler="cmd_start",
    ),
    Command(
        name="stop",
        aliases=["x"],
        description="Stop the workout and show its summary",
        usage="stop",
        handler="cmd_stop",
    ),
    Command(
        name="export",
        aliases=["e"],
        description="Save last workout (.fit, .json or .csv)",
        usage="export <path>",
        handler="cmd_export",
    ),
    Command(
        name="status",
        aliases=["st"],
        description="Show current sensor values",
        usage="status",
        handler="cmd_status",
    ),
    Command(
        name="live",
        aliases=["l"],
        description="Toggle live display mode",
        usage="live",
        handler="cmd_live",
    ),
    Command(
        name="units",
        aliases=["u"],
        description="Switch display units",
        usage="units <metric|imperial>",
        handler="cmd_units",
    ),
    Command(
        name="wheel",
        aliases=["w"],
        description="Set wheel circumference (preset # or meters)",
        usage="wheel [#|meters]",
        handler="cmd_wheel",
    ),
    Command(
        name="info",
        aliases=["inf"],
        description="Show device and debug information",
        usage="info",
        handler="cmd_info",
    ),
    Command(
        name="help",
        aliases=["h", "?"],
        description="Show all available commands",
        usage="help",
        handler="cmd_help",
    ),
    Command(
        name="quit",
        aliases=["q", "exit"],
        description="Exit the REPL",
        usage="quit",
        handler="cmd_quit",
    ),
]


def get_command(name: str) -> Command | None:
    """Get command by name or alias.

    Args:
        name: Command name or alias

    Returns:
        Command object if found, None otherwise
    """
    for cmd in COMMANDS:
        if cmd.name == name or name in cmd.aliases:
            return cmd
    return None


def _argument_suggestions(command: str) -> list[str]:
    """Candidate values for a command's argument."""
    if command in ("grade", "g"):
        grades = []
        grade = GRADE_MIN
        while grade <= GRADE_MAX:
            grades.append(f"{grade:.0f}")
            grade += 1.0
        return grades
    if command in ("resistance", "r"):
        return [str(percent) for percent in range(0, 101, 5)]
    if command in ("mode", "m"):
        return [mode.value for mode in WorkoutMode]
    if command in ("interval", "iv"):
        return [
            str(seconds)
            for seconds in range(MIN_STEP_INTERVAL_SECONDS, 121, STEP_INTERVAL_INCREMENT)
        ]
    if command in ("units", "u"):
        return ["metric", "imperial"]
    if command in ("wheel", "w"):
        return [str(index) for index in range(1, len(TIRE_SIZES) + 1)]
    return []


class CommandCompleter(Completer):
    """Auto-completion for commands and arguments."""

    def __init__(self) -> None:
        """Initialize completer."""
        self._command_names = set()
        self._command_aliases = set()

        for cmd in COMMANDS:
            self._command_names.add(cmd.name)
            self._command_aliases.update(cmd.aliases)

    def get_completions(self, document: Document, complete_event) -> Any:  # type: ignore[no-untyped-def]
        """Get completion suggestions for current input.

        Args:
            document: Current input document
            complete_event: Completion event

        Yields:
            Completion objects for matching commands/arguments
        """
        text = document.text_before_cursor.lstrip()
        parts = text.split()

        # If no text yet, suggest nothing (avoid spam)
        if not text:
            return

        # Second part: suggest argument values once the command is complete
        if len(parts) >= 2 or text.endswith(" "):
            partial = "" if text.endswith(" ") else parts[-1].lower()
            for value in _argument_suggestions(parts[0].lower()):
                if value.startswith(partial):
                    yield Completion(
                        value[len(partial) :],
                        start_position=0,
                        display=value,
                    )
            return

        # First part: complete command name
        partial_cmd = parts[0].lower()
        for name in sorted(self._command_names | self._command_aliases):
            if name.startswith(partial_cmd):
                yield Completion(
                    name[len(partial_cmd) :],
                    start_position=0,
                    display=name,
                )
