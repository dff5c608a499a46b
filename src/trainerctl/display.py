"""
Display manager for Rich-based REPL output and live updates.

Handles all console output including formatted tables, status display,
workout summaries and toggle-able live display updates. Unit conversion
happens here only; the rest of the package works in km/h and meters.
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .core import GRADE_MAX, GRADE_MIN, KPH_TO_MPH

logger = logging.getLogger(__name__)


class DisplayManager:
    """Manages console output with Rich library."""

    def __init__(self, console: Optional[Console] = None, use_metric: bool = False):
        """Initialize display manager.

        Args:
            console: Rich Console instance (creates one if None)
            use_metric: Show km/h and km instead of mph and miles
        """
        self.console = console or Console()
        self.use_metric = use_metric
        self.live_enabled = False
        self._live: Optional[Live] = None
        self._live_data: dict[str, Any] = {}

    def print_banner(self) -> None:
        """Print startup banner."""
        panel = Panel(
            "[bold cyan]TrainerCtl - Smart Trainer Control[/bold cyan]\n"
            "[dim]Type 'help' for commands, 'quit' to exit[/dim]",
            expand=False,
        )
        self.console.print(panel)

    def print_status(self, data: dict) -> None:
        """Display one-time sensor status table.

        Args:
            data: Dictionary from TrainerController.get_status()
        """
        self.console.print(self.format_status_table(data))

    def print_result(self, cmd: str, success: bool) -> None:
        """Display command result."""
        if success:
            self.console.print(f"[green]✓[/green] {cmd} succeeded", highlight=False)
        else:
            self.console.print(f"[red]✗[/red] {cmd} failed", highlight=False)

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print_info(self, message: str) -> None:
        self.console.print(f"[cyan]Info:[/cyan] {message}", highlight=False)

    def print_trainers(self, trainers: list) -> None:
        """Display trainers found by a scan."""
        table = Table(title="Trainers", show_header=True, header_style="bold cyan")
        table.add_column("#", style="magenta")
        table.add_column("Name", style="cyan")
        table.add_column("Address", style="yellow")
        table.add_column("RSSI", style="white")
        for index, trainer in enumerate(trainers, start=1):
            table.add_row(str(index), trainer.name, trainer.address, f"{trainer.rssi:+d} dBm")
        self.console.print(table)

    def print_summary(self, summary: Any) -> None:
        """Display a WorkoutSummary."""
        table = Table(title="Workout Summary", show_header=True, header_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")
        table.add_row("Mode", summary.mode or "-")
        table.add_row("Duration", self.format_time(summary.duration_seconds))
        table.add_row("Distance", self.format_distance(summary.total_distance_m))
        table.add_row("Avg Power", f"{summary.avg_power:.0f} W")
        table.add_row("Max Power", f"{summary.max_power} W")
        if summary.avg_heart_rate is not None:
            table.add_row("Avg HR", f"{summary.avg_heart_rate:.0f} bpm")
            table.add_row("Max HR", f"{summary.max_heart_rate} bpm")
        self.console.print(table)

    def print_help(self, commands: list) -> None:
        """Display command reference.

        Args:
            commands: List of Command objects
        """
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Aliases", style="magenta")
        table.add_column("Description", style="white")
        table.add_column("Usage", style="yellow")

        for cmd in commands:
            aliases = ", ".join(cmd.aliases) if cmd.aliases else "-"
            table.add_row(cmd.name, aliases, cmd.description, cmd.usage)

        self.console.print(table)
        self.console.print(
            "[dim]Keyboard shortcuts: Ctrl+C to interrupt, Ctrl+D to exit[/dim]"
        )

    def start_live(self, initial: Optional[dict] = None) -> None:
        """Start live display refresh mode."""
        if self.live_enabled:
            return

        self.live_enabled = True
        self._live_data = {
            "status": "Connecting...",
            "power": 0,
            "cadence": 0.0,
            "speed": 0.0,
            "distance": 0.0,
            "grade": None,
            "resistance": None,
            "heart_rate": None,
        }
        if initial:
            self._live_data.update(initial)
        self._live = Live(self._create_live_table(), console=self.console, refresh_per_second=2)
        self._live.start()
        self.console.print("[dim]Live display enabled ['live' to disable][/dim]")

    def stop_live(self) -> None:
        """Stop live display refresh mode."""
        if not self.live_enabled:
            return

        self.live_enabled = False
        if self._live is not None:
            self._live.stop()
            self._live = None

    def update_live(self, data: dict) -> None:
        """Update live display with new telemetry.

        Args:
            data: Partial status dict from TrainerController.get_updates()
        """
        if not self.live_enabled or self._live is None:
            return

        self._live_data.update(data)
        try:
            self._live.update(self._create_live_table())
        except Exception as e:
            logger.error(f"Live update error: {e}")

    def toggle_live(self, initial: Optional[dict] = None) -> bool:
        """Toggle live display on/off.

        Returns:
            New live display state (True = on, False = off)
        """
        if self.live_enabled:
            self.stop_live()
        else:
            self.start_live(initial)
        return self.live_enabled

    def _create_live_table(self) -> Table:
        return self.format_status_table(self._live_data)

    def format_status_table(self, data: dict) -> Table:
        """Create Rich Table for sensor display.

        Args:
            data: Dictionary with status, power, cadence, speed, distance,
                grade, resistance and heart_rate

        Returns:
            Rich Table object
        """
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")

        table.add_row("Status", str(data.get("status", "UNKNOWN")))
        table.add_row("Power", f"{data.get('power', 0)} W")
        table.add_row("Cadence", f"{data.get('cadence', 0.0):.0f} rpm")
        table.add_row("Speed", self.format_speed(data.get("speed", 0.0)))
        table.add_row("Distance", self.format_distance(data.get("distance", 0.0)))
        grade = data.get("grade")
        if grade is None:
            table.add_row("Grade", self.format_grade(grade))
        else:
            table.add_row("Grade", f"[{self.grade_color(grade)}]{self.format_grade(grade)}[/]")
        resistance = data.get("resistance")
        table.add_row("Resistance", "--" if resistance is None else f"{resistance * 100:.0f}%")
        heart_rate = data.get("heart_rate")
        table.add_row("Heart Rate", "--" if heart_rate is None else f"{heart_rate} bpm")

        return table

    @staticmethod
    def format_time(seconds: int) -> str:
        """Convert seconds to MM:SS, or H:MM:SS past an hour."""
        seconds = int(max(seconds, 0))
        mins, secs = divmod(seconds, 60)
        hours, mins = divmod(mins, 60)
        if hours:
            return f"{hours}:{mins:02d}:{secs:02d}"
        return f"{mins}:{secs:02d}"

    def format_speed(self, km_h: float) -> str:
        if self.use_metric:
            return f"{km_h:.1f} km/h"
        return f"{km_h * KPH_TO_MPH:.1f} mph"

    def format_distance(self, meters: float) -> str:
        if self.use_metric:
            return f"{meters / 1000.0:.2f} km"
        return f"{meters / 1000.0 * KPH_TO_MPH:.2f} mi"

    @staticmethod
    def format_grade(grade: Optional[float]) -> str:
        if grade is None:
            return "--"
        return f"{grade:+.1f}%"

    @staticmethod
    def grade_color(grade: float) -> str:
        """Green-to-red hex color for a grade across the slider range."""
        ratio = (grade - GRADE_MIN) / (GRADE_MAX - GRADE_MIN)
        ratio = max(0.0, min(ratio, 1.0))
        if ratio < 0.5:
            red, green = int(ratio * 2 * 255), 255
        else:
            red, green = 255, int((1 - ratio) * 2 * 255)
        return f"#{red:02x}{green:02x}00"
