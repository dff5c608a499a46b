"""
Main REPL application for smart trainer control.

Interactive command loop with async support, auto-completion,
live sensor display and workout recording.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import InMemoryHistory

from .commands import COMMANDS, CommandCompleter, get_command
from .controller import TrainerController
from .core import TIRE_SIZES, TrainerSettings, find_tire_size
from .display import DisplayManager
from .export import export_report
from .models import WorkoutReport
from .session import WorkoutSession
from .waveform import WorkoutMode

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """Console logging plus an optional timestamped log file."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
    )
    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(name)s: %(message)s")
        )
        logging.getLogger().addHandler(handler)


class TrainerCtlREPL:
    """Interactive REPL for smart trainer control."""

    def __init__(self, settings: Optional[TrainerSettings] = None) -> None:
        """Initialize REPL with controller, display manager and workout session."""
        self.settings = settings or TrainerSettings()
        self.controller = TrainerController(self.settings)
        self.display = DisplayManager(use_metric=self.settings.use_metric)
        self.workout = WorkoutSession(self.controller)
        self.last_report: Optional[WorkoutReport] = None
        self.running = False
        self.session: PromptSession

        # Set up callbacks
        self.controller.set_on_connection_lost(self._on_connection_lost)

        # Create prompt session with auto-completion
        self.session = PromptSession(
            completer=CommandCompleter(),
            history=InMemoryHistory(),
            enable_history_search=True,
        )

        # Background update task
        self._update_task: Optional[asyncio.Task] = None

    async def run(self, address: Optional[str] = None) -> None:
        """Run the main REPL loop."""
        self.running = True
        self.display.print_banner()

        # Auto-connect to device on startup
        self.display.console.print("Attempting to connect to trainer...")
        if await self._connect(address):
            self.display.console.print("✓ Connected successfully\n")
        else:
            self.display.console.print(
                "⚠ Could not connect to trainer. Use 'scan' and 'connect' to retry.\n"
            )

        try:
            while self.running:
                try:
                    prompt_text = self._get_prompt()
                    text = await self.session.prompt_async(prompt_text)

                    if text.strip():
                        await self._handle_input(text.strip())

                except KeyboardInterrupt:
                    # Just show new prompt on Ctrl+C
                    self.display.console.print()
                    continue

        except EOFError:
            # End of input (Ctrl+D)
            await self.cmd_quit([])
        finally:
            self.running = False
            await self._stop_update_task()

    def _get_prompt(self) -> FormattedText:
        """Get dynamic prompt based on connection and workout state."""
        if not self.controller.is_connected:
            return FormattedText([("class:prompt", "[disconnected] > ")])
        suffix = " ●" if self.workout.is_active else ""
        return FormattedText(
            [("class:prompt", f"[{self.controller.device_name}{suffix}] > ")]
        )

    async def _handle_input(self, text: str) -> None:
        """Parse and dispatch command.

        Args:
            text: Raw user input text
        """
        parts = text.split(maxsplit=1)
        if not parts:
            return

        cmd_name = parts[0].lower()
        args = parts[1].split() if len(parts) > 1 else []

        cmd = get_command(cmd_name)
        if not cmd:
            self.display.print_error(
                f"Unknown command: {cmd_name}. Type 'help' for available commands."
            )
            return

        handler = getattr(self, cmd.handler, None)
        if handler is None:
            self.display.print_error(f"Handler not found: {cmd.handler}")
            return

        try:
            await handler(args)
        except Exception as e:
            self.display.print_error(f"Command failed: {e}")
            logger.exception("Command exception")

    async def _connect(self, address: Optional[str] = None) -> bool:
        if not await self.controller.connect(address):
            return False
        if self.controller.has_control:
            await self.controller.send_init_command()
        self._update_task = asyncio.create_task(self._update_loop())
        return True

    async def _stop_update_task(self) -> None:
        if self._update_task:
            self._update_task.cancel()
            try:
                await self._update_task
            except asyncio.CancelledError:
                pass
            self._update_task = None

    async def _update_loop(self) -> None:
        """Background task to feed telemetry to the live display."""
        try:
            async for update_data in self.controller.get_updates():
                if self.display.live_enabled:
                    if self.workout.is_active:
                        update_data = {**update_data, "grade": self.workout.current_grade}
                    self.display.update_live(update_data)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Update loop error: {e}")

    def _on_connection_lost(self) -> None:
        """Callback when the trainer drops the connection."""
        was_active = self.workout.is_active
        self.workout.halt()
        if self.display.live_enabled:
            self.display.stop_live()
        self.display.print_info("Device disconnected")
        if was_active:
            self.last_report = self.workout.report()
            self.display.print_summary(self.last_report.summary)
            self.display.print_info("Workout ended. Use 'export <path>' to save it.")

    def _require_connection(self) -> bool:
        if not self.controller.is_connected:
            self.display.print_error("Not connected. Use 'connect' first.")
            return False
        return True

    # ========== Command Handlers ==========

    async def cmd_scan(self, args: list) -> None:
        """Scan for trainers."""
        self.display.print_info("Scanning for trainers...")
        trainers = await self.controller.discover()
        if not trainers:
            self.display.print_error("No trainer found. Make sure it's powered on and in range.")
            return
        self.display.print_trainers(trainers)

    async def cmd_connect(self, args: list) -> None:
        """Connect to a trainer."""
        if self.controller.is_connected:
            self.display.print_info("Already connected")
            return

        address = args[0] if args else None
        if address and address.isdigit():
            trainers = self.controller.discovered_trainers
            index = int(address) - 1
            if not 0 <= index < len(trainers):
                self.display.print_error("No such trainer. Run 'scan' first.")
                return
            address = trainers[index].address

        self.display.print_info("Connecting...")
        if not await self._connect(address):
            self.display.print_error("Connection failed. Please try again.")
            return

        endpoint = self.controller.endpoint_name or "none (telemetry only)"
        self.display.print_info(f"Connected to {self.controller.device_name} (control: {endpoint})")
        await self.cmd_status([])

    async def cmd_disconnect(self, args: list) -> None:
        """Disconnect from trainer."""
        if not self.controller.is_connected:
            self.display.print_info("Not connected")
            return

        if self.workout.is_active:
            await self.cmd_stop([])
        if self.display.live_enabled:
            self.display.stop_live()

        await self._stop_update_task()
        await self.controller.disconnect()
        self.display.print_info("Disconnected")

    async def cmd_init(self, args: list) -> None:
        """Send init command."""
        if not self._require_connection():
            return
        self.display.print_result("init", await self.controller.send_init_command())

    async def cmd_resistance(self, args: list) -> None:
        """Queue resistance in percent."""
        if not self._require_connection():
            return
        if not args:
            self.display.print_error("Usage: resistance <0-100>")
            return
        try:
            percent = float(args[0])
        except ValueError:
            self.display.print_error(f"Invalid resistance: {args[0]}")
            return

        if self.controller.queue_resistance(percent / 100.0):
            self.display.print_info(f"Resistance queued: {max(0.0, min(percent, 100.0)):.0f}%")
        else:
            self.display.print_error("Trainer has no control point")

    async def cmd_grade(self, args: list) -> None:
        """Queue a virtual grade."""
        if not self._require_connection():
            return
        if not args:
            self.display.print_error("Usage: grade <percent>")
            return
        try:
            grade = float(args[0])
        except ValueError:
            self.display.print_error(f"Invalid grade: {args[0]}")
            return

        if self.controller.queue_grade(grade):
            resistance = self.controller.get_status()["resistance"]
            self.display.print_info(
                f"Grade queued: {grade:+.1f}% (resistance {resistance * 100:.1f}%)"
            )
        else:
            self.display.print_error("Trainer has no control point")

    async def cmd_mode(self, args: list) -> None:
        """Select workout waveform."""
        if not args:
            self.display.print_info(f"Mode: {self.workout.mode.value}")
            return
        try:
            self.workout.mode = WorkoutMode.from_name(args[0])
        except ValueError as e:
            self.display.print_error(str(e))
            return
        self.display.print_info(f"Mode set to {self.workout.mode.value}")

    async def cmd_range(self, args: list) -> None:
        """Set workout grade range."""
        if len(args) < 2:
            self.display.print_info(
                f"Range: {self.workout.min_grade:.1f}% to {self.workout.max_grade:.1f}%"
            )
            return
        try:
            low, high = float(args[0]), float(args[1])
        except ValueError:
            self.display.print_error(f"Invalid range: {' '.join(args)}")
            return
        self.workout.min_grade, self.workout.max_grade = low, high
        self.display.print_info(f"Range set to {low:.1f}% to {high:.1f}%")

    async def cmd_interval(self, args: list) -> None:
        """Set workout step interval."""
        if not args:
            self.display.print_info(f"Interval: {self.workout.interval_seconds}s")
            return
        try:
            self.workout.interval_seconds = int(args[0])
        except ValueError:
            self.display.print_error(f"Invalid interval: {args[0]}")
            return
        self.display.print_info(f"Interval: {self.workout.interval_seconds}s")

    async def cmd_start(self, args: list) -> None:
        """Start a workout."""
        if not self._require_connection():
            return
        if self.workout.is_active:
            self.display.print_info("Workout already running")
            return
        await self.workout.start()
        self.display.print_info(
            f"Workout started ({self.workout.mode.value}, "
            f"{self.workout.min_grade:.1f}% to {self.workout.max_grade:.1f}%, "
            f"every {self.workout.interval_seconds}s)"
        )

    async def cmd_stop(self, args: list) -> None:
        """Stop the workout and show its summary."""
        if not self.workout.is_active:
            self.display.print_info("No workout running")
            return
        self.last_report = await self.workout.stop()
        self.display.print_summary(self.last_report.summary)
        if self.last_report.data_points:
            self.display.print_info("Use 'export <path>' to save the workout.")

    async def cmd_export(self, args: list) -> None:
        """Save the last workout."""
        if self.last_report is None:
            self.display.print_error("No recorded workout to export")
            return
        if not args:
            timestamp = self.last_report.summary.start_time.strftime("%Y%m%d_%H%M%S")
            args = [f"Workout_{timestamp}.fit"]
        path = export_report(self.last_report, args[0])
        self.display.print_info(f"Report saved to {path}")

    async def cmd_status(self, args: list) -> None:
        """Show current sensor values."""
        self.display.print_status(self.controller.get_status())

    async def cmd_live(self, args: list) -> None:
        """Toggle live display mode."""
        enabled = self.display.toggle_live(self.controller.get_status())
        if not enabled:
            self.display.print_info("Live display disabled")

    async def cmd_units(self, args: list) -> None:
        """Switch display units."""
        if args and args[0].lower() in ("metric", "imperial"):
            self.settings.use_metric = args[0].lower() == "metric"
            self.display.use_metric = self.settings.use_metric
        self.display.print_info(f"Units: {'metric' if self.settings.use_metric else 'imperial'}")

    async def cmd_wheel(self, args: list) -> None:
        """Set wheel circumference."""
        if not args:
            for index, tire in enumerate(TIRE_SIZES, start=1):
                self.display.console.print(f"  {index}. {tire.name} ({tire.circumference_m:.2f} m)")
            current = self.settings.wheel_circumference_m
            tire = find_tire_size(current)
            self.display.print_info(f"Wheel: {tire or 'custom'} ({current:.2f} m)")
            return

        value = args[0]
        try:
            if value.isdigit() and 1 <= int(value) <= len(TIRE_SIZES):
                circumference = TIRE_SIZES[int(value) - 1].circumference_m
            else:
                circumference = float(value)
        except ValueError:
            self.display.print_error(f"Invalid wheel size: {value}")
            return
        if circumference <= 0:
            self.display.print_error("Wheel circumference must be positive")
            return

        self.controller.set_wheel_circumference(circumference)
        self.display.print_info(f"Wheel circumference set to {circumference:.2f} m")

    async def cmd_info(self, args: list) -> None:
        """Show device and debug information."""
        console = self.display.console
        console.print("[bold cyan]Trainer[/bold cyan]")
        console.print(f"  Connected: {self.controller.is_connected}")
        console.print(f"  Status: {self.controller.current_status}")
        console.print(f"  Control endpoint: {self.controller.endpoint_name}")
        console.print(f"  Pending command: {self.controller.pending_command}")

        console.print()
        console.print("[bold cyan]Settings[/bold cyan]")
        console.print(f"  Wheel: {self.settings.wheel_circumference_m:.2f} m")
        console.print(f"  Units: {'metric' if self.settings.use_metric else 'imperial'}")
        console.print(f"  Simulation mode: {self.settings.use_simulation_mode}")

        console.print()
        console.print("[bold cyan]Workout[/bold cyan]")
        console.print(f"  Active: {self.workout.is_active}")
        console.print(f"  Mode: {self.workout.mode.value}")
        console.print(f"  Step: {self.workout.step_index}")
        console.print(f"  Samples: {len(self.workout.recorder)}")
        console.print(f"  Live enabled: {self.display.live_enabled}")

    async def cmd_help(self, args: list) -> None:
        """Show all available commands."""
        self.display.print_help(COMMANDS)

    async def cmd_quit(self, args: list) -> None:
        """Exit the REPL."""
        if self.workout.is_active:
            await self.cmd_stop([])
        if self.display.live_enabled:
            self.display.stop_live()

        if self.controller.is_connected:
            self.display.print_info("Disconnecting...")
            await self.controller.disconnect()

        self.display.console.print("[cyan]Goodbye![/cyan]")
        self.running = False


async def run_cli_command(command: str, value: Optional[float], settings: TrainerSettings, address: Optional[str]) -> None:
    """Run a single CLI command and exit."""
    controller = TrainerController(settings)
    display = DisplayManager(use_metric=settings.use_metric)

    try:
        # Handle commands that don't need connection first
        if command == "clear-cache":
            controller.clear_address_cache()
            display.print_info("Cleared cached device address")
            return

        if command == "scan":
            trainers = await controller.discover()
            if not trainers:
                display.print_error("No trainer found")
                sys.exit(1)
            display.print_trainers(trainers)
            return

        display.print_info("Connecting to trainer...")
        if not await controller.connect(address):
            display.print_error("Failed to connect to trainer")
            sys.exit(1)

        if command == "status":
            # Wait a moment for telemetry to arrive after connecting
            await asyncio.sleep(2)
            display.print_status(controller.get_status())
            return

        if not controller.has_control:
            display.print_error("Trainer has no control point")
            sys.exit(1)

        await controller.send_init_command()
        if command == "grade":
            controller.queue_grade(value)  # type: ignore[arg-type]
        elif command == "resistance":
            controller.queue_resistance(value / 100.0)  # type: ignore[operator]

        # Give the command loop a chance to deliver
        for _ in range(25):
            await asyncio.sleep(0.2)
            if controller.pending_command is None:
                break
        display.print_result(command, controller.pending_command is None)

    finally:
        # Ensure we disconnect if still connected
        if controller.is_connected:
            await controller.disconnect()


def main() -> None:
    """Entry point for the REPL application."""
    parser = argparse.ArgumentParser(
        description="Smart Bike Trainer Control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  trainerctl                      # Start interactive REPL
  trainerctl --scan               # List nearby trainers
  trainerctl --grade 4.5          # Set a 4.5% grade (auto-connects)
  trainerctl --resistance 30      # Set 30% resistance (auto-connects)
  trainerctl --status             # Show trainer telemetry
  trainerctl --clear-cache        # Clear cached device address
        """,
    )

    parser.add_argument("--scan", action="store_true", help="Scan for trainers")
    parser.add_argument("--grade", type=float, metavar="PCT", help="Set a virtual grade")
    parser.add_argument(
        "--resistance", type=float, metavar="PCT", help="Set resistance in percent"
    )
    parser.add_argument("--status", action="store_true", help="Show trainer status")
    parser.add_argument(
        "--clear-cache", action="store_true", help="Clear cached device address"
    )

    parser.add_argument("--address", help="Trainer Bluetooth address")
    parser.add_argument("--metric", action="store_true", help="Use km/h and km")
    parser.add_argument(
        "--wheel",
        type=float,
        default=TIRE_SIZES[0].circumference_m,
        metavar="METERS",
        help="Wheel circumference (default: 2.10)",
    )
    parser.add_argument(
        "--simulation",
        action="store_true",
        help="Send grades natively instead of mapped resistance",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument("--log-file", metavar="PATH", help="Also log to a file")

    args = parser.parse_args()
    configure_logging(args.debug, args.log_file)

    settings = TrainerSettings(
        wheel_circumference_m=args.wheel,
        use_metric=args.metric,
        use_simulation_mode=args.simulation,
    )

    commands = []
    value: Optional[float] = None
    if args.scan:
        commands.append("scan")
    if args.grade is not None:
        commands.append("grade")
        value = args.grade
    if args.resistance is not None:
        commands.append("resistance")
        value = args.resistance
    if args.status:
        commands.append("status")
    if args.clear_cache:
        commands.append("clear-cache")

    # If no CLI commands, start REPL
    if not commands:
        try:
            repl = TrainerCtlREPL(settings)
            asyncio.run(repl.run(args.address))
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(0)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        if len(commands) > 1:
            print("Error: Only one command can be specified at a time", file=sys.stderr)
            sys.exit(1)

        try:
            asyncio.run(run_cli_command(commands[0], value, settings, args.address))
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(1)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
