#!/usr/bin/env python
"""Basic functionality test for REPL components without device."""

from datetime import datetime

import pytest
from prompt_toolkit.document import Document
from rich.console import Console

from trainerctl.commands import COMMANDS, CommandCompleter, get_command
from trainerctl.controller import DiscoveredTrainer, TrainerController
from trainerctl.core import TIRE_SIZES, find_tire_size
from trainerctl.display import DisplayManager
from trainerctl.models import WorkoutSummary


def recording_display(use_metric=False):
    console = Console(record=True, width=120, force_terminal=False)
    return DisplayManager(console=console, use_metric=use_metric)


def completions(text):
    completer = CommandCompleter()
    return [c.display_text for c in completer.get_completions(Document(text), None)]


@pytest.mark.asyncio
async def test_display():
    """Test display functionality."""
    print("\n=== Testing Display Manager ===")
    display = recording_display()

    display.print_banner()
    display.print_status(
        {
            "status": "CONNECTED",
            "power": 215,
            "cadence": 88.0,
            "speed": 32.0,
            "distance": 5400.0,
            "grade": 4.5,
            "resistance": 0.0775,
            "heart_rate": 141,
        }
    )
    display.print_result("init", True)
    display.print_result("init", False)
    display.print_info("This is an info message")
    display.print_error("This is an error message")
    display.print_trainers([DiscoveredTrainer("KICKR CORE", "AA:BB", -58)])
    display.print_summary(
        WorkoutSummary(datetime(2024, 5, 1), 3725, 30500.0, 187.4, 412, 138.0, 171, "Hilly")
    )
    display.print_help(COMMANDS)

    text = display.console.export_text()
    assert "215 W" in text
    assert "+4.5%" in text
    assert "141 bpm" in text
    assert "1:02:05" in text
    assert "KICKR CORE" in text
    assert "succeeded" in text and "failed" in text


def test_unit_formatting():
    imperial = DisplayManager(console=Console(), use_metric=False)
    metric = DisplayManager(console=Console(), use_metric=True)

    assert metric.format_speed(32.0) == "32.0 km/h"
    assert imperial.format_speed(32.0) == "19.9 mph"
    assert metric.format_distance(2500) == "2.50 km"
    assert imperial.format_distance(1609.344) == "1.00 mi"
    assert DisplayManager.format_time(125) == "2:05"
    assert DisplayManager.format_grade(None) == "--"
    assert DisplayManager.format_grade(-2.0) == "-2.0%"


def test_grade_colors():
    assert DisplayManager.grade_color(-10.0) == "#00ff00"
    assert DisplayManager.grade_color(20.0) == "#ff0000"
    assert DisplayManager.grade_color(5.0) == "#ffff00"
    assert DisplayManager.grade_color(99.0) == "#ff0000"


def test_live_toggle():
    display = recording_display()
    assert display.toggle_live({"power": 100}) is True
    display.update_live({"power": 250})
    assert display._live_data["power"] == 250
    assert display.toggle_live() is False
    display.update_live({"power": 300})
    assert display._live_data["power"] == 250


def test_commands():
    """Test command definitions."""
    print("\n=== Testing Commands ===")
    print(f"\n1. Total commands defined: {len(COMMANDS)}")

    for cmd_str, name in [("connect", "connect"), ("c", "connect"), ("g", "grade"), ("?", "help"), ("exit", "quit")]:
        cmd = get_command(cmd_str)
        assert cmd is not None and cmd.name == name
        print(f"  '{cmd_str}' -> {cmd.name} ({cmd.description})")
    assert get_command("speed") is None

    names = [cmd.name for cmd in COMMANDS]
    assert len(names) == len(set(names))


def test_completer():
    assert "grade" in completions("gr")
    assert completions("") == []
    assert completions("mode ") == ["random", "hilly", "mountain", "pyramid"]
    assert completions("mode h") == ["hilly"]
    assert "10" in completions("interval ")
    assert completions("wheel ") == [str(i) for i in range(1, len(TIRE_SIZES) + 1)]


def test_tire_sizes():
    assert find_tire_size(2.10).name.startswith("700c")
    assert find_tire_size(2.30).name.startswith("29")
    assert find_tire_size(1.5) is None


@pytest.mark.asyncio
async def test_controller_properties():
    """Test controller properties (without connection)."""
    print("\n=== Testing Controller (Disconnected) ===")
    controller = TrainerController()

    print(f"  is_connected: {controller.is_connected}")
    print(f"  device_name: {controller.device_name}")
    print(f"  endpoint: {controller.endpoint_name}")
    assert not controller.is_connected
    assert not controller.is_scanning
    assert controller.device_name == "Trainer"
    assert controller.endpoint_name is None

    status = controller.get_status()
    print(f"  {status}")
    assert status["status"] == "DISCONNECTED"


def test_package_metadata():
    import trainerctl
    from trainerctl import core

    assert trainerctl.__version__ == core.__version__
    assert trainerctl.__description__ is core.__description__
