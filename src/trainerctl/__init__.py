"""
TrainerCtl - Smart Bike Trainer Control Library

A Python library for controlling Bluetooth smart trainers and recording
indoor rides.
"""

from .controller import TrainerController
from .core import __description__, __version__
from .display import DisplayManager
from .export import export_report
from .session import WorkoutSession

__all__ = [
    "TrainerController",
    "DisplayManager",
    "WorkoutSession",
    "export_report",
    "__version__",
    "__description__",
]
