"""
Workout intensity waveforms.

Each workout mode turns a discrete step index into a target value between
a minimum and a maximum. Values are not clamped here; the grade mapper and
the command encoders apply their own limits downstream.
"""

import math
import random
from enum import Enum
from typing import Optional

HILLY_PERIOD = 20
MOUNTAIN_PERIOD = 20
PYRAMID_PERIOD = 40


class WorkoutMode(Enum):
    """Waveform used to drive a workout."""

    RANDOM = "random"
    HILLY = "hilly"
    MOUNTAIN = "mountain"
    PYRAMID = "pyramid"

    @classmethod
    def from_name(cls, name: str) -> "WorkoutMode":
        """Look up a mode by name, case-insensitively.

        Raises:
            ValueError: If the name matches no mode
        """
        try:
            return cls(name.strip().lower())
        except ValueError:
            choices = ", ".join(mode.value for mode in cls)
            raise ValueError(f"Unknown workout mode: {name} (choose {choices})") from None


def _triangle(low: float, high: float, step: int, period: int) -> float:
    half = period // 2
    position = step % period
    span = high - low
    if position < half:
        return low + span * position / half
    return high - span * (position - half) / half


def generate(
    mode: WorkoutMode,
    minimum: float,
    maximum: float,
    step: int,
    rng: Optional[random.Random] = None,
) -> float:
    """Target value for a step of the given workout mode.

    Args:
        mode: Waveform to sample
        minimum: Lower bound (swapped with maximum if larger)
        maximum: Upper bound
        step: Step index, counting from 0 at workout start
        rng: Random source for RANDOM mode (module-level random if None)

    Returns:
        Target value, within [minimum, maximum]
    """
    low, high = (maximum, minimum) if minimum > maximum else (minimum, maximum)

    if mode is WorkoutMode.RANDOM:
        source = rng if rng is not None else random
        return low + source.random() * (high - low)

    if mode is WorkoutMode.HILLY:
        amplitude = (high - low) / 2
        midpoint = low + amplitude
        phase = 2 * math.pi * (step % HILLY_PERIOD) / HILLY_PERIOD
        return midpoint + amplitude * math.sin(phase)

    if mode is WorkoutMode.MOUNTAIN:
        return _triangle(low, high, step, MOUNTAIN_PERIOD)

    if mode is WorkoutMode.PYRAMID:
        return _triangle(low, high, step, PYRAMID_PERIOD)

    raise ValueError(f"Unsupported workout mode: {mode}")


class WaveformGenerator:
    """Waveform source bound to one random generator.

    Seed the generator to make RANDOM workouts reproducible.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def generate(
        self, mode: WorkoutMode, minimum: float, maximum: float, step: int
    ) -> float:
        return generate(mode, minimum, maximum, step, rng=self._rng)
