"""
Derived speed, distance and cadence from revolution counters.

Sensors report cumulative revolution counts together with the time of the
last revolution event in 1/1024 s ticks. Speed and cadence come from the
difference between two consecutive readings. Both accumulators are fed from
BLE notification callbacks, so their state is lock-guarded and updates are
pure computation that never block.
"""

import threading
from dataclasses import dataclass
from typing import Optional

EVENT_TIME_MODULUS = 0x10000
WHEEL_REVOLUTION_MODULUS = 0x100000000
TICKS_PER_SECOND = 1024.0


@dataclass(frozen=True)
class SpeedSample:
    speed_kph: float
    distance_delta_m: float
    distance_m: float


@dataclass(frozen=True)
class CadenceSample:
    rpm: float


def event_time_delta(previous: int, current: int) -> int:
    """Ticks between two 16-bit event times, across a counter wrap."""
    return (current - previous) % EVENT_TIME_MODULUS


class WheelAccumulator:
    """Turns successive wheel readings into speed and session distance.

    A revolution counter that goes backwards is treated as no motion rather
    than as a wrap. Session distance is measured from the first reading, so
    it keeps growing across the whole session.
    """

    def __init__(self, circumference_m: float) -> None:
        self.circumference_m = circumference_m
        self._lock = threading.Lock()
        self._first = True
        self._prev_revs = 0
        self._prev_time = 0
        self._start_revs = 0
        self._distance_m = 0.0

    @property
    def distance_m(self) -> float:
        with self._lock:
            return self._distance_m

    def reset(self) -> None:
        """Forget the baseline; the next reading starts a new session."""
        with self._lock:
            self._first = True
            self._prev_revs = 0
            self._prev_time = 0
            self._start_revs = 0
            self._distance_m = 0.0

    def update(self, revolutions: int, event_time: int) -> Optional[SpeedSample]:
        """Feed one reading.

        Returns:
            None for the baseline reading, a SpeedSample afterwards
        """
        with self._lock:
            if self._first:
                self._first = False
                self._start_revs = revolutions
                self._prev_revs = revolutions
                self._prev_time = event_time
                return None

            time_delta = event_time_delta(self._prev_time, event_time)
            if revolutions < self._prev_revs:
                # Counter restarted: move the baseline so distance carries on
                self._start_revs = revolutions - round(self._distance_m / self.circumference_m)
            if time_delta == 0 or revolutions < self._prev_revs:
                speed_kph = 0.0
                distance_delta = 0.0
            else:
                distance_delta = (revolutions - self._prev_revs) * self.circumference_m
                speed_kph = distance_delta / (time_delta / TICKS_PER_SECOND) * 3.6

            total_revs = (revolutions - self._start_revs) % WHEEL_REVOLUTION_MODULUS
            self._distance_m = max(self._distance_m, total_revs * self.circumference_m)

            self._prev_revs = revolutions
            self._prev_time = event_time
            return SpeedSample(speed_kph, distance_delta, self._distance_m)


class CrankAccumulator:
    """Turns successive crank readings into cadence in rpm."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._first = True
        self._prev_revs = 0
        self._prev_time = 0

    def reset(self) -> None:
        with self._lock:
            self._first = True
            self._prev_revs = 0
            self._prev_time = 0

    def update(self, revolutions: int, event_time: int) -> Optional[CadenceSample]:
        with self._lock:
            if self._first:
                self._first = False
                self._prev_revs = revolutions
                self._prev_time = event_time
                return None

            time_delta = event_time_delta(self._prev_time, event_time)
            if time_delta == 0 or revolutions < self._prev_revs:
                rpm = 0.0
            else:
                rpm = (revolutions - self._prev_revs) / (time_delta / TICKS_PER_SECOND) * 60.0

            self._prev_revs = revolutions
            self._prev_time = event_time
            return CadenceSample(rpm)
