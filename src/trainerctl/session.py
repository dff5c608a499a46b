"""
Workout session: drives the trainer through a waveform and records samples.

Two periodic tasks run while a workout is active. The step task advances
the waveform every interval and queues the resulting grade on the
controller; the sample task records the latest telemetry once per second.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from .core import (
    DEFAULT_STEP_INTERVAL_SECONDS,
    MIN_STEP_INTERVAL_SECONDS,
    SAMPLE_INTERVAL_SECONDS,
)
from .models import WorkoutDataPoint, WorkoutReport, summarize
from .waveform import WaveformGenerator, WorkoutMode

logger = logging.getLogger(__name__)


class WorkoutRecorder:
    """Append-only list of data points for one session."""

    def __init__(self) -> None:
        self._points: list[WorkoutDataPoint] = []

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> tuple[WorkoutDataPoint, ...]:
        return tuple(self._points)

    def add(self, point: WorkoutDataPoint) -> None:
        self._points.append(point)

    def clear(self) -> None:
        self._points.clear()

    def build_report(self, start_time: datetime, mode: str = "") -> WorkoutReport:
        points = self.points
        return WorkoutReport(summary=summarize(points, start_time, mode), data_points=points)


class WorkoutSession:
    """Runs one workout against a controller.

    The controller must provide ``is_connected``, ``queue_grade(percent)``
    and ``get_status()`` returning a dict with power, speed, distance and
    heart_rate keys.
    """

    def __init__(
        self,
        controller: Any,
        mode: WorkoutMode = WorkoutMode.RANDOM,
        min_grade: float = 0.0,
        max_grade: float = 5.0,
        interval_seconds: int = DEFAULT_STEP_INTERVAL_SECONDS,
        generator: Optional[WaveformGenerator] = None,
        clock: Callable[[], float] = time.monotonic,
        sample_interval: float = SAMPLE_INTERVAL_SECONDS,
    ) -> None:
        self.controller = controller
        self.mode = mode
        self.min_grade = min_grade
        self.max_grade = max_grade
        self._interval_seconds = max(MIN_STEP_INTERVAL_SECONDS, interval_seconds)
        self._generator = generator or WaveformGenerator()
        self._clock = clock
        self._sample_interval = sample_interval

        self.recorder = WorkoutRecorder()
        self.step_index = 0
        self.current_grade = 0.0
        self.is_active = False
        self.start_time: Optional[datetime] = None
        self._started_at = 0.0
        self._tasks: list[asyncio.Task] = []

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @interval_seconds.setter
    def interval_seconds(self, value: int) -> None:
        self._interval_seconds = max(MIN_STEP_INTERVAL_SECONDS, int(value))

    @property
    def elapsed_seconds(self) -> int:
        if self.start_time is None:
            return 0
        return int(self._clock() - self._started_at)

    def step(self) -> Optional[float]:
        """Advance the waveform one step and queue the grade.

        Returns:
            Grade queued, or None when the trainer is not connected
        """
        if not self.controller.is_connected:
            return None

        grade = self._generator.generate(self.mode, self.min_grade, self.max_grade, self.step_index)
        # Avoid showing -0.0
        if grade < 0 and round(grade, 1) == 0:
            grade = 0.0
        self.controller.queue_grade(grade)
        self.current_grade = grade
        self.step_index += 1
        logger.debug(f"Step {self.step_index}: grade {grade:.1f}%")
        return grade

    def sample(self) -> WorkoutDataPoint:
        """Record the latest telemetry as a data point."""
        status = self.controller.get_status()
        point = WorkoutDataPoint(
            elapsed_seconds=self.elapsed_seconds,
            power=int(status.get("power", 0)),
            speed_kph=float(status.get("speed", 0.0)),
            distance_m=float(status.get("distance", 0.0)),
            grade_percent=self.current_grade,
            heart_rate=status.get("heart_rate"),
        )
        self.recorder.add(point)
        return point

    def begin(self) -> None:
        """Reset recording state and mark the workout active."""
        self.recorder.clear()
        self.step_index = 0
        self.start_time = datetime.now()
        self._started_at = self._clock()
        self.is_active = True
        logger.info(
            f"Workout started: {self.mode.value} {self.min_grade:.1f}..{self.max_grade:.1f}% "
            f"every {self.interval_seconds}s"
        )

    async def start(self) -> None:
        """Start the step and sample tasks; the first step is immediate."""
        if self.is_active:
            return
        self.begin()
        self._tasks = [
            asyncio.create_task(self._step_loop()),
            asyncio.create_task(self._sample_loop()),
        ]

    def halt(self) -> None:
        """Mark inactive and cancel tasks without awaiting them.

        Used from the connection-lost callback.
        """
        if self.is_active:
            logger.info("Workout stopped")
        self.is_active = False
        for task in self._tasks:
            task.cancel()

    async def stop(self) -> WorkoutReport:
        """Stop the workout and return its report."""
        self.halt()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self.report()

    def report(self) -> WorkoutReport:
        start_time = self.start_time or datetime.now()
        return self.recorder.build_report(start_time, self.mode.value.title())

    async def _step_loop(self) -> None:
        try:
            while self.is_active:
                self.step()
                await asyncio.sleep(self.interval_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Workout step error: {e}")

    async def _sample_loop(self) -> None:
        try:
            while self.is_active:
                await asyncio.sleep(self._sample_interval)
                if self.is_active:
                    self.sample()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Workout sample error: {e}")
