"""
Recorded workout data.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional


@dataclass(frozen=True)
class WorkoutDataPoint:
    """One once-per-second sample of a workout."""

    elapsed_seconds: int
    power: int
    speed_kph: float
    distance_m: float
    grade_percent: float
    heart_rate: Optional[int] = None


@dataclass(frozen=True)
class WorkoutSummary:
    start_time: datetime
    duration_seconds: int
    total_distance_m: float
    avg_power: float
    max_power: int
    avg_heart_rate: Optional[float] = None
    max_heart_rate: Optional[int] = None
    mode: str = ""

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(seconds=self.duration_seconds)


@dataclass(frozen=True)
class WorkoutReport:
    summary: WorkoutSummary
    data_points: tuple[WorkoutDataPoint, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form for JSON serialization."""
        summary = asdict(self.summary)
        summary["start_time"] = self.summary.start_time.isoformat()
        return {
            "summary": summary,
            "data_points": [asdict(point) for point in self.data_points],
        }


def summarize(
    points: list[WorkoutDataPoint] | tuple[WorkoutDataPoint, ...],
    start_time: datetime,
    mode: str = "",
) -> WorkoutSummary:
    """Aggregate data points into a summary.

    Duration and distance come from the last point. Heart-rate aggregates
    are None when no point carries a heart rate.
    """
    if not points:
        return WorkoutSummary(
            start_time=start_time,
            duration_seconds=0,
            total_distance_m=0.0,
            avg_power=0.0,
            max_power=0,
            mode=mode,
        )

    powers = [p.power for p in points]
    heart_rates = [p.heart_rate for p in points if p.heart_rate]

    return WorkoutSummary(
        start_time=start_time,
        duration_seconds=points[-1].elapsed_seconds,
        total_distance_m=points[-1].distance_m,
        avg_power=sum(powers) / len(powers),
        max_power=max(powers),
        avg_heart_rate=sum(heart_rates) / len(heart_rates) if heart_rates else None,
        max_heart_rate=max(heart_rates) if heart_rates else None,
        mode=mode,
    )
