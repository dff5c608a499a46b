"""
Workout report export.

FIT activity files are built with fit_tool: a file-id message, a timer start
event, one record per data point, then a single lap, the session and the
closing activity message. The builder frames them with the 14-byte ``.FIT``
header and the CRC trailer. JSON and CSV reports are written alongside for
tools that do not read FIT.

Every writer goes through a temporary file in the destination directory,
renamed into place only after the full content was written. A failed export
never leaves a partial file behind and the error reaches the caller.
"""

import contextlib
import csv
import io
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterator

from fit_tool.fit_file_builder import FitFileBuilder
from fit_tool.profile.messages.activity_message import ActivityMessage
from fit_tool.profile.messages.event_message import EventMessage
from fit_tool.profile.messages.file_id_message import FileIdMessage
from fit_tool.profile.messages.lap_message import LapMessage
from fit_tool.profile.messages.record_message import RecordMessage
from fit_tool.profile.messages.session_message import SessionMessage
from fit_tool.profile.profile_type import (
    Activity,
    Event,
    EventType,
    FileType,
    Manufacturer,
    SessionTrigger,
    Sport,
    SubSport,
)

from .models import WorkoutReport

logger = logging.getLogger(__name__)

FIT_SERIAL_NUMBER = 12345


def _to_fit_timestamp(report: WorkoutReport, elapsed_seconds: float) -> int:
    """Milliseconds since the Unix epoch, as fit_tool expects."""
    start_ms = round(report.summary.start_time.timestamp() * 1000)
    return start_ms + round(elapsed_seconds * 1000)


def _apply_totals(message: Any, report: WorkoutReport) -> None:
    """Fields shared by the lap and session messages."""
    summary = report.summary
    message.timestamp = _to_fit_timestamp(report, summary.duration_seconds)
    message.start_time = _to_fit_timestamp(report, 0)
    message.total_elapsed_time = float(summary.duration_seconds)
    message.total_timer_time = float(summary.duration_seconds)
    message.total_distance = float(summary.total_distance_m)
    message.sport = Sport.CYCLING
    message.sub_sport = SubSport.INDOOR_CYCLING
    message.event_type = EventType.STOP

    if summary.avg_power > 0:
        message.avg_power = round(summary.avg_power)
    if summary.max_power > 0:
        message.max_power = summary.max_power

    if summary.avg_heart_rate is not None:
        message.avg_heart_rate = round(summary.avg_heart_rate)
    if summary.max_heart_rate is not None:
        message.max_heart_rate = summary.max_heart_rate


def build_fit_messages(report: WorkoutReport) -> list[Any]:
    """Ordered FIT messages describing a report."""
    messages: list[Any] = []

    file_id = FileIdMessage()
    file_id.type = FileType.ACTIVITY
    file_id.manufacturer = Manufacturer.DEVELOPMENT.value
    file_id.product = 1
    file_id.serial_number = FIT_SERIAL_NUMBER
    file_id.time_created = _to_fit_timestamp(report, 0)
    messages.append(file_id)

    start_event = EventMessage()
    start_event.event = Event.TIMER
    start_event.event_type = EventType.START
    start_event.timestamp = _to_fit_timestamp(report, 0)
    messages.append(start_event)

    for point in report.data_points:
        record = RecordMessage()
        record.timestamp = _to_fit_timestamp(report, point.elapsed_seconds)
        if point.power > 0:
            record.power = point.power
        if point.speed_kph > 0:
            record.speed = point.speed_kph / 3.6
        if point.distance_m > 0:
            record.distance = point.distance_m
        record.grade = point.grade_percent
        if point.heart_rate:
            record.heart_rate = point.heart_rate
        messages.append(record)

    lap = LapMessage()
    _apply_totals(lap, report)
    lap.event = Event.LAP
    messages.append(lap)

    session = SessionMessage()
    _apply_totals(session, report)
    session.event = Event.SESSION
    session.first_lap_index = 0
    session.num_laps = 1
    session.trigger = SessionTrigger.ACTIVITY_END
    messages.append(session)

    activity = ActivityMessage()
    activity.timestamp = _to_fit_timestamp(report, report.summary.duration_seconds)
    activity.total_timer_time = float(report.summary.duration_seconds)
    activity.num_sessions = 1
    activity.type = Activity.MANUAL
    activity.event = Event.ACTIVITY
    activity.event_type = EventType.STOP
    messages.append(activity)

    return messages


def encode_fit(report: WorkoutReport) -> bytes:
    """Complete FIT file content (header, messages, CRC) for a report."""
    builder = FitFileBuilder(auto_define=True)
    builder.add_all(build_fit_messages(report))
    return builder.build().to_bytes()


@contextlib.contextmanager
def _atomic_writer(path: Path, mode: str) -> Iterator[io.IOBase]:
    """Open a temporary sibling of path, renamed over it on success."""
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".part", dir=path.parent
    )
    try:
        kwargs = {"newline": ""} if "b" not in mode else {}
        with os.fdopen(fd, mode, **kwargs) as handle:
            yield handle
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def export_fit(report: WorkoutReport, path: str | Path) -> Path:
    """Write a report as a FIT activity file.

    Raises:
        OSError: If the destination cannot be written
    """
    path = Path(path)
    content = encode_fit(report)
    with _atomic_writer(path, "wb") as handle:
        handle.write(content)
    logger.info(f"Exported {len(report.data_points)} records to {path} ({len(content)} bytes)")
    return path


def export_json(report: WorkoutReport, path: str | Path) -> Path:
    path = Path(path)
    with _atomic_writer(path, "w") as handle:
        json.dump(report.to_dict(), handle, indent=2)
    logger.info(f"Saved JSON report to {path}")
    return path


def export_csv(report: WorkoutReport, path: str | Path) -> Path:
    """Write a summary row followed by the data-point table."""
    path = Path(path)
    summary = report.summary
    with _atomic_writer(path, "w") as handle:
        writer = csv.writer(handle)
        writer.writerow(
            ["Date", "Duration (s)", "Total Distance (m)", "Avg Power (W)", "Max Power (W)", "Mode"]
        )
        writer.writerow(
            [
                summary.start_time.isoformat(),
                summary.duration_seconds,
                f"{summary.total_distance_m:.2f}",
                f"{summary.avg_power:.1f}",
                summary.max_power,
                summary.mode,
            ]
        )
        writer.writerow([])
        writer.writerow(
            ["Elapsed (s)", "Power (W)", "Speed (KPH)", "Distance (m)", "Grade (%)", "Heart Rate"]
        )
        for point in report.data_points:
            writer.writerow(
                [
                    point.elapsed_seconds,
                    point.power,
                    f"{point.speed_kph:.2f}",
                    f"{point.distance_m:.2f}",
                    f"{point.grade_percent:.1f}",
                    point.heart_rate if point.heart_rate is not None else "",
                ]
            )
    logger.info(f"Saved CSV report to {path}")
    return path


EXPORTERS: dict[str, Callable[[WorkoutReport, str | Path], Path]] = {
    ".fit": export_fit,
    ".json": export_json,
    ".csv": export_csv,
}


def export_report(report: WorkoutReport, path: str | Path) -> Path:
    """Export by file extension; unknown extensions are saved as JSON."""
    exporter = EXPORTERS.get(Path(path).suffix.lower(), export_json)
    return exporter(report, path)
