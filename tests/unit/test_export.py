"""FIT, JSON and CSV workout export."""

import csv
import json
from datetime import datetime

import pytest
from fit_tool.profile.messages.lap_message import LapMessage
from fit_tool.profile.messages.record_message import RecordMessage
from fit_tool.profile.messages.session_message import SessionMessage

from trainerctl.export import (
    _atomic_writer,
    build_fit_messages,
    encode_fit,
    export_fit,
    export_report,
)
from trainerctl.models import WorkoutDataPoint, WorkoutReport, summarize

START = datetime(2024, 5, 1, 18, 30, 0)


def make_report(count, heart_rate=None):
    points = tuple(
        WorkoutDataPoint(
            elapsed_seconds=i + 1,
            power=150 + i % 50,
            speed_kph=30.0,
            distance_m=8.33 * (i + 1),
            grade_percent=(i % 10) - 2.0,
            heart_rate=heart_rate,
        )
        for i in range(count)
    )
    return WorkoutReport(summary=summarize(points, START, "Hilly"), data_points=points)


def test_empty_report_is_complete_file():
    data = encode_fit(make_report(0))
    assert data[8:12] == b".FIT"
    assert data[0] == 14
    # Header, the non-record messages and the CRC trailer
    assert len(data) > 16


def test_hour_long_ride_size():
    data = encode_fit(make_report(3600))
    assert data[8:12] == b".FIT"
    assert len(data) > 10000


def test_message_order():
    messages = build_fit_messages(make_report(3))
    names = [type(m).__name__ for m in messages]
    assert names == [
        "FileIdMessage",
        "EventMessage",
        "RecordMessage",
        "RecordMessage",
        "RecordMessage",
        "LapMessage",
        "SessionMessage",
        "ActivityMessage",
    ]


def test_heart_rate_fields_follow_data():
    without = build_fit_messages(make_report(5))
    lap = next(m for m in without if isinstance(m, LapMessage))
    session = next(m for m in without if isinstance(m, SessionMessage))
    assert lap.avg_heart_rate is None
    assert session.max_heart_rate is None
    assert all(m.heart_rate is None for m in without if isinstance(m, RecordMessage))

    with_hr = build_fit_messages(make_report(5, heart_rate=128))
    lap = next(m for m in with_hr if isinstance(m, LapMessage))
    session = next(m for m in with_hr if isinstance(m, SessionMessage))
    assert lap.avg_heart_rate == 128
    assert session.max_heart_rate == 128
    assert session.num_laps == 1


def test_export_fit_writes_file(tmp_path):
    path = export_fit(make_report(10), tmp_path / "ride.fit")
    assert path.read_bytes()[8:12] == b".FIT"
    assert [p.name for p in tmp_path.iterdir()] == ["ride.fit"]


def test_failed_write_leaves_no_file(tmp_path):
    target = tmp_path / "ride.json"
    with pytest.raises(RuntimeError):
        with _atomic_writer(target, "w") as handle:
            handle.write("partial")
            raise RuntimeError("disk gone")
    assert list(tmp_path.iterdir()) == []


def test_failed_write_keeps_previous_file(tmp_path):
    target = tmp_path / "ride.csv"
    target.write_text("previous")
    with pytest.raises(RuntimeError):
        with _atomic_writer(target, "w") as handle:
            handle.write("partial")
            raise RuntimeError("disk gone")
    assert target.read_text() == "previous"
    assert list(tmp_path.iterdir()) == [target]


def test_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        export_fit(make_report(1), tmp_path / "missing" / "ride.fit")


def test_export_json(tmp_path):
    path = export_report(make_report(2, heart_rate=110), tmp_path / "ride.json")
    data = json.loads(path.read_text())
    assert data["summary"]["mode"] == "Hilly"
    assert data["summary"]["duration_seconds"] == 2
    assert data["data_points"][1]["heart_rate"] == 110


def test_export_csv(tmp_path):
    path = export_report(make_report(3), tmp_path / "ride.csv")
    with open(path, newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0][0] == "Date"
    assert rows[1][1] == "3"
    assert rows[2] == []
    assert rows[3][0] == "Elapsed (s)"
    assert len(rows) == 4 + 3
    assert rows[4][5] == ""


def test_unknown_extension_saved_as_json(tmp_path):
    path = export_report(make_report(1), tmp_path / "ride.txt")
    assert json.loads(path.read_text())["summary"]["mode"] == "Hilly"


def test_dispatch_by_extension(tmp_path):
    path = export_report(make_report(1), tmp_path / "RIDE.FIT")
    assert path.read_bytes()[8:12] == b".FIT"
