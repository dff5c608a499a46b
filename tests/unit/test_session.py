"""Workout recording, summaries and the session runner."""

import asyncio
import random
from datetime import datetime

import pytest

from trainerctl.models import WorkoutDataPoint, summarize
from trainerctl.session import WorkoutRecorder, WorkoutSession
from trainerctl.waveform import WaveformGenerator, WorkoutMode

START = datetime(2024, 5, 1, 18, 30, 0)


class FakeController:
    """Minimal controller surface used by WorkoutSession."""

    def __init__(self, connected=True):
        self.is_connected = connected
        self.grades = []
        self.status = {"power": 180, "speed": 28.5, "distance": 120.0, "heart_rate": None}

    def queue_grade(self, grade):
        self.grades.append(grade)
        return True

    def get_status(self):
        return dict(self.status)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_summarize_empty():
    summary = summarize([], START, "Hilly")
    assert summary.duration_seconds == 0
    assert summary.total_distance_m == 0.0
    assert summary.avg_power == 0.0
    assert summary.max_power == 0
    assert summary.avg_heart_rate is None
    assert summary.end_time == START


def test_summarize_points():
    points = [
        WorkoutDataPoint(1, 100, 25.0, 7.0, 1.0, heart_rate=120),
        WorkoutDataPoint(2, 200, 26.0, 14.0, 1.0),
        WorkoutDataPoint(3, 300, 27.0, 21.5, 2.0, heart_rate=140),
    ]
    summary = summarize(points, START, "Random")
    assert summary.duration_seconds == 3
    assert summary.total_distance_m == 21.5
    assert summary.avg_power == pytest.approx(200.0)
    assert summary.max_power == 300
    assert summary.avg_heart_rate == pytest.approx(130.0)
    assert summary.max_heart_rate == 140
    assert summary.mode == "Random"


def test_recorder_report():
    recorder = WorkoutRecorder()
    recorder.add(WorkoutDataPoint(1, 150, 30.0, 8.3, 0.0))
    report = recorder.build_report(START, "Pyramid")
    assert len(recorder) == 1
    assert report.data_points == recorder.points
    data = report.to_dict()
    assert data["summary"]["start_time"] == START.isoformat()
    assert data["data_points"][0]["power"] == 150


def test_interval_has_floor():
    session = WorkoutSession(FakeController(), interval_seconds=5)
    assert session.interval_seconds == 10
    session.interval_seconds = 40
    assert session.interval_seconds == 40
    session.interval_seconds = 0
    assert session.interval_seconds == 10


def test_step_follows_waveform():
    controller = FakeController()
    session = WorkoutSession(controller, WorkoutMode.MOUNTAIN, min_grade=0.0, max_grade=10.0)
    for _ in range(11):
        session.step()
    assert controller.grades[0] == pytest.approx(0.0)
    assert controller.grades[10] == pytest.approx(10.0)
    assert session.current_grade == pytest.approx(10.0)
    assert session.step_index == 11


def test_step_skipped_when_disconnected():
    controller = FakeController(connected=False)
    session = WorkoutSession(controller)
    assert session.step() is None
    assert controller.grades == []


def test_sample_records_latest_telemetry():
    controller = FakeController()
    controller.status["heart_rate"] = 133
    clock = FakeClock()
    session = WorkoutSession(controller, WorkoutMode.HILLY, clock=clock)
    session.begin()
    session.step()
    clock.now += 42
    point = session.sample()
    assert point.elapsed_seconds == 42
    assert point.power == 180
    assert point.speed_kph == 28.5
    assert point.heart_rate == 133
    assert point.grade_percent == pytest.approx(2.5)
    assert len(session.recorder) == 1


@pytest.mark.asyncio
async def test_start_steps_immediately_and_stop_reports():
    controller = FakeController()
    session = WorkoutSession(
        controller,
        WorkoutMode.RANDOM,
        min_grade=1.0,
        max_grade=3.0,
        generator=WaveformGenerator(random.Random(1)),
        sample_interval=0.01,
    )
    await session.start()
    await asyncio.sleep(0.08)
    assert session.is_active
    assert len(controller.grades) == 1
    assert 1.0 <= controller.grades[0] <= 3.0

    report = await session.stop()
    assert not session.is_active
    assert len(report.data_points) >= 3
    assert report.summary.mode == "Random"
    assert report.summary.max_power == 180


@pytest.mark.asyncio
async def test_halt_cancels_tasks():
    session = WorkoutSession(FakeController(), sample_interval=0.01)
    await session.start()
    session.halt()
    await asyncio.sleep(0.03)
    count = len(session.recorder)
    await asyncio.sleep(0.03)
    assert len(session.recorder) == count
    assert not session.is_active
