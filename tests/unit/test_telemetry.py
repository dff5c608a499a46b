"""Speed, distance and cadence from revolution counters."""

import pytest

from trainerctl.telemetry import CrankAccumulator, WheelAccumulator, event_time_delta


def test_event_time_wraps():
    assert event_time_delta(65000, 500) == 1036
    assert event_time_delta(1024, 2048) == 1024
    assert event_time_delta(100, 100) == 0


def test_first_reading_is_baseline():
    wheel = WheelAccumulator(2.0)
    assert wheel.update(10, 1024) is None
    assert wheel.distance_m == 0.0


def test_speed_across_time_wrap():
    wheel = WheelAccumulator(2.0)
    wheel.update(10, 65000)
    sample = wheel.update(11, 488)
    assert sample.speed_kph == pytest.approx(7.2)
    assert sample.distance_delta_m == pytest.approx(2.0)
    assert sample.distance_m == pytest.approx(2.0)


def test_zero_time_delta_is_no_motion():
    wheel = WheelAccumulator(2.0)
    wheel.update(10, 1024)
    sample = wheel.update(12, 1024)
    assert sample.speed_kph == 0.0


def test_counter_going_backwards():
    wheel = WheelAccumulator(2.0)
    wheel.update(10, 0)
    assert wheel.update(12, 1024).distance_m == pytest.approx(4.0)

    sample = wheel.update(3, 2048)
    assert sample.speed_kph == 0.0
    assert sample.distance_m == pytest.approx(4.0)

    sample = wheel.update(4, 3072)
    assert sample.speed_kph == pytest.approx(7.2)
    assert sample.distance_m == pytest.approx(6.0)


def test_distance_from_session_start():
    wheel = WheelAccumulator(2.10)
    wheel.update(1000, 0)
    for i in range(1, 11):
        sample = wheel.update(1000 + i * 3, i * 1024)
    assert sample.distance_m == pytest.approx(30 * 2.10)

    wheel.reset()
    assert wheel.distance_m == 0.0
    assert wheel.update(5000, 0) is None


def test_cadence():
    crank = CrankAccumulator()
    assert crank.update(0, 0) is None
    assert crank.update(1, 1024).rpm == pytest.approx(60.0)
    assert crank.update(2, 1536).rpm == pytest.approx(120.0)
    assert crank.update(2, 2048).rpm == 0.0
