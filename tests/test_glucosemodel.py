import json
import random
from datetime import datetime, timedelta

import pytest

from pumpsim.glucosemodel import GlucoseModel, TrendDirection

NOW = datetime(2024, 3, 1, 12, 0, 0)


def _model(seed=1):
    return GlucoseModel(rng=random.Random(seed), now=NOW)


def _empty_model():
    model = _model()
    model.clear_readings()
    return model


def test_generated_pattern_spans_history_at_five_minute_steps():
    model = _model()
    readings = model.readings
    assert readings[0][0] == NOW - timedelta(hours=48)
    assert readings[-1][0] == NOW
    gaps = {b[0] - a[0] for a, b in zip(readings, readings[1:])}
    assert gaps == {timedelta(minutes=5)}


def test_generated_values_are_bounded():
    model = _model()
    assert all(2.8 <= value <= 20.0 for _, value in model.readings)


def test_generation_is_deterministic_for_same_seed():
    first = _model(7).readings
    second = _model(7).readings
    assert len(first) == 48 * 12 + 1
    assert len(second) == len(first)
    assert [value for _, value in first] == [value for _, value in second]
    assert [t for t, _ in first] == [t for t, _ in second]


def test_generation_emits_latest_reading():
    model = _model()
    calls = []
    model.connect("new_reading", lambda v, t: calls.append((v, t)))
    model.generate_fixed_pattern(2, NOW)
    assert calls == [(model.current_glucose, NOW)]
    assert model.last_reading_time == NOW


def test_clear_sets_unknown_and_default_glucose():
    model = _model()
    trends = []
    model.connect("trend_changed", trends.append)
    model.clear_readings()
    assert model.readings == []
    assert model.trend is TrendDirection.UNKNOWN
    assert model.current_glucose == 5.5
    assert trends == [TrendDirection.UNKNOWN]


def test_fewer_than_three_readings_is_stable():
    model = _empty_model()
    model.add_reading(10.0, NOW)
    model.add_reading(20.0, NOW + timedelta(seconds=1))
    assert model.trend is TrendDirection.STABLE


@pytest.mark.parametrize(
    "values, step, expected",
    [
        ((5.0, 6.0, 7.0), 1, TrendDirection.RISING_QUICKLY),
        ((5.0, 5.3, 5.6), 10, TrendDirection.RISING),
        ((10.0, 9.0, 8.0), 1, TrendDirection.FALLING_QUICKLY),
        ((5.6, 5.3, 5.0), 10, TrendDirection.FALLING),
        ((5.0, 5.0, 5.0), 300, TrendDirection.STABLE),
    ],
)
def test_trend_from_slope(values, step, expected):
    model = _empty_model()
    for i, value in enumerate(values):
        model.add_reading(value, NOW + timedelta(seconds=i * step))
    assert model.trend is expected


def test_identical_timestamps_are_stable():
    model = _empty_model()
    for value in (5.0, 9.0, 13.0):
        model.add_reading(value, NOW)
    assert model.trend is TrendDirection.STABLE


def test_add_reading_caps_history():
    model = _empty_model()
    for i in range(300):
        model.add_reading(float(i % 10), NOW + timedelta(minutes=5 * i))
    readings = model.readings
    assert len(readings) == 288
    assert readings[-1][0] == NOW + timedelta(minutes=5 * 299)
    assert model.current_glucose == float(299 % 10)


def test_readings_between_is_inclusive():
    model = _model()
    start = NOW - timedelta(minutes=10)
    selected = model.readings_between(start, NOW)
    assert [t for t, _ in selected] == [
        start,
        start + timedelta(minutes=5),
        NOW,
    ]


def test_force_trend_emits():
    model = _model()
    trends = []
    model.connect("trend_changed", trends.append)
    model.force_trend(TrendDirection.FALLING)
    assert model.trend is TrendDirection.FALLING
    assert trends == [TrendDirection.FALLING]


def test_save_load_round_trip(tmp_path):
    model = _empty_model()
    model.add_reading(6.1, NOW)
    model.add_reading(6.4, NOW + timedelta(minutes=5))
    model.force_trend(TrendDirection.RISING)
    path = tmp_path / "glucose.json"
    model.save(path)

    data = json.loads(path.read_text())
    assert data["currentTrend"] == int(TrendDirection.RISING)
    assert data["readings"][0]["timestamp"] == NOW.isoformat()

    other = _model(3)
    other.load(path)
    assert other.readings == model.readings
    assert other.trend is TrendDirection.RISING


def test_load_defaults_trend_to_stable(tmp_path):
    path = tmp_path / "glucose.json"
    path.write_text(json.dumps({"readings": []}))
    model = _model()
    model.load(path)
    assert model.readings == []
    assert model.trend is TrendDirection.STABLE


def test_load_rejects_non_object(tmp_path):
    path = tmp_path / "glucose.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        _model().load(path)


def test_connect_unknown_event_raises():
    with pytest.raises(ValueError):
        _model().connect("nonsense", lambda: None)