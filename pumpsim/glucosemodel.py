"""CGM glucose readings, trend detection and a demo data generator."""

from __future__ import annotations

import json
import math
import random
from datetime import datetime, timedelta
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable

DEFAULT_GLUCOSE = 5.5
MAX_READINGS = 288
SAMPLE_INTERVAL = timedelta(minutes=5)

_EVENTS = ("new_reading", "trend_changed")

# (start hour, end hour, peak rise) relative to the start of the pattern day
_MEALS = ((7.0, 9.0, 4.0), (12.0, 14.0, 4.5), (18.0, 20.0, 5.0))


class TrendDirection(IntEnum):
    RISING = 0
    RISING_QUICKLY = 1
    STABLE = 2
    FALLING = 3
    FALLING_QUICKLY = 4
    UNKNOWN = 5


def _epoch_seconds(moment: datetime) -> int:
    return math.floor(moment.timestamp())


class GlucoseModel:
    """Stores timestamped glucose readings (mmol/L) and the current trend."""

    def __init__(
        self,
        rng: random.Random | None = None,
        now: datetime | None = None,
        history_hours: int = 48,
    ) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {e: [] for e in _EVENTS}
        self._rng = rng if rng is not None else random.Random()
        self._readings: list[tuple[datetime, float]] = []
        self._trend = TrendDirection.STABLE
        self.generate_fixed_pattern(history_hours, now)

    def connect(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for "new_reading" or "trend_changed"."""
        if event not in self._handlers:
            raise ValueError(f"unknown event: {event!r}")
        self._handlers[event].append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._handlers[event]):
            callback(*args)

    @property
    def readings(self) -> list[tuple[datetime, float]]:
        return list(self._readings)

    @property
    def current_glucose(self) -> float:
        return self._readings[-1][1] if self._readings else DEFAULT_GLUCOSE

    @property
    def last_reading_time(self) -> datetime:
        return self._readings[-1][0] if self._readings else datetime.now()

    @property
    def trend(self) -> TrendDirection:
        return self._trend

    def force_trend(self, trend: TrendDirection) -> None:
        """Override the computed trend."""
        self._trend = TrendDirection(trend)
        self._emit("trend_changed", self._trend)

    def readings_between(
        self, start: datetime, end: datetime
    ) -> list[tuple[datetime, float]]:
        """Return readings with start <= timestamp <= end."""
        return [r for r in self._readings if start <= r[0] <= end]

    def generate_fixed_pattern(
        self, hours_back: int, now: datetime | None = None
    ) -> None:
        """Replace all readings with a synthetic day pattern ending at now."""
        current = now if now is not None else datetime.now()
        start = current - timedelta(hours=hours_back)
        self._readings = []

        timestamp = start
        while timestamp <= current:
            hours = int((timestamp - start).total_seconds()) / 3600.0
            self._readings.append((timestamp, self._pattern_value(hours)))
            timestamp += SAMPLE_INTERVAL

        self._calculate_trend()
        if self._readings:
            last_time, last_value = self._readings[-1]
            self._emit("new_reading", last_value, last_time)
            self._emit("trend_changed", self._trend)

    def _pattern_value(self, hours: float) -> float:
        day_fraction = math.fmod(hours, 24.0) / 24.0
        base = 7.0 + 3.0 * math.sin(hours / 3.0 * 2 * math.pi)

        spike = 0.0
        for begin, end, peak in _MEALS:
            if begin / 24.0 <= day_fraction < end / 24.0:
                progress = (day_fraction - begin / 24.0) / ((end - begin) / 24.0)
                if progress < 0.5:
                    spike = progress * peak
                else:
                    spike = peak * (1.0 - (progress - 0.5) * 2.0)

        noise = (self._rng.random() - 0.5) * 0.4
        return min(max(base + spike + noise, 2.8), 20.0)

    def add_reading(self, value: float, timestamp: datetime | None = None) -> None:
        """Append a reading, keeping at most the newest 288."""
        when = timestamp if timestamp is not None else datetime.now()
        self._readings.append((when, value))
        if len(self._readings) > MAX_READINGS:
            del self._readings[: len(self._readings) - MAX_READINGS]
        self._calculate_trend()
        self._emit("new_reading", value, when)
        self._emit("trend_changed", self._trend)

    def clear_readings(self) -> None:
        """Drop every reading; the trend becomes unknown."""
        self._readings = []
        self._trend = TrendDirection.UNKNOWN
        self._emit("trend_changed", self._trend)

    def _calculate_trend(self) -> None:
        if len(self._readings) < 3:
            self._trend = TrendDirection.STABLE
            return

        recent = self._readings[-3:]
        first = _epoch_seconds(recent[0][0])
        xs = [_epoch_seconds(t) - first for t, _ in recent]
        ys = [v for _, v in recent]
        n = len(recent)
        sum_x = sum(xs)
        sum_y = sum(ys)
        sum_xy = sum(x * y for x, y in zip(xs, ys))
        sum_x2 = sum(x * x for x in xs)

        denominator = n * sum_x2 - sum_x * sum_x
        if denominator == 0:
            self._trend = TrendDirection.STABLE
            return
        slope = (n * sum_xy - sum_x * sum_y) / denominator

        if slope > 0.05:
            self._trend = TrendDirection.RISING_QUICKLY
        elif slope > 0.02:
            self._trend = TrendDirection.RISING
        elif slope < -0.05:
            self._trend = TrendDirection.FALLING_QUICKLY
        elif slope < -0.02:
            self._trend = TrendDirection.FALLING
        else:
            self._trend = TrendDirection.STABLE

    def save(self, path: str | Path) -> None:
        """Write the trend and all readings as JSON."""
        document = {
            "currentTrend": int(self._trend),
            "readings": [
                {"timestamp": t.isoformat(timespec="seconds"), "value": v}
                for t, v in self._readings
            ],
        }
        Path(path).write_text(json.dumps(document, indent=4), encoding="utf-8")

    def load(self, path: str | Path) -> None:
        """Replace readings and trend with those stored in a JSON file."""
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError("glucose file does not hold a JSON object")

        self._readings = [
            (
                datetime.fromisoformat(str(entry.get("timestamp", ""))),
                float(entry.get("value", 0.0)),
            )
            for entry in document.get("readings", [])
        ]
        self._trend = TrendDirection(
            int(document.get("currentTrend", TrendDirection.STABLE))
        )

        self._emit("trend_changed", self._trend)
        if self._readings:
            last_time, last_value = self._readings[-1]
            self._emit("new_reading", last_value, last_time)