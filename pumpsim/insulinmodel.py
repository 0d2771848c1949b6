"""Insulin delivery: basal segments, boluses and insulin on board."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

MAX_BASAL_RATE = 5.0
MAX_BOLUS_UNITS = 25.0
EXTENDED_BOLUS_STEPS = 10
INSULIN_ACTION_HOURS = 4.0
DEFAULT_PROFILE_NAME = "Default"

# Segments are recorded as if the previous rate had run for this long.
_ASSUMED_SEGMENT_LENGTH = timedelta(hours=1)
_ACTIVE_BOLUS_FRACTION = 0.8
_CANCELLED_FRACTION = 0.5
_IOB_TOLERANCE = 0.01

_EVENTS = (
    "insulin_on_board_changed",
    "basal_rate_changed",
    "basal_state_changed",
    "bolus_started",
    "bolus_completed",
    "bolus_cancelled",
    "control_iq_adjustment_changed",
)


def _format_time(moment: datetime | None) -> str:
    return moment.isoformat(timespec="seconds") if moment is not None else ""


def _parse_time(text: Any) -> datetime | None:
    text = str(text or "")
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _whole_seconds(delta: timedelta) -> int:
    return int(delta.total_seconds())


@dataclass
class BolusDelivery:
    """A single bolus, standard or extended over ``duration`` minutes."""

    timestamp: datetime | None = None
    units: float = 0.0
    reason: str = ""
    extended: bool = False
    duration: int = 0
    completed: bool = False

    def to_json(self) -> dict[str, Any]:
        return {
            "timestamp": _format_time(self.timestamp),
            "units": self.units,
            "reason": self.reason,
            "extended": self.extended,
            "duration": self.duration,
            "completed": self.completed,
        }

    @classmethod
    def from_json(cls, data: Any) -> "BolusDelivery":
        data = data if isinstance(data, dict) else {}
        return cls(
            timestamp=_parse_time(data.get("timestamp")),
            units=float(data.get("units", 0.0)),
            reason=str(data.get("reason", "")),
            extended=bool(data.get("extended", False)),
            duration=int(data.get("duration", 0)),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class BasalDelivery:
    """A period of basal delivery at a fixed rate in units per hour."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    rate: float = 0.0
    profile_name: str = ""
    automatic: bool = False

    def to_json(self) -> dict[str, Any]:
        return {
            "startTime": _format_time(self.start_time),
            "endTime": _format_time(self.end_time),
            "rate": self.rate,
            "profileName": self.profile_name,
            "automatic": self.automatic,
        }

    @classmethod
    def from_json(cls, data: Any) -> "BasalDelivery":
        data = data if isinstance(data, dict) else {}
        return cls(
            start_time=_parse_time(data.get("startTime")),
            end_time=_parse_time(data.get("endTime")),
            rate=float(data.get("rate", 0.0)),
            profile_name=str(data.get("profileName", "")),
            automatic=bool(data.get("automatic", False)),
        )


def _clamp_rate(rate: float) -> float:
    return min(max(rate, 0.0), MAX_BASAL_RATE)


class InsulinModel:
    """Tracks basal and bolus delivery and the resulting insulin on board.

    Bolus completion is driven by the caller: ``complete_bolus`` finishes a
    standard bolus, ``advance_extended_bolus`` performs one of the ten steps
    of an extended bolus.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock if clock is not None else datetime.now
        self._handlers: dict[str, list[Callable[..., Any]]] = {e: [] for e in _EVENTS}
        self._iob = 0.0
        self._basal_active = False
        self._basal_rate = 0.0
        self._profile_name = ""
        self._basal_automatic = False
        self._bolus_active = False
        self._current_bolus: BolusDelivery | None = None
        self._last_completed: BolusDelivery | None = None
        self._extended_steps = 0
        self._last_ciq_adjustment = 0.0
        self._bolus_history: list[BolusDelivery] = []
        self._basal_history: list[BasalDelivery] = []

    def connect(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for one of the model's events."""
        if event not in self._handlers:
            raise ValueError(f"unknown event: {event!r}")
        self._handlers[event].append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._handlers[event]):
            callback(*args)

    @property
    def insulin_on_board(self) -> float:
        return self._iob

    @property
    def current_basal_rate(self) -> float:
        return self._basal_rate if self._basal_active else 0.0

    @property
    def basal_active(self) -> bool:
        return self._basal_active

    @property
    def current_profile_name(self) -> str:
        return self._profile_name

    @property
    def bolus_active(self) -> bool:
        return self._bolus_active

    @property
    def current_bolus(self) -> BolusDelivery | None:
        """The bolus in progress, or None."""
        if not self._bolus_active or self._current_bolus is None:
            return None
        return replace(self._current_bolus)

    @property
    def last_completed_bolus(self) -> BolusDelivery | None:
        return replace(self._last_completed) if self._last_completed else None

    @property
    def last_control_iq_adjustment(self) -> float:
        return self._last_ciq_adjustment

    @property
    def extended_step_interval(self) -> timedelta:
        """Time between steps of the extended bolus in progress."""
        if self._current_bolus is None:
            return timedelta(0)
        millis = self._current_bolus.duration * 60 * 1000 // EXTENDED_BOLUS_STEPS
        return timedelta(milliseconds=millis)

    def _record_segment(self) -> None:
        now = self._clock()
        self._basal_history.append(
            BasalDelivery(
                start_time=now - _ASSUMED_SEGMENT_LENGTH,
                end_time=now,
                rate=self._basal_rate,
                profile_name=self._profile_name,
                automatic=self._basal_automatic,
            )
        )

    def start_basal(
        self, rate: float, profile_name: str, automatic: bool = False
    ) -> None:
        """Start basal delivery, closing any segment already running."""
        rate = _clamp_rate(rate)
        if self._basal_active:
            self._record_segment()
        self._basal_rate = rate
        self._profile_name = profile_name
        self._basal_automatic = automatic
        self._basal_active = True
        self._emit("basal_rate_changed", rate)
        self._emit("basal_state_changed", True)

    def stop_basal(self) -> None:
        """Stop basal delivery; does nothing if none is running."""
        if not self._basal_active:
            return
        self._record_segment()
        self._basal_active = False
        self._emit("basal_rate_changed", 0.0)
        self._emit("basal_state_changed", False)

    def suspend_basal(self) -> None:
        """Suspend basal delivery, keeping the rate for a later resume."""
        self.stop_basal()

    def resume_basal(self) -> None:
        """Resume the last basal rate, if there was one."""
        if self._profile_name and self._basal_rate > 0.0:
            self.start_basal(self._basal_rate, self._profile_name, self._basal_automatic)

    def adjust_basal_rate(self, new_rate: float, automatic: bool = True) -> None:
        """Change the basal rate; automatic changes count as Control-IQ adjustments."""
        new_rate = _clamp_rate(new_rate)
        if not self._basal_active:
            self.start_basal(
                new_rate, self._profile_name or DEFAULT_PROFILE_NAME, automatic
            )
            return

        self._record_segment()
        adjustment = new_rate - self._basal_rate
        self._basal_rate = new_rate
        self._basal_automatic = automatic
        if automatic:
            self._last_ciq_adjustment = adjustment
            self._emit("control_iq_adjustment_changed", adjustment)
        self._emit("basal_rate_changed", new_rate)

    def deliver_bolus(
        self,
        units: float,
        reason: str = "Manual",
        extended: bool = False,
        duration: int = 0,
    ) -> None:
        """Start a bolus, capped at 25 units.

        Raises ValueError for a non-positive amount and RuntimeError while
        another bolus is in progress.
        """
        if self._bolus_active:
            raise RuntimeError("a bolus is already in progress")
        if units <= 0.0:
            raise ValueError("bolus amount must be positive")
        units = min(units, MAX_BOLUS_UNITS)

        self._current_bolus = BolusDelivery(
            timestamp=self._clock(),
            units=units,
            reason=reason,
            extended=extended,
            duration=duration,
            completed=False,
        )
        self._bolus_active = True
        self._extended_steps = 0
        self._emit("bolus_started", units)
        self.update_iob()

    def complete_bolus(self) -> bool:
        """Finish the bolus in progress; return False if there is none."""
        if not self._bolus_active or self._current_bolus is None:
            return False
        bolus = self._current_bolus
        bolus.completed = True
        self._last_completed = replace(bolus)
        self._bolus_history.append(replace(bolus))
        self._bolus_active = False
        self._extended_steps = 0
        self.update_iob()
        self._emit("bolus_completed", bolus.units)
        return True

    def advance_extended_bolus(self) -> bool:
        """Perform one step of an extended bolus; return True once it completes."""
        bolus = self._current_bolus
        if not self._bolus_active or bolus is None or not bolus.extended:
            return False
        self._extended_steps += 1
        if self._extended_steps >= EXTENDED_BOLUS_STEPS:
            return self.complete_bolus()
        return False

    def cancel_bolus(self) -> float:
        """Cancel the bolus in progress and return the units delivered."""
        if not self._bolus_active or self._current_bolus is None:
            raise RuntimeError("no bolus is in progress")
        requested = self._current_bolus.units
        delivered = requested * _CANCELLED_FRACTION
        self._bolus_history.append(
            replace(self._current_bolus, units=delivered, completed=False)
        )
        self._bolus_active = False
        self._extended_steps = 0
        self.update_iob()
        self._emit("bolus_cancelled", delivered, requested)
        return delivered

    def bolus_history(self, start: datetime, end: datetime) -> list[BolusDelivery]:
        """Boluses with start <= timestamp <= end."""
        return [
            replace(b)
            for b in self._bolus_history
            if b.timestamp is not None and start <= b.timestamp <= end
        ]

    def basal_history(self, start: datetime, end: datetime) -> list[BasalDelivery]:
        """Basal segments that overlap the period from start to end."""

        def overlaps(seg: BasalDelivery) -> bool:
            s, e = seg.start_time, seg.end_time
            if s is None or e is None:
                return False
            return (
                start <= s <= end
                or start <= e <= end
                or (s <= start and e >= end)
            )

        return [replace(seg) for seg in self._basal_history if overlaps(seg)]

    def total_insulin(self, start: datetime, end: datetime) -> float:
        return self.total_basal(start, end) + self.total_bolus(start, end)

    def total_basal(self, start: datetime, end: datetime) -> float:
        """Basal units delivered within the period."""
        total = 0.0
        for seg in self.basal_history(start, end):
            overlap_start = max(seg.start_time, start)
            overlap_end = min(seg.end_time, end)
            hours = _whole_seconds(overlap_end - overlap_start) / 3600.0
            total += seg.rate * hours
        return total

    def total_bolus(self, start: datetime, end: datetime) -> float:
        return sum(b.units for b in self.bolus_history(start, end))

    def add_bolus_to_history(
        self,
        timestamp: datetime,
        units: float,
        reason: str,
        extended: bool,
        duration: int,
        completed: bool,
    ) -> None:
        """Record a past bolus; recent ones update insulin on board."""
        self._bolus_history.append(
            BolusDelivery(timestamp, units, reason, extended, duration, completed)
        )
        if _whole_seconds(timestamp - self._clock()) > -14400:
            self.update_iob()

    def add_basal_to_history(self, segment: BasalDelivery) -> None:
        self._basal_history.append(replace(segment))

    def update_iob(self) -> None:
        """Recompute insulin on board with a linear four-hour decay."""
        now = self._clock()
        window_start = now - timedelta(hours=INSULIN_ACTION_HOURS)
        total = 0.0
        for bolus in self._bolus_history:
            if bolus.timestamp is None or bolus.timestamp < window_start:
                continue
            elapsed = _whole_seconds(now - bolus.timestamp) / 3600.0
            if elapsed < INSULIN_ACTION_HOURS:
                total += bolus.units * (1.0 - elapsed / INSULIN_ACTION_HOURS)

        if self._bolus_active and self._current_bolus is not None:
            total += self._current_bolus.units * _ACTIVE_BOLUS_FRACTION

        if abs(total - self._iob) > _IOB_TOLERANCE:
            self._iob = total
            self._emit("insulin_on_board_changed", total)

    def save(self, path: str | Path) -> None:
        """Write the delivery state and histories as JSON."""
        document: dict[str, Any] = {
            "state": {
                "insulinOnBoard": self._iob,
                "basalActive": self._basal_active,
                "currentBasalRate": self._basal_rate,
                "currentProfileName": self._profile_name,
                "basalIsAutomatic": self._basal_automatic,
                "bolusActive": self._bolus_active,
                "lastControlIQAdjustment": self._last_ciq_adjustment,
            }
        }
        if self._bolus_active and self._current_bolus is not None:
            document["currentBolus"] = self._current_bolus.to_json()
        document["lastCompletedBolus"] = (
            self._last_completed or BolusDelivery()
        ).to_json()
        document["bolusHistory"] = [b.to_json() for b in self._bolus_history]
        document["basalHistory"] = [s.to_json() for s in self._basal_history]
        Path(path).write_text(json.dumps(document, indent=4), encoding="utf-8")

    def load(self, path: str | Path) -> None:
        """Replace state and histories with those stored in a JSON file."""
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError("insulin file does not hold a JSON object")

        state = document.get("state")
        state = state if isinstance(state, dict) else {}
        self._iob = float(state.get("insulinOnBoard", 0.0))
        self._basal_active = bool(state.get("basalActive", False))
        self._basal_rate = float(state.get("currentBasalRate", 0.0))
        self._profile_name = str(state.get("currentProfileName", ""))
        self._basal_automatic = bool(state.get("basalIsAutomatic", False))
        self._bolus_active = bool(state.get("bolusActive", False))
        self._last_ciq_adjustment = float(state.get("lastControlIQAdjustment", 0.0))
        self._extended_steps = 0

        if self._bolus_active:
            self._current_bolus = BolusDelivery.from_json(document.get("currentBolus"))

        last = BolusDelivery.from_json(document.get("lastCompletedBolus"))
        self._last_completed = last if last.timestamp is not None else None

        self._bolus_history = [
            BolusDelivery.from_json(entry) for entry in document.get("bolusHistory", [])
        ]
        self._basal_history = [
            BasalDelivery.from_json(entry) for entry in document.get("basalHistory", [])
        ]

        self._emit("insulin_on_board_changed", self._iob)
        self._emit("basal_rate_changed", self._basal_rate)
        self._emit("basal_state_changed", self._basal_active)
        self._emit("control_iq_adjustment_changed", self._last_ciq_adjustment)