"""Pump hardware state: battery, reservoir, alerts and delivery history."""

from __future__ import annotations

import json
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable

MAX_BATTERY_LEVEL = 100
MAX_INSULIN_UNITS = 300.0
DEFAULT_PROFILE_NAME = "Default"

_EVENTS = (
    "battery_level_changed",
    "insulin_remaining_changed",
    "pump_state_changed",
    "profile_changed",
    "insulin_on_board_changed",
    "control_iq_delivery_changed",
    "alert_added",
    "alert_cleared",
    "glucose_reading_added",
    "insulin_delivery_added",
)


class PumpState(IntEnum):
    POWERED_OFF = 0
    POWERED_ON = 1
    SUSPENDED = 2
    DELIVERING = 3
    ERROR = 4


class AlertLevel(IntEnum):
    INFO = 0
    WARNING = 1
    CRITICAL = 2


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


class PumpModel:
    """The pump device itself: power, battery, reservoir, alerts and logs."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock if clock is not None else datetime.now
        self._handlers: dict[str, list[Callable[..., Any]]] = {e: [] for e in _EVENTS}
        self._battery_level = MAX_BATTERY_LEVEL
        self._charging = False
        self._insulin_remaining = MAX_INSULIN_UNITS
        self._state = PumpState.POWERED_OFF
        self._profile_name = DEFAULT_PROFILE_NAME
        self._iob = 0.0
        self._control_iq_delivery = 0.0
        self._alerts: list[tuple[str, AlertLevel]] = []
        self._glucose_history: list[tuple[datetime | None, float]] = []
        self._insulin_history: list[tuple[datetime | None, float]] = []
        self._last_action_time: datetime | None = self._clock()

    def connect(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for one of the model's events."""
        if event not in self._handlers:
            raise ValueError(f"unknown event: {event!r}")
        self._handlers[event].append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._handlers[event]):
            callback(*args)

    def _touch(self) -> None:
        self._last_action_time = self._clock()

    @property
    def battery_level(self) -> int:
        return self._battery_level

    @property
    def charging(self) -> bool:
        return self._charging

    @property
    def insulin_remaining(self) -> float:
        return self._insulin_remaining

    @property
    def pump_state(self) -> PumpState:
        return self._state

    @property
    def last_action_time(self) -> datetime | None:
        return self._last_action_time

    @property
    def current_profile_name(self) -> str:
        return self._profile_name

    @property
    def insulin_on_board(self) -> float:
        return self._iob

    @property
    def control_iq_delivery(self) -> float:
        return self._control_iq_delivery

    @property
    def active_alerts(self) -> list[tuple[str, AlertLevel]]:
        return list(self._alerts)

    @property
    def glucose_history(self) -> list[tuple[datetime | None, float]]:
        return list(self._glucose_history)

    @property
    def insulin_history(self) -> list[tuple[datetime | None, float]]:
        return list(self._insulin_history)

    def start_charging(self) -> None:
        self._charging = True
        self._touch()

    def stop_charging(self) -> None:
        self._charging = False
        self._touch()

    def update_battery_level(self, level: int) -> None:
        """Set the battery level, clamped to 0..100 percent."""
        level = min(max(int(level), 0), MAX_BATTERY_LEVEL)
        if level != self._battery_level:
            self._battery_level = level
            self._emit("battery_level_changed", level)
            self._touch()

    def update_insulin_remaining(self, units: float) -> None:
        """Set the reservoir contents, clamped to 0..300 units."""
        units = min(max(float(units), 0.0), MAX_INSULIN_UNITS)
        if units != self._insulin_remaining:
            self._insulin_remaining = units
            self._emit("insulin_remaining_changed", units)
            self._touch()

    def reduce_insulin(self, units: float) -> None:
        """Draw insulin from the reservoir and log the delivery."""
        if units <= 0:
            return
        self.update_insulin_remaining(max(self._insulin_remaining - units, 0.0))
        self.add_insulin_delivery(self._clock(), units)

    def set_pump_state(self, state: PumpState) -> None:
        state = PumpState(state)
        if state != self._state:
            self._state = state
            self._emit("pump_state_changed", state)
            self._touch()

    def set_current_profile_name(self, name: str) -> None:
        if name != self._profile_name:
            self._profile_name = name
            self._emit("profile_changed", name)
            self._touch()

    def update_insulin_on_board(self, units: float) -> None:
        units = max(float(units), 0.0)
        if units != self._iob:
            self._iob = units
            self._emit("insulin_on_board_changed", units)
            self._touch()

    def update_control_iq_delivery(self, units: float) -> None:
        units = max(float(units), 0.0)
        if units != self._control_iq_delivery:
            self._control_iq_delivery = units
            self._emit("control_iq_delivery_changed", units)
            self._touch()

    def add_alert(self, message: str, level: AlertLevel) -> None:
        level = AlertLevel(level)
        self._alerts.append((message, level))
        self._emit("alert_added", message, level)
        self._touch()

    def clear_alert(self, index: int) -> None:
        """Remove the alert at index; an index out of range is ignored."""
        if 0 <= index < len(self._alerts):
            del self._alerts[index]
            self._emit("alert_cleared", index)
            self._touch()

    def add_glucose_reading(self, timestamp: datetime, value: float) -> None:
        self._glucose_history.append((timestamp, value))
        self._emit("glucose_reading_added", timestamp, value)
        self._touch()

    def add_insulin_delivery(self, timestamp: datetime, units: float) -> None:
        self._insulin_history.append((timestamp, units))
        self._emit("insulin_delivery_added", timestamp, units)
        self._touch()

    def save_state(self, path: str | Path) -> None:
        """Write the pump state, alerts and histories as JSON."""
        document = {
            "batteryLevel": self._battery_level,
            "charging": self._charging,
            "insulinRemaining": self._insulin_remaining,
            "pumpState": int(self._state),
            "lastActionTime": _format_time(self._last_action_time),
            "currentProfileName": self._profile_name,
            "insulinOnBoard": self._iob,
            "controlIQDelivery": self._control_iq_delivery,
            "alerts": [
                {"message": message, "level": int(level)}
                for message, level in self._alerts
            ],
            "glucoseHistory": [
                {"timestamp": _format_time(t), "value": v}
                for t, v in self._glucose_history
            ],
            "insulinHistory": [
                {"timestamp": _format_time(t), "units": u}
                for t, u in self._insulin_history
            ],
        }
        Path(path).write_text(json.dumps(document, indent=4), encoding="utf-8")

    def load_state(self, path: str | Path) -> None:
        """Replace the pump state with the one stored in a JSON file."""
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError("pump state file does not hold a JSON object")

        self._battery_level = int(document.get("batteryLevel", MAX_BATTERY_LEVEL))
        self._charging = bool(document.get("charging", False))
        self._insulin_remaining = float(
            document.get("insulinRemaining", MAX_INSULIN_UNITS)
        )
        self._state = PumpState(int(document.get("pumpState", PumpState.POWERED_OFF)))
        self._last_action_time = _parse_time(document.get("lastActionTime"))
        self._profile_name = str(
            document.get("currentProfileName", DEFAULT_PROFILE_NAME)
        )
        self._iob = float(document.get("insulinOnBoard", 0.0))
        self._control_iq_delivery = float(document.get("controlIQDelivery", 0.0))

        self._alerts = [
            (str(entry.get("message", "")), AlertLevel(int(entry.get("level", 0))))
            for entry in document.get("alerts", [])
            if isinstance(entry, dict)
        ]
        self._glucose_history = [
            (_parse_time(entry.get("timestamp")), float(entry.get("value", 0.0)))
            for entry in document.get("glucoseHistory", [])
            if isinstance(entry, dict)
        ]
        self._insulin_history = [
            (_parse_time(entry.get("timestamp")), float(entry.get("units", 0.0)))
            for entry in document.get("insulinHistory", [])
            if isinstance(entry, dict)
        ]

        self._emit("battery_level_changed", self._battery_level)
        self._emit("insulin_remaining_changed", self._insulin_remaining)
        self._emit("pump_state_changed", self._state)
        self._emit("profile_changed", self._profile_name)
        self._emit("insulin_on_board_changed", self._iob)
        self._emit("control_iq_delivery_changed", self._control_iq_delivery)