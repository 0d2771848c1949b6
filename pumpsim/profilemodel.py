"""Therapy profiles: basal rate, carb ratio, correction factor and target."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable

DEFAULT_PROFILE_NAME = "Default"

_EVENTS = (
    "profile_created",
    "profile_updated",
    "profile_deleted",
    "active_profile_changed",
)


class ProfileError(ValueError):
    """Raised when a profile operation is rejected."""


@dataclass
class Profile:
    """A named set of insulin therapy settings."""

    name: str
    basal_rate: float
    carb_ratio: float
    correction_factor: float
    target_glucose: float

    def is_valid(self) -> bool:
        return bool(self.name) and all(
            value > 0
            for value in (
                self.basal_rate,
                self.carb_ratio,
                self.correction_factor,
                self.target_glucose,
            )
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "basalRate": self.basal_rate,
            "carbRatio": self.carb_ratio,
            "correctionFactor": self.correction_factor,
            "targetGlucose": self.target_glucose,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Profile":
        return cls(
            name=str(data.get("name", "")),
            basal_rate=float(data.get("basalRate", 0.0)),
            carb_ratio=float(data.get("carbRatio", 0.0)),
            correction_factor=float(data.get("correctionFactor", 0.0)),
            target_glucose=float(data.get("targetGlucose", 0.0)),
        )


def _default_profiles() -> list[Profile]:
    return [
        Profile(DEFAULT_PROFILE_NAME, 1.0, 10.0, 2.0, 5.5),
        Profile("Sleep", 0.8, 10.0, 2.0, 6.0),
        Profile("Exercise", 0.6, 15.0, 2.5, 6.5),
    ]


class ProfileModel:
    """Holds the pump's profiles and tracks which one is active."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {e: [] for e in _EVENTS}
        self._profiles: dict[str, Profile] = {p.name: p for p in _default_profiles()}
        self._active_name = DEFAULT_PROFILE_NAME

    def connect(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for one of the model's events."""
        if event not in self._handlers:
            raise ValueError(f"unknown event: {event!r}")
        self._handlers[event].append(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._handlers[event]):
            callback(*args)

    def create_profile(self, profile: Profile) -> None:
        """Add a new profile; raise ProfileError if invalid or already present."""
        if not profile.is_valid():
            raise ProfileError("profile has an empty name or a non-positive setting")
        if profile.name in self._profiles:
            raise ProfileError(f"profile {profile.name!r} already exists")
        self._profiles[profile.name] = replace(profile)
        self._emit("profile_created", profile.name)

    def get_profile(self, name: str) -> Profile | None:
        """Return a copy of the named profile, or None if there is none."""
        profile = self._profiles.get(name)
        return replace(profile) if profile is not None else None

    def all_profiles(self) -> list[Profile]:
        """Return copies of all profiles, ordered by name."""
        return [replace(self._profiles[name]) for name in sorted(self._profiles)]

    def update_profile(self, name: str, profile: Profile) -> None:
        """Replace the named profile, renaming it if the new profile's name differs."""
        if not profile.is_valid():
            raise ProfileError("profile has an empty name or a non-positive setting")
        if name not in self._profiles:
            raise ProfileError(f"no profile named {name!r}")
        if name != profile.name:
            if profile.name in self._profiles:
                raise ProfileError(f"profile {profile.name!r} already exists")
            del self._profiles[name]
            self._profiles[profile.name] = replace(profile)
            if self._active_name == name:
                self._active_name = profile.name
                self._emit("active_profile_changed", self._active_name)
        else:
            self._profiles[name] = replace(profile)
        self._emit("profile_updated", profile.name)

    def delete_profile(self, name: str) -> None:
        """Remove a profile; the default profile cannot be removed."""
        if name == DEFAULT_PROFILE_NAME:
            raise ProfileError("the default profile cannot be deleted")
        if name not in self._profiles:
            raise ProfileError(f"no profile named {name!r}")
        if self._active_name == name:
            self.set_active_profile(DEFAULT_PROFILE_NAME)
        del self._profiles[name]
        self._emit("profile_deleted", name)

    def set_active_profile(self, name: str) -> None:
        """Make the named profile the active one."""
        if name not in self._profiles:
            raise ProfileError(f"no profile named {name!r}")
        if self._active_name != name:
            self._active_name = name
            self._emit("active_profile_changed", name)

    @property
    def active_profile(self) -> Profile | None:
        return self.get_profile(self._active_name)

    @property
    def active_profile_name(self) -> str:
        return self._active_name

    def save(self, path: str | Path) -> None:
        """Write all profiles and the active profile name as JSON."""
        document = {
            "activeProfile": self._active_name,
            "profiles": [p.to_json() for p in self.all_profiles()],
        }
        Path(path).write_text(json.dumps(document, indent=4), encoding="utf-8")

    def load(self, path: str | Path) -> None:
        """Replace all non-default profiles with those stored in a JSON file."""
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError("profile file does not hold a JSON object")

        for name in [n for n in self._profiles if n != DEFAULT_PROFILE_NAME]:
            del self._profiles[name]

        for entry in document.get("profiles", []):
            profile = Profile.from_json(entry if isinstance(entry, dict) else {})
            if profile.name != DEFAULT_PROFILE_NAME:
                self._profiles[profile.name] = profile
                self._emit("profile_created", profile.name)

        active = document.get("activeProfile", DEFAULT_PROFILE_NAME)
        try:
            self.set_active_profile(str(active))
        except ProfileError:
            pass