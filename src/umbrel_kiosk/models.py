"""Configuration record and strict value validation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from umbrel_kiosk.constants import CONFIG_CHOICES, DEFAULT_CONFIG
from umbrel_kiosk.web_common import is_valid_url


@dataclass(frozen=True)
class KioskConfig:
    cursor_theme: str
    cursor_size: str
    dock_position: str
    dock_size: str
    home_url: str

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "KioskConfig":
        """Build a record from a persisted mapping.

        Missing keys and values outside the allowed set fall back to the
        defaults; extra keys are ignored here (the store keeps them on disk).
        """
        return cls(
            cursor_theme=_choice_or_default(payload, "cursorTheme"),
            cursor_size=_choice_or_default(payload, "cursorSize"),
            dock_position=_choice_or_default(payload, "dockPosition"),
            dock_size=_choice_or_default(payload, "dockSize"),
            home_url=_url_or_default(payload, "homeUrl"),
        )

    def to_dict(self) -> dict[str, Any]:
        raw = asdict(self)
        return {
            "cursorTheme": raw["cursor_theme"],
            "cursorSize": raw["cursor_size"],
            "dockPosition": raw["dock_position"],
            "dockSize": raw["dock_size"],
            "homeUrl": raw["home_url"],
        }


def validate_config_value(key: str, value: Any) -> Any:
    if key not in DEFAULT_CONFIG:
        raise ValueError(f"Unknown setting '{key}'. Must be one of {sorted(DEFAULT_CONFIG)}")
    if key == "homeUrl":
        if not isinstance(value, str) or not is_valid_url(value):
            raise ValueError("'homeUrl' must be an http(s) URL")
        return value
    choices = CONFIG_CHOICES[key]
    if value not in choices:
        raise ValueError(f"Invalid {key} '{value}'. Must be one of {list(choices)}")
    return value


def _choice_or_default(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value in CONFIG_CHOICES[key]:
        return str(value)
    return str(DEFAULT_CONFIG[key])


def _url_or_default(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if isinstance(value, str) and is_valid_url(value):
        return value
    return str(DEFAULT_CONFIG[key])
