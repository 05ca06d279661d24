"""Persistent key/value settings for the in-page layers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from umbrel_kiosk.constants import DEFAULT_CONFIG
from umbrel_kiosk.models import KioskConfig
from umbrel_kiosk.storage import log_error, log_info, system_dir, user_config_dir, write_json


CONFIG_FILENAME = "config.json"


def resolve_config_path() -> Path:
    """Prefer the system-wide location when its directory exists and is writable."""
    system_path = system_dir() / CONFIG_FILENAME
    directory = system_path.parent
    if directory.is_dir() and os.access(directory, os.W_OK):
        return system_path
    return user_config_dir() / CONFIG_FILENAME


class ConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or resolve_config_path()
        self._values: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    def load(self) -> dict[str, Any]:
        try:
            if self.path.exists():
                with self.path.open("r", encoding="utf-8") as fh:
                    loaded = json.load(fh)
                if not isinstance(loaded, dict):
                    raise ValueError("config root is not an object")
                self._values = {**DEFAULT_CONFIG, **loaded}
                log_info("Config loaded", {"path": str(self.path)})
            else:
                log_info("Config using defaults", {"path": str(self.path)})
        except (OSError, ValueError) as exc:
            log_error("Config failed to load", {"path": str(self.path), "error": str(exc)})
            self._values = dict(DEFAULT_CONFIG)
        return self.get_all()

    def save(self) -> bool:
        try:
            write_json(self.path, self._values)
        except OSError as exc:
            log_error("Config failed to save", {"path": str(self.path), "error": str(exc)})
            return False
        log_info("Config saved", {"path": str(self.path)})
        return True

    def get(self, key: str | None = None) -> Any:
        if not key:
            return self.get_all()
        return self._values.get(key)

    def set(self, key: str | dict[str, Any], value: Any = None) -> bool:
        if isinstance(key, dict):
            self._values.update(key)
        else:
            self._values[key] = value
        return self.save()

    def reset(self) -> bool:
        self._values = dict(DEFAULT_CONFIG)
        return self.save()

    def get_all(self) -> dict[str, Any]:
        return dict(self._values)

    def record(self) -> KioskConfig:
        return KioskConfig.from_dict(self._values)
