"""File storage helpers: state directory, JSON documents and the kiosk log."""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def state_dir() -> Path:
    raw = os.getenv("UMBREL_KIOSK_STATE_DIR", "").strip()
    if raw:
        return Path(raw).expanduser()
    base = os.getenv("XDG_STATE_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".local" / "state"
    return root / "umbrel-kiosk"


def system_dir() -> Path:
    return Path(os.getenv("UMBREL_KIOSK_SYSTEM_DIR", "/opt/umbrel-kiosk").strip() or "/opt/umbrel-kiosk")


def user_config_dir() -> Path:
    base = os.getenv("XDG_CONFIG_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".config"
    return root / "umbrel-kiosk"


LOG_MAX_BYTES = 2 * 1024 * 1024


def log_path() -> Path:
    return state_dir() / "kiosk.log"


def roll_log(path: Path, max_bytes: int) -> bool:
    """Move a log past max_bytes to <name>.1, replacing the previous backup."""
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return False
    if size < max_bytes:
        return False
    path.replace(path.with_name(path.name + ".1"))
    return True


def append_log(path: Path, message: str, max_bytes: int | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    roll_log(path, LOG_MAX_BYTES if max_bytes is None else max_bytes)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(message.rstrip() + "\n")


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def read_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return payload


def tail_lines(path: Path, line_count: int) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as fh:
        lines = fh.readlines()
    return [line.rstrip("\n") for line in lines[-line_count:]]


def format_log_line(level: str, message: str, data: dict[str, Any] | None = None) -> str:
    timestamp = datetime.now(timezone.utc).isoformat()
    line = f"[{timestamp}] [{level.upper()}] {message}"
    if data:
        line += " " + json.dumps(data, ensure_ascii=False, default=str)
    return line


def log(level: str, message: str, data: dict[str, Any] | None = None) -> None:
    line = format_log_line(level, message, data)
    print(line, file=sys.stderr, flush=True)
    try:
        append_log(log_path(), line)
    except OSError:
        # stderr already has the line; a read-only state dir must not stop the kiosk
        return


def log_info(message: str, data: dict[str, Any] | None = None) -> None:
    log("info", message, data)


def log_warn(message: str, data: dict[str, Any] | None = None) -> None:
    log("warn", message, data)


def log_error(message: str, data: dict[str, Any] | None = None) -> None:
    log("error", message, data)
