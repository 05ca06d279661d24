"""Operator CLI for a running kiosk: ``umbrel-kiosk-ctl <command>``."""

from __future__ import annotations

import argparse
import json
import os
import shutil
import socket
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from umbrel_kiosk.config_store import ConfigStore
from umbrel_kiosk.constants import CONFIG_CHOICES, DEFAULT_CONFIG
from umbrel_kiosk.models import validate_config_value
from umbrel_kiosk.storage import log_path, state_dir, tail_lines
from umbrel_kiosk.web_common import playwright_available
from umbrel_kiosk.web_control_agent import CONTROL_ACTIONS
from umbrel_kiosk.web_session import request_instance_action, request_instance_state, running_instance
from umbrel_kiosk.window_backend import backend_tools


# Config actions go through the "config" subcommand.
_PLAIN_ACTIONS = tuple(a for a in CONTROL_ACTIONS if not a.startswith("config-"))


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "status":
        print(json.dumps(status_payload(), indent=2, ensure_ascii=False))
        return
    if args.command == "action":
        params = {"url": args.url} if args.url else None
        result = request_instance_action(_require_instance_port(), args.name, params=params)
        print(json.dumps(result, indent=2, ensure_ascii=False))
        return
    if args.command == "logs":
        print("\n".join(tail_lines(log_path(), max(1, args.tail))))
        return
    if args.command == "config":
        print(json.dumps(config_command(args.config_command, args.key, args.value), indent=2, ensure_ascii=False))
        return
    if args.command == "doctor":
        doctor_command()
        return

    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="umbrel-kiosk-ctl", description="Control a running kiosk.")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show kiosk session state")

    action_parser = subparsers.add_parser("action", help="Send an action to the running kiosk")
    action_parser.add_argument("name", choices=_PLAIN_ACTIONS)
    action_parser.add_argument("--url", default="", help="Destination for the navigate action")

    logs_parser = subparsers.add_parser("logs", help="Tail the kiosk log")
    logs_parser.add_argument("--tail", type=int, default=200)

    config_parser = subparsers.add_parser("config", help="Read or change persisted settings")
    config_parser.add_argument("config_command", choices=("get", "set", "reset"))
    config_parser.add_argument("key", nargs="?", default="")
    config_parser.add_argument("value", nargs="?", default=None)

    subparsers.add_parser("doctor", help="Check runtime prerequisites")
    return parser


def _require_instance_port() -> int:
    existing = running_instance()
    if not existing:
        raise SystemExit("No running kiosk found.")
    return int(existing.get("control_port", 0) or 0)


def status_payload() -> dict[str, Any]:
    existing = running_instance()
    if not existing:
        return {"status": "not-running", "state_dir": str(state_dir())}
    port = int(existing.get("control_port", 0) or 0)
    payload = request_instance_state(port)
    payload["status"] = "running"
    return payload


def config_command(command: str, key: str, value: str | None) -> dict[str, Any]:
    """Live kiosks apply the change in place; otherwise the file is edited directly."""
    if key and key not in DEFAULT_CONFIG:
        raise SystemExit(f"Unknown setting '{key}'. Must be one of {sorted(DEFAULT_CONFIG)}")
    if command == "set":
        if not key or value is None:
            raise SystemExit("config set requires a key and a value")
        try:
            validate_config_value(key, value)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc

    existing = running_instance()
    if existing:
        port = int(existing.get("control_port", 0) or 0)
        params = {"key": key, "value": value} if command == "set" else None
        result = request_instance_action(port, f"config-{command}", params=params)
        config = dict(result.get("config", {}))
    else:
        store = ConfigStore()
        if command == "set" and not store.set(key, value):
            raise SystemExit(f"Could not write {store.path}")
        if command == "reset" and not store.reset():
            raise SystemExit(f"Could not write {store.path}")
        config = store.get_all()
    if command == "get" and key:
        return {key: config.get(key), "choices": list(CONFIG_CHOICES.get(key, ()))}
    return config


def doctor_command() -> None:
    checks = _collect_runtime_checks()
    print(json.dumps(checks, indent=2, ensure_ascii=False))
    failed = [item["name"] for item in checks if item["required"] and not item["ok"]]
    if failed:
        raise SystemExit(f"doctor: failing checks: {', '.join(failed)}")


def _collect_runtime_checks() -> list[dict[str, Any]]:
    checks: list[dict[str, Any]] = []

    def add(name: str, ok: bool, detail: str, *, required: bool = True) -> None:
        checks.append({"name": name, "ok": ok, "detail": detail, "required": required})

    add("playwright_python", playwright_available(), "python package playwright")
    add("browser_binary", _browser_binary_available(), "Playwright Chromium or a system Chromium")
    display = os.getenv("WAYLAND_DISPLAY", "") or os.getenv("DISPLAY", "")
    add("display_env", bool(display), display or "neither WAYLAND_DISPLAY nor DISPLAY is set")
    tools = backend_tools()
    add("tool_wmctrl", tools["wmctrl"], "window lock/focus on X11", required=False)
    add("tool_xdotool", tools["xdotool"], "window focus fallback on X11", required=False)

    store = ConfigStore()
    add("config_writable", _dir_writable(store.path.parent), str(store.path))
    add("state_dir_writable", _dir_writable(state_dir()), str(state_dir()))

    home_host = urlparse(store.record().home_url).hostname or ""
    add("dns_home_host", _can_resolve(home_host), home_host or "no home host", required=False)
    return checks


def _browser_binary_available() -> bool:
    for name in ("chromium", "chromium-browser", "google-chrome", "google-chrome-stable"):
        if shutil.which(name):
            return True
    cache = Path(os.getenv("PLAYWRIGHT_BROWSERS_PATH", "") or Path.home() / ".cache" / "ms-playwright")
    return any(cache.glob("chromium-*")) if cache.is_dir() else False


def _dir_writable(path: Path) -> bool:
    probe = path
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return os.access(probe, os.W_OK)


def _can_resolve(host: str) -> bool:
    if not host:
        return False
    try:
        socket.getaddrinfo(host, None)
    except OSError:
        return False
    return True


if __name__ == "__main__":
    main()
