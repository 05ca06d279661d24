"""The single kiosk session and the process-level single-instance lock."""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from umbrel_kiosk import overlay_state
from umbrel_kiosk.overlay_state import Transition
from umbrel_kiosk.storage import read_json, state_dir, write_json
from umbrel_kiosk.web_common import is_web_url


SERVICE_MENU = "service-menu"
SETTINGS_PANEL = "settings-panel"

# Fault states that exhibit an overlay; READY exhibits nothing by itself.
_FAULT_OVERLAYS = {
    overlay_state.LOADING: "loading",
    overlay_state.NETWORK_ERROR: "network-error",
    overlay_state.LOAD_ERROR: "load-error",
    overlay_state.CRASHED: "crashed",
    overlay_state.UNRESPONSIVE: "unresponsive",
}


@dataclass
class KioskSession:
    target_url: str
    current_url: str
    dev_mode: bool = False
    insecure: bool = False
    online: bool = True
    state: str = overlay_state.LOADING
    panel: str = ""
    dock_visible: bool = True
    last_error: str = ""
    started_at: str = ""

    def __post_init__(self) -> None:
        if not self.started_at:
            self.started_at = datetime.now(timezone.utc).isoformat()

    @property
    def overlay(self) -> str:
        """The topmost exhibited overlay.

        An operator panel is modal and sits above a status overlay; entering
        a fault state closes any open panel (see ``apply``).
        """
        if self.panel:
            return self.panel
        return _FAULT_OVERLAYS.get(self.state, "none")

    def record_location(self, url: str) -> bool:
        if not is_web_url(url):
            return False
        self.current_url = url
        return True

    def navigate_to(self, url: str) -> None:
        self.target_url = url
        self.current_url = url

    def apply(self, event: str) -> Transition | None:
        transition = overlay_state.next_transition(self.state, event)
        if transition is None:
            return None
        self.state = transition.target
        if transition.target in (
            overlay_state.NETWORK_ERROR,
            overlay_state.LOAD_ERROR,
            overlay_state.CRASHED,
            overlay_state.UNRESPONSIVE,
        ):
            self.panel = ""
        if event == overlay_state.NETWORK_FAILURE:
            self.online = False
        elif event in (overlay_state.PROBE_OK, overlay_state.COMMIT):
            self.online = True
        return transition

    def open_panel(self, name: str) -> None:
        self.panel = name

    def close_panel(self, name: str) -> bool:
        if self.panel != name:
            return False
        self.panel = ""
        return True

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["overlay"] = self.overlay
        return payload


def instance_path() -> Path:
    return state_dir() / "instance.json"


def write_instance_record(*, pid: int, control_port: int) -> None:
    write_json(
        instance_path(),
        {
            "pid": pid,
            "control_port": control_port,
            "started_at": datetime.now(timezone.utc).isoformat(),
        },
    )


def clear_instance_record(pid: int) -> None:
    path = instance_path()
    try:
        payload = read_json(path)
    except (OSError, ValueError):
        return
    if int(payload.get("pid", 0) or 0) != pid:
        return
    try:
        path.unlink()
    except OSError:
        return


def running_instance() -> dict[str, Any] | None:
    """Return the live instance record, or None when no other kiosk is running."""
    path = instance_path()
    if not path.exists():
        return None
    try:
        payload = read_json(path)
    except (OSError, ValueError):
        return None
    pid = int(payload.get("pid", 0) or 0)
    port = int(payload.get("control_port", 0) or 0)
    if pid <= 0 or pid == os.getpid() or not _pid_alive(pid):
        return None
    if port <= 0 or not agent_ping(port):
        return None
    return payload


def request_instance_action(
    port: int,
    action: str,
    *,
    params: dict[str, Any] | None = None,
    timeout_seconds: float = 4.0,
) -> dict[str, Any]:
    if port <= 0:
        raise SystemExit("Kiosk control agent offline: no control port configured.")
    body: dict[str, Any] = {"action": action}
    if params:
        body.update(params)
    payload = json.dumps(body, ensure_ascii=False).encode("utf-8")
    req = urllib.request.Request(
        f"http://127.0.0.1:{port}/action",
        data=payload,
        method="POST",
        headers={"Content-Type": "application/json"},
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        reason = exc.read().decode("utf-8", errors="replace")
        raise SystemExit(f"Kiosk control action failed ({action}): {reason}") from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        raise SystemExit(f"Kiosk control action failed ({action}): {exc}") from exc
    return _parse_agent_payload(raw, action)


def request_instance_state(port: int, timeout_seconds: float = 2.0) -> dict[str, Any]:
    try:
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/state", timeout=timeout_seconds) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except (urllib.error.URLError, TimeoutError) as exc:
        raise SystemExit(f"Kiosk control state failed: {exc}") from exc
    return _parse_agent_payload(raw, "state")


def agent_ping(port: int) -> bool:
    url = f"http://127.0.0.1:{port}/health"
    try:
        with urllib.request.urlopen(url, timeout=1.5) as resp:
            return resp.status == 200
    except (urllib.error.URLError, TimeoutError):
        return False


def _parse_agent_payload(raw: str, action: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Kiosk control agent returned invalid JSON ({action})") from exc
    if not isinstance(parsed, dict):
        raise SystemExit(f"Kiosk control agent returned invalid payload ({action})")
    return parsed


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False
