"""Window-manager backend: keep the kiosk window above, fullscreen and focused.

Uses ``wmctrl`` / ``xdotool`` when they are installed (X11 sessions). On
Wayland compositors such as cage the window is already fullscreen and
focused, so every call here degrades to a no-op.
"""

from __future__ import annotations

import os
import shutil
import subprocess

from umbrel_kiosk.constants import WINDOW_TITLE_HINT
from umbrel_kiosk.storage import log_warn

# wmctrl id found while the loading page title was still showing
_locked_window_id = ""


def backend_tools() -> dict[str, bool]:
    return {
        "wmctrl": shutil.which("wmctrl") is not None,
        "xdotool": shutil.which("xdotool") is not None,
        "display": bool(os.getenv("DISPLAY", "").strip()),
    }


def find_kiosk_window(title_hint: str = WINDOW_TITLE_HINT, timeout_seconds: int = 5) -> str:
    """Return the wmctrl window id whose title contains the hint, or ""."""
    if not shutil.which("wmctrl"):
        return ""
    proc = _run_cmd(["wmctrl", "-l"], timeout_seconds)
    if proc.returncode != 0:
        return ""
    needle = title_hint.lower()
    for line in proc.stdout.splitlines():
        parts = line.split(None, 3)
        if len(parts) < 4:
            continue
        if needle in parts[3].lower():
            return parts[0]
    return ""


def lock_window(title_hint: str = WINDOW_TITLE_HINT, timeout_seconds: int = 5) -> bool:
    global _locked_window_id
    window_id = find_kiosk_window(title_hint, timeout_seconds)
    if not window_id:
        return False
    _locked_window_id = window_id
    ok = True
    for cmd in (
        ["wmctrl", "-ir", window_id, "-b", "add,fullscreen"],
        ["wmctrl", "-ir", window_id, "-b", "add,above"],
    ):
        proc = _run_cmd(cmd, timeout_seconds)
        if proc.returncode != 0:
            ok = False
            log_warn("Window lock command failed", {"cmd": " ".join(cmd), "error": proc.stderr.strip()})
    return ok


def forget_window() -> None:
    global _locked_window_id
    _locked_window_id = ""


def focus_window(title_hint: str = WINDOW_TITLE_HINT, timeout_seconds: int = 5) -> bool:
    """Activate the locked window; app pages change the title, so the hint is only a fallback."""
    if _locked_window_id and shutil.which("wmctrl"):
        proc = _run_cmd(["wmctrl", "-ia", _locked_window_id], timeout_seconds)
        if proc.returncode == 0:
            return True
        forget_window()
    window_id = find_kiosk_window(title_hint, timeout_seconds)
    if window_id:
        proc = _run_cmd(["wmctrl", "-ia", window_id], timeout_seconds)
        if proc.returncode == 0:
            return True
    if shutil.which("xdotool"):
        proc = _run_cmd(
            ["xdotool", "search", "--name", title_hint, "windowactivate"],
            timeout_seconds,
        )
        return proc.returncode == 0
    return False


def _run_cmd(cmd: list[str], timeout_seconds: int) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            cmd,
            text=True,
            capture_output=True,
            timeout=min(timeout_seconds, 30),
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        return subprocess.CompletedProcess(cmd, returncode=1, stdout="", stderr=str(exc))
