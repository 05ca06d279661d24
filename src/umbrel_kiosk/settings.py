"""Process-level runtime settings read from the environment."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass


DEFAULT_INTERNAL_HOST_PATTERN = r"^10\.21\.\d+\.\d+$"
DEFAULT_LOOPBACK_HOSTS = ("localhost", "127.0.0.1")


@dataclass(frozen=True)
class RuntimeSettings:
    internal_host_pattern: re.Pattern[str]
    loopback_hosts: tuple[str, ...]
    probe_interval_seconds: float
    crash_reload_seconds: float
    settle_ms: int
    initial_load_delay_ms: int
    unresponsive_seconds: float
    heartbeat_interval_ms: int
    browser_channel: str


def load_runtime_settings() -> RuntimeSettings:
    raw_pattern = os.getenv("UMBREL_KIOSK_INTERNAL_HOST_PATTERN", "").strip() or DEFAULT_INTERNAL_HOST_PATTERN
    try:
        pattern = re.compile(raw_pattern)
    except re.error as exc:
        raise SystemExit(f"Invalid UMBREL_KIOSK_INTERNAL_HOST_PATTERN: {exc}") from exc

    raw_hosts = os.getenv("UMBREL_KIOSK_LOOPBACK_HOSTS", "").strip()
    hosts = tuple(h.strip().lower() for h in raw_hosts.split(",") if h.strip()) or DEFAULT_LOOPBACK_HOSTS

    probe_interval = float(os.getenv("UMBREL_KIOSK_PROBE_INTERVAL_SECONDS", "5") or "5")
    probe_interval = max(1.0, min(60.0, probe_interval))
    crash_reload = float(os.getenv("UMBREL_KIOSK_CRASH_RELOAD_SECONDS", "3") or "3")
    crash_reload = max(0.5, min(60.0, crash_reload))
    settle_ms = int(float(os.getenv("UMBREL_KIOSK_SETTLE_MS", "500") or "500"))
    settle_ms = max(0, min(5000, settle_ms))
    initial_delay_ms = int(float(os.getenv("UMBREL_KIOSK_INITIAL_LOAD_DELAY_MS", "500") or "500"))
    initial_delay_ms = max(0, min(10000, initial_delay_ms))
    unresponsive = float(os.getenv("UMBREL_KIOSK_UNRESPONSIVE_SECONDS", "30") or "30")
    unresponsive = max(2.0, min(600.0, unresponsive))
    heartbeat_ms = int(float(os.getenv("UMBREL_KIOSK_HEARTBEAT_MS", "1000") or "1000"))
    heartbeat_ms = max(200, min(10000, heartbeat_ms))

    return RuntimeSettings(
        internal_host_pattern=pattern,
        loopback_hosts=hosts,
        probe_interval_seconds=probe_interval,
        crash_reload_seconds=crash_reload,
        settle_ms=settle_ms,
        initial_load_delay_ms=initial_delay_ms,
        unresponsive_seconds=unresponsive,
        heartbeat_interval_ms=heartbeat_ms,
        browser_channel=os.getenv("UMBREL_KIOSK_BROWSER_CHANNEL", "").strip(),
    )
