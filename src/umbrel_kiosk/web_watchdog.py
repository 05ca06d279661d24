"""Renderer heartbeat state and hang evaluation."""

from __future__ import annotations

from dataclasses import dataclass


HANG = "hang"
RESPONSIVE = "responsive"


@dataclass
class HeartbeatConfig:
    unresponsive_seconds: float


@dataclass
class HeartbeatState:
    last_beat_ts: float = 0.0
    armed: bool = False
    hung: bool = False


def reset_heartbeat(state: HeartbeatState, *, now_ts: float) -> None:
    """Start a fresh grace period, e.g. when a new document commits."""
    state.last_beat_ts = now_ts
    state.armed = True


def refresh_heartbeat(state: HeartbeatState, *, now_ts: float) -> None:
    """Extend the grace period of an armed watchdog; a disarmed one stays disarmed."""
    if state.armed:
        state.last_beat_ts = now_ts


def record_heartbeat(state: HeartbeatState, *, now_ts: float) -> str:
    state.last_beat_ts = now_ts
    state.armed = True
    if state.hung:
        state.hung = False
        return RESPONSIVE
    return ""


def evaluate_hang(state: HeartbeatState, *, cfg: HeartbeatConfig, now_ts: float) -> str:
    if not state.armed or state.hung:
        return ""
    if (now_ts - state.last_beat_ts) > max(0.1, cfg.unresponsive_seconds):
        state.hung = True
        return HANG
    return ""


def disarm(state: HeartbeatState) -> None:
    state.armed = False
    state.hung = False
