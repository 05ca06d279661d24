"""Fault overlay state machine: (state, event) -> target state + actions."""

from __future__ import annotations

from dataclasses import dataclass

from umbrel_kiosk.constants import IGNORED_ERROR_CODES, NETWORK_ERROR_CODES


LOADING = "loading"
READY = "ready"
NETWORK_ERROR = "network-error"
LOAD_ERROR = "load-error"
CRASHED = "crashed"
UNRESPONSIVE = "unresponsive"

FAULT_STATES = (LOADING, READY, NETWORK_ERROR, LOAD_ERROR, CRASHED, UNRESPONSIVE)

# Events fed to the machine by the controller.
COMMIT = "commit"
NETWORK_FAILURE = "network-failure"
LOAD_FAILURE = "load-failure"
CRASH = "crash"
HANG = "hang"
RESPONSIVE = "responsive"
PROBE_OK = "probe-ok"
RETRY = "retry"

# Action names resolved by the controller's dispatch table.
HIDE_OVERLAY = "hide_overlay"
INJECT_LAYERS = "inject_layers"
SHOW_NETWORK_ERROR = "show_network_error"
SHOW_LOAD_ERROR = "show_load_error"
SHOW_CRASH_PAGE = "show_crash_page"
SHOW_UNRESPONSIVE = "show_unresponsive"
START_PROBE = "start_probe"
STOP_PROBE = "stop_probe"
RELOAD = "reload"
SCHEDULE_CRASH_RELOAD = "schedule_crash_reload"

ANY = "*"


@dataclass(frozen=True)
class Transition:
    target: str
    actions: tuple[str, ...] = ()


_ERROR_ENTRY = {
    NETWORK_FAILURE: Transition(NETWORK_ERROR, (HIDE_OVERLAY, SHOW_NETWORK_ERROR, START_PROBE)),
    LOAD_FAILURE: Transition(LOAD_ERROR, (STOP_PROBE, HIDE_OVERLAY, SHOW_LOAD_ERROR)),
    CRASH: Transition(CRASHED, (STOP_PROBE, SHOW_CRASH_PAGE, SCHEDULE_CRASH_RELOAD)),
}

TRANSITIONS: dict[tuple[str, str], Transition] = {
    (ANY, COMMIT): Transition(READY, (STOP_PROBE, HIDE_OVERLAY, INJECT_LAYERS)),
    (ANY, NETWORK_FAILURE): _ERROR_ENTRY[NETWORK_FAILURE],
    (ANY, LOAD_FAILURE): _ERROR_ENTRY[LOAD_FAILURE],
    (ANY, CRASH): _ERROR_ENTRY[CRASH],
    (LOADING, HANG): Transition(UNRESPONSIVE, (HIDE_OVERLAY, SHOW_UNRESPONSIVE)),
    (READY, HANG): Transition(UNRESPONSIVE, (HIDE_OVERLAY, SHOW_UNRESPONSIVE)),
    (UNRESPONSIVE, RESPONSIVE): Transition(READY, (HIDE_OVERLAY,)),
    (NETWORK_ERROR, PROBE_OK): Transition(READY, (STOP_PROBE, HIDE_OVERLAY, RELOAD)),
    (NETWORK_ERROR, RETRY): Transition(LOADING, (HIDE_OVERLAY, RELOAD)),
    (LOAD_ERROR, RETRY): Transition(LOADING, (HIDE_OVERLAY, RELOAD)),
    (READY, RETRY): Transition(LOADING, (HIDE_OVERLAY, RELOAD)),
    (LOADING, RETRY): Transition(LOADING, (HIDE_OVERLAY, RELOAD)),
}


def next_transition(state: str, event: str) -> Transition | None:
    """Exact (state, event) match wins over the wildcard row; None means ignore."""
    if state not in FAULT_STATES:
        raise ValueError(f"Unknown overlay state: {state}")
    exact = TRANSITIONS.get((state, event))
    if exact is not None:
        return exact
    return TRANSITIONS.get((ANY, event))


def classify_load_failure(error_text: str) -> str:
    """Map a Chromium failure text to a machine event ("" for ignored failures)."""
    text = str(error_text or "").strip()
    code = text.split(" ", 1)[0]
    if code in IGNORED_ERROR_CODES:
        return ""
    if code in NETWORK_ERROR_CODES:
        return NETWORK_FAILURE
    return LOAD_FAILURE
