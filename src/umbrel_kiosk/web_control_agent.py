"""Loopback control agent for the running kiosk.

Serves ``/health``, ``/state`` and ``/action`` on 127.0.0.1. Request threads
never touch kiosk state directly: every call is marshalled onto the
controller's event loop and awaited with a timeout.
"""

from __future__ import annotations

import asyncio
import json
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from umbrel_kiosk.storage import log_info, log_warn


AGENT_HOST = "127.0.0.1"

# Operator-facing action names accepted on POST /action.
CONTROL_ACTIONS = (
    "focus",
    "reload",
    "retry",
    "home",
    "back",
    "forward",
    "navigate",
    "service-menu",
    "settings",
    "toggle-dock",
    "clear-cache",
    "config-get",
    "config-set",
    "config-reset",
)


class _ControlHandler(BaseHTTPRequestHandler):
    server_version = "UmbrelKioskAgent/1.0"

    def _send_json(self, status_code: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/health":
            self._send_json(200, {"ok": True, "pid": self.server.pid})
            return
        if self.path == "/state":
            try:
                payload = self.server.call(self.server.controller.state_payload())
            except Exception as exc:  # pragma: no cover
                self._send_json(503, {"error": str(exc)})
                return
            self._send_json(200, payload)
            return
        self._send_json(404, {"error": "not_found"})

    def do_POST(self) -> None:  # noqa: N802
        if self.path != "/action":
            self._send_json(404, {"error": "not_found"})
            return
        length = int(self.headers.get("Content-Length", "0") or "0")
        raw = self.rfile.read(length) if length > 0 else b"{}"
        try:
            payload = json.loads(raw.decode("utf-8", errors="replace"))
        except json.JSONDecodeError:
            self._send_json(400, {"error": "invalid_json"})
            return
        if not isinstance(payload, dict):
            self._send_json(400, {"error": "invalid_payload"})
            return

        action = str(payload.pop("action", "")).strip().lower()
        if action not in CONTROL_ACTIONS:
            self._send_json(400, {"error": f"Unsupported action: {action}"})
            return
        try:
            result = self.server.call(self.server.controller.perform_action(action, payload))
        except ValueError as exc:
            self._send_json(400, {"error": str(exc)})
            return
        except FutureTimeoutError:
            self._send_json(504, {"error": f"action timed out: {action}"})
            return
        except Exception as exc:  # pragma: no cover
            self._send_json(500, {"error": str(exc)})
            return
        self._send_json(200, result)

    def log_message(self, _format: str, *_args: Any) -> None:
        return


class _ControlServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        *,
        controller: Any,
        loop: asyncio.AbstractEventLoop,
        pid: int,
        timeout_seconds: float,
    ):
        super().__init__(server_address, _ControlHandler)
        self.controller = controller
        self.loop = loop
        self.pid = pid
        self.timeout_seconds = timeout_seconds

    def call(self, coro: Any) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            raise


class ControlAgent:
    def __init__(
        self,
        controller: Any,
        loop: asyncio.AbstractEventLoop,
        *,
        pid: int,
        port: int = 0,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._server = _ControlServer(
            (AGENT_HOST, port),
            controller=controller,
            loop=loop,
            pid=pid,
            timeout_seconds=timeout_seconds,
        )
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return int(self._server.server_address[1])

    def start(self) -> int:
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="umbrel-kiosk-agent",
            daemon=True,
        )
        self._thread.start()
        log_info("Control agent listening", {"port": self.port})
        return self.port

    def stop(self) -> None:
        try:
            # shutdown() blocks until serve_forever returns, so only call it once serving
            if self._thread is not None:
                self._server.shutdown()
            self._server.server_close()
        except OSError as exc:
            log_warn("Control agent shutdown failed", {"error": str(exc)})
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
