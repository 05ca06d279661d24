import asyncio
import re
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from umbrel_kiosk import overlay_state
from umbrel_kiosk.config_store import ConfigStore
from umbrel_kiosk.settings import RuntimeSettings
from umbrel_kiosk.web_controller import KioskController
from umbrel_kiosk.web_overlay import STATUS_OVERLAY
from umbrel_kiosk.web_panels import SERVICE_MENU as SERVICE_MENU_LAYER
from umbrel_kiosk.web_session import SERVICE_MENU, SETTINGS_PANEL
from umbrel_kiosk.web_visual_overlay import SOFTWARE_CURSOR
from umbrel_kiosk.web_watchdog import HeartbeatConfig, evaluate_hang


HOME = "http://umbrel.local"


def _settings(**overrides) -> RuntimeSettings:
    values = {
        "internal_host_pattern": re.compile(r"^10\.21\.\d+\.\d+$"),
        "loopback_hosts": ("localhost", "127.0.0.1"),
        "probe_interval_seconds": 0.01,
        "crash_reload_seconds": 0.01,
        "settle_ms": 0,
        "initial_load_delay_ms": 0,
        "unresponsive_seconds": 30.0,
        "heartbeat_interval_ms": 1000,
        "browser_channel": "",
    }
    values.update(overrides)
    return RuntimeSettings(**values)


class _FakeFrame:
    def __init__(self, page, url: str = "", parent=None) -> None:
        self.page = page
        self.url = url
        self.parent_frame = parent


class _FakePage:
    def __init__(self, url: str = "about:blank") -> None:
        self.url = url
        self.closed = False
        self.gotos = []
        self.evaluations = []
        self.handlers = {}
        self.main_frame = _FakeFrame(self, url)

    def is_closed(self) -> bool:
        return self.closed

    def on(self, event, handler) -> None:
        self.handlers[event] = handler

    async def goto(self, url, wait_until=None, timeout=None):
        self.gotos.append(url)
        self.url = url
        return None

    async def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        return True

    async def bring_to_front(self) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    def layer_calls(self, layer):
        return [arg for script, arg in self.evaluations if script is layer.script]


class _FakeContext:
    def __init__(self) -> None:
        self.created = []

    async def new_page(self):
        page = _FakePage()
        self.created.append(page)
        return page


class _FakeRequest:
    def __init__(self, url: str, frame, *, navigation: bool = True, failure=None, redirected_from=None) -> None:
        self.url = url
        self.frame = frame
        self.failure = failure
        self.redirected_from = redirected_from
        self._navigation = navigation

    def is_navigation_request(self) -> bool:
        return self._navigation


class _FakeResponse:
    def __init__(self, status: int, headers: dict) -> None:
        self.status = status
        self.headers = headers


class _FakeRoute:
    def __init__(self, response=None, fetch_error: Exception | None = None) -> None:
        self.response = response
        self.fetch_error = fetch_error
        self.calls = []

    async def fallback(self):
        self.calls.append(("fallback",))

    async def abort(self, error_code=None):
        self.calls.append(("abort", error_code))

    async def continue_(self):
        self.calls.append(("continue",))

    async def fetch(self, max_redirects=None):
        self.calls.append(("fetch", max_redirects))
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.response

    async def fulfill(self, response=None, headers=None):
        self.calls.append(("fulfill", headers))


class ControllerTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        tmp = Path(self._tmp.name)
        self._patches = [
            patch.dict("os.environ", {"UMBREL_KIOSK_STATE_DIR": str(tmp / "state")}),
            patch("umbrel_kiosk.web_controller.window_backend.focus_window", return_value=True),
            patch("umbrel_kiosk.web_controller.window_backend.lock_window", return_value=True),
            patch("umbrel_kiosk.web_panels.host_addresses", return_value=[]),
        ]
        for item in self._patches:
            item.start()
        self.store = ConfigStore(tmp / "config.json")
        self.controller = KioskController(target_url=HOME, settings=_settings(), store=self.store)
        self.context = _FakeContext()
        self.page = _FakePage(HOME)
        self.controller.context = self.context
        self.controller._attach_page(self.page)

    async def asyncTearDown(self) -> None:
        for task in list(self.controller._tasks):
            task.cancel()
        if self.controller._tasks:
            await asyncio.gather(*self.controller._tasks, return_exceptions=True)
        for item in reversed(self._patches):
            item.stop()
        self._tmp.cleanup()

    async def drain(self) -> None:
        for _ in range(50):
            pending = [t for t in self.controller._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def commit(self, url: str = HOME) -> None:
        self.page.url = url
        self.controller._on_dom_ready(self.page)
        await self.drain()


class FaultRecoveryTests(ControllerTestCase):
    async def test_commit_reaches_ready_and_injects_layers(self) -> None:
        await self.commit(HOME + "/apps")
        self.assertEqual(self.controller.session.state, overlay_state.READY)
        self.assertEqual(self.controller.session.current_url, HOME + "/apps")
        self.assertTrue(self.page.layer_calls(SOFTWARE_CURSOR))

    async def test_dns_failure_shows_network_error_then_probe_reloads_once(self) -> None:
        await self.commit()
        self.page.gotos.clear()
        request = _FakeRequest(HOME, self.page.main_frame, failure={"errorText": "net::ERR_NAME_NOT_RESOLVED"})
        with patch.object(self.controller, "probe_once", return_value=True) as probe_mock:
            self.controller._on_request_failed(request)
            await self.drain()
        self.assertEqual(self.controller.session.state, overlay_state.READY)
        self.assertTrue(self.controller.session.online)
        titles = [args.get("title") for args in self.page.layer_calls(STATUS_OVERLAY)]
        self.assertIn("No connection", titles)
        probe_mock.assert_called_once_with(HOME)
        self.assertEqual(self.page.gotos, [HOME])
        self.assertIsNone(self.controller._probe_task)

    async def test_repeated_network_failures_keep_one_probe(self) -> None:
        await self.commit()
        offline = asyncio.Event()

        async def never_online(_url):
            await offline.wait()
            return False

        request = _FakeRequest(HOME, self.page.main_frame, failure="net::ERR_INTERNET_DISCONNECTED")
        with patch.object(self.controller, "probe_once", side_effect=never_online):
            self.controller._on_request_failed(request)
            await asyncio.sleep(0.05)
            first = self.controller._probe_task
            self.controller._on_request_failed(request)
            await asyncio.sleep(0.05)
            self.assertIs(self.controller._probe_task, first)
            self.assertFalse(first.done())
            await self.controller.dispatch(overlay_state.COMMIT)
        self.assertIsNone(self.controller._probe_task)
        await asyncio.sleep(0)
        self.assertTrue(first.cancelled() or first.done())

    async def test_load_failure_shows_message(self) -> None:
        await self.commit()
        request = _FakeRequest(HOME, self.page.main_frame, failure="net::ERR_CERT_AUTHORITY_INVALID")
        self.controller._on_request_failed(request)
        await self.drain()
        self.assertEqual(self.controller.session.state, overlay_state.LOAD_ERROR)
        last = self.page.layer_calls(STATUS_OVERLAY)[-1]
        self.assertEqual(last["message"], "net::ERR_CERT_AUTHORITY_INVALID")

    async def test_aborted_and_subresource_failures_are_ignored(self) -> None:
        await self.commit()
        self.controller._on_request_failed(
            _FakeRequest(HOME, self.page.main_frame, failure="net::ERR_ABORTED")
        )
        self.controller._on_request_failed(
            _FakeRequest(HOME + "/x.js", self.page.main_frame, navigation=False, failure="net::ERR_NAME_NOT_RESOLVED")
        )
        child = _FakeFrame(self.page, HOME, parent=self.page.main_frame)
        self.controller._on_request_failed(_FakeRequest(HOME, child, failure="net::ERR_NAME_NOT_RESOLVED"))
        await self.drain()
        self.assertEqual(self.controller.session.state, overlay_state.READY)

    async def test_crash_shows_crash_page_then_reloads_last_location(self) -> None:
        await self.commit(HOME + "/dashboard")
        self.controller._on_crash(self.page)
        await self.drain()
        self.assertEqual(len(self.context.created), 1)
        replacement = self.context.created[0]
        self.assertTrue(self.page.closed)
        self.assertIs(self.controller.page, replacement)
        self.assertTrue(replacement.gotos[0].endswith("/static/crash.html"))
        self.assertEqual(replacement.gotos[1], HOME + "/dashboard")
        self.assertEqual(self.controller.session.state, overlay_state.CRASHED)

    async def test_overlay_failure_falls_back_to_static_error_page(self) -> None:
        await self.commit()

        async def broken(script, arg=None):
            raise RuntimeError("Execution context was destroyed")

        self.page.evaluate = broken
        self.controller._on_request_failed(
            _FakeRequest(HOME, self.page.main_frame, failure="net::ERR_EMPTY_RESPONSE")
        )
        await self.drain()
        self.assertIn("/static/error.html?message=", self.page.gotos[-1])

    async def test_hang_and_recovery(self) -> None:
        await self.commit()
        await self.controller.dispatch(overlay_state.HANG)
        self.assertEqual(self.controller.session.overlay, "unresponsive")
        self.controller._heartbeat.hung = True
        self.assertTrue(await self.controller._on_bridge_call({"page": self.page}, "heartbeat"))
        await self.drain()
        self.assertEqual(self.controller.session.state, overlay_state.READY)

    async def test_slow_reload_after_network_error_is_not_a_hang(self) -> None:
        await self.commit()
        self.controller._on_request_failed(
            _FakeRequest(HOME, self.page.main_frame, failure="net::ERR_CONNECTION_REFUSED")
        )
        self.page.main_frame.url = "chrome-error://chromewebdata/"
        self.controller._on_frame_navigated(self.page.main_frame)
        self.assertFalse(self.controller._heartbeat.armed)

        released = asyncio.Event()

        async def slow_goto(url, wait_until=None, timeout=None):
            self.page.gotos.append(url)
            await released.wait()

        self.page.gotos.clear()
        self.page.goto = slow_goto
        with patch.object(self.controller, "probe_once", return_value=True):
            for _ in range(200):
                if self.page.gotos:
                    break
                await asyncio.sleep(0.01)
        self.assertEqual(self.page.gotos, [HOME])
        self.assertFalse(self.controller._heartbeat.armed)
        verdict = evaluate_hang(
            self.controller._heartbeat,
            cfg=HeartbeatConfig(unresponsive_seconds=0.1),
            now_ts=time.monotonic() + 60,
        )
        self.assertEqual(verdict, "")

        released.set()
        await self.drain()
        self.page.main_frame.url = HOME
        self.controller._on_frame_navigated(self.page.main_frame)
        await self.commit()
        self.assertTrue(self.controller._heartbeat.armed)
        self.assertEqual(self.controller.session.state, overlay_state.READY)

    async def test_retry_from_error_reloads_current_location(self) -> None:
        await self.commit(HOME + "/apps")
        self.controller._on_request_failed(
            _FakeRequest(HOME + "/apps", self.page.main_frame, failure="net::ERR_EMPTY_RESPONSE")
        )
        await self.drain()
        self.page.gotos.clear()
        await self.controller._on_bridge_call({"page": self.page}, "retry")
        await self.drain()
        self.assertEqual(self.page.gotos, [HOME + "/apps"])
        self.assertEqual(self.controller.session.state, overlay_state.LOADING)


class NavigationTests(ControllerTestCase):
    async def test_internal_navigation_is_rewritten(self) -> None:
        route = _FakeRoute()
        request = _FakeRequest("http://10.21.0.5:3000/app/settings", self.page.main_frame)
        await self.controller._on_route(route, request)
        await self.drain()
        self.assertEqual(route.calls, [("abort", "aborted")])
        self.assertEqual(self.page.gotos, ["http://umbrel.local:3000/app/settings"])

    async def test_redirect_to_internal_address_is_rewritten(self) -> None:
        response = _FakeResponse(302, {"location": "http://localhost:8080/login"})
        route = _FakeRoute(response)
        request = _FakeRequest(HOME + "/app", self.page.main_frame)
        await self.controller._on_route(route, request)
        await self.drain()
        self.assertEqual(route.calls, [("fetch", 0), ("abort", "aborted")])
        self.assertEqual(self.page.gotos, ["http://umbrel.local:8080/login"])

    async def test_allowed_document_has_framing_headers_stripped(self) -> None:
        response = _FakeResponse(
            200,
            {
                "content-type": "text/html",
                "content-security-policy": "frame-ancestors 'none'",
                "x-frame-options": "DENY",
            },
        )
        route = _FakeRoute(response)
        await self.controller._on_route(route, _FakeRequest(HOME + "/app", self.page.main_frame))
        self.assertEqual(route.calls[-1], ("fulfill", {"content-type": "text/html"}))
        self.assertEqual(self.controller.session.current_url, HOME + "/app")

    async def test_fetch_error_lets_browser_report_failure(self) -> None:
        route = _FakeRoute(fetch_error=RuntimeError("net::ERR_CONNECTION_REFUSED"))
        await self.controller._on_route(route, _FakeRequest(HOME, self.page.main_frame))
        self.assertEqual(route.calls[-1], ("continue",))

    async def test_subresources_fall_through(self) -> None:
        route = _FakeRoute()
        await self.controller._on_route(
            route, _FakeRequest("http://10.21.0.5/logo.png", self.page.main_frame, navigation=False)
        )
        self.assertEqual(route.calls, [("fallback",)])

    async def test_popup_navigation_loads_in_kiosk_page(self) -> None:
        popup = _FakePage()
        route = _FakeRoute()
        await self.controller._on_route(route, _FakeRequest("http://10.21.0.9:81/", popup.main_frame))
        await self.drain()
        self.assertEqual(route.calls, [("abort", "aborted")])
        self.assertTrue(popup.closed)
        self.assertEqual(self.page.gotos, ["http://umbrel.local:81/"])

    async def test_window_open_from_bridge_loads_in_place(self) -> None:
        await self.controller._on_bridge_call(
            {"page": self.page}, "openWindow", {"url": "http://10.21.0.5:3000/app/settings"}
        )
        await self.drain()
        self.assertEqual(self.page.gotos, ["http://umbrel.local:3000/app/settings"])
        self.assertEqual(self.context.created, [])

    async def test_calls_from_stale_pages_are_ignored(self) -> None:
        stale = _FakePage()
        self.assertIsNone(await self.controller._on_bridge_call({"page": stale}, "goHome"))
        await self.drain()
        self.assertEqual(self.page.gotos, [])

    async def test_close_attempt_reopens_window(self) -> None:
        await self.commit(HOME + "/apps")
        self.page.closed = True
        self.controller._on_page_close(self.page)
        await self.drain()
        replacement = self.context.created[0]
        self.assertIs(self.controller.page, replacement)
        self.assertEqual(replacement.gotos, [HOME + "/apps"])

    async def test_navigate_from_service_menu_changes_target(self) -> None:
        self.controller.session.open_panel(SERVICE_MENU)
        await self.controller._on_bridge_call({"page": self.page}, "navigate", {"url": "http://other.local:8080"})
        await self.drain()
        self.assertEqual(self.page.gotos, ["http://other.local:8080"])
        self.assertEqual(self.controller.session.target_url, "http://other.local:8080")
        self.assertEqual(self.controller.session.panel, "")
        self.assertEqual(self.page.layer_calls(SERVICE_MENU_LAYER)[-1], {"remove": True})

    async def test_reload_shortcut_reloads_and_blocked_shortcut_does_not(self) -> None:
        await self.commit(HOME + "/apps")
        self.page.gotos.clear()
        with patch("umbrel_kiosk.web_controller.log_warn") as warn_mock:
            await self.controller._on_bridge_call({"page": self.page}, "shortcut", {"combo": "Alt+F4"})
            await self.drain()
        warn_mock.assert_called_once_with("Alt+F4 blocked")
        self.assertEqual(self.page.gotos, [])
        await self.controller._on_bridge_call({"page": self.page}, "shortcut", {"combo": "F5", "reload": True})
        await self.drain()
        self.assertEqual(self.page.gotos, [HOME + "/apps"])


class PanelAndConfigTests(ControllerTestCase):
    async def test_get_config_answers_synchronously(self) -> None:
        config = await self.controller._on_bridge_call({"page": self.page}, "getConfig")
        self.assertEqual(config["cursorTheme"], "dark")

    async def test_system_cursor_removes_software_cursor(self) -> None:
        await self.controller.set_config("cursorTheme", "system")
        self.assertEqual(self.page.layer_calls(SOFTWARE_CURSOR)[-1], {"remove": True})
        self.assertEqual(self.store.get("cursorTheme"), "system")

    async def test_invalid_config_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            await self.controller.set_config("cursorTheme", "neon")
        self.assertEqual(self.store.get("cursorTheme"), "dark")

    async def test_bridge_set_config_rejection_resyncs_snapshot(self) -> None:
        await self.controller._on_bridge_call({"page": self.page}, "setConfig", {"key": "dockSize", "value": "huge"})
        await self.drain()
        pushed = [arg for script, arg in self.page.evaluations if "__umbrelKioskApplyConfig" in script]
        self.assertEqual(pushed[-1]["dockSize"], "medium")

    async def test_service_menu_and_settings_are_exclusive(self) -> None:
        await self.controller.perform_action("service-menu", {})
        self.assertEqual(self.controller.session.overlay, SERVICE_MENU)
        await self.controller.perform_action("settings", {})
        self.assertEqual(self.controller.session.overlay, SETTINGS_PANEL)
        self.assertEqual(self.page.layer_calls(SERVICE_MENU_LAYER)[-1], {"remove": True})

    async def test_fault_closes_open_panel(self) -> None:
        await self.commit()
        await self.controller.perform_action("service-menu", {})
        self.controller._on_request_failed(
            _FakeRequest(HOME, self.page.main_frame, failure="net::ERR_EMPTY_RESPONSE")
        )
        await self.drain()
        self.assertEqual(self.controller.session.overlay, "load-error")
        self.assertEqual(self.page.layer_calls(SERVICE_MENU_LAYER)[-1], {"remove": True})

    async def test_reset_config_restores_defaults(self) -> None:
        self.store.set("dockPosition", "top-left")
        payload = await self.controller.perform_action("config-reset", {})
        self.assertEqual(payload["config"]["dockPosition"], "bottom-right")
        self.assertEqual(payload["message"], "config-reset done")

    async def test_navigate_action_validates_url(self) -> None:
        with self.assertRaises(ValueError):
            await self.controller.perform_action("navigate", {"url": "javascript:alert(1)"})

    async def test_state_payload_reports_session(self) -> None:
        payload = await self.controller.state_payload()
        self.assertEqual(payload["target_url"], HOME)
        self.assertEqual(payload["overlay"], "loading")
        self.assertEqual(payload["page_url"], HOME)

    async def test_toggle_dock_hides_layer(self) -> None:
        await self.controller.perform_action("toggle-dock", {})
        self.assertFalse(self.controller.session.dock_visible)
        self.assertEqual(self.page.evaluations[-1][1][1], True)


if __name__ == "__main__":
    unittest.main()
