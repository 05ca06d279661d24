"""Kiosk controller: one browser window, one session, one event loop.

Browser events (navigation requests, commits, load failures, crashes,
page closes) and page bridge calls are translated into overlay state
machine events; the resulting actions are run from a dispatch table.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import time
import weakref
from typing import Any, Awaitable, Callable
from urllib.parse import urljoin

from umbrel_kiosk import overlay_state, web_bridge
from umbrel_kiosk.config_store import ConfigStore
from umbrel_kiosk.constants import (
    CHROME_USER_AGENT,
    CHROMIUM_FLAGS,
    CURSOR_KEYS,
    DOCK_KEYS,
    KIOSK_CHROMIUM_FLAGS,
    STRIPPED_RESPONSE_HEADERS,
)
from umbrel_kiosk.models import validate_config_value
from umbrel_kiosk.overlay_state import classify_load_failure
from umbrel_kiosk.settings import RuntimeSettings
from umbrel_kiosk.storage import log_error, log_info, log_warn, state_dir
from umbrel_kiosk.url_policy import (
    DID_NAVIGATE,
    DID_NAVIGATE_IN_PAGE,
    OPEN_NEW_WINDOW,
    REWRITE,
    WILL_NAVIGATE,
    WILL_REDIRECT,
    NavigationEvent,
    UrlPolicy,
)
from umbrel_kiosk.web_common import (
    is_page_closed_error,
    is_valid_url,
    is_web_url,
    page_is_closed,
    static_page_url,
)
from umbrel_kiosk.web_overlay import (
    hide_status_overlay,
    load_error_params,
    network_error_params,
    show_status_overlay,
    show_toast,
    unresponsive_params,
)
from umbrel_kiosk.web_panels import (
    close_settings_panel,
    hide_service_menu,
    show_service_menu,
    show_settings_panel,
)
from umbrel_kiosk.web_session import SERVICE_MENU, SETTINGS_PANEL, KioskSession
from umbrel_kiosk.web_visual_overlay import inject_dock, inject_software_cursor, set_dock_hidden
from umbrel_kiosk.web_watchdog import (
    HANG,
    RESPONSIVE,
    HeartbeatConfig,
    HeartbeatState,
    disarm,
    evaluate_hang,
    record_heartbeat,
    refresh_heartbeat,
    reset_heartbeat,
)
from umbrel_kiosk import window_backend


RELAUNCH_DELAY_SECONDS = 2.0
POPUP_GRACE_SECONDS = 2.0
CACHE_CLEAR_RELOAD_SECONDS = 1.0
NAVIGATION_TIMEOUT_MS = 30000
PROBE_TIMEOUT_MS = 4000


class KioskController:
    def __init__(
        self,
        *,
        target_url: str,
        settings: RuntimeSettings,
        store: ConfigStore,
        dev_mode: bool = False,
        insecure: bool = False,
        extra_browser_args: tuple[str, ...] = (),
    ) -> None:
        self.session = KioskSession(
            target_url=target_url,
            current_url=target_url,
            dev_mode=dev_mode,
            insecure=insecure,
        )
        self.settings = settings
        self.store = store
        self.policy = UrlPolicy(
            target_url,
            internal_host_pattern=settings.internal_host_pattern,
            loopback_hosts=settings.loopback_hosts,
        )
        self.extra_browser_args = tuple(extra_browser_args)
        self.context: Any = None
        self.page: Any = None
        self.control_port = 0

        self._heartbeat = HeartbeatState()
        self._heartbeat_cfg = HeartbeatConfig(unresponsive_seconds=settings.unresponsive_seconds)
        self._dispatch_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._probe_task: asyncio.Task[Any] | None = None
        self._settle_task: asyncio.Task[Any] | None = None
        self._crash_reload_task: asyncio.Task[Any] | None = None
        self._watchdog_task: asyncio.Task[Any] | None = None
        self._stop_event: asyncio.Event | None = None
        self._context_closed: asyncio.Event | None = None
        self._retired_pages: weakref.WeakSet[Any] = weakref.WeakSet()
        self._opening_page = False
        self._refocusing = False
        self._stopping = False

        self._actions: dict[str, Callable[[], Awaitable[None]]] = {
            overlay_state.HIDE_OVERLAY: self._hide_overlay,
            overlay_state.INJECT_LAYERS: self._schedule_layers,
            overlay_state.SHOW_NETWORK_ERROR: self._render_fault_overlay,
            overlay_state.SHOW_LOAD_ERROR: self._render_fault_overlay,
            overlay_state.SHOW_UNRESPONSIVE: self._render_fault_overlay,
            overlay_state.SHOW_CRASH_PAGE: self._show_crash_page,
            overlay_state.START_PROBE: self._start_probe,
            overlay_state.STOP_PROBE: self._stop_probe,
            overlay_state.RELOAD: self._reload_current,
            overlay_state.SCHEDULE_CRASH_RELOAD: self._schedule_crash_reload,
        }
        self._bridge_handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            web_bridge.RETRY: self._bridge_retry,
            web_bridge.RELOAD: self._bridge_reload,
            web_bridge.NAVIGATE: self._bridge_navigate,
            web_bridge.HIDE_SERVICE_MENU: self._bridge_hide_service_menu,
            web_bridge.GO_BACK: self._bridge_go_back,
            web_bridge.GO_FORWARD: self._bridge_go_forward,
            web_bridge.GO_HOME: self._bridge_go_home,
            web_bridge.TOGGLE_NAV_PANEL: self._bridge_toggle_dock,
            web_bridge.OPEN_SETTINGS: self._bridge_open_settings,
            web_bridge.CLOSE_SETTINGS: self._bridge_close_settings,
            web_bridge.SET_CONFIG: self._bridge_set_config,
            web_bridge.RESET_CONFIG: self._bridge_reset_config,
            web_bridge.CLEAR_CACHE: self._bridge_clear_cache,
            web_bridge.OPEN_WINDOW: self._bridge_open_window,
            web_bridge.SHORTCUT: self._bridge_shortcut,
            web_bridge.TOGGLE_SERVICE_MENU: self._bridge_toggle_service_menu,
            web_bridge.BLUR: self._bridge_blur,
        }

    # ------------------------------------------------------------------
    # lifecycle

    async def run(self, *, on_ready: Callable[[], None] | None = None) -> None:
        from playwright.async_api import async_playwright

        loop = asyncio.get_running_loop()
        loop.set_exception_handler(_log_loop_exception)
        self._stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_stop)

        log_info(
            "Application starting",
            {
                "url": self.session.target_url,
                "insecure": self.session.insecure,
                "devMode": self.session.dev_mode,
                "pid": os.getpid(),
            },
        )
        async with async_playwright() as pw:
            while not self._stop_event.is_set():
                try:
                    await self._launch(pw)
                except Exception as exc:
                    log_error("Browser launch failed", {"error": str(exc)})
                    await self._teardown()
                    if self.session.dev_mode:
                        raise SystemExit(f"Browser launch failed: {exc}") from exc
                    await self._sleep_unless_stopped(RELAUNCH_DELAY_SECONDS)
                    continue
                if on_ready is not None:
                    on_ready()
                    on_ready = None
                await self._wait_for_close_or_stop()
                await self._teardown()
                if self._stop_event.is_set():
                    break
                if self.session.dev_mode:
                    log_info("Browser closed (dev mode), exiting")
                    break
                log_warn("Browser closed unexpectedly, relaunching")
                await self._sleep_unless_stopped(RELAUNCH_DELAY_SECONDS)
        log_info("Application quitting")

    def request_stop(self) -> None:
        self._stopping = True
        if self._stop_event is not None:
            self._stop_event.set()

    async def _launch(self, pw: Any) -> None:
        args = list(CHROMIUM_FLAGS)
        if not self.session.dev_mode:
            args.extend(KIOSK_CHROMIUM_FLAGS)
        args.extend(a for a in self.extra_browser_args if a not in args)
        launch_kwargs: dict[str, Any] = {
            "user_data_dir": str(state_dir() / "profile"),
            "headless": False,
            "args": args,
            "ignore_default_args": ["--enable-automation"],
            "ignore_https_errors": self.session.insecure,
            "user_agent": CHROME_USER_AGENT,
            "no_viewport": True,
        }
        if self.settings.browser_channel:
            launch_kwargs["channel"] = self.settings.browser_channel
        if self.session.insecure:
            log_warn("Running in insecure mode - accepting self-signed certificates")

        context = await pw.chromium.launch_persistent_context(**launch_kwargs)
        self.context = context
        self._context_closed = asyncio.Event()
        context.on("close", lambda _ctx: self._context_closed.set())
        context.on("page", self._on_context_page)

        seed = web_bridge.bridge_seed(
            self.store.get_all(),
            dev_mode=self.session.dev_mode,
            heartbeat_ms=self.settings.heartbeat_interval_ms,
        )
        await context.expose_binding(web_bridge.BINDING_NAME, self._on_bridge_call)
        await context.add_init_script(script=web_bridge.bridge_init_script(seed))
        await context.route("**/*", self._on_route)

        pages = list(context.pages)
        if pages:
            page = pages[0]
            for extra in pages[1:]:
                with contextlib.suppress(Exception):
                    await extra.close()
        else:
            page = await self._new_page()
        self._attach_page(page)
        self.session.state = overlay_state.LOADING

        await self._goto(static_page_url("loading.html"))
        if not self.session.dev_mode:
            await asyncio.to_thread(window_backend.lock_window)
        self._watchdog_task = self._spawn(self._watchdog_loop())
        await asyncio.sleep(self.settings.initial_load_delay_ms / 1000.0)
        log_info("Loading target URL", {"url": self.session.target_url})
        self._spawn(self._load(self.session.target_url))

    async def _wait_for_close_or_stop(self) -> None:
        waiters = [asyncio.ensure_future(self._stop_event.wait())]
        if self._context_closed is not None:
            waiters.append(asyncio.ensure_future(self._context_closed.wait()))
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def _teardown(self) -> None:
        self._stopping = True
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._probe_task = None
        self._settle_task = None
        self._crash_reload_task = None
        self._watchdog_task = None
        context, self.context, self.page = self.context, None, None
        if context is not None:
            try:
                await context.close()
            except Exception as exc:
                log_warn("Browser context close failed", {"error": str(exc)})
        window_backend.forget_window()
        self._stopping = bool(self._stop_event and self._stop_event.is_set())

    async def _sleep_unless_stopped(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)

    # ------------------------------------------------------------------
    # tasks

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_error("Background task failed", {"error": str(exc), "type": type(exc).__name__})

    # ------------------------------------------------------------------
    # pages

    async def _new_page(self) -> Any:
        self._opening_page = True
        try:
            return await self.context.new_page()
        finally:
            self._opening_page = False

    def _attach_page(self, page: Any) -> None:
        self.page = page
        page.on("domcontentloaded", self._on_dom_ready)
        page.on("framenavigated", self._on_frame_navigated)
        page.on("requestfailed", self._on_request_failed)
        page.on("crash", self._on_crash)
        page.on("close", self._on_page_close)

    async def _replace_page(self, reason: str) -> Any:
        old = self.page
        if old is not None:
            self._retired_pages.add(old)
        page = await self._new_page()
        self._attach_page(page)
        if old is not None and not page_is_closed(old):
            try:
                await old.close()
            except Exception as exc:
                log_warn("Old page close failed", {"reason": reason, "error": str(exc)})
        with contextlib.suppress(Exception):
            await page.bring_to_front()
        return page

    async def _goto(self, url: str) -> bool:
        page = self.page
        if page_is_closed(page):
            return False
        try:
            await page.goto(url, wait_until="commit", timeout=NAVIGATION_TIMEOUT_MS)
        except Exception as exc:
            # failures surface through requestfailed; this only records the attempt
            if not is_page_closed_error(exc):
                log_warn("Navigation did not complete", {"url": url, "error": str(exc)})
            return False
        return True

    async def _load(self, url: str) -> bool:
        refresh_heartbeat(self._heartbeat, now_ts=time.monotonic())
        return await self._goto(url)

    async def _reload_current(self) -> None:
        log_info("Reloading page", {"url": self.session.current_url})
        self._spawn(self._load(self.session.current_url))

    # ------------------------------------------------------------------
    # state machine

    async def dispatch(self, event: str) -> bool:
        async with self._dispatch_lock:
            previous_state = self.session.state
            previous_panel = self.session.panel
            transition = self.session.apply(event)
            if transition is None:
                return False
            log_info(
                "Overlay transition",
                {"event": event, "from": previous_state, "to": transition.target},
            )
            if previous_panel and not self.session.panel:
                await self._close_panel_layer(previous_panel)
            for action in transition.actions:
                await self._actions[action]()
            return True

    async def _hide_overlay(self) -> None:
        await hide_status_overlay(self.page)

    async def _render_fault_overlay(self) -> None:
        state = self.session.state
        if state == overlay_state.NETWORK_ERROR:
            params = network_error_params()
        elif state == overlay_state.LOAD_ERROR:
            params = load_error_params(self.session.last_error)
        elif state == overlay_state.UNRESPONSIVE:
            params = unresponsive_params()
        else:
            return
        if await show_status_overlay(self.page, params):
            return
        if state == overlay_state.UNRESPONSIVE:
            return
        log_warn("Overlay injection failed, loading static error page", {"state": state})
        await self._goto(static_page_url("error.html", message=str(params.get("message", ""))))

    async def _show_crash_page(self) -> None:
        if self.context is None:
            return
        try:
            await self._replace_page("crash")
        except Exception as exc:
            log_error("Could not replace crashed page", {"error": str(exc)})
            return
        await self._goto(static_page_url("crash.html"))

    async def _schedule_crash_reload(self) -> None:
        if self._crash_reload_task is not None:
            self._crash_reload_task.cancel()
        self._crash_reload_task = self._spawn(self._crash_reload_after_delay())

    async def _crash_reload_after_delay(self) -> None:
        await asyncio.sleep(self.settings.crash_reload_seconds)
        self._crash_reload_task = None
        log_info("Reloading after crash", {"url": self.session.current_url})
        await self._load(self.session.current_url)

    async def _start_probe(self) -> None:
        if self._probe_task is not None and not self._probe_task.done():
            return
        log_info("Starting network check")
        self._probe_task = self._spawn(self._probe_loop())

    async def _stop_probe(self) -> None:
        task, self._probe_task = self._probe_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.probe_interval_seconds)
            if await self.probe_once(self.session.current_url):
                log_info("Network restored")
                # the probe task finishes itself; STOP_PROBE must not cancel it mid-dispatch
                self._probe_task = None
                await self.dispatch(overlay_state.PROBE_OK)
                return

    async def probe_once(self, url: str) -> bool:
        """Any HTTP answer counts as online, whatever the status."""
        if self.context is None or not is_web_url(url):
            return False
        try:
            response = await self.context.request.head(
                url,
                timeout=PROBE_TIMEOUT_MS,
                max_redirects=0,
                ignore_https_errors=self.session.insecure,
            )
        except Exception:
            return False
        with contextlib.suppress(Exception):
            await response.dispose()
        return True

    async def _schedule_layers(self) -> None:
        if self._settle_task is not None:
            self._settle_task.cancel()
        self._settle_task = self._spawn(self._inject_layers_after_settle())

    async def _inject_layers_after_settle(self) -> None:
        await asyncio.sleep(self.settings.settle_ms / 1000.0)
        self._settle_task = None
        await self.inject_layers()

    async def inject_layers(self) -> None:
        page = self.page
        config = self.store.record()
        await web_bridge.push_config(page, self.store.get_all())
        await inject_dock(page, config, hidden=not self.session.dock_visible)
        await inject_software_cursor(page, config)

    async def _close_panel_layer(self, panel: str) -> None:
        if panel == SERVICE_MENU:
            await hide_service_menu(self.page)
        elif panel == SETTINGS_PANEL:
            await close_settings_panel(self.page)

    # ------------------------------------------------------------------
    # browser events

    async def _on_route(self, route: Any, request: Any) -> None:
        if not request.is_navigation_request():
            await route.fallback()
            return
        try:
            frame = request.frame
            frame_page = frame.page
            is_top = frame.parent_frame is None
        except Exception:
            await route.fallback()
            return

        if frame_page in self._retired_pages:
            await route.abort("aborted")
            return
        if is_top and frame_page is not self.page:
            await route.abort("aborted")
            await self._absorb_popup_request(frame_page, request.url)
            return

        if is_top:
            kind = WILL_REDIRECT if request.redirected_from is not None else WILL_NAVIGATE
            if await self._divert_navigation(route, kind, request.url):
                return

        try:
            response = await route.fetch(max_redirects=0)
        except Exception as exc:
            if is_page_closed_error(exc):
                return
            # let the browser load it itself so the failure is reported as a load error
            await route.continue_()
            return

        location = response.headers.get("location", "")
        if is_top and 300 <= response.status < 400 and location:
            if await self._divert_navigation(route, WILL_REDIRECT, urljoin(request.url, location)):
                return
        headers = {k: v for k, v in response.headers.items() if k.lower() not in STRIPPED_RESPONSE_HEADERS}
        await route.fulfill(response=response, headers=headers)

    async def _divert_navigation(self, route: Any, kind: str, url: str) -> bool:
        decision = self.policy.decide(NavigationEvent(kind, url))
        if decision.action == REWRITE:
            log_info("Rewriting internal URL", {"kind": kind, "from": url, "to": decision.url})
            await route.abort("aborted")
            self._spawn(self._load(decision.url))
            return True
        if decision.update_current:
            self.session.record_location(url)
        return False

    async def _absorb_popup_request(self, popup: Any, url: str) -> None:
        decision = self.policy.decide(NavigationEvent(OPEN_NEW_WINDOW, url))
        log_info("Intercepted new window", {"url": url, "loading": decision.url})
        with contextlib.suppress(Exception):
            await popup.close()
        if is_web_url(decision.url):
            self._spawn(self._load(decision.url))

    def _on_context_page(self, page: Any) -> None:
        if self._opening_page or page is self.page:
            return
        self._spawn(self._close_stray_page(page))

    async def _close_stray_page(self, page: Any) -> None:
        await asyncio.sleep(POPUP_GRACE_SECONDS)
        if page_is_closed(page):
            return
        url = page.url
        with contextlib.suppress(Exception):
            await page.close()
        if is_web_url(url):
            await self._bridge_open_window({"url": url})

    def _on_dom_ready(self, page: Any) -> None:
        if page is not self.page:
            return
        url = page.url
        decision = self.policy.decide(NavigationEvent(DID_NAVIGATE, url))
        log_info("Navigated to", {"url": url})
        if decision.update_current:
            self.session.record_location(url)
            self.session.panel = ""
            self._spawn(self.dispatch(overlay_state.COMMIT))
            return
        if url.startswith("chrome-error://") and self.session.state in (
            overlay_state.NETWORK_ERROR,
            overlay_state.LOAD_ERROR,
        ):
            # the engine's error document replaced the overlay we already showed
            self._spawn(self._render_fault_overlay())

    def _on_frame_navigated(self, frame: Any) -> None:
        page = self.page
        if page is None or frame is not page.main_frame:
            return
        url = frame.url
        decision = self.policy.decide(NavigationEvent(DID_NAVIGATE_IN_PAGE, url))
        if decision.update_current:
            self.session.record_location(url)
        if url.startswith("chrome-error://"):
            disarm(self._heartbeat)
        else:
            reset_heartbeat(self._heartbeat, now_ts=time.monotonic())

    def _on_request_failed(self, request: Any) -> None:
        page = self.page
        try:
            if page is None or not request.is_navigation_request() or request.frame is not page.main_frame:
                return
        except Exception:
            return
        failure = request.failure
        error_text = str(failure.get("errorText", "")) if isinstance(failure, dict) else str(failure or "")
        event = classify_load_failure(error_text)
        if not event:
            return
        log_error("Page load failed", {"error": error_text, "url": request.url})
        self.session.last_error = error_text
        self._spawn(self.dispatch(event))

    def _on_crash(self, page: Any) -> None:
        if page is not self.page:
            return
        log_error("Renderer crashed", {"url": self.session.current_url})
        self._spawn(self.dispatch(overlay_state.CRASH))

    def _on_page_close(self, page: Any) -> None:
        if page is not self.page or self._stopping:
            return
        if self.session.dev_mode:
            log_info("Window closed (dev mode)")
            self.request_stop()
            return
        log_warn("Close attempt blocked")
        self._spawn(self._recover_closed_page())

    async def _recover_closed_page(self) -> None:
        if self.context is None:
            return
        try:
            await self._replace_page("close")
        except Exception as exc:
            # the whole context is gone; the supervisor relaunches it
            log_warn("Could not reopen window", {"error": str(exc)})
            return
        await self._load(self.session.current_url)

    async def _watchdog_loop(self) -> None:
        interval = max(0.2, self.settings.heartbeat_interval_ms / 1000.0)
        while True:
            await asyncio.sleep(interval)
            verdict = evaluate_hang(self._heartbeat, cfg=self._heartbeat_cfg, now_ts=time.monotonic())
            if verdict == HANG:
                log_warn("Renderer became unresponsive")
                await self.dispatch(overlay_state.HANG)

    # ------------------------------------------------------------------
    # page bridge

    async def _on_bridge_call(self, source: Any, action: str, payload: Any = None) -> Any:
        page = source.get("page") if isinstance(source, dict) else None
        if page is not None and page is not self.page:
            return None
        data = payload if isinstance(payload, dict) else {}
        if action == web_bridge.GET_CONFIG:
            return self.store.get_all()
        if action == web_bridge.HEARTBEAT:
            if record_heartbeat(self._heartbeat, now_ts=time.monotonic()) == RESPONSIVE:
                log_info("Renderer became responsive again")
                self._spawn(self.dispatch(overlay_state.RESPONSIVE))
            return True
        handler = self._bridge_handlers.get(action)
        if handler is None:
            log_warn("Unknown bridge action", {"action": action})
            return False
        self._spawn(handler(data))
        return True

    async def _bridge_retry(self, _data: dict[str, Any]) -> None:
        log_info("Retry requested from overlay")
        await self._reload_once()

    async def _bridge_reload(self, _data: dict[str, Any]) -> None:
        log_info("Reload requested")
        if self.session.close_panel(SERVICE_MENU):
            await hide_service_menu(self.page)
        await self._reload_once()

    async def _reload_once(self) -> None:
        if not await self.dispatch(overlay_state.RETRY):
            await self._reload_current()

    async def _bridge_navigate(self, data: dict[str, Any]) -> None:
        url = str(data.get("url", "")).strip()
        if not is_valid_url(url):
            log_warn("Navigate rejected", {"url": url})
            return
        log_info("Navigate requested from service menu", {"url": url})
        if self.session.close_panel(SERVICE_MENU):
            await hide_service_menu(self.page)
        self.session.navigate_to(url)
        await self._load(url)

    async def _bridge_hide_service_menu(self, _data: dict[str, Any]) -> None:
        self.session.close_panel(SERVICE_MENU)
        await hide_service_menu(self.page)

    async def _bridge_toggle_service_menu(self, _data: dict[str, Any]) -> None:
        log_info("Service menu toggled")
        if self.session.panel == SERVICE_MENU:
            await self._bridge_hide_service_menu({})
            return
        if self.session.close_panel(SETTINGS_PANEL):
            await close_settings_panel(self.page)
        self.session.open_panel(SERVICE_MENU)
        await show_service_menu(self.page, self.session.current_url)

    async def _navigation_history(self) -> tuple[int, list[dict[str, Any]]]:
        cdp = await self.context.new_cdp_session(self.page)
        try:
            history = await cdp.send("Page.getNavigationHistory")
        finally:
            with contextlib.suppress(Exception):
                await cdp.detach()
        return int(history.get("currentIndex", 0)), list(history.get("entries", []))

    async def _bridge_go_back(self, _data: dict[str, Any]) -> None:
        log_info("Go back requested")
        index, entries = await self._navigation_history()
        if index <= 0 or index - 1 >= len(entries):
            return
        if not is_web_url(str(entries[index - 1].get("url", ""))):
            log_info("Blocked going back to local page")
            return
        refresh_heartbeat(self._heartbeat, now_ts=time.monotonic())
        with contextlib.suppress(Exception):
            await self.page.go_back(wait_until="commit", timeout=NAVIGATION_TIMEOUT_MS)

    async def _bridge_go_forward(self, _data: dict[str, Any]) -> None:
        log_info("Go forward requested")
        index, entries = await self._navigation_history()
        if index + 1 >= len(entries):
            return
        refresh_heartbeat(self._heartbeat, now_ts=time.monotonic())
        with contextlib.suppress(Exception):
            await self.page.go_forward(wait_until="commit", timeout=NAVIGATION_TIMEOUT_MS)

    async def _bridge_go_home(self, _data: dict[str, Any]) -> None:
        log_info("Go home requested", {"url": self.session.target_url})
        await self._load(self.session.target_url)

    async def _bridge_toggle_dock(self, _data: dict[str, Any]) -> None:
        self.session.dock_visible = not self.session.dock_visible
        await set_dock_hidden(self.page, not self.session.dock_visible)

    async def _bridge_open_settings(self, _data: dict[str, Any]) -> None:
        log_info("Opening settings panel")
        if self.session.close_panel(SERVICE_MENU):
            await hide_service_menu(self.page)
        self.session.open_panel(SETTINGS_PANEL)
        await show_settings_panel(self.page, self.store.record())

    async def _bridge_close_settings(self, _data: dict[str, Any]) -> None:
        log_info("Closing settings panel")
        self.session.close_panel(SETTINGS_PANEL)
        await close_settings_panel(self.page)

    async def _bridge_set_config(self, data: dict[str, Any]) -> None:
        key = str(data.get("key", ""))
        try:
            await self.set_config(key, data.get("value"))
        except ValueError as exc:
            log_warn("Config change rejected", {"key": key, "error": str(exc)})
            await web_bridge.push_config(self.page, self.store.get_all())

    async def set_config(self, key: str, value: Any) -> bool:
        value = validate_config_value(key, value)
        log_info("Setting config", {"key": key, "value": value})
        saved = self.store.set(key, value)
        config = self.store.record()
        if key in CURSOR_KEYS:
            await inject_software_cursor(self.page, config)
        elif key in DOCK_KEYS:
            await inject_dock(self.page, config, hidden=not self.session.dock_visible)
        await web_bridge.push_config(self.page, self.store.get_all())
        return saved

    async def _bridge_reset_config(self, _data: dict[str, Any]) -> None:
        await self.reset_config()

    async def reset_config(self) -> bool:
        log_info("Resetting config to defaults")
        saved = self.store.reset()
        config = self.store.record()
        await inject_software_cursor(self.page, config)
        await inject_dock(self.page, config, hidden=not self.session.dock_visible)
        if self.session.panel == SETTINGS_PANEL:
            await show_settings_panel(self.page, config)
        await web_bridge.push_config(self.page, self.store.get_all())
        return saved

    async def _bridge_clear_cache(self, _data: dict[str, Any]) -> None:
        log_info("Clearing browser cache...")
        try:
            cdp = await self.context.new_cdp_session(self.page)
            try:
                # HTTP cache only; cookies and logins survive
                await cdp.send("Network.clearBrowserCache")
            finally:
                with contextlib.suppress(Exception):
                    await cdp.detach()
        except Exception as exc:
            log_error("Failed to clear cache", {"error": str(exc)})
            return
        log_info("Cache cleared successfully")
        await show_toast(self.page, "✓ Cache cleared. Reloading...")
        await asyncio.sleep(CACHE_CLEAR_RELOAD_SECONDS)
        await self._reload_current()

    async def _bridge_open_window(self, data: dict[str, Any]) -> None:
        url = str(data.get("url", ""))
        decision = self.policy.decide(NavigationEvent(OPEN_NEW_WINDOW, url))
        log_info("Intercepted window.open/target=_blank", {"url": url, "loading": decision.url})
        if not is_web_url(decision.url):
            return
        await self._load(decision.url)

    async def _bridge_shortcut(self, data: dict[str, Any]) -> None:
        combo = str(data.get("combo", ""))
        if data.get("reload"):
            log_info(f"{combo} - reloading page")
            await self._reload_once()
            return
        log_warn(f"{combo} blocked")

    async def _bridge_blur(self, _data: dict[str, Any]) -> None:
        if self.session.dev_mode or self._refocusing:
            return
        self._refocusing = True
        try:
            await self.focus()
        finally:
            self._refocusing = False

    async def focus(self) -> None:
        page = self.page
        if not page_is_closed(page):
            with contextlib.suppress(Exception):
                await page.bring_to_front()
        await asyncio.to_thread(window_backend.focus_window)

    # ------------------------------------------------------------------
    # control agent

    async def state_payload(self) -> dict[str, Any]:
        payload = self.session.to_dict()
        payload["page_url"] = "" if page_is_closed(self.page) else str(self.page.url)
        payload["config"] = self.store.get_all()
        payload["config_path"] = str(self.store.path)
        payload["pid"] = os.getpid()
        payload["control_port"] = self.control_port
        return payload

    async def perform_action(self, action: str, params: dict[str, Any]) -> dict[str, Any]:
        if action == "focus":
            await self.focus()
        elif action == "reload":
            await self._reload_once()
        elif action == "retry":
            await self._bridge_retry({})
        elif action == "home":
            await self._bridge_go_home({})
        elif action == "back":
            await self._bridge_go_back({})
        elif action == "forward":
            await self._bridge_go_forward({})
        elif action == "navigate":
            url = str(params.get("url", "")).strip()
            if not is_valid_url(url):
                raise ValueError("navigate requires an http(s) url")
            await self._bridge_navigate({"url": url})
        elif action == "service-menu":
            await self._bridge_toggle_service_menu({})
        elif action == "settings":
            await self._bridge_open_settings({})
        elif action == "toggle-dock":
            await self._bridge_toggle_dock({})
        elif action == "clear-cache":
            await self._bridge_clear_cache({})
        elif action == "config-get":
            pass
        elif action == "config-set":
            await self.set_config(str(params.get("key", "")), params.get("value"))
        elif action == "config-reset":
            await self.reset_config()
        else:
            raise ValueError(f"Unsupported action: {action}")
        payload = await self.state_payload()
        payload["message"] = f"{action} done"
        return payload


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    log_error(
        "Unhandled async error",
        {"message": context.get("message", ""), "error": str(exc) if exc else ""},
    )
