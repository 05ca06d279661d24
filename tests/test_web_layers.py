import asyncio
import unittest
from unittest.mock import patch

from umbrel_kiosk.web_layers import apply_layer, compile_layer, remove_layer, run_page_script
from umbrel_kiosk.web_overlay import (
    OVERLAY_ID,
    STATUS_OVERLAY,
    hide_status_overlay,
    load_error_params,
    network_error_params,
    show_status_overlay,
    show_toast,
    unresponsive_params,
)


class _FakePage:
    def __init__(self, *, closed: bool = False, error: Exception | None = None, result=None) -> None:
        self.closed = closed
        self.error = error
        self.result = result
        self.calls = []

    def is_closed(self) -> bool:
        return self.closed

    async def evaluate(self, script, arg=None):
        self.calls.append((script, arg))
        if self.error is not None:
            raise self.error
        return self.result


class _HungPage(_FakePage):
    async def evaluate(self, script, arg=None):
        self.calls.append((script, arg))
        await asyncio.sleep(10)


class CompileLayerTests(unittest.TestCase):
    def test_script_removes_previous_nodes_before_building(self) -> None:
        layer = compile_layer("demo", node_id="demo-node", style_id="demo-style", body="host.appendChild(x);")
        self.assertEqual(layer.ids, ("demo-node", "demo-style"))
        removal = layer.script.index('ids.forEach((id) => document.getElementById(id)?.remove());')
        self.assertLess(removal, layer.script.index("host.appendChild(x);"))
        self.assertIn('const ids = ["demo-node", "demo-style"];', layer.script)

    def test_layer_without_style_has_one_id(self) -> None:
        layer = compile_layer("toast", node_id="t", body="")
        self.assertEqual(layer.ids, ("t",))

    def test_status_overlay_params_never_touch_script_text(self) -> None:
        params = load_error_params("<img src=x onerror=alert(1)>")
        self.assertNotIn("onerror", STATUS_OVERLAY.script)
        self.assertEqual(params["message"], "<img src=x onerror=alert(1)>")
        self.assertIn("textContent = params.message", STATUS_OVERLAY.script)


class ApplyLayerTests(unittest.IsolatedAsyncioTestCase):
    async def test_params_travel_as_evaluate_argument(self) -> None:
        page = _FakePage()
        self.assertTrue(await show_status_overlay(page, network_error_params()))
        script, arg = page.calls[0]
        self.assertIs(script, STATUS_OVERLAY.script)
        self.assertEqual(arg["title"], "No connection")
        self.assertTrue(arg["retry"])

    async def test_remove_passes_remove_flag(self) -> None:
        page = _FakePage()
        self.assertTrue(await hide_status_overlay(page))
        self.assertEqual(page.calls[0][1], {"remove": True})

    async def test_closed_page_is_skipped(self) -> None:
        page = _FakePage(closed=True)
        self.assertFalse(await show_status_overlay(page, unresponsive_params()))
        self.assertFalse(await remove_layer(page, STATUS_OVERLAY))
        self.assertIsNone(await run_page_script(page, "() => 1"))
        self.assertEqual(page.calls, [])

    async def test_none_page_is_skipped(self) -> None:
        self.assertFalse(await apply_layer(None, STATUS_OVERLAY, {}))

    async def test_evaluate_error_returns_false(self) -> None:
        page = _FakePage(error=RuntimeError("Execution context was destroyed"))
        with patch("umbrel_kiosk.web_layers.log_warn") as warn_mock:
            self.assertFalse(await show_status_overlay(page, network_error_params()))
        warn_mock.assert_called_once()
        self.assertFalse(await remove_layer(page, STATUS_OVERLAY))
        self.assertIsNone(await run_page_script(page, "() => 1"))

    async def test_hung_renderer_times_out(self) -> None:
        page = _HungPage()
        with patch("umbrel_kiosk.web_layers.EVALUATE_TIMEOUT_SECONDS", 0.05), patch(
            "umbrel_kiosk.web_layers.log_warn"
        ):
            self.assertFalse(await show_status_overlay(page, unresponsive_params()))

    async def test_run_page_script_returns_result(self) -> None:
        page = _FakePage(result=42)
        self.assertEqual(await run_page_script(page, "(x) => x", 42), 42)

    async def test_toast_carries_text_and_color(self) -> None:
        page = _FakePage()
        await show_toast(page, "Saved", color="#f00", duration_ms=500)
        self.assertEqual(page.calls[0][1], {"text": "Saved", "color": "#f00", "durationMs": 500})

    def test_overlay_id_is_stable(self) -> None:
        self.assertEqual(STATUS_OVERLAY.node_id, OVERLAY_ID)


if __name__ == "__main__":
    unittest.main()
