import json
import unittest

from umbrel_kiosk.constants import BLOCKED_SHORTCUTS, DEFAULT_CONFIG, RELOAD_SHORTCUTS, SERVICE_MENU_SHORTCUT
from umbrel_kiosk.web_bridge import (
    BINDING_NAME,
    bridge_init_script,
    bridge_seed,
    push_config,
)


PUBLIC_METHODS = (
    "retry",
    "reload",
    "navigate",
    "hideServiceMenu",
    "goBack",
    "goForward",
    "goHome",
    "toggleNavPanel",
    "openSettings",
    "closeSettings",
    "getConfig",
    "setConfig",
    "resetConfig",
    "clearCache",
)


class _FakePage:
    def __init__(self) -> None:
        self.calls = []

    def is_closed(self) -> bool:
        return False

    async def evaluate(self, script, arg=None):
        self.calls.append((script, arg))
        return None


class BridgeSeedTests(unittest.TestCase):
    def test_seed_carries_config_choices_and_shortcuts(self) -> None:
        seed = bridge_seed(dict(DEFAULT_CONFIG, cursorTheme="light"), dev_mode=False, heartbeat_ms=1000)
        self.assertEqual(seed["config"]["cursorTheme"], "light")
        self.assertEqual(seed["defaults"], DEFAULT_CONFIG)
        self.assertIn("system", seed["choices"]["cursorTheme"])
        self.assertEqual(seed["serviceMenuShortcut"], SERVICE_MENU_SHORTCUT)
        self.assertEqual(seed["reloadShortcuts"], list(RELOAD_SHORTCUTS))
        self.assertEqual(seed["blockedShortcuts"], list(BLOCKED_SHORTCUTS))
        self.assertFalse(seed["devMode"])
        self.assertEqual(seed["heartbeatMs"], 1000)

    def test_dev_seed_disables_guards(self) -> None:
        self.assertTrue(bridge_seed(DEFAULT_CONFIG, dev_mode=True, heartbeat_ms=500)["devMode"])


class InitScriptTests(unittest.TestCase):
    def setUp(self) -> None:
        self.seed = bridge_seed(DEFAULT_CONFIG, dev_mode=False, heartbeat_ms=1000)
        self.script = bridge_init_script(self.seed)

    def test_seed_is_embedded_as_json_literal(self) -> None:
        self.assertNotIn("__SEED_JSON__", self.script)
        self.assertIn(json.dumps(self.seed, ensure_ascii=True), self.script)

    def test_every_public_method_is_defined(self) -> None:
        for method in PUBLIC_METHODS:
            self.assertIn(f"    {method}: ", self.script, method)

    def test_bridge_is_frozen_and_top_frame_only(self) -> None:
        self.assertIn("Object.freeze(api)", self.script)
        self.assertIn("if (window.top !== window || window.umbrelKiosk) return;", self.script)
        self.assertIn(f"window.{BINDING_NAME}(", self.script)

    def test_new_windows_are_redirected_into_the_page(self) -> None:
        self.assertIn("window.open = function (url)", self.script)
        self.assertIn("send('openWindow', { url: absolute });", self.script)
        self.assertIn("closest('a[href][target]')", self.script)

    def test_hostile_config_values_stay_inside_string_literals(self) -> None:
        hostile = dict(DEFAULT_CONFIG, homeUrl="http://x/\u2028</script><script>alert(1)</script>")
        script = bridge_init_script(bridge_seed(hostile, dev_mode=False, heartbeat_ms=1000))
        self.assertNotIn("\u2028", script)
        self.assertIn("\\u2028", script)


class PushConfigTests(unittest.IsolatedAsyncioTestCase):
    async def test_push_config_passes_config_as_argument(self) -> None:
        page = _FakePage()
        await push_config(page, {"cursorTheme": "light"})
        script, arg = page.calls[0]
        self.assertIn("__umbrelKioskApplyConfig", script)
        self.assertEqual(arg, {"cursorTheme": "light"})


if __name__ == "__main__":
    unittest.main()
