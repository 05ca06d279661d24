import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from umbrel_kiosk.cli import main, parse_cli_args, resolve_target_url
from umbrel_kiosk.config_store import ConfigStore


class ParseCliArgsTests(unittest.TestCase):
    def test_positional_url(self) -> None:
        args = parse_cli_args(["http://umbrel.local:8080"])
        self.assertEqual(args.url, "http://umbrel.local:8080")
        self.assertFalse(args.insecure)
        self.assertFalse(args.dev)

    def test_url_flag_and_modes(self) -> None:
        args = parse_cli_args(["--url", "https://umbrel.local", "--insecure", "--dev"])
        self.assertEqual(args.url, "https://umbrel.local")
        self.assertTrue(args.insecure)
        self.assertTrue(args.dev)

    def test_unknown_flags_are_forwarded_to_browser(self) -> None:
        args = parse_cli_args(["--force-device-scale-factor=2", "http://umbrel.local"])
        self.assertEqual(args.url, "http://umbrel.local")
        self.assertEqual(args.browser_args, ("--force-device-scale-factor=2",))

    def test_non_url_positional_is_ignored(self) -> None:
        with patch("umbrel_kiosk.cli.log_warn") as warn_mock:
            args = parse_cli_args(["umbrel.local"])
        self.assertEqual(args.url, "")
        warn_mock.assert_called_once()

    def test_invalid_url_exits(self) -> None:
        with self.assertRaises(SystemExit):
            parse_cli_args(["--url", "ftp://umbrel.local"])


class ResolveTargetUrlTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory(dir=".")
        self.tmp = Path(self._tmp.name)
        self._env = patch.dict("os.environ", {"UMBREL_KIOSK_STATE_DIR": str(self.tmp / "state")})
        self._env.start()
        self.store = ConfigStore(self.tmp / "config.json")

    def tearDown(self) -> None:
        self._env.stop()
        self._tmp.cleanup()

    def test_command_line_wins(self) -> None:
        url_file = self.tmp / ".url"
        url_file.write_text("http://provisioned.local\n", encoding="utf-8")
        self.assertEqual(
            resolve_target_url("http://cli.local", self.store, url_file=url_file),
            "http://cli.local",
        )

    def test_url_file_before_config(self) -> None:
        url_file = self.tmp / ".url"
        url_file.write_text("  http://provisioned.local:3000\n", encoding="utf-8")
        self.assertEqual(resolve_target_url("", self.store, url_file=url_file), "http://provisioned.local:3000")

    def test_invalid_url_file_falls_back_to_home_url(self) -> None:
        url_file = self.tmp / ".url"
        url_file.write_text("not a url", encoding="utf-8")
        self.store.set("homeUrl", "http://home.local")
        self.assertEqual(resolve_target_url("", self.store, url_file=url_file), "http://home.local")

    def test_default_when_nothing_configured(self) -> None:
        self.assertEqual(
            resolve_target_url("", self.store, url_file=self.tmp / "missing"),
            "http://umbrel.local",
        )


class MainTests(unittest.TestCase):
    def test_second_instance_focuses_first(self) -> None:
        with patch("umbrel_kiosk.cli.playwright_available", return_value=True), patch(
            "umbrel_kiosk.cli.running_instance", return_value={"pid": 10, "control_port": 9555}
        ), patch("umbrel_kiosk.cli.request_instance_action") as action_mock, patch(
            "umbrel_kiosk.cli.log_warn"
        ), patch("umbrel_kiosk.cli.KioskController") as controller_cls:
            main(["http://umbrel.local"])
        action_mock.assert_called_once_with(9555, "focus")
        controller_cls.assert_not_called()

    def test_missing_playwright_exits(self) -> None:
        with patch("umbrel_kiosk.cli.playwright_available", return_value=False):
            with self.assertRaises(SystemExit):
                main([])


if __name__ == "__main__":
    unittest.main()
