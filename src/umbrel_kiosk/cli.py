"""CLI entrypoint for the kiosk browser: ``umbrel-kiosk [URL] [--insecure] [--dev]``."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from umbrel_kiosk.config_store import ConfigStore
from umbrel_kiosk.settings import load_runtime_settings
from umbrel_kiosk.storage import log_info, log_warn, system_dir
from umbrel_kiosk.web_common import is_valid_url, is_web_url, playwright_available
from umbrel_kiosk.web_control_agent import ControlAgent
from umbrel_kiosk.web_controller import KioskController
from umbrel_kiosk.web_session import (
    clear_instance_record,
    request_instance_action,
    running_instance,
    write_instance_record,
)


URL_FILENAME = ".url"


@dataclass(frozen=True)
class KioskArgs:
    url: str
    insecure: bool
    dev: bool
    browser_args: tuple[str, ...]


def main(argv: list[str] | None = None) -> None:
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    if not playwright_available():
        raise SystemExit("Playwright is not installed. Run: pip install playwright && playwright install chromium")

    existing = running_instance()
    if existing:
        port = int(existing.get("control_port", 0) or 0)
        log_warn("Another instance is already running", {"pid": existing.get("pid"), "port": port})
        request_instance_action(port, "focus")
        return

    settings = load_runtime_settings()
    store = ConfigStore()
    target_url = resolve_target_url(args.url, store)
    controller = KioskController(
        target_url=target_url,
        settings=settings,
        store=store,
        dev_mode=args.dev,
        insecure=args.insecure,
        extra_browser_args=args.browser_args,
    )
    asyncio.run(_serve(controller))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="umbrel-kiosk",
        description="Fullscreen kiosk browser for a self-hosted dashboard.",
    )
    parser.add_argument("target", nargs="?", default="", help="http(s) URL to display")
    parser.add_argument("--url", default="", help="http(s) URL to display (same as the positional form)")
    parser.add_argument("--insecure", action="store_true", help="Accept invalid TLS certificates")
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Developer mode: window frame, devtools, no close/focus suppression",
    )
    return parser


def parse_cli_args(argv: list[str]) -> KioskArgs:
    """Parse kiosk arguments; unknown ``--flags`` are forwarded to Chromium."""
    parser = _build_parser()
    args, unknown = parser.parse_known_args(argv)

    url = ""
    if args.url:
        url = args.url.strip()
    elif args.target and is_web_url(args.target):
        url = args.target.strip()
    elif args.target:
        log_warn("Ignoring argument", {"arg": args.target})
    if url and not is_valid_url(url):
        raise SystemExit(f"Invalid URL: {url}")

    browser_args = []
    for item in unknown:
        if item.startswith("--"):
            browser_args.append(item)
        elif is_web_url(item) and not url:
            url = item
        else:
            log_warn("Ignoring argument", {"arg": item})
    return KioskArgs(url=url, insecure=args.insecure, dev=args.dev, browser_args=tuple(browser_args))


def resolve_target_url(cli_url: str, store: ConfigStore, *, url_file: Path | None = None) -> str:
    """Command line first, then the provisioned URL file, then the configured home URL."""
    if cli_url:
        return cli_url
    path = url_file or (system_dir() / URL_FILENAME)
    try:
        provisioned = path.read_text(encoding="utf-8").strip()
    except OSError:
        provisioned = ""
    if provisioned and is_valid_url(provisioned):
        return provisioned
    if provisioned:
        log_warn("Ignoring invalid URL file", {"path": str(path), "url": provisioned})
    return store.record().home_url


async def _serve(controller: KioskController) -> None:
    loop = asyncio.get_running_loop()
    pid = os.getpid()
    agent = ControlAgent(controller, loop, pid=pid)
    controller.control_port = agent.start()
    write_instance_record(pid=pid, control_port=controller.control_port)
    try:
        await controller.run()
    finally:
        agent.stop()
        clear_instance_record(pid)
        log_info("Kiosk stopped", {"pid": pid})


if __name__ == "__main__":
    main()
