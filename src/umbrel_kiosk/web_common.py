"""Shared helpers for page-facing kiosk modules."""

from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import Any
from urllib.parse import urlencode, urlparse


STATIC_DIR = Path(__file__).resolve().parent / "static"


def is_valid_url(text: str) -> bool:
    try:
        parsed = urlparse(text)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_web_url(text: str) -> bool:
    low = str(text or "").strip().lower()
    return low.startswith("http://") or low.startswith("https://")


def playwright_available() -> bool:
    return importlib.util.find_spec("playwright.async_api") is not None


def page_is_closed(page: Any | None) -> bool:
    if page is None:
        return True
    checker = getattr(page, "is_closed", None)
    if callable(checker):
        try:
            return bool(checker())
        except Exception:
            return True
    return False


def is_page_closed_error(exc: BaseException) -> bool:
    msg = str(exc or "").lower()
    return (
        "target page" in msg and "closed" in msg
    ) or "context or browser has been closed" in msg or "page closed" in msg


def static_page_url(name: str, **query: str) -> str:
    url = (STATIC_DIR / name).as_uri()
    if query:
        url += "?" + urlencode(query)
    return url
