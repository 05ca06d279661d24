"""Navigation policy: internal-address rewriting and the single-window rule."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from umbrel_kiosk.settings import DEFAULT_INTERNAL_HOST_PATTERN, DEFAULT_LOOPBACK_HOSTS
from umbrel_kiosk.web_common import is_web_url


WILL_NAVIGATE = "will-navigate"
DID_NAVIGATE = "did-navigate"
DID_NAVIGATE_IN_PAGE = "did-navigate-in-page"
WILL_REDIRECT = "will-redirect"
OPEN_NEW_WINDOW = "open-new-window"

ALLOW = "allow"
REWRITE = "rewrite"
DENY_NEW_WINDOW = "deny-new-window"


@dataclass(frozen=True)
class NavigationEvent:
    kind: str
    url: str


@dataclass(frozen=True)
class NavigationDecision:
    action: str
    url: str
    update_current: bool = False


class UrlPolicy:
    def __init__(
        self,
        home_url: str,
        *,
        internal_host_pattern: re.Pattern[str] | None = None,
        loopback_hosts: tuple[str, ...] = DEFAULT_LOOPBACK_HOSTS,
    ) -> None:
        self.home_url = home_url
        self.internal_host_pattern = internal_host_pattern or re.compile(DEFAULT_INTERNAL_HOST_PATTERN)
        self.loopback_hosts = tuple(h.lower() for h in loopback_hosts)

    def should_rewrite_host(self, host: str) -> bool:
        low = (host or "").lower()
        if not low:
            return False
        return bool(self.internal_host_pattern.match(low)) or low in self.loopback_hosts

    def rewrite(self, url: str) -> str:
        """Swap an internal or loopback host for the home host.

        Scheme, path, query and fragment are kept. An explicit destination
        port is kept; otherwise the home URL's explicit port (if any) is
        used. Anything that fails to parse is returned unchanged.
        """
        try:
            parsed = urlsplit(url)
            host = parsed.hostname or ""
            port = parsed.port
            home = urlsplit(self.home_url)
            home_host = home.hostname or ""
            home_port = home.port
        except ValueError:
            return url
        if parsed.scheme not in ("http", "https"):
            return url
        if not home_host or not self.should_rewrite_host(host):
            return url
        if host.lower() == home_host.lower():
            return url
        netloc = f"[{home_host}]" if ":" in home_host else home_host
        effective_port = port if port is not None else home_port
        if effective_port is not None:
            netloc = f"{netloc}:{effective_port}"
        return urlunsplit((parsed.scheme, netloc, parsed.path, parsed.query, parsed.fragment))

    def decide(self, event: NavigationEvent) -> NavigationDecision:
        if event.kind == OPEN_NEW_WINDOW:
            return NavigationDecision(DENY_NEW_WINDOW, self.rewrite(event.url))
        if event.kind in (WILL_NAVIGATE, WILL_REDIRECT):
            rewritten = self.rewrite(event.url)
            if rewritten != event.url:
                return NavigationDecision(REWRITE, rewritten)
            return NavigationDecision(ALLOW, event.url, update_current=is_web_url(event.url))
        if event.kind in (DID_NAVIGATE, DID_NAVIGATE_IN_PAGE):
            return NavigationDecision(ALLOW, event.url, update_current=is_web_url(event.url))
        raise ValueError(f"Unsupported navigation event kind: {event.kind}")
