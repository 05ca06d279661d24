"""Shared constants for the kiosk runtime and its configuration schema."""

DEFAULT_URL = "http://umbrel.local"

CHROME_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Persisted settings record and the values each field accepts.
DEFAULT_CONFIG = {
    "cursorTheme": "dark",
    "cursorSize": "medium",
    "dockPosition": "bottom-right",
    "dockSize": "medium",
    "homeUrl": DEFAULT_URL,
}

CONFIG_CHOICES = {
    "cursorTheme": ("dark", "light", "system"),
    "cursorSize": ("small", "medium", "large", "xlarge"),
    "dockPosition": (
        "bottom-right",
        "bottom-left",
        "top-right",
        "top-left",
        "center-right",
        "center-left",
    ),
    "dockSize": ("small", "medium", "large"),
}

CURSOR_KEYS = frozenset({"cursorTheme", "cursorSize"})
DOCK_KEYS = frozenset({"dockPosition", "dockSize"})

CURSOR_SIZE_PX = {
    "small": 24,
    "medium": 32,
    "large": 48,
    "xlarge": 64,
}

DOCK_SIZE_PRESETS = {
    "small": {"btn": 28, "icon": 14, "gap": 1, "pad": "6px 4px", "radius": 8, "trigger": 60},
    "medium": {"btn": 36, "icon": 18, "gap": 2, "pad": "8px 6px", "radius": 10, "trigger": 80},
    "large": {"btn": 48, "icon": 24, "gap": 4, "pad": "12px 8px", "radius": 12, "trigger": 100},
}

# Chromium net error names that mean "the network is not there" rather than
# "the server answered badly". Values are the Chromium error codes.
NETWORK_ERROR_CODES = {
    "net::ERR_INTERNET_DISCONNECTED": -106,
    "net::ERR_NAME_NOT_RESOLVED": -105,
    "net::ERR_CONNECTION_REFUSED": -102,
    "net::ERR_CONNECTION_RESET": -101,
    "net::ERR_CONNECTION_TIMED_OUT": -118,
    "net::ERR_TIMED_OUT": -7,
}

# Superseded or deliberately cancelled navigations; never a user-facing failure.
IGNORED_ERROR_CODES = {
    "net::ERR_ABORTED": -3,
}

# Response headers dropped from document responses.
STRIPPED_RESPONSE_HEADERS = (
    "content-security-policy",
    "x-content-security-policy",
    "x-frame-options",
)

CHROMIUM_FLAGS = (
    "--ozone-platform-hint=auto",
    "--enable-features=WaylandWindowDecorations",
    "--ignore-gpu-blocklist",
    "--enable-gpu-rasterization",
    "--disable-gpu-cursor",
    "--no-sandbox",
    "--disable-gpu-sandbox",
    "--no-first-run",
    "--no-default-browser-check",
    "--noerrdialogs",
    "--disable-infobars",
    "--disable-session-crashed-bubble",
    "--disable-translate",
    "--disable-web-security",
    "--allow-running-insecure-content",
    # Heartbeats must keep flowing while the window is occluded.
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
)

KIOSK_CHROMIUM_FLAGS = (
    "--kiosk",
    "--start-fullscreen",
)

# Keyboard shortcuts as normalized by the page bridge ("Ctrl+Shift+I" style).
BLOCKED_SHORTCUTS = (
    "Alt+F4",
    "Ctrl+W",
    "Ctrl+Shift+I",
    "Ctrl+Shift+J",
    "Ctrl+Shift+C",
    "F12",
    "F11",
    "Escape",
)

RELOAD_SHORTCUTS = (
    "Ctrl+R",
    "F5",
)

SERVICE_MENU_SHORTCUT = "Ctrl+Alt+U"

WINDOW_TITLE_HINT = "Umbrel"
