"""Software cursor glyphs (dark / light) as data URIs."""

from __future__ import annotations

import base64

from umbrel_kiosk.constants import CURSOR_SIZE_PX


_ARROW_PATH = (
    "M74.3188 38.6418L74.1536 179.927C74.1519 181.331 75.2644 182.481 76.6672 182.541"
    "C84.4433 182.872 108.472 184.577 123.598 193.178C134.387 199.313 135.353 206.18 146.709 201.171"
    "C158.065 196.161 153.06 191.076 155.804 178.972C159.647 162.019 174.161 143.323 179.036 137.397"
    "C179.923 136.32 179.818 134.736 178.786 133.796L74.3188 38.6418Z"
)

_HAND_PATH = (
    "M96 40C96 31 103 24 112 24C121 24 128 31 128 40V112L136 104C136 96 143 90 151 90"
    "C159 90 166 96 166 104V112C166 104 173 98 181 98C189 98 196 104 196 112V122"
    "C196 114 203 108 211 108C219 108 226 114 226 122V170C226 205 200 232 165 232H140"
    "C118 232 100 222 88 204L48 146C43 139 45 129 52 124C59 119 69 120 75 127L96 150V40Z"
)

_IBEAM_PATH = (
    "M96 32H160V52H140V204H160V224H96V204H116V52H96V32Z"
)

GLYPH_PATHS = {
    "default": _ARROW_PATH,
    "pointer": _HAND_PATH,
    "text": _IBEAM_PATH,
}

THEME_COLORS = {
    "dark": ("#1a1a1a", "#ffffff"),
    "light": ("#ffffff", "#1a1a1a"),
}


def glyph_svg(theme: str, glyph: str) -> str:
    fill, stroke = THEME_COLORS.get(theme, THEME_COLORS["dark"])
    path = GLYPH_PATHS[glyph]
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" width="256" height="256" viewBox="0 0 257 257" fill="none">'
        f'<path d="{path}" fill="{fill}" stroke="{stroke}" stroke-width="8" stroke-linejoin="round"/>'
        "</svg>"
    )


def glyph_data_uri(theme: str, glyph: str) -> str:
    raw = glyph_svg(theme, glyph).encode("utf-8")
    return "data:image/svg+xml;base64," + base64.b64encode(raw).decode("ascii")


def cursor_glyphs(theme: str) -> dict[str, str]:
    return {name: glyph_data_uri(theme, name) for name in GLYPH_PATHS}


def cursor_px(size: str) -> int:
    return CURSOR_SIZE_PX.get(size, CURSOR_SIZE_PX["medium"])


def cursor_hotspots(size_px: int) -> dict[str, int]:
    return {
        "default": round(size_px * 0.125),
        "pointer": round(size_px * 0.3125),
        "text": round(size_px * 0.5),
    }
