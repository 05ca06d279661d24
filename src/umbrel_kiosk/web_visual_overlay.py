"""Navigation dock and software cursor layers."""

from __future__ import annotations

from typing import Any

from umbrel_kiosk.constants import DOCK_SIZE_PRESETS
from umbrel_kiosk.cursors import cursor_glyphs, cursor_hotspots, cursor_px
from umbrel_kiosk.models import KioskConfig
from umbrel_kiosk.web_layers import apply_layer, compile_layer, remove_layer, run_page_script


DOCK_ID = "umbrel-nav-panel"
CURSOR_ID = "umbrel-sw-cursor"

_ICONS = {
    "back": '<path d="M19 12H5M12 19l-7-7 7-7"/>',
    "forward": '<path d="M5 12h14M12 5l7 7-7 7"/>',
    "home": '<path d="M3 9l9-7 9 7v11a2 2 0 0 1-2 2H5a2 2 0 0 1-2-2z"/><polyline points="9 22 9 12 15 12 15 22"/>',
    "reload": (
        '<path d="M23 4v6h-6M1 20v-6h6"/>'
        '<path d="M3.51 9a9 9 0 0 1 14.85-3.36L23 10M1 14l4.64 4.36A9 9 0 0 0 20.49 15"/>'
    ),
    "clearcache": (
        '<path d="M3 6h18"/><path d="M19 6v14c0 1-1 2-2 2H7c-1 0-2-1-2-2V6"/>'
        '<path d="M8 6V4c0-1 1-2 2-2h4c1 0 2 1 2 2v2"/>'
        '<line x1="10" y1="11" x2="10" y2="17"/><line x1="14" y1="11" x2="14" y2="17"/>'
    ),
    "settings": (
        '<circle cx="12" cy="12" r="3"/>'
        '<path d="M19.4 15a1.65 1.65 0 0 0 .33 1.82l.06.06a2 2 0 1 1-2.83 2.83l-.06-.06'
        'a1.65 1.65 0 0 0-2.82 1.18V21a2 2 0 1 1-4 0v-.09a1.65 1.65 0 0 0-2.82-1.18l-.06.06'
        'a2 2 0 1 1-2.83-2.83l.06-.06A1.65 1.65 0 0 0 3.25 14H3a2 2 0 1 1 0-4h.09'
        'a1.65 1.65 0 0 0 1.18-2.82l-.06-.06a2 2 0 1 1 2.83-2.83l.06.06A1.65 1.65 0 0 0 10 3.25V3'
        'a2 2 0 1 1 4 0v.09a1.65 1.65 0 0 0 2.82 1.18l.06-.06a2 2 0 1 1 2.83 2.83l-.06.06'
        'A1.65 1.65 0 0 0 20.75 10H21a2 2 0 1 1 0 4h-.09a1.65 1.65 0 0 0-1.51 1z"/>'
    ),
}

# (button id suffix, icon, bridge method, title); None marks a divider.
DOCK_BUTTONS: tuple[tuple[str, str, str, str] | None, ...] = (
    ("back", "back", "goBack", "Back"),
    ("forward", "forward", "goForward", "Forward"),
    None,
    ("home", "home", "goHome", "Home"),
    ("reload", "reload", "reload", "Reload"),
    ("clearcache", "clearcache", "clearCache", "Clear cache"),
    None,
    ("settings", "settings", "openSettings", "Settings"),
)


DOCK = compile_layer(
    "dock",
    node_id=DOCK_ID,
    style_id="umbrel-nav-panel-style",
    body="""
  mountStyle(params.css);
  const panel = document.createElement('div');
  panel.id = 'umbrel-nav-panel';
  if (params.hidden) panel.classList.add('hidden');
  const trigger = document.createElement('div');
  trigger.className = 'dock-trigger';
  panel.appendChild(trigger);
  const dock = document.createElement('div');
  dock.className = 'dock';
  (params.buttons || []).forEach((item) => {
    if (!item) {
      const divider = document.createElement('div');
      divider.className = 'dock-divider';
      dock.appendChild(divider);
      return;
    }
    const btn = document.createElement('button');
    btn.className = 'dock-btn' + (item.id === 'settings' ? ' settings-btn' : '');
    btn.id = 'umbrel-nav-' + item.id;
    btn.title = item.title;
    const svg = document.createElementNS('http://www.w3.org/2000/svg', 'svg');
    svg.setAttribute('viewBox', '0 0 24 24');
    svg.setAttribute('fill', 'none');
    svg.setAttribute('stroke', 'currentColor');
    svg.setAttribute('stroke-width', '2');
    svg.setAttribute('stroke-linecap', 'round');
    svg.setAttribute('stroke-linejoin', 'round');
    svg.innerHTML = item.icon;
    btn.appendChild(svg);
    btn.addEventListener('click', () => {
      const api = window.umbrelKiosk;
      if (api && typeof api[item.action] === 'function') api[item.action]();
    });
    dock.appendChild(btn);
  });
  panel.appendChild(dock);
  host.appendChild(panel);
  const onPanelTouch = () => panel.classList.add('open');
  const onDocTouch = (e) => {
    if (!panel.contains(e.target)) panel.classList.remove('open');
  };
  panel.addEventListener('touchstart', onPanelTouch, { passive: true });
  document.addEventListener('touchstart', onDocTouch, { passive: true });
  cleanup = () => document.removeEventListener('touchstart', onDocTouch);
""",
)

SOFTWARE_CURSOR = compile_layer(
    "software cursor",
    node_id=CURSOR_ID,
    style_id="umbrel-cursor-style",
    body="""
  mountStyle(params.css);
  const cursor = document.createElement('div');
  cursor.id = 'umbrel-sw-cursor';
  host.appendChild(cursor);
  const pointerSelector = 'a, button, [role="button"], [onclick], input[type="submit"], ' +
    'input[type="button"], input[type="checkbox"], input[type="radio"], select, label, summary';
  const textSelector = 'input[type="text"], input[type="password"], input[type="email"], ' +
    'input[type="search"], input[type="url"], input[type="tel"], input[type="number"], ' +
    'textarea, [contenteditable="true"]';
  let visible = false;
  let currentType = 'default';
  const show = (on) => {
    cursor.style.display = on ? 'block' : 'none';
    visible = on;
  };
  const cursorTypeFor = (el) => {
    if (!el || !el.matches) return 'default';
    const computed = window.getComputedStyle ? window.getComputedStyle(el).cursor : '';
    if (el.matches(pointerSelector) || el.closest('a, button, [role="button"]') ||
        (el.style && el.style.cursor === 'pointer') || computed === 'pointer') {
      return 'pointer';
    }
    if (el.matches(textSelector) || computed === 'text') return 'text';
    return 'default';
  };
  const onMove = (e) => {
    if (!visible) show(true);
    cursor.style.left = e.clientX + 'px';
    cursor.style.top = e.clientY + 'px';
  };
  const onOver = (e) => {
    const type = cursorTypeFor(e.target);
    if (type !== currentType) {
      cursor.className = type === 'default' ? '' : type;
      currentType = type;
    }
  };
  const onTouch = () => show(false);
  const onLeave = () => show(false);
  const onEnter = () => show(true);
  document.addEventListener('mousemove', onMove, { passive: true, capture: true });
  document.addEventListener('mouseover', onOver, { passive: true, capture: true });
  document.addEventListener('touchstart', onTouch, { passive: true });
  document.addEventListener('mouseleave', onLeave);
  document.addEventListener('mouseenter', onEnter);
  cleanup = () => {
    document.removeEventListener('mousemove', onMove, { capture: true });
    document.removeEventListener('mouseover', onOver, { capture: true });
    document.removeEventListener('touchstart', onTouch);
    document.removeEventListener('mouseleave', onLeave);
    document.removeEventListener('mouseenter', onEnter);
  };
""",
)


def dock_css(position: str, size_name: str) -> str:
    size = DOCK_SIZE_PRESETS.get(size_name, DOCK_SIZE_PRESETS["medium"])
    is_right = "right" in position
    is_top = "top" in position
    is_center = "center" in position

    horizontal = "right: 0;" if is_right else "left: 0;"
    if is_top:
        vertical = "top: 24px;"
    elif is_center:
        vertical = "top: 50%; transform: translateY(-50%);"
    else:
        vertical = "bottom: 24px;"
    align_items = "flex-start" if is_top else "center" if is_center else "flex-end"
    flex_dir = "row" if is_right else "row-reverse"
    trigger_radius = "3px 0 0 3px" if is_right else "0 3px 3px 0"
    dock_radius = "12px 0 0 12px" if is_right else "0 12px 12px 0"
    dock_border = "border-right: none;" if is_right else "border-left: none;"
    dock_shadow = "-2px 0 20px" if is_right else "2px 0 20px"
    dock_offset = "100%" if is_right else "-100%"
    hover_x = "-3px" if is_right else "3px"

    return f"""
#umbrel-nav-panel {{
  position: fixed;
  {horizontal}
  {vertical}
  z-index: 999998;
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
  display: flex;
  align-items: {align_items};
  flex-direction: {flex_dir};
}}
#umbrel-nav-panel.hidden {{ display: none; }}
#umbrel-nav-panel .dock-trigger {{
  width: 6px;
  height: {size["trigger"]}px;
  background: linear-gradient(180deg, transparent 0%, rgba(255,255,255,0.15) 30%,
    rgba(255,255,255,0.15) 70%, transparent 100%);
  border-radius: {trigger_radius};
  cursor: pointer;
  transition: all 0.3s ease;
}}
#umbrel-nav-panel:hover .dock-trigger,
#umbrel-nav-panel.open .dock-trigger {{ width: 2px; opacity: 0.3; }}
#umbrel-nav-panel .dock {{
  display: flex;
  flex-direction: column;
  gap: {size["gap"]}px;
  padding: {size["pad"]};
  background: rgba(25, 25, 30, 0.8);
  backdrop-filter: blur(20px) saturate(180%);
  -webkit-backdrop-filter: blur(20px) saturate(180%);
  border-radius: {dock_radius};
  border: 1px solid rgba(255, 255, 255, 0.08);
  {dock_border}
  box-shadow: {dock_shadow} rgba(0, 0, 0, 0.25);
  transform: translateX({dock_offset}) scale(0.95);
  opacity: 0;
  transition: transform 0.35s cubic-bezier(0.34, 1.56, 0.64, 1), opacity 0.25s ease;
}}
#umbrel-nav-panel:hover .dock,
#umbrel-nav-panel.open .dock {{ transform: translateX(0) scale(1); opacity: 1; }}
#umbrel-nav-panel .dock-btn {{
  width: {size["btn"]}px;
  height: {size["btn"]}px;
  border-radius: {size["radius"]}px;
  border: none;
  background: transparent;
  color: rgba(255, 255, 255, 0.7);
  cursor: pointer;
  display: flex;
  align-items: center;
  justify-content: center;
  transition: all 0.25s cubic-bezier(0.34, 1.56, 0.64, 1);
}}
#umbrel-nav-panel .dock-btn:hover {{
  background: rgba(255, 255, 255, 0.15);
  color: #fff;
  transform: scale(1.15) translateX({hover_x});
}}
#umbrel-nav-panel .dock-btn:active {{ transform: scale(0.9); transition: transform 0.1s ease; }}
#umbrel-nav-panel .dock-btn svg {{ width: {size["icon"]}px; height: {size["icon"]}px; }}
#umbrel-nav-panel .dock-btn.settings-btn svg {{ transition: transform 0.4s cubic-bezier(0.34, 1.56, 0.64, 1); }}
#umbrel-nav-panel .dock-btn.settings-btn:hover svg {{ transform: rotate(90deg); }}
#umbrel-nav-panel .dock-btn.settings-btn:hover {{ background: rgba(83, 82, 237, 0.25); }}
#umbrel-nav-panel .dock-divider {{
  width: {size["btn"] - 8}px;
  height: 1px;
  background: rgba(255,255,255,0.1);
  margin: {size["gap"] + 2}px auto;
}}
"""


def dock_params(config: KioskConfig, *, hidden: bool = False) -> dict[str, Any]:
    buttons: list[dict[str, str] | None] = []
    for item in DOCK_BUTTONS:
        if item is None:
            buttons.append(None)
            continue
        button_id, icon, action, title = item
        buttons.append({"id": button_id, "icon": _ICONS[icon], "action": action, "title": title})
    return {
        "css": dock_css(config.dock_position, config.dock_size),
        "hidden": bool(hidden),
        "buttons": buttons,
    }


def cursor_css(glyphs: dict[str, str], size_px: int) -> str:
    hot = cursor_hotspots(size_px)
    return f"""
#umbrel-sw-cursor {{
  position: fixed;
  width: {size_px}px;
  height: {size_px}px;
  pointer-events: none;
  z-index: 2147483647;
  background-image: url("{glyphs["default"]}");
  background-size: contain;
  background-repeat: no-repeat;
  transform: translate(-{hot["default"]}px, -{hot["default"]}px);
  will-change: left, top;
  display: none;
}}
#umbrel-sw-cursor.pointer {{
  background-image: url("{glyphs["pointer"]}");
  transform: translate(-{hot["pointer"]}px, -{hot["default"]}px);
}}
#umbrel-sw-cursor.text {{
  background-image: url("{glyphs["text"]}");
  transform: translate(-{hot["text"]}px, -{hot["text"]}px);
}}
*, *::before, *::after {{ cursor: none !important; }}
"""


def cursor_params(config: KioskConfig) -> dict[str, Any]:
    if config.cursor_theme == "system":
        return {"remove": True}
    size_px = cursor_px(config.cursor_size)
    return {"css": cursor_css(cursor_glyphs(config.cursor_theme), size_px), "sizePx": size_px}


async def inject_dock(page: Any, config: KioskConfig, *, hidden: bool = False) -> bool:
    return await apply_layer(page, DOCK, dock_params(config, hidden=hidden))


async def set_dock_hidden(page: Any, hidden: bool) -> None:
    await run_page_script(
        page,
        "([id, hidden]) => document.getElementById(id)?.classList.toggle('hidden', hidden)",
        [DOCK_ID, bool(hidden)],
    )


async def inject_software_cursor(page: Any, config: KioskConfig) -> bool:
    """Apply the cursor layer; the "system" theme tears it down instead."""
    params = cursor_params(config)
    if params.get("remove"):
        return await remove_layer(page, SOFTWARE_CURSOR)
    return await apply_layer(page, SOFTWARE_CURSOR, params)
