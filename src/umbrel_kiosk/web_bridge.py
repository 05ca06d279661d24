"""Page bridge: the ``window.umbrelKiosk`` object and the page-side guards.

The bridge is installed as a context init script, so it exists in every
top-level document before page scripts run. Calls travel to the controller
through one exposed binding; getConfig/setConfig answer synchronously from
a snapshot the controller keeps current.
"""

from __future__ import annotations

import json
from typing import Any

from umbrel_kiosk.constants import (
    BLOCKED_SHORTCUTS,
    CONFIG_CHOICES,
    DEFAULT_CONFIG,
    RELOAD_SHORTCUTS,
    SERVICE_MENU_SHORTCUT,
)
from umbrel_kiosk.web_layers import run_page_script


BINDING_NAME = "__umbrelKioskSend"

# Page -> controller messages.
RETRY = "retry"
RELOAD = "reload"
NAVIGATE = "navigate"
HIDE_SERVICE_MENU = "hideServiceMenu"
GO_BACK = "goBack"
GO_FORWARD = "goForward"
GO_HOME = "goHome"
TOGGLE_NAV_PANEL = "toggleNavPanel"
OPEN_SETTINGS = "openSettings"
CLOSE_SETTINGS = "closeSettings"
GET_CONFIG = "getConfig"
SET_CONFIG = "setConfig"
RESET_CONFIG = "resetConfig"
CLEAR_CACHE = "clearCache"
# Page-side guards, not part of the public bridge object.
OPEN_WINDOW = "openWindow"
SHORTCUT = "shortcut"
TOGGLE_SERVICE_MENU = "toggleServiceMenu"
HEARTBEAT = "heartbeat"
BLUR = "blur"

_INIT_TEMPLATE = """
(() => {
  if (window.top !== window || window.umbrelKiosk) return;
  const seed = __SEED_JSON__;
  const send = (action, payload) => {
    try {
      return Promise.resolve(window.__umbrelKioskSend(action, payload || {})).catch(() => null);
    } catch (err) {
      return Promise.resolve(null);
    }
  };
  const isWeb = (url) => typeof url === 'string' && /^https?:\\/\\//i.test(url.trim());
  const copy = (obj) => Object.assign({}, obj || {});
  let snapshot = copy(seed.config);
  Object.defineProperty(window, '__umbrelKioskApplyConfig', {
    value: (config) => { if (config && typeof config === 'object') snapshot = copy(config); },
    configurable: false,
    writable: false,
  });
  const accepts = (key, value) => {
    if (key === 'homeUrl') return isWeb(value);
    const choices = seed.choices[key];
    return Array.isArray(choices) && choices.indexOf(value) !== -1;
  };
  const api = {
    retry: () => { send('retry'); },
    reload: () => { send('reload'); },
    navigate: (url) => { if (isWeb(url)) send('navigate', { url: url.trim() }); },
    hideServiceMenu: () => { send('hideServiceMenu'); },
    goBack: () => { send('goBack'); },
    goForward: () => { send('goForward'); },
    goHome: () => { send('goHome'); },
    toggleNavPanel: () => { send('toggleNavPanel'); },
    openSettings: () => { send('openSettings'); },
    closeSettings: () => { send('closeSettings'); },
    getConfig: () => copy(snapshot),
    setConfig: (key, value) => {
      if (!accepts(key, value)) return false;
      snapshot[key] = value;
      send('setConfig', { key: key, value: value });
      return true;
    },
    resetConfig: () => {
      snapshot = copy(seed.defaults);
      send('resetConfig');
      return true;
    },
    clearCache: () => { send('clearCache'); },
  };
  Object.defineProperty(window, 'umbrelKiosk', {
    value: Object.freeze(api),
    configurable: false,
    writable: false,
  });
  send('getConfig').then((config) => window.__umbrelKioskApplyConfig(config));

  const openInPlace = (url) => {
    if (!url) return;
    let absolute = String(url);
    try { absolute = new URL(absolute, location.href).href; } catch (err) { /* keep as given */ }
    send('openWindow', { url: absolute });
  };
  window.open = function (url) {
    openInPlace(url);
    return null;
  };
  document.addEventListener('click', (e) => {
    const anchor = e.target && e.target.closest ? e.target.closest('a[href][target]') : null;
    if (!anchor) return;
    const target = (anchor.getAttribute('target') || '').toLowerCase();
    if (!target || target === '_self' || target === '_top' || target === '_parent') return;
    e.preventDefault();
    openInPlace(anchor.href);
  }, true);

  const comboOf = (e) => {
    const parts = [];
    if (e.ctrlKey || e.metaKey) parts.push('Ctrl');
    if (e.altKey) parts.push('Alt');
    if (e.shiftKey) parts.push('Shift');
    let key = e.key || '';
    if (e.code && e.code.startsWith('Key')) key = e.code.slice(3);
    else if (e.code && e.code.startsWith('Digit')) key = e.code.slice(5);
    else if (key.length === 1) key = key.toUpperCase();
    parts.push(key);
    return parts.join('+');
  };
  const swallow = (e) => {
    e.preventDefault();
    e.stopImmediatePropagation();
  };
  window.addEventListener('keydown', (e) => {
    const combo = comboOf(e);
    if (combo === seed.serviceMenuShortcut) {
      swallow(e);
      if (!e.repeat) send('toggleServiceMenu');
      return;
    }
    if (seed.devMode) return;
    if (seed.reloadShortcuts.indexOf(combo) !== -1) {
      swallow(e);
      if (!e.repeat) send('shortcut', { combo: combo, reload: true });
      return;
    }
    if (seed.blockedShortcuts.indexOf(combo) !== -1) {
      swallow(e);
      if (!e.repeat) send('shortcut', { combo: combo, reload: false });
    }
  }, true);

  if (!seed.devMode) {
    window.addEventListener('blur', () => {
      setTimeout(() => { if (!document.hasFocus()) send('blur'); }, 0);
    });
  }
  setInterval(() => send('heartbeat'), seed.heartbeatMs);
  send('heartbeat');
})();
"""


def bridge_seed(config: dict[str, Any], *, dev_mode: bool, heartbeat_ms: int) -> dict[str, Any]:
    return {
        "config": dict(config),
        "defaults": dict(DEFAULT_CONFIG),
        "choices": {key: list(values) for key, values in CONFIG_CHOICES.items()},
        "devMode": bool(dev_mode),
        "heartbeatMs": int(heartbeat_ms),
        "serviceMenuShortcut": SERVICE_MENU_SHORTCUT,
        "reloadShortcuts": list(RELOAD_SHORTCUTS),
        "blockedShortcuts": list(BLOCKED_SHORTCUTS),
    }


def bridge_init_script(seed: dict[str, Any]) -> str:
    # Init scripts take no argument, so the seed is embedded as a JSON literal.
    return _INIT_TEMPLATE.replace("__SEED_JSON__", json.dumps(seed, ensure_ascii=True))


async def push_config(page: Any, config: dict[str, Any]) -> None:
    await run_page_script(
        page,
        "(config) => window.__umbrelKioskApplyConfig && window.__umbrelKioskApplyConfig(config)",
        dict(config),
    )
