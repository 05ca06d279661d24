"""Declarative in-page layers and the one adapter that applies them.

A layer is a DOM node (plus an optional <style>) identified by fixed ids.
Its build body is compiled into a script once, at import time; per-call
values travel as the structured ``evaluate`` argument, so nothing from the
page, the configuration or the network is ever spliced into script text.

Every compiled script first runs the previous instance's cleanup hook and
removes the previous nodes, which makes applying a layer idempotent.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

from umbrel_kiosk.storage import log_warn
from umbrel_kiosk.web_common import page_is_closed


# A hung renderer never answers evaluate; give up instead of piling up calls.
EVALUATE_TIMEOUT_SECONDS = 10.0


_APPLY_TEMPLATE = """
(params) => {
  const layerName = __NAME_JSON__;
  const ids = __IDS_JSON__;
  const styleId = __STYLE_ID_JSON__;
  const registry = (window.__umbrelLayerCleanup = window.__umbrelLayerCleanup || {});
  const previous = registry[layerName];
  if (previous) {
    try { previous(); } catch (err) { /* stale page state */ }
    delete registry[layerName];
  }
  ids.forEach((id) => document.getElementById(id)?.remove());
  if (!params || params.remove) return false;
  const host = document.body || document.documentElement;
  if (!host) return false;
  const mountStyle = (css) => {
    if (!styleId) return null;
    const style = document.createElement('style');
    style.id = styleId;
    style.textContent = String(css || '');
    (document.head || document.documentElement).appendChild(style);
    return style;
  };
  let cleanup = null;
  __BODY__
  if (cleanup) registry[layerName] = cleanup;
  return true;
}
"""


@dataclass(frozen=True)
class Layer:
    name: str
    node_id: str
    style_id: str
    script: str

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(i for i in (self.node_id, self.style_id) if i)


def compile_layer(name: str, *, node_id: str, style_id: str = "", body: str) -> Layer:
    ids = [i for i in (node_id, style_id) if i]
    script = (
        _APPLY_TEMPLATE.replace("__NAME_JSON__", json.dumps(name))
        .replace("__IDS_JSON__", json.dumps(ids))
        .replace("__STYLE_ID_JSON__", json.dumps(style_id))
        .replace("__BODY__", body)
    )
    return Layer(name=name, node_id=node_id, style_id=style_id, script=script)


async def apply_layer(page: Any, layer: Layer, params: dict[str, Any]) -> bool:
    if page_is_closed(page):
        return False
    try:
        await asyncio.wait_for(page.evaluate(layer.script, params), EVALUATE_TIMEOUT_SECONDS)
    except Exception as exc:
        log_warn(f"Failed to inject {layer.name}", {"error": str(exc)})
        return False
    return True


async def remove_layer(page: Any, layer: Layer) -> bool:
    if page_is_closed(page):
        return False
    try:
        await asyncio.wait_for(page.evaluate(layer.script, {"remove": True}), EVALUATE_TIMEOUT_SECONDS)
    except Exception:
        return False
    return True


async def run_page_script(page: Any, script: str, arg: Any = None) -> Any:
    """Best-effort evaluate; returns None when the page is gone or the script throws."""
    if page_is_closed(page):
        return None
    try:
        return await asyncio.wait_for(page.evaluate(script, arg), EVALUATE_TIMEOUT_SECONDS)
    except Exception:
        return None
