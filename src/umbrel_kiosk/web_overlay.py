"""Full-screen status overlays (loading, no connection, load error, hang) and toasts."""

from __future__ import annotations

from typing import Any

from umbrel_kiosk.web_layers import apply_layer, compile_layer, remove_layer


OVERLAY_ID = "umbrel-kiosk-overlay"

_OVERLAY_CSS = """
#umbrel-kiosk-overlay {
  position: fixed;
  inset: 0;
  display: flex;
  flex-direction: column;
  align-items: center;
  justify-content: center;
  z-index: 999999;
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
  color: white;
}
#umbrel-kiosk-overlay .icon { font-size: 64px; margin-bottom: 24px; }
#umbrel-kiosk-overlay h1 { font-size: 32px; margin: 0 0 16px 0; font-weight: 500; }
#umbrel-kiosk-overlay p {
  font-size: 18px;
  color: #888;
  margin: 0 0 32px 0;
  max-width: 500px;
  text-align: center;
}
#umbrel-kiosk-overlay button {
  background: #5352ed;
  color: white;
  border: none;
  padding: 16px 48px;
  font-size: 18px;
  border-radius: 8px;
  cursor: pointer;
  transition: background 0.2s;
}
#umbrel-kiosk-overlay button:hover { background: #3d3cba; }
#umbrel-kiosk-overlay .spinner {
  width: 48px;
  height: 48px;
  border: 4px solid rgba(255,255,255,0.2);
  border-top-color: white;
  border-radius: 50%;
  animation: umbrel-spin 1s linear infinite;
  margin-bottom: 24px;
}
@keyframes umbrel-spin { to { transform: rotate(360deg); } }
"""

STATUS_OVERLAY = compile_layer(
    "status overlay",
    node_id=OVERLAY_ID,
    style_id="umbrel-kiosk-overlay-style",
    body="""
  mountStyle(params.css);
  const overlay = document.createElement('div');
  overlay.id = 'umbrel-kiosk-overlay';
  overlay.style.background = params.background || 'rgba(0, 0, 0, 0.95)';
  if (params.spinner) {
    const spinner = document.createElement('div');
    spinner.className = 'spinner';
    overlay.appendChild(spinner);
  }
  if (params.icon) {
    const icon = document.createElement('div');
    icon.className = 'icon';
    icon.textContent = params.icon;
    overlay.appendChild(icon);
  }
  if (params.title) {
    const title = document.createElement('h1');
    title.textContent = params.title;
    overlay.appendChild(title);
  }
  if (params.message) {
    const message = document.createElement('p');
    message.textContent = params.message;
    overlay.appendChild(message);
  }
  if (params.retry) {
    const retry = document.createElement('button');
    retry.textContent = params.retryLabel || 'Retry';
    retry.addEventListener('click', () => window.umbrelKiosk?.retry());
    overlay.appendChild(retry);
  }
  host.appendChild(overlay);
""",
)

TOAST = compile_layer(
    "toast",
    node_id="umbrel-toast",
    body="""
  const toast = document.createElement('div');
  toast.id = 'umbrel-toast';
  toast.style.cssText = 'position:fixed;top:20px;left:50%;transform:translateX(-50%);' +
    'color:white;padding:12px 24px;border-radius:8px;z-index:999999;font-family:sans-serif;' +
    'box-shadow:0 4px 12px rgba(0,0,0,0.3);';
  toast.style.background = params.color || '#4CAF50';
  toast.textContent = params.text || '';
  host.appendChild(toast);
  const timer = setTimeout(() => toast.remove(), Number(params.durationMs) || 2000);
  cleanup = () => clearTimeout(timer);
""",
)


def network_error_params() -> dict[str, Any]:
    return {
        "css": _OVERLAY_CSS,
        "icon": "\U0001F4E1",
        "title": "No connection",
        "message": "Check the network connection. Retrying automatically.",
        "retry": True,
    }


def load_error_params(description: str) -> dict[str, Any]:
    return {
        "css": _OVERLAY_CSS,
        "icon": "⚠️",
        "title": "Page failed to load",
        "message": description or "The page could not be loaded.",
        "retry": True,
    }


def unresponsive_params() -> dict[str, Any]:
    return {
        "css": _OVERLAY_CSS,
        "background": "rgba(0, 0, 0, 0.9)",
        "spinner": True,
        "message": "The page is not responding, please wait...",
        "retry": False,
    }


async def show_status_overlay(page: Any, params: dict[str, Any]) -> bool:
    return await apply_layer(page, STATUS_OVERLAY, params)


async def hide_status_overlay(page: Any) -> bool:
    return await remove_layer(page, STATUS_OVERLAY)


async def show_toast(page: Any, text: str, *, color: str = "#4CAF50", duration_ms: int = 2000) -> bool:
    return await apply_layer(page, TOAST, {"text": text, "color": color, "durationMs": duration_ms})
