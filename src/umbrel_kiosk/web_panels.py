"""Settings panel and service menu layers."""

from __future__ import annotations

import socket
from typing import Any

import psutil

from umbrel_kiosk.constants import CONFIG_CHOICES
from umbrel_kiosk.models import KioskConfig
from umbrel_kiosk.web_layers import apply_layer, compile_layer, remove_layer


SETTINGS_ID = "umbrel-settings-panel"
SERVICE_MENU_ID = "umbrel-service-menu"

_SETTINGS_CSS = """
#umbrel-settings-panel {
  position: fixed;
  inset: 0;
  background: rgba(0, 0, 0, 0.8);
  backdrop-filter: blur(10px);
  -webkit-backdrop-filter: blur(10px);
  display: flex;
  align-items: center;
  justify-content: center;
  z-index: 999999;
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
}
#umbrel-settings-panel .panel {
  background: #1a1a2e;
  border-radius: 16px;
  padding: 32px;
  width: 90%;
  max-width: 480px;
  box-shadow: 0 8px 32px rgba(0, 0, 0, 0.5);
  border: 1px solid rgba(255, 255, 255, 0.1);
}
#umbrel-settings-panel h2 { margin: 0 0 24px 0; color: #fff; font-size: 24px; font-weight: 600; }
#umbrel-settings-panel .setting-group { margin-bottom: 20px; }
#umbrel-settings-panel .setting-label {
  color: #888;
  font-size: 12px;
  text-transform: uppercase;
  letter-spacing: 1px;
  margin-bottom: 8px;
}
#umbrel-settings-panel .setting-row {
  padding: 12px 16px;
  background: rgba(255, 255, 255, 0.05);
  border-radius: 8px;
  margin-bottom: 8px;
}
#umbrel-settings-panel .setting-name { color: #fff; font-size: 14px; margin-bottom: 8px; }
#umbrel-settings-panel .select-row { display: flex; gap: 8px; flex-wrap: wrap; }
#umbrel-settings-panel .select-btn {
  padding: 8px 14px;
  border: 2px solid rgba(255, 255, 255, 0.1);
  border-radius: 8px;
  background: rgba(255, 255, 255, 0.05);
  color: #aaa;
  font-size: 12px;
  cursor: pointer;
  transition: all 0.2s;
}
#umbrel-settings-panel .select-btn:hover { border-color: rgba(255, 255, 255, 0.3); color: #fff; }
#umbrel-settings-panel .select-btn.active {
  border-color: #5352ed;
  background: rgba(83, 82, 237, 0.2);
  color: #fff;
}
#umbrel-settings-panel .buttons { display: flex; gap: 12px; margin-top: 24px; }
#umbrel-settings-panel .btn {
  flex: 1;
  padding: 14px 24px;
  border: none;
  border-radius: 8px;
  font-size: 14px;
  font-weight: 500;
  cursor: pointer;
  color: #fff;
}
#umbrel-settings-panel .btn-primary { background: #5352ed; }
#umbrel-settings-panel .btn-primary:hover { background: #4342d4; }
#umbrel-settings-panel .btn-secondary { background: rgba(255, 255, 255, 0.1); }
#umbrel-settings-panel .btn-secondary:hover { background: rgba(255, 255, 255, 0.15); }
"""

_SERVICE_MENU_CSS = """
#umbrel-service-menu {
  position: fixed;
  top: 20px;
  right: 20px;
  width: 400px;
  background: rgba(30, 30, 30, 0.98);
  border: 1px solid #444;
  border-radius: 12px;
  padding: 20px;
  z-index: 999999;
  font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, monospace;
  color: white;
  box-shadow: 0 8px 32px rgba(0,0,0,0.5);
}
#umbrel-service-menu h2 {
  margin: 0 0 16px 0;
  font-size: 18px;
  color: #5352ed;
  display: flex;
  align-items: center;
  justify-content: space-between;
}
#umbrel-service-menu .close-btn {
  background: none;
  border: none;
  color: #888;
  font-size: 24px;
  cursor: pointer;
  padding: 0;
  line-height: 1;
}
#umbrel-service-menu .close-btn:hover { color: white; }
#umbrel-service-menu .info-row { margin-bottom: 12px; font-size: 13px; }
#umbrel-service-menu .info-label { color: #888; margin-bottom: 4px; }
#umbrel-service-menu .info-value {
  color: #fff;
  word-break: break-all;
  white-space: pre-line;
  background: rgba(0,0,0,0.3);
  padding: 8px;
  border-radius: 6px;
  font-family: monospace;
}
#umbrel-service-menu input {
  width: 100%;
  padding: 10px;
  border: 1px solid #444;
  border-radius: 6px;
  background: #222;
  color: white;
  font-size: 14px;
  margin-bottom: 12px;
  box-sizing: border-box;
}
#umbrel-service-menu input:focus { outline: none; border-color: #5352ed; }
#umbrel-service-menu .btn-row { display: flex; gap: 8px; }
#umbrel-service-menu button.action-btn {
  flex: 1;
  padding: 10px;
  border: none;
  border-radius: 6px;
  cursor: pointer;
  font-size: 14px;
  color: white;
}
#umbrel-service-menu .btn-primary { background: #5352ed; }
#umbrel-service-menu .btn-primary:hover { background: #3d3cba; }
#umbrel-service-menu .btn-secondary { background: #444; }
#umbrel-service-menu .btn-secondary:hover { background: #555; }
"""

# (section label, [(config key, field label)]).
SETTINGS_SECTIONS = (
    ("Cursor", (("cursorTheme", "Theme"), ("cursorSize", "Size"))),
    ("Dock", (("dockPosition", "Position"), ("dockSize", "Size"))),
)

CHOICE_LABELS = {
    "cursorTheme": {"dark": "Dark", "light": "Light", "system": "System"},
    "cursorSize": {"small": "S", "medium": "M", "large": "L", "xlarge": "XL"},
    "dockPosition": {
        "top-left": "Top left",
        "top-right": "Top right",
        "center-left": "Center left",
        "center-right": "Center right",
        "bottom-left": "Bottom left",
        "bottom-right": "Bottom right",
    },
    "dockSize": {"small": "Small", "medium": "Medium", "large": "Large"},
}


SETTINGS_PANEL = compile_layer(
    "settings panel",
    node_id=SETTINGS_ID,
    style_id="umbrel-settings-panel-style",
    body="""
  mountStyle(params.css);
  const overlay = document.createElement('div');
  overlay.id = 'umbrel-settings-panel';
  const panel = document.createElement('div');
  panel.className = 'panel';
  const heading = document.createElement('h2');
  heading.textContent = params.title || 'Settings';
  panel.appendChild(heading);
  const api = () => window.umbrelKiosk || {};
  (params.sections || []).forEach((section) => {
    const group = document.createElement('div');
    group.className = 'setting-group';
    const label = document.createElement('div');
    label.className = 'setting-label';
    label.textContent = section.label;
    group.appendChild(label);
    section.fields.forEach((field) => {
      const row = document.createElement('div');
      row.className = 'setting-row';
      const name = document.createElement('div');
      name.className = 'setting-name';
      name.textContent = field.label;
      row.appendChild(name);
      const choices = document.createElement('div');
      choices.className = 'select-row';
      choices.dataset.setting = field.key;
      field.options.forEach((option) => {
        const btn = document.createElement('button');
        btn.className = 'select-btn' + (option.value === field.value ? ' active' : '');
        btn.dataset.value = option.value;
        btn.textContent = option.label;
        btn.addEventListener('click', () => {
          const accepted = api().setConfig ? api().setConfig(field.key, option.value) : false;
          if (!accepted) return;
          choices.querySelectorAll('.select-btn').forEach((b) => b.classList.remove('active'));
          btn.classList.add('active');
        });
        choices.appendChild(btn);
      });
      row.appendChild(choices);
      group.appendChild(row);
    });
    panel.appendChild(group);
  });
  const buttons = document.createElement('div');
  buttons.className = 'buttons';
  const reset = document.createElement('button');
  reset.className = 'btn btn-secondary';
  reset.textContent = params.resetLabel || 'Reset';
  reset.addEventListener('click', () => api().resetConfig && api().resetConfig());
  const done = document.createElement('button');
  done.className = 'btn btn-primary';
  done.textContent = params.doneLabel || 'Done';
  done.addEventListener('click', () => api().closeSettings && api().closeSettings());
  buttons.appendChild(reset);
  buttons.appendChild(done);
  panel.appendChild(buttons);
  overlay.appendChild(panel);
  overlay.addEventListener('click', (e) => {
    if (e.target === overlay && api().closeSettings) api().closeSettings();
  });
  host.appendChild(overlay);
""",
)

SERVICE_MENU = compile_layer(
    "service menu",
    node_id=SERVICE_MENU_ID,
    style_id="umbrel-service-menu-style",
    body="""
  mountStyle(params.css);
  const menu = document.createElement('div');
  menu.id = 'umbrel-service-menu';
  const api = () => window.umbrelKiosk || {};
  const heading = document.createElement('h2');
  heading.appendChild(document.createTextNode('Service menu'));
  const close = document.createElement('button');
  close.className = 'close-btn';
  close.textContent = '\\u00d7';
  close.addEventListener('click', () => api().hideServiceMenu && api().hideServiceMenu());
  heading.appendChild(close);
  menu.appendChild(heading);
  const infoRow = (labelText, valueText) => {
    const row = document.createElement('div');
    row.className = 'info-row';
    const label = document.createElement('div');
    label.className = 'info-label';
    label.textContent = labelText;
    const value = document.createElement('div');
    value.className = 'info-value';
    value.textContent = valueText;
    row.appendChild(label);
    row.appendChild(value);
    menu.appendChild(row);
  };
  infoRow('Current URL:', params.currentUrl || '');
  infoRow('Hostname:', params.hostname || '');
  infoRow('IP addresses:', (params.addresses || []).join('\\n') || 'None found');
  const inputRow = document.createElement('div');
  inputRow.className = 'info-row';
  const inputLabel = document.createElement('div');
  inputLabel.className = 'info-label';
  inputLabel.textContent = 'New URL:';
  const input = document.createElement('input');
  input.type = 'text';
  input.id = 'umbrel-new-url';
  input.placeholder = 'http://...';
  input.value = params.currentUrl || '';
  inputRow.appendChild(inputLabel);
  inputRow.appendChild(input);
  menu.appendChild(inputRow);
  const btnRow = document.createElement('div');
  btnRow.className = 'btn-row';
  const reload = document.createElement('button');
  reload.className = 'action-btn btn-secondary';
  reload.textContent = 'Reload';
  reload.addEventListener('click', () => api().reload && api().reload());
  const go = document.createElement('button');
  go.className = 'action-btn btn-primary';
  go.textContent = 'Go';
  go.addEventListener('click', () => api().navigate && api().navigate(input.value.trim()));
  const onKey = (e) => {
    if (e.key === 'Enter') go.click();
  };
  input.addEventListener('keydown', onKey);
  btnRow.appendChild(reload);
  btnRow.appendChild(go);
  menu.appendChild(btnRow);
  host.appendChild(menu);
""",
)


def settings_params(config: KioskConfig) -> dict[str, Any]:
    values = config.to_dict()
    sections = []
    for section_label, fields in SETTINGS_SECTIONS:
        section_fields = []
        for key, field_label in fields:
            labels = CHOICE_LABELS[key]
            section_fields.append(
                {
                    "key": key,
                    "label": field_label,
                    "value": values[key],
                    "options": [{"value": v, "label": labels.get(v, v)} for v in CONFIG_CHOICES[key]],
                }
            )
        sections.append({"label": section_label, "fields": section_fields})
    return {"css": _SETTINGS_CSS, "title": "Settings", "sections": sections}


def host_addresses() -> list[str]:
    """Non-loopback IPv4 addresses as "iface: address" lines."""
    lines: list[str] = []
    try:
        interfaces = psutil.net_if_addrs()
    except OSError:
        return lines
    for name, addrs in sorted(interfaces.items()):
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            if addr.address.startswith("127."):
                continue
            lines.append(f"{name}: {addr.address}")
    return lines


def service_menu_params(current_url: str) -> dict[str, Any]:
    return {
        "css": _SERVICE_MENU_CSS,
        "currentUrl": current_url,
        "hostname": socket.gethostname(),
        "addresses": host_addresses(),
    }


async def show_settings_panel(page: Any, config: KioskConfig) -> bool:
    return await apply_layer(page, SETTINGS_PANEL, settings_params(config))


async def close_settings_panel(page: Any) -> bool:
    return await remove_layer(page, SETTINGS_PANEL)


async def show_service_menu(page: Any, current_url: str) -> bool:
    return await apply_layer(page, SERVICE_MENU, service_menu_params(current_url))


async def hide_service_menu(page: Any) -> bool:
    return await remove_layer(page, SERVICE_MENU)
