"""Wire messages exchanged with the controller.

Every message is a JSON object with an ``event`` discriminator.  Most
carry a ``context`` addressing field; ``sendToPlugin`` messages also
carry the ``action`` UUID.
"""

from __future__ import annotations

from typing import Any

from .appearance import AppearanceSettings
from .normalize import as_dict

# ─── Outbound events ──────────────────────────────────────────────────

GET_GLOBAL_SETTINGS = "getGlobalSettings"
GET_SETTINGS = "getSettings"
SET_GLOBAL_SETTINGS = "setGlobalSettings"
SET_SETTINGS = "setSettings"
SEND_TO_PLUGIN = "sendToPlugin"

# ─── Inbound events ───────────────────────────────────────────────────

DID_RECEIVE_GLOBAL_SETTINGS = "didReceiveGlobalSettings"
DID_RECEIVE_SETTINGS = "didReceiveSettings"
SEND_TO_PROPERTY_INSPECTOR = "sendToPropertyInspector"

# ─── sendToPlugin payload keys ────────────────────────────────────────

SETTINGS_CONNECTED = "settingsConnected"
SET_POLL_INTERVAL = "setPollInterval"
UPDATE_TILE_APPEARANCE = "updateTileAppearance"


def register(register_event: str, registration_id: str) -> dict[str, Any]:
    return {"event": register_event, "uuid": registration_id}


def get_global_settings(registration_id: str) -> dict[str, Any]:
    return {"event": GET_GLOBAL_SETTINGS, "context": registration_id}


def get_settings(context: str) -> dict[str, Any]:
    return {"event": GET_SETTINGS, "context": context}


def set_global_settings(registration_id: str, poll_interval: int) -> dict[str, Any]:
    return {
        "event": SET_GLOBAL_SETTINGS,
        "context": registration_id,
        "payload": {"pollInterval": poll_interval},
    }


def set_settings(context: str, settings: AppearanceSettings) -> dict[str, Any]:
    return {"event": SET_SETTINGS, "context": context, "payload": settings.to_payload()}


def send_to_plugin(action: str, context: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"action": action, "event": SEND_TO_PLUGIN, "context": context, "payload": payload}


def settings_connected(action: str, context: str) -> dict[str, Any]:
    return send_to_plugin(action, context, {SETTINGS_CONNECTED: True})


def set_poll_interval(action: str, context: str, poll_interval: int) -> dict[str, Any]:
    return send_to_plugin(action, context, {SET_POLL_INTERVAL: poll_interval})


def update_tile_appearance(action: str, context: str, settings: AppearanceSettings) -> dict[str, Any]:
    return send_to_plugin(action, context, {UPDATE_TILE_APPEARANCE: settings.to_payload()})


def settings_of(message: dict[str, Any]) -> dict[str, Any]:
    """``payload.settings`` of an inbound message, ``{}`` when missing or malformed."""
    return as_dict(as_dict(message.get("payload")).get("settings"))
