"""Loopback development host.

Stands in for the controller so the panel can be driven end to end on a
workstation.  It keeps global and per-context settings in memory and
answers the panel the way the real plugin does:

* ``getGlobalSettings`` → ``didReceiveGlobalSettings``
* ``getSettings`` → ``didReceiveSettings``
* ``setGlobalSettings`` / ``setSettings`` → stored, no reply
* ``sendToPlugin`` with ``settingsConnected`` → status
* ``sendToPlugin`` with ``setPollInterval`` → interval applied (clamped)
* ``sendToPlugin`` with ``updateTileAppearance`` → stored, then status

Run it with ``pi-sync devhost --port 28196`` and launch the panel with
``pi-sync -port 28196 -pluginUUID dev-panel``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from . import messages
from .logging import DEVHOST_LOG, get_logger
from .normalize import (
    DEFAULT_BACKGROUND,
    DEFAULT_INTERVAL,
    DEFAULT_TEXT_COLOR,
    parse_int,
    as_dict,
    parse_json_or_empty,
)

log = logging.getLogger("pi-sync.devhost")

DEFAULT_DEVHOST_PORT = 28196
MIN_POLL_MS = 100
MAX_POLL_MS = 30000


class DevHost:
    """In-memory controller host speaking the panel's wire protocol."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        *,
        poll_interval: int = DEFAULT_INTERVAL,
        connection_status: str = "Connected",
    ):
        self.host = host
        self.port = port
        self.connection_status = connection_status
        self.global_settings: dict[str, Any] = {"pollInterval": poll_interval}
        self.settings: dict[str, dict[str, Any]] = {}
        self.registrations: dict[str, str] = {}
        self.received: list[dict[str, Any]] = []
        self._server: Optional[Server] = None

    @property
    def current_rate(self) -> int:
        rate = parse_int(self.global_settings.get("pollInterval"))
        return rate if rate and rate > 0 else DEFAULT_INTERVAL

    # ─── Protocol ────────────────────────────────────────────────────

    def handle(self, message: dict[str, Any]) -> list[dict[str, Any]]:
        """Apply one panel message and return the replies to send back."""
        self.received.append(message)
        event = message.get("event")
        context = message.get("context") or ""
        payload = as_dict(message.get("payload"))

        if "uuid" in message and "context" not in message:
            self.registrations[str(message["uuid"])] = str(event)
            log.info("registered %s via %s", message["uuid"], event)
            return []

        if event == messages.GET_GLOBAL_SETTINGS:
            return [{
                "event": messages.DID_RECEIVE_GLOBAL_SETTINGS,
                "context": context,
                "payload": {"settings": dict(self.global_settings)},
            }]
        if event == messages.SET_GLOBAL_SETTINGS:
            self.global_settings.update(payload)
            return []
        if event == messages.GET_SETTINGS:
            return [{
                "event": messages.DID_RECEIVE_SETTINGS,
                "context": context,
                "payload": {"settings": dict(self.settings.get(context, {}))},
            }]
        if event == messages.SET_SETTINGS:
            self.settings[context] = dict(payload)
            return []
        if event == messages.SEND_TO_PLUGIN:
            return self._on_plugin_command(message.get("action") or "", context, payload)

        log.debug("ignoring %s", event)
        return []

    def _on_plugin_command(self, action: str, context: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        if messages.SETTINGS_CONNECTED in payload:
            return [self.status_message(action, context)]

        if messages.SET_POLL_INTERVAL in payload:
            interval = parse_int(payload[messages.SET_POLL_INTERVAL])
            if interval is not None and interval > 0:
                self.set_poll_interval(interval)
            return []

        if messages.UPDATE_TILE_APPEARANCE in payload:
            appearance = as_dict(payload[messages.UPDATE_TILE_APPEARANCE])
            stored = dict(self.settings.get(context, {}))
            stored.update(appearance)
            if not stored.get("tileBackground"):
                stored["tileBackground"] = DEFAULT_BACKGROUND
            if not stored.get("tileTextColor"):
                stored["tileTextColor"] = DEFAULT_TEXT_COLOR
            self.settings[context] = stored
            log.info(
                "updateTileAppearance context=%s bg=%s text=%s showLabel=%s",
                context, stored["tileBackground"], stored["tileTextColor"], stored.get("showLabel"),
            )
            return [self.status_message(action, context)]

        return []

    def set_poll_interval(self, interval_ms: int) -> int:
        interval_ms = max(MIN_POLL_MS, min(MAX_POLL_MS, interval_ms))
        self.global_settings["pollInterval"] = interval_ms
        log.info("poll interval now %dms", interval_ms)
        return interval_ms

    def status_message(self, action: str, context: str) -> dict[str, Any]:
        return {
            "action": action,
            "event": messages.SEND_TO_PROPERTY_INSPECTOR,
            "context": context,
            "payload": {
                "connectionStatus": self.connection_status,
                "currentRate": self.current_rate,
            },
        }

    # ─── Server ──────────────────────────────────────────────────────

    async def _serve_connection(self, ws: ServerConnection) -> None:
        log.info("panel connected from %s", ws.remote_address)
        try:
            async for frame in ws:
                parsed = parse_json_or_empty(frame)
                if not parsed.ok:
                    log.warning("bad frame: %s", parsed.error)
                    continue
                for reply in self.handle(parsed.value):
                    await ws.send(json.dumps(reply))
        except ConnectionClosed:
            pass
        log.info("panel disconnected")

    async def start(self) -> int:
        """Start listening.  Returns the bound port (useful with ``port=0``)."""
        self._server = await serve(self._serve_connection, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        log.info("dev host listening on ws://%s:%d", self.host, self.port)
        return self.port

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Future()
        finally:
            await self.stop()


def run_devhost(host: str = "127.0.0.1", port: int = DEFAULT_DEVHOST_PORT) -> None:
    """Blocking entry point for ``pi-sync devhost``."""
    get_logger("pi-sync.devhost", DEVHOST_LOG, logging.INFO, json_format=False)
    print(f"  Dev host: ws://{host}:{port} (log: {DEVHOST_LOG})", flush=True)
    try:
        asyncio.run(DevHost(host, port).serve_forever())
    except KeyboardInterrupt:
        print("  Dev host: stopped", flush=True)
