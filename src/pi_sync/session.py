"""Channel session: the panel's side of the settings protocol.

One ``ChannelSession`` exists per connection attempt.  It owns everything
that used to be ambient state in a property inspector script: the
transport, the resolved addressing context, the last saved appearance
signature, and the reconciliation poller's timer.

Lifecycle::

    DISCONNECTED ──run()──▶ CONNECTING ──opened──▶ OPEN ──closed──▶ CLOSED
                                 └──── connect failed ─────────────────┘

Everything runs on one asyncio loop.  Inbound frames, UI events and
poller ticks interleave but never run in parallel, so no locking.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Any, Optional

from . import messages
from .appearance import AppearanceSettings, apply_appearance, read_current_appearance, signature_of
from .channel import ChannelError, Transport, TransportFactory, WebSocketTransport, channel_uri
from .config import PiSyncConfig
from .context import ConnectionParams, SessionContext, describe
from .logging import log_context
from .normalize import format_rate, normalize_interval, parse_json_or_empty
from .panel import CONNECTION_STATUS, CURRENT_RATE, POLL_INTERVAL, PanelView
from .poller import ReconciliationPoller

log = logging.getLogger("pi-sync.session")

FORCE = "force"
UI = "ui"
POLL = "poll"


class ChannelState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ChannelSession:
    """Connection-scoped synchronization state and protocol handlers."""

    def __init__(
        self,
        params: ConnectionParams,
        view: PanelView,
        config: Optional[PiSyncConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.params = params
        self.view = view
        self.config = config or PiSyncConfig.defaults()
        self._transport_factory = transport_factory or WebSocketTransport
        self._transport: Optional[Transport] = None

        self.state = ChannelState.DISCONNECTED
        self.context: Optional[SessionContext] = None
        self.last_signature: Optional[str] = None
        self.poll_interval: int = self.config.default_interval
        self.poller = ReconciliationPoller(self.reconcile, self.config.reconciliation_seconds)

    # ─── Helpers ─────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN

    @property
    def address(self) -> str:
        return self.context.address if self.context else ""

    @property
    def defaults(self) -> AppearanceSettings:
        return self.config.default_appearance

    def current_appearance(self) -> AppearanceSettings:
        return read_current_appearance(self.view, self.defaults)

    def rebaseline(self) -> str:
        """Take the current UI as the last saved state."""
        self.last_signature = signature_of(self.current_appearance())
        return self.last_signature

    def send(self, message: dict[str, Any]) -> bool:
        """Hand one message to the transport.  False when the channel is not open."""
        if not self.is_open or self._transport is None:
            return False
        try:
            text = json.dumps(message)
        except (TypeError, ValueError) as exc:
            log.warning("Failed to encode %s: %s", message.get("event"), exc)
            return False
        self._transport.send(text)
        log.debug("sent %s", message.get("event"), extra={"context": log_context(
            context=message.get("context", ""), event=message.get("event", ""),
        )})
        return True

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def run(self) -> None:
        """Connect, dispatch inbound frames until the peer goes away, then close."""
        if self.state is not ChannelState.DISCONNECTED:
            return
        self.state = ChannelState.CONNECTING
        uri = channel_uri(self.config.host, self.params.port)
        transport = self._transport_factory(uri)
        try:
            await transport.open()
        except (ChannelError, OSError) as exc:
            log.warning("Connect failed: %s", exc)
            self.state = ChannelState.CLOSED
            return
        self._transport = transport
        try:
            self.handle_open()
            async for frame in transport.messages():
                self.handle_message(frame)
        finally:
            self.handle_close()
            await transport.close()

    async def close(self) -> None:
        """Tear down from our side (app exit)."""
        transport = self._transport
        self.handle_close()
        if transport is not None:
            await transport.close()

    def handle_open(self) -> None:
        """Channel opened: register, request state, announce, start polling."""
        self.state = ChannelState.OPEN
        self.context = SessionContext.resolve(
            self.params,
            addressing=self.config.addressing,
            default_action=self.config.default_action,
        )
        log.info("Channel open, context %s", describe(self.context))
        reg_id = self.params.registration_id
        self.send(messages.register(self.params.register_event, reg_id))
        self.send(messages.get_global_settings(reg_id))
        if self.address:
            self.send(messages.get_settings(self.address))
            self.send(messages.settings_connected(self.context.action, self.address))
        self.poller.start()

    def handle_close(self) -> None:
        """Channel closed: stop the poller, stop sending."""
        self.poller.cancel()
        if self.state is not ChannelState.CLOSED:
            log.info("Channel closed")
        self.state = ChannelState.CLOSED
        self._transport = None

    # ─── Inbound ─────────────────────────────────────────────────────

    def handle_message(self, frame: Any) -> None:
        """Dispatch one inbound frame.  Never raises."""
        parsed = parse_json_or_empty(frame)
        if not parsed.ok:
            log.debug("Ignoring unparseable frame: %s", parsed.error)
            return
        message = parsed.value
        event = message.get("event")
        handler = {
            messages.DID_RECEIVE_GLOBAL_SETTINGS: self._on_global_settings,
            messages.DID_RECEIVE_SETTINGS: self._on_settings,
            messages.SEND_TO_PROPERTY_INSPECTOR: self._on_status,
        }.get(event)
        if handler is None:
            return
        try:
            handler(message)
        except Exception:
            log.warning("Handler for %s failed", event, exc_info=True)

    def _on_global_settings(self, message: dict[str, Any]) -> None:
        raw = messages.settings_of(message).get("pollInterval") or self.config.default_interval
        interval = normalize_interval(raw, self.config.allowed_intervals, self.config.default_interval)
        self.poll_interval = interval
        self.view.set_value(POLL_INTERVAL, interval)
        self.view.set_text(CURRENT_RATE, format_rate(interval))

    def _on_settings(self, message: dict[str, Any]) -> None:
        applied = apply_appearance(self.view, messages.settings_of(message), self.defaults)
        if applied is None:
            return
        self.rebaseline()
        log.debug("Applied appearance %s", self.last_signature)

    def _on_status(self, message: dict[str, Any]) -> None:
        payload = message.get("payload")
        if not isinstance(payload, dict):
            return
        status = payload.get("connectionStatus")
        if status is not None:
            ok = status == self.config.connected_sentinel
            color = self.config.status_ok_color if ok else self.config.status_error_color
            self.view.set_text(CONNECTION_STATUS, str(status), color)
        rate = payload.get("currentRate")
        if rate is not None:
            self.view.set_text(CURRENT_RATE, format_rate(rate))

    # ─── Outbound ────────────────────────────────────────────────────

    def save(self, reason: str = UI) -> bool:
        """Persist and live-apply the current appearance if it changed.

        ``reason="force"`` skips the dedup check.  Returns True when the
        pair of messages went out.
        """
        if not self.is_open:
            return False
        address = self.address
        if not address:
            return False
        settings = self.current_appearance()
        sig = signature_of(settings)
        if reason != FORCE and sig == self.last_signature:
            return False
        self.last_signature = sig
        self.send(messages.set_settings(address, settings))
        self.send(messages.update_tile_appearance(self.context.action, address, settings))
        log.info("Saved appearance (%s)", reason, extra={"context": log_context(
            context=address, reason=reason, signature=sig,
        )})
        return True

    def reconcile(self) -> bool:
        """Poller tick: save if the UI drifted from the last saved signature."""
        if signature_of(self.current_appearance()) == self.last_signature:
            return False
        return self.save(POLL)

    def change_interval(self, raw: Any) -> Optional[int]:
        """User picked a poll interval.  Returns the snapped value, or None when offline."""
        if not self.is_open:
            return None
        interval = normalize_interval(raw, self.config.allowed_intervals, self.config.default_interval)
        self.poll_interval = interval
        self.view.set_value(POLL_INTERVAL, interval)
        self.send(messages.set_global_settings(self.params.registration_id, interval))
        self.view.set_text(CURRENT_RATE, format_rate(interval))
        if self.address:
            self.send(messages.set_poll_interval(self.context.action, self.address, interval))
        return interval
