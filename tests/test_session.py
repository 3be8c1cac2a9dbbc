"""Tests for ChannelSession: lifecycle, inbound dispatch, saves, intervals.

Sessions run against a FakeTransport that records every outbound frame
and lets the test push inbound frames, so the real ``run()`` loop is
exercised without a socket.
"""

from __future__ import annotations

import asyncio
import contextlib
import json

import pytest

from pi_sync.channel import ChannelError
from pi_sync.config import PiSyncConfig
from pi_sync.context import DEFAULT_ACTION, ConnectionParams
from pi_sync.panel import (
    CONNECTION_STATUS, CURRENT_RATE, POLL_INTERVAL, SHOW_LABEL,
    TILE_BACKGROUND, TILE_TEXT_COLOR, MemoryPanelView,
)
from pi_sync.session import FORCE, POLL, UI, ChannelSession, ChannelState


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeTransport:
    """In-memory Transport.  ``sent`` holds outbound text frames in order."""

    def __init__(self, uri: str, *, fail: bool = False):
        self.uri = uri
        self.fail = fail
        self.sent: list[str] = []
        self.opened = False
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def open(self) -> None:
        if self.fail:
            raise ChannelError(f"cannot connect to {self.uri}")
        self.opened = True

    def send(self, text: str) -> None:
        self.sent.append(text)

    async def messages(self):
        while True:
            frame = await self._inbound.get()
            if frame is None:
                return
            yield frame

    async def close(self) -> None:
        self.closed = True

    def feed(self, message) -> None:
        self._inbound.put_nowait(message if isinstance(message, (str, bytes)) else json.dumps(message))

    def hang_up(self) -> None:
        self._inbound.put_nowait(None)

    @property
    def events(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]

    def of(self, event: str) -> list[dict]:
        return [m for m in self.events if m.get("event") == event]


def make_config(**runtime) -> PiSyncConfig:
    cfg = PiSyncConfig.defaults()
    cfg.expanded["config"].update(runtime)
    return cfg


async def settle(predicate=lambda: True, turns: int = 50) -> None:
    for _ in range(turns):
        if predicate():
            return
        await asyncio.sleep(0)


@contextlib.asynccontextmanager
async def connected(view=None, *, registration_id="uuid-x", action_info="", query="", config=None):
    """Run a session over a FakeTransport until the block exits."""
    view = view if view is not None else MemoryPanelView()
    params = ConnectionParams.from_raw(28196, registration_id, action_info=action_info, query=query)
    transports: list[FakeTransport] = []

    def factory(uri):
        transports.append(FakeTransport(uri))
        return transports[-1]

    session = ChannelSession(params, view, config, transport_factory=factory)
    session.rebaseline()
    task = asyncio.create_task(session.run())
    await settle(lambda: session.is_open)
    assert session.is_open
    try:
        yield session, transports[0]
    finally:
        transports[0].hang_up()
        await task


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    @pytest.mark.asyncio
    async def test_open_sends_in_order(self):
        async with connected(action_info={"action": "x", "context": "ctx-x"}) as (session, transport):
            assert [m["event"] for m in transport.events] == [
                "registerPropertyInspector", "getGlobalSettings", "getSettings", "sendToPlugin",
            ]
            register, global_req, settings_req, hello = transport.events
            assert register == {"event": "registerPropertyInspector", "uuid": "uuid-x"}
            assert global_req["context"] == "uuid-x"
            assert settings_req["context"] == "uuid-x"
            assert hello == {
                "action": "x", "event": "sendToPlugin", "context": "uuid-x",
                "payload": {"settingsConnected": True},
            }

    @pytest.mark.asyncio
    async def test_resolved_context_cached(self):
        async with connected(action_info={"action": "x", "context": "ctx-x"}) as (session, _):
            assert session.context.resolved == "ctx-x"
            assert session.context.action == "x"

    @pytest.mark.asyncio
    async def test_empty_action_info_resolves_to_registration_id(self):
        async with connected(action_info="") as (session, _):
            assert session.context.resolved == "uuid-x"
            assert session.context.action == DEFAULT_ACTION
            assert session.address == "uuid-x"

    @pytest.mark.asyncio
    async def test_context_addressing_mode(self):
        config = make_config(addressing="context")
        async with connected(action_info={"context": "ctx-x"}, config=config) as (session, transport):
            assert session.address == "ctx-x"
            assert transport.of("getSettings")[0]["context"] == "ctx-x"
            # Global settings always go to the registration id.
            assert transport.of("getGlobalSettings")[0]["context"] == "uuid-x"

    @pytest.mark.asyncio
    async def test_no_address_skips_per_panel_requests(self):
        async with connected(registration_id="") as (session, transport):
            assert session.address == ""
            assert [m["event"] for m in transport.events] == ["registerPropertyInspector", "getGlobalSettings"]

    @pytest.mark.asyncio
    async def test_uri_from_config_host(self):
        async with connected(config=make_config(host="10.0.0.5")) as (_, transport):
            assert transport.uri == "ws://10.0.0.5:28196"

    @pytest.mark.asyncio
    async def test_poller_runs_while_open(self):
        async with connected() as (session, _):
            assert session.poller.running
        assert not session.poller.running

    @pytest.mark.asyncio
    async def test_peer_hang_up_closes(self):
        async with connected() as (session, transport):
            pass
        assert session.state is ChannelState.CLOSED
        assert transport.closed
        assert session.send({"event": "x"}) is False

    @pytest.mark.asyncio
    async def test_connect_failure_ends_closed(self):
        params = ConnectionParams.from_raw(28196, "uuid-x")
        failing = []

        def factory(uri):
            failing.append(FakeTransport(uri, fail=True))
            return failing[-1]

        session = ChannelSession(params, MemoryPanelView(), transport_factory=factory)
        await session.run()
        assert session.state is ChannelState.CLOSED
        assert failing[0].sent == []
        assert not session.poller.running

    @pytest.mark.asyncio
    async def test_run_only_once(self):
        async with connected() as (session, transport):
            await session.run()
            assert len(transport.of("getGlobalSettings")) == 1

    @pytest.mark.asyncio
    async def test_close_from_our_side(self):
        async with connected() as (session, transport):
            await session.close()
            assert session.state is ChannelState.CLOSED
            assert transport.closed
            assert not session.poller.running


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class TestInbound:
    @pytest.mark.asyncio
    async def test_global_settings_snap_interval(self):
        view = MemoryPanelView()
        async with connected(view) as (session, transport):
            transport.feed({"event": "didReceiveGlobalSettings", "payload": {"settings": {"pollInterval": 1600}}})
            await settle(lambda: view.fields[POLL_INTERVAL] == 2000)
            assert view.fields[POLL_INTERVAL] == 2000
            assert view.texts[CURRENT_RATE] == "2000ms"
            assert session.poll_interval == 2000

    @pytest.mark.parametrize("settings", [{}, {"pollInterval": 0}, {"pollInterval": None}, {"pollInterval": "junk"}])
    def test_global_settings_default(self, settings):
        view = MemoryPanelView(poll_interval=5000)
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(json.dumps({"event": "didReceiveGlobalSettings", "payload": {"settings": settings}}))
        assert view.fields[POLL_INTERVAL] == 1000
        assert view.texts[CURRENT_RATE] == "1000ms"

    def test_settings_scenario(self):
        view = MemoryPanelView(background="#000000", text_color="#123456", show_label=True)
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(json.dumps({
            "event": "didReceiveSettings",
            "payload": {"settings": {"tileBackground": "#334455", "showLabel": False}},
        }))
        assert view.fields[TILE_BACKGROUND] == "#334455"
        assert view.fields[TILE_TEXT_COLOR] == "#ffffff"
        assert view.fields[SHOW_LABEL] is False
        assert session.last_signature == "#334455|#ffffff|0"

    def test_settings_non_dict_payload_applies_defaults(self):
        view = MemoryPanelView(background="#334455")
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(json.dumps({"event": "didReceiveSettings", "payload": {"settings": [1, 2]}}))
        assert view.fields[TILE_BACKGROUND] == "#000000"

    def test_settings_before_render_is_ignored(self):
        view = MemoryPanelView(rendered=False)
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(json.dumps({"event": "didReceiveSettings", "payload": {"settings": {}}}))
        assert view.writes == []
        assert session.last_signature is None

    @pytest.mark.parametrize("status,color", [("Connected", "#44aa44"), ("Disconnected", "#aa4444")])
    def test_status_tint(self, status, color):
        view = MemoryPanelView()
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(json.dumps({
            "event": "sendToPropertyInspector",
            "payload": {"connectionStatus": status, "currentRate": 500},
        }))
        assert view.texts[CONNECTION_STATUS] == status
        assert view.colors[CONNECTION_STATUS] == color
        assert view.texts[CURRENT_RATE] == "500ms"

    def test_rate_only_leaves_status(self):
        view = MemoryPanelView()
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(json.dumps({"event": "sendToPropertyInspector", "payload": {"currentRate": 250}}))
        assert view.texts == {CURRENT_RATE: "250ms", CONNECTION_STATUS: ""}
        assert view.colors == {}

    @pytest.mark.parametrize("frame", [
        "not json at all", "", "[1, 2, 3]", "null", b"\xff",
        json.dumps({"event": "somethingElse", "payload": {"settings": {"tileBackground": "#111111"}}}),
        json.dumps({"payload": {}}),
    ])
    def test_unparseable_or_unknown_changes_nothing(self, frame):
        view = MemoryPanelView()
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        session.handle_message(frame)
        assert view.writes == []
        assert view.texts == {CURRENT_RATE: "", CONNECTION_STATUS: ""}

    def test_handler_errors_are_contained(self):
        class BrokenView(MemoryPanelView):
            def set_value(self, field_id, value):
                raise RuntimeError("widget gone")

        session = ChannelSession(ConnectionParams.from_raw(1, "u"), BrokenView())
        session.handle_message(json.dumps({"event": "didReceiveGlobalSettings", "payload": {"settings": {}}}))


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------

class TestSave:
    @pytest.mark.asyncio
    async def test_color_input_scenario(self):
        view = MemoryPanelView()
        async with connected(view) as (session, transport):
            transport.sent.clear()
            view.set_value(TILE_BACKGROUND, "#334455")
            assert session.save(UI) is True
            events = transport.events
            assert [m["event"] for m in events] == ["setSettings", "sendToPlugin"]
            set_settings, tile = events
            assert set_settings["context"] == tile["context"] == session.context.resolved == "uuid-x"
            assert set_settings["payload"]["tileBackground"] == "#334455"
            assert tile["payload"]["updateTileAppearance"]["tileBackground"] == "#334455"
            assert tile["action"] == DEFAULT_ACTION

    @pytest.mark.asyncio
    async def test_dedup(self):
        view = MemoryPanelView()
        async with connected(view) as (session, transport):
            transport.sent.clear()
            view.set_value(TILE_TEXT_COLOR, "#abcdef")
            assert session.save(UI) is True
            assert session.save(UI) is False
            assert len(transport.of("setSettings")) == 1
            assert len(transport.of("sendToPlugin")) == 1

    @pytest.mark.asyncio
    async def test_unchanged_ui_not_saved(self):
        async with connected() as (session, transport):
            transport.sent.clear()
            assert session.save(UI) is False
            assert transport.sent == []

    @pytest.mark.asyncio
    async def test_force_always_sends(self):
        async with connected() as (session, transport):
            transport.sent.clear()
            assert session.save(FORCE) is True
            assert session.save(FORCE) is True
            assert len(transport.of("setSettings")) == 2

    @pytest.mark.asyncio
    async def test_normalized_payload(self):
        view = MemoryPanelView()
        async with connected(view) as (session, transport):
            transport.sent.clear()
            view.set_value(TILE_BACKGROUND, " #AABBCC ")
            view.set_value(TILE_TEXT_COLOR, "not a color")
            view.set_value(SHOW_LABEL, "true")
            session.save(UI)
            assert transport.of("setSettings")[0]["payload"] == {
                "tileBackground": "#aabbcc", "tileTextColor": "#ffffff", "showLabel": False,
            }

    def test_not_open_is_noop(self):
        view = MemoryPanelView(background="#334455")
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        assert session.save(FORCE) is False
        assert session.last_signature is None

    @pytest.mark.asyncio
    async def test_no_address_is_noop(self):
        async with connected(registration_id="") as (session, transport):
            transport.sent.clear()
            assert session.save(FORCE) is False
            assert transport.sent == []


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

class TestReconcile:
    @pytest.mark.asyncio
    async def test_no_drift_no_save(self):
        async with connected() as (session, transport):
            transport.sent.clear()
            assert session.reconcile() is False
            assert transport.sent == []

    @pytest.mark.asyncio
    async def test_drift_saves_once(self):
        view = MemoryPanelView()
        async with connected(view) as (session, transport):
            transport.sent.clear()
            view.fields[SHOW_LABEL] = False
            assert session.reconcile() is True
            assert session.reconcile() is False
            assert len(transport.of("setSettings")) == 1

    @pytest.mark.asyncio
    async def test_poll_tick_scenario(self):
        view = MemoryPanelView()
        config = make_config(reconciliation={"intervalMs": 50})
        async with connected(view, config=config) as (session, transport):
            transport.sent.clear()
            # Mutated without any UI event.
            view.fields[TILE_BACKGROUND] = "#334455"
            await asyncio.sleep(0.18)
            assert session.poller.ticks >= 2
            assert len(transport.of("setSettings")) == 1
            assert len(transport.of("sendToPlugin")) == 1

    def test_poll_reason_constant(self):
        assert POLL == "poll"


# ---------------------------------------------------------------------------
# Interval changes
# ---------------------------------------------------------------------------

class TestChangeInterval:
    @pytest.mark.asyncio
    async def test_change_interval(self):
        view = MemoryPanelView()
        async with connected(view, action_info={"action": "x"}) as (session, transport):
            transport.sent.clear()
            assert session.change_interval("1600") == 2000
            assert view.fields[POLL_INTERVAL] == 2000
            assert view.texts[CURRENT_RATE] == "2000ms"
            assert transport.events == [
                {"event": "setGlobalSettings", "context": "uuid-x", "payload": {"pollInterval": 2000}},
                {"action": "x", "event": "sendToPlugin", "context": "uuid-x", "payload": {"setPollInterval": 2000}},
            ]

    def test_offline_is_noop(self):
        view = MemoryPanelView()
        session = ChannelSession(ConnectionParams.from_raw(1, "u"), view)
        assert session.change_interval(5000) is None
        assert view.writes == []
        assert session.poll_interval == 1000
