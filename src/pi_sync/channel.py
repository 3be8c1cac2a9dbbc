"""Message channel to the controller host.

The session only needs a duplex, message-oriented channel: open it, send
text frames in order, iterate inbound frames until the peer goes away,
close it.  ``Transport`` names that contract; ``WebSocketTransport`` is
the real implementation over ``websockets``.

Sends are synchronous and fire-and-forget from the caller's point of
view.  Frames go through an ``asyncio.Queue`` drained by a single writer
task, so wire order always equals call order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional, Protocol, Union

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

log = logging.getLogger("pi-sync.channel")

Frame = Union[str, bytes]


class ChannelError(Exception):
    """The channel could not be opened."""


class Transport(Protocol):
    async def open(self) -> None: ...

    def send(self, text: str) -> None: ...

    def messages(self) -> AsyncIterator[Frame]: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[str], Transport]


def channel_uri(host: str, port: int) -> str:
    return f"ws://{host}:{port}"


class WebSocketTransport:
    """``Transport`` over a websocket client connection."""

    def __init__(self, uri: str, *, connect: Callable = ws_connect):
        self.uri = uri
        self._connect = connect
        self._ws: Optional[ClientConnection] = None
        self._outbox: Optional[asyncio.Queue[Optional[str]]] = None
        self._writer: Optional[asyncio.Task] = None

    async def open(self) -> None:
        try:
            # No open timeout: the host may be slow to accept while it starts.
            self._ws = await self._connect(self.uri, open_timeout=None)
        except (OSError, WebSocketException) as exc:
            raise ChannelError(f"cannot connect to {self.uri}: {exc}") from exc
        self._outbox = asyncio.Queue()
        self._writer = asyncio.create_task(self._drain(self._outbox), name="pi-sync-writer")

    def send(self, text: str) -> None:
        if self._outbox is None:
            log.debug("Dropping frame, channel not open")
            return
        self._outbox.put_nowait(text)

    async def messages(self) -> AsyncIterator[Frame]:
        if self._ws is None:
            return
        try:
            async for frame in self._ws:
                yield frame
        except ConnectionClosed as exc:
            log.info("Channel closed by peer: %s", exc)

    async def close(self) -> None:
        outbox, writer, ws = self._outbox, self._writer, self._ws
        self._outbox = None
        if outbox is not None:
            outbox.put_nowait(None)
        if writer is not None:
            try:
                await writer
            except asyncio.CancelledError:
                pass
        self._writer = None
        if ws is not None:
            await ws.close()

    async def _drain(self, outbox: asyncio.Queue) -> None:
        while True:
            text = await outbox.get()
            if text is None:
                return
            try:
                await self._ws.send(text)
            except ConnectionClosed:
                log.debug("Send failed, channel closed")
                # Nothing drains the queue past this point.
                if self._outbox is outbox:
                    self._outbox = None
                return
