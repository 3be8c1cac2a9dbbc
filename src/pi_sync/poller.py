"""Reconciliation poller.

Direct UI bindings are the primary save path, but some widgets change
without reporting it (programmatic writes, pickers that swallow events).
The poller re-reads the panel on a fixed cadence and lets the session
save whatever the bindings missed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

log = logging.getLogger("pi-sync.poller")

DEFAULT_POLL_SECONDS = 0.3


class ReconciliationPoller:
    """Repeating timer on the running event loop.

    The timer is an explicit ``asyncio.TimerHandle``; ``start`` always
    cancels the previous one first, so restarting never leaves two
    timers running.
    """

    def __init__(
        self,
        tick: Callable[[], object],
        interval: float = DEFAULT_POLL_SECONDS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._tick = tick
        self.interval = interval
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self.ticks = 0

    @property
    def handle(self) -> Optional[asyncio.TimerHandle]:
        return self._handle

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._handle = loop.call_later(self.interval, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        if self._handle is None:
            return
        self._handle = self._loop.call_later(self.interval, self._fire)
        self.ticks += 1
        try:
            self._tick()
        except Exception:
            log.warning("Reconciliation tick failed", exc_info=True)
