"""Direct UI bindings.

Field events are the primary save path.  Appearance edits don't save
immediately: they schedule a save for the loop's next turn, so several
fields changed from one handler (or one widget firing change + input +
click for a single toggle) produce exactly one save.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from .panel import APPEARANCE_FIELDS, REQUIRED_FIELDS, SHOW_LABEL, PanelView
from .session import FORCE, UI, ChannelSession

log = logging.getLogger("pi-sync.binder")

FIELD_EVENT_KINDS = ("change", "input", "click")


class DebouncedSave:
    """Coalesce save requests made within one loop turn."""

    def __init__(
        self,
        save: Callable[[str], Any],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._save = save
        self._loop = loop
        self._pending: Optional[asyncio.Handle] = None
        self._reason = UI

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, reason: str = UI) -> None:
        if self._pending is not None:
            # A forced save wins over a plain one already queued.
            if reason == FORCE:
                self._reason = FORCE
            return
        self._reason = reason
        loop = self._loop or asyncio.get_running_loop()
        self._pending = loop.call_soon(self._flush)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _flush(self) -> None:
        self._pending = None
        try:
            self._save(self._reason)
        except Exception:
            log.warning("Debounced save failed", exc_info=True)


class UiBinder:
    """Routes panel field events into the session.  Binds once."""

    def __init__(self, session: ChannelSession, view: Optional[PanelView] = None):
        self.session = session
        self.view = view or session.view
        self.bound = False
        self.debounce = DebouncedSave(session.save)

    def bind(self) -> bool:
        """Start routing events if the panel's fields exist.

        Idempotent.  Binding takes the current UI as the saved baseline so
        the first poll tick doesn't re-save what the panel started with.
        """
        if self.bound:
            return True
        if not self.view.has_fields(*REQUIRED_FIELDS):
            return False
        self.session.rebaseline()
        self.bound = True
        log.debug("UI bound, baseline %s", self.session.last_signature)
        return True

    def unbind(self) -> None:
        self.debounce.cancel()
        self.bound = False

    def on_interval_changed(self, raw: Any) -> Optional[int]:
        if not self.bound:
            return None
        return self.session.change_interval(raw)

    def on_appearance_event(self, field_id: str, kind: str = "change") -> bool:
        """Schedule a debounced ``ui`` save for an appearance field event."""
        if not self.bound or field_id not in APPEARANCE_FIELDS:
            return False
        if kind not in FIELD_EVENT_KINDS:
            return False
        if kind == "click" and field_id != SHOW_LABEL:
            return False
        self.debounce.schedule(UI)
        return True
