"""Widgets and helpers for the pi-sync panel.

Contains the ShowLabelCheckbox (a Checkbox that also reports raw clicks)
and the _safe_action decorator used on event handlers.
"""

from __future__ import annotations

import functools
import logging

from textual.events import Click
from textual.message import Message
from textual.widgets import Checkbox

from ..logging import log_context

_log = logging.getLogger("pi-sync.tui.widgets")


# ─── Safe action decorator ────────────────────────────────────────────────

def _safe_action(fn):
    """Decorator that catches exceptions in panel event handlers.

    Logs the error instead of crashing the app.  The host gives the panel
    no way to surface errors besides the status line, so the handler just
    reports and carries on.
    """

    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except Exception as exc:
            err = f"{type(exc).__name__}: {str(exc)[:100]}"
            _log.error(
                "Error in %s: %s", fn.__name__, err,
                exc_info=True,
                extra={"context": log_context(handler=fn.__name__)},
            )
    return wrapper


# ─── Show-label toggle ────────────────────────────────────────────────────

class ShowLabelCheckbox(Checkbox):
    """Checkbox that also posts ``Clicked`` for every mouse click.

    Some toggles flip without a usable Changed message reaching the
    handler; the extra click message gives the binder a second path.
    """

    class Clicked(Message):
        def __init__(self, checkbox: "ShowLabelCheckbox") -> None:
            super().__init__()
            self.checkbox = checkbox

        @property
        def control(self) -> "ShowLabelCheckbox":
            return self.checkbox

    def on_click(self, event: Click) -> None:
        self.post_message(self.Clicked(self))
