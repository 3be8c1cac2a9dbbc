"""Main TUI application for pi-sync.

Contains the PanelApp (Textual App subclass) and TextualPanelView, the
PanelView implementation backed by the app's widgets.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.widget import Widget
from textual.widgets import Checkbox, Input, Label, Select

from ..binder import UiBinder
from ..channel import TransportFactory
from ..config import PiSyncConfig
from ..context import ConnectionParams
from ..normalize import format_rate, normalize_color
from ..panel import (
    CONNECTION_STATUS, CURRENT_RATE, POLL_INTERVAL, SHOW_LABEL,
    TILE_BACKGROUND, TILE_TEXT_COLOR,
)
from ..session import FORCE, ChannelSession
from .themes import DEFAULT_SCHEME, build_css
from .widgets import ShowLabelCheckbox, _safe_action

_log = logging.getLogger("pi-sync.tui")


# ─── Widget-backed view ─────────────────────────────────────────────────────

class TextualPanelView:
    """PanelView over the widgets of a running PanelApp.

    Field ids are the widget ids.  Display text is mirrored in ``texts``
    so callers can read back what the labels show.

    Color inputs are free text.  While the text is not a complete
    ``#rrggbb`` they read as the last complete color they held, so a
    half-typed value never looks like an edit.
    """

    COLOR_FIELDS = (TILE_BACKGROUND, TILE_TEXT_COLOR)

    def __init__(self, app: App):
        self._app = app
        self.texts: dict[str, str] = {}
        self._last_color: dict[str, str] = {}

    def _widget(self, field_id: str) -> Optional[Widget]:
        try:
            return self._app.query_one(f"#{field_id}")
        except NoMatches:
            return None

    def has_fields(self, *field_ids: str) -> bool:
        return all(self._widget(f) is not None for f in field_ids)

    def get_value(self, field_id: str) -> Any:
        widget = self._widget(field_id)
        if widget is None:
            return None
        value = getattr(widget, "value", None)
        if value is Select.NULL:
            return None
        if field_id in self.COLOR_FIELDS:
            return self._color_value(field_id, value)
        return value

    def _color_value(self, field_id: str, text: Any) -> Any:
        color = normalize_color(text, "")
        if color:
            self._last_color[field_id] = color
            return color
        return self._last_color.get(field_id, text)

    def set_value(self, field_id: str, value: Any) -> None:
        widget = self._widget(field_id)
        if widget is None:
            return
        if isinstance(widget, Select):
            # Writes from the controller must not come back as user picks.
            with self._app.prevent(Select.Changed):
                widget.value = value
        elif isinstance(widget, Checkbox):
            widget.value = bool(value)
        elif isinstance(widget, Input):
            widget.value = "" if value is None else str(value)
            if field_id in self.COLOR_FIELDS:
                self._color_value(field_id, widget.value)

    def set_text(self, field_id: str, text: str, color: Optional[str] = None) -> None:
        self.texts[field_id] = text
        widget = self._widget(field_id)
        if not isinstance(widget, Label):
            return
        widget.update(text)
        if color is not None:
            widget.styles.color = color


# ─── Main TUI App ───────────────────────────────────────────────────────────

class PanelApp(App):
    """Settings panel for one tile, synced with the controller host."""

    CSS = build_css(DEFAULT_SCHEME)

    BINDINGS = [
        Binding("ctrl+s", "force_save", "Save", show=True),
        Binding("q,ctrl+c", "quit", "Quit", show=True),
    ]

    def __init__(
        self,
        params: ConnectionParams,
        config: Optional[PiSyncConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        connect: bool = True,
        **kwargs,
    ) -> None:
        self._config = config or PiSyncConfig.defaults()

        # Apply color scheme from config
        self.__class__.CSS = build_css(self._config.color_scheme)

        super().__init__(**kwargs)
        self.view = TextualPanelView(self)
        self.session = ChannelSession(
            params, self.view, self._config, transport_factory=transport_factory,
        )
        self.binder = UiBinder(self.session, self.view)
        self._connect = connect

    # ─── Widget composition ────────────────────────────────────────

    def compose(self) -> ComposeResult:
        defaults = self._config.default_appearance
        interval = self._config.default_interval
        with Vertical(id="panel"):
            yield Label("Polling", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Poll interval", classes="field-label")
                yield Select(
                    [(format_rate(ms), ms) for ms in self._config.allowed_intervals],
                    value=interval,
                    allow_blank=False,
                    id=POLL_INTERVAL,
                )
            with Horizontal(classes="field-row"):
                yield Label("Current rate", classes="field-label")
                yield Label(format_rate(interval), id=CURRENT_RATE, markup=False)
            with Horizontal(classes="field-row"):
                yield Label("Status", classes="field-label")
                yield Label("", id=CONNECTION_STATUS, markup=False)

            yield Label("Tile appearance", classes="section-title")
            with Horizontal(classes="field-row"):
                yield Label("Background", classes="field-label")
                yield Input(defaults.background, placeholder="#rrggbb", id=TILE_BACKGROUND)
            with Horizontal(classes="field-row"):
                yield Label("Text color", classes="field-label")
                yield Input(defaults.text_color, placeholder="#rrggbb", id=TILE_TEXT_COLOR)
            yield ShowLabelCheckbox("Show label", defaults.show_label, id=SHOW_LABEL)

    def on_mount(self) -> None:
        self.title = "pi-sync"
        self.sub_title = self.session.params.registration_id
        if not self.binder.bind():
            _log.warning("Panel fields missing, UI not bound")
        if self._connect:
            self.run_worker(
                self.session.run(), name="channel", group="channel",
                exclusive=True, exit_on_error=False,
            )

    async def on_unmount(self) -> None:
        self.binder.unbind()
        await self.session.close()

    # ─── Field events ──────────────────────────────────────────────

    @on(Select.Changed, f"#{POLL_INTERVAL}")
    @_safe_action
    def on_interval_selected(self, event: Select.Changed) -> None:
        # The select announces its initial value on mount; that is not a pick.
        if event.value is Select.NULL or event.value == self.session.poll_interval:
            return
        self.binder.on_interval_changed(event.value)

    @on(Input.Changed)
    @_safe_action
    def on_color_input(self, event: Input.Changed) -> None:
        self.binder.on_appearance_event(event.input.id or "", "input")

    @on(Input.Submitted)
    @_safe_action
    def on_color_submitted(self, event: Input.Submitted) -> None:
        self.binder.on_appearance_event(event.input.id or "", "change")

    @on(Checkbox.Changed, f"#{SHOW_LABEL}")
    @_safe_action
    def on_show_label_changed(self, event: Checkbox.Changed) -> None:
        self.binder.on_appearance_event(SHOW_LABEL, "change")

    @on(ShowLabelCheckbox.Clicked)
    @_safe_action
    def on_show_label_clicked(self, event: ShowLabelCheckbox.Clicked) -> None:
        self.binder.on_appearance_event(SHOW_LABEL, "click")

    # ─── Actions ───────────────────────────────────────────────────

    @_safe_action
    def action_force_save(self) -> None:
        """Re-send the current appearance even if nothing changed."""
        self.binder.debounce.schedule(FORCE)
