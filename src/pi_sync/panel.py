"""Field access for the settings panel.

The session and binder never touch widgets directly.  They go through a
``PanelView``, which looks fields up by id (``None`` when the panel has
not rendered that field yet) and writes values or display text back.

``MemoryPanelView`` is the headless implementation used by tests and by
anything that wants to drive a session without a terminal UI.  The
Textual implementation lives in ``pi_sync.tui.app``.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol


# ─── Field ids (shared with the controller's settings keys) ─────────────

POLL_INTERVAL = "pollInterval"
TILE_BACKGROUND = "tileBackground"
TILE_TEXT_COLOR = "tileTextColor"
SHOW_LABEL = "showLabel"
CURRENT_RATE = "currentRate"
CONNECTION_STATUS = "connectionStatus"

REQUIRED_FIELDS: tuple[str, ...] = (POLL_INTERVAL, TILE_BACKGROUND, TILE_TEXT_COLOR, SHOW_LABEL)
APPEARANCE_FIELDS: tuple[str, ...] = (TILE_BACKGROUND, TILE_TEXT_COLOR, SHOW_LABEL)


class PanelView(Protocol):
    """What the synchronization core needs from a rendered panel."""

    def has_fields(self, *field_ids: str) -> bool:
        """True when every named field exists."""
        ...

    def get_value(self, field_id: str) -> Any:
        """Current value of an input field, or ``None`` if absent."""
        ...

    def set_value(self, field_id: str, value: Any) -> None:
        """Write an input field's value.  Absent fields are ignored."""
        ...

    def set_text(self, field_id: str, text: str, color: Optional[str] = None) -> None:
        """Update a display field, optionally tinting it."""
        ...


class MemoryPanelView:
    """Dict-backed panel.

    ``fields`` holds input values, ``texts`` holds display text and
    ``colors`` the last tint applied to a display field.  Pass
    ``rendered=False`` to model a panel whose inputs do not exist yet.
    """

    def __init__(
        self,
        *,
        poll_interval: Any = 1000,
        background: Any = "#000000",
        text_color: Any = "#ffffff",
        show_label: Any = True,
        rendered: bool = True,
    ):
        self.fields: dict[str, Any] = {}
        self.texts: dict[str, str] = {CURRENT_RATE: "", CONNECTION_STATUS: ""}
        self.colors: dict[str, str] = {}
        self.writes: list[tuple[str, Any]] = []
        if rendered:
            self.fields = {
                POLL_INTERVAL: poll_interval,
                TILE_BACKGROUND: background,
                TILE_TEXT_COLOR: text_color,
                SHOW_LABEL: show_label,
            }

    def has_fields(self, *field_ids: str) -> bool:
        return all(f in self.fields for f in field_ids)

    def get_value(self, field_id: str) -> Any:
        return self.fields.get(field_id)

    def set_value(self, field_id: str, value: Any) -> None:
        if field_id not in self.fields:
            return
        self.fields[field_id] = value
        self.writes.append((field_id, value))

    def set_text(self, field_id: str, text: str, color: Optional[str] = None) -> None:
        self.texts[field_id] = text
        if color is not None:
            self.colors[field_id] = color
