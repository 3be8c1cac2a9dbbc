"""Tile appearance settings and their signature.

The panel edits three appearance fields.  Instead of diffing field by
field, the session compares a flat signature string of the current UI
against the last one it saved; equal signatures mean the save would be a
no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .normalize import (
    DEFAULT_BACKGROUND,
    DEFAULT_TEXT_COLOR,
    MISSING,
    as_dict,
    coerce_bool,
    normalize_color,
)
from .panel import APPEARANCE_FIELDS, PanelView, SHOW_LABEL, TILE_BACKGROUND, TILE_TEXT_COLOR

SIGNATURE_SEPARATOR = "|"


@dataclass(frozen=True)
class AppearanceSettings:
    """Normalized tile appearance."""

    background: str = DEFAULT_BACKGROUND
    text_color: str = DEFAULT_TEXT_COLOR
    show_label: bool = True

    @classmethod
    def from_payload(cls, payload: Any, defaults: Optional["AppearanceSettings"] = None) -> "AppearanceSettings":
        """Build from a controller settings dict.  Malformed input yields defaults."""
        base = defaults or cls()
        data = as_dict(payload)
        return cls(
            background=normalize_color(data.get(TILE_BACKGROUND), base.background),
            text_color=normalize_color(data.get(TILE_TEXT_COLOR), base.text_color),
            show_label=coerce_bool(data.get(SHOW_LABEL, MISSING), base.show_label),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            TILE_BACKGROUND: self.background,
            TILE_TEXT_COLOR: self.text_color,
            SHOW_LABEL: self.show_label,
        }


def signature_of(settings: AppearanceSettings) -> str:
    """Deterministic fingerprint used only for equality checks."""
    return SIGNATURE_SEPARATOR.join([
        settings.background,
        settings.text_color,
        "1" if settings.show_label else "0",
    ])


def read_current_appearance(
    view: PanelView,
    defaults: Optional[AppearanceSettings] = None,
) -> AppearanceSettings:
    """Read the appearance fields through the normalizer.

    A panel that has not rendered its fields yet reads as the defaults.
    """
    base = defaults or AppearanceSettings()
    if not view.has_fields(*APPEARANCE_FIELDS):
        return base
    return AppearanceSettings(
        background=normalize_color(view.get_value(TILE_BACKGROUND), base.background),
        text_color=normalize_color(view.get_value(TILE_TEXT_COLOR), base.text_color),
        show_label=view.get_value(SHOW_LABEL) is True,
    )


def apply_appearance(
    view: PanelView,
    payload: Any,
    defaults: Optional[AppearanceSettings] = None,
) -> Optional[AppearanceSettings]:
    """Write an inbound appearance payload into the panel.

    Only fields whose value actually changes are written, so an unchanged
    field keeps its cursor and focus.  Returns the applied settings, or
    ``None`` when the panel fields are missing.
    """
    if not view.has_fields(*APPEARANCE_FIELDS):
        return None
    settings = AppearanceSettings.from_payload(payload, defaults)
    if view.get_value(TILE_BACKGROUND) != settings.background:
        view.set_value(TILE_BACKGROUND, settings.background)
    if view.get_value(TILE_TEXT_COLOR) != settings.text_color:
        view.set_value(TILE_TEXT_COLOR, settings.text_color)
    if view.get_value(SHOW_LABEL) is not settings.show_label:
        view.set_value(SHOW_LABEL, settings.show_label)
    return settings
