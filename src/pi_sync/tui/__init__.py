"""pi-sync TUI package.

Modules:
    themes  — Color schemes (Nord, Tokyo Night, Dracula) and CSS generation
    widgets — ShowLabelCheckbox, _safe_action decorator
    app     — PanelApp (main Textual App), TextualPanelView
"""

from .themes import COLOR_SCHEMES, DEFAULT_SCHEME, get_scheme, build_css
from .widgets import ShowLabelCheckbox, _safe_action
from .app import PanelApp, TextualPanelView

__all__ = [
    "COLOR_SCHEMES",
    "DEFAULT_SCHEME",
    "get_scheme",
    "build_css",
    "ShowLabelCheckbox",
    "_safe_action",
    "PanelApp",
    "TextualPanelView",
]
