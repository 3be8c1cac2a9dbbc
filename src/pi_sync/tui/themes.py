"""Color schemes and CSS generation for the pi-sync panel.

Supports Nord (default), Tokyo Night and Dracula.  Each scheme defines
colors for backgrounds, text, accents, and borders.
"""

from __future__ import annotations


# ─── Color Schemes ────────────────────────────────────────────────────────

COLOR_SCHEMES: dict[str, dict[str, str]] = {
    "nord": {
        "bg": "#2e3440",
        "bg_alt": "#3b4252",
        "fg": "#eceff4",
        "fg_dim": "#616e88",
        "accent": "#88c0d0",
        "success": "#a3be8c",
        "warning": "#ebcb8b",
        "error": "#bf616a",
        "border": "#4c566a",
    },
    "tokyo-night": {
        "bg": "#1a1b26",
        "bg_alt": "#24283b",
        "fg": "#a9b1d6",
        "fg_dim": "#565f89",
        "accent": "#7aa2f7",
        "success": "#9ece6a",
        "warning": "#e0af68",
        "error": "#f7768e",
        "border": "#414868",
    },
    "dracula": {
        "bg": "#282a36",
        "bg_alt": "#44475a",
        "fg": "#f8f8f2",
        "fg_dim": "#6272a4",
        "accent": "#8be9fd",
        "success": "#50fa7b",
        "warning": "#f1fa8c",
        "error": "#ff5555",
        "border": "#6272a4",
    },
}

DEFAULT_SCHEME = "nord"


def get_scheme(name: str = DEFAULT_SCHEME) -> dict[str, str]:
    """Get a color scheme by name, with fallback to default."""
    return COLOR_SCHEMES.get(name, COLOR_SCHEMES[DEFAULT_SCHEME])


def build_css(scheme_name: str = DEFAULT_SCHEME) -> str:
    """Build the Textual CSS using a named color scheme."""
    s = get_scheme(scheme_name)
    return f"""
    Screen {{
        background: {s['bg']};
        color: {s['fg']};
    }}

    /* ─── Section headings ─────────────────────────────────── */

    .section-title {{
        margin: 1 1 0 1;
        padding: 0 1;
        color: {s['accent']};
        text-style: bold;
        width: 1fr;
    }}

    /* ─── Field rows ───────────────────────────────────────── */

    .field-row {{
        height: auto;
        margin: 0 1;
        padding: 0 1;
        layout: horizontal;
    }}

    .field-label {{
        width: 18;
        padding: 1 1 0 0;
        color: {s['fg_dim']};
    }}

    .field-row Input, .field-row Select {{
        width: 1fr;
        background: {s['bg_alt']};
        border: tall {s['border']};
    }}

    .field-row Input:focus, .field-row Select:focus {{
        border: tall {s['accent']};
    }}

    #showLabel {{
        margin: 0 2;
        background: {s['bg']};
    }}

    /* ─── Rate / status line ───────────────────────────────── */

    #currentRate {{
        padding: 1 1 0 0;
        color: {s['success']};
    }}

    #connectionStatus {{
        padding: 1 1 0 0;
        color: {s['warning']};
    }}
    """
