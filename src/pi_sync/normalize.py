"""Value normalization for panel fields.

Everything here is total: raw UI or wire input goes in, a valid domain
value comes out.  Nothing raises.

* ``normalize_interval``: snap to the nearest allowed poll interval
* ``normalize_color``: strict ``#rrggbb`` with fallback
* ``coerce_bool``: strict boolean with default for missing values
* ``parse_json_or_empty``: parse-or-default for JSON object payloads
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Sequence


ALLOWED_INTERVALS: tuple[int, ...] = (250, 500, 1000, 2000, 5000, 10000)
DEFAULT_INTERVAL = 1000

DEFAULT_BACKGROUND = "#000000"
DEFAULT_TEXT_COLOR = "#ffffff"

# Stands in for an absent key where None is a real value.
MISSING: Any = object()

_HEX_COLOR_RE = re.compile(r"^#[0-9a-f]{6}$")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


# ─── Intervals ────────────────────────────────────────────────────────

def parse_int(raw: Any) -> int | None:
    """Parse *raw* into an int, or ``None`` if it carries no integer."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw):
            return None
        return int(raw)
    if isinstance(raw, str):
        m = _LEADING_INT_RE.match(raw)
        if m:
            return int(m.group(1))
    return None


def normalize_interval(
    raw: Any,
    allowed: Sequence[int] = ALLOWED_INTERVALS,
    default: int = DEFAULT_INTERVAL,
) -> int:
    """Snap *raw* to a member of *allowed*.

    Unparseable input returns *default*.  Exact members come back
    unchanged; anything else maps to the nearest member, with ties going
    to the first one found scanning left to right.
    """
    value = parse_int(raw)
    if value is None:
        return default
    if value in allowed:
        return value
    nearest = allowed[0]
    nearest_diff = abs(value - nearest)
    for candidate in allowed[1:]:
        diff = abs(value - candidate)
        if diff < nearest_diff:
            nearest = candidate
            nearest_diff = diff
    return nearest


def format_rate(ms: Any) -> str:
    """Human-readable rate shown next to the interval picker."""
    return f"{ms}ms"


# ─── Colors / flags ───────────────────────────────────────────────────

def normalize_color(raw: Any, fallback: str) -> str:
    """Return the canonical lower-case ``#rrggbb`` form of *raw*, or *fallback*."""
    if not isinstance(raw, str):
        return fallback
    value = raw.strip().lower()
    if not _HEX_COLOR_RE.match(value):
        return fallback
    return value


def coerce_bool(raw: Any, default: bool) -> bool:
    """Missing values take *default*; anything present must be exactly ``True``.

    Pass ``MISSING`` for an absent key.  An explicit ``None`` is present
    and reads as False.
    """
    if raw is MISSING:
        return default
    return raw is True


# ─── JSON payloads ────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParseResult:
    """Outcome of ``parse_json_or_empty``.

    ``value`` is always a dict.  ``ok`` is False when the default was
    substituted, with ``error`` describing why.
    """

    value: dict[str, Any] = field(default_factory=dict)
    ok: bool = True
    error: str = ""


def parse_json_or_empty(raw: Any) -> ParseResult:
    """Parse a JSON object, degrading to ``{}`` instead of raising."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            return ParseResult(ok=False, error=f"undecodable payload: {exc}")
    if not isinstance(raw, str) or not raw:
        return ParseResult(ok=False, error="empty or non-text payload")
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        return ParseResult(ok=False, error=str(exc)[:200])
    if not isinstance(parsed, dict):
        return ParseResult(ok=False, error=f"expected object, got {type(parsed).__name__}")
    return ParseResult(value=parsed)


def as_dict(value: Any) -> dict[str, Any]:
    """Return *value* if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}
