"""Connection parameters and context resolution.

The controller host launches the panel with a port, the panel's own
registration id, the name of the registration event, and two JSON blobs
describing the host and the action the panel edits.  Any of the blobs may
be malformed; they degrade to empty dicts.

Which identifier to address the controller with is resolved once per
connection.  The controller silently drops messages carrying a context it
does not expect, and it expects the panel's registration id, not the
underlying action's context.  ``SessionContext.address`` therefore
defaults to the registration id and only falls back to the resolved
chain value when that is empty.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import parse_qs

from .normalize import as_dict, parse_json_or_empty

DEFAULT_ACTION = "com.moeilijk.lhm.settings"
DEFAULT_REGISTER_EVENT = "registerPropertyInspector"

ADDRESSING_MODES = ("registration", "context")


def _first_text(*candidates: Any) -> str:
    """First non-empty candidate as text.  Non-zero numbers count; booleans and containers do not."""
    for value in candidates:
        if isinstance(value, str):
            if value:
                return value
        elif isinstance(value, (int, float)) and not isinstance(value, bool) and value and math.isfinite(value):
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            return str(value)
    return ""


def parse_query(query: Any) -> dict[str, str]:
    """Parse a URL query string into first-value-wins params."""
    if isinstance(query, Mapping):
        return {str(k): str(v) for k, v in query.items() if v is not None}
    if not isinstance(query, str) or not query:
        return {}
    parsed = parse_qs(query.lstrip("?"), keep_blank_values=False)
    return {k: v[0] for k, v in parsed.items() if v}


def resolve_context(action_info: Any, registration_id: Any, query_params: Any) -> str:
    """First non-empty of payload context, action context, query ``context``, registration id."""
    info = as_dict(action_info)
    params = as_dict(query_params)
    return _first_text(
        as_dict(info.get("payload")).get("context"),
        info.get("context"),
        params.get("context"),
        registration_id,
    )


def resolve_action(action_info: Any, query_params: Any, default: str = DEFAULT_ACTION) -> str:
    """Action UUID carried on ``sendToPlugin`` messages."""
    return _first_text(
        as_dict(action_info).get("action"),
        as_dict(query_params).get("action"),
        default,
    )


@dataclass
class ConnectionParams:
    """Startup parameters handed to the panel by the controller host."""

    port: int
    registration_id: str
    register_event: str = DEFAULT_REGISTER_EVENT
    info: dict[str, Any] = field(default_factory=dict)
    action_info: dict[str, Any] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_raw(
        cls,
        port: Any,
        registration_id: Any,
        register_event: Any = DEFAULT_REGISTER_EVENT,
        info: Any = "",
        action_info: Any = "",
        query: Any = "",
    ) -> "ConnectionParams":
        """Build from the raw launch arguments without ever raising."""
        try:
            port_num = int(port)
        except (TypeError, ValueError):
            port_num = 0
        return cls(
            port=port_num,
            registration_id=registration_id if isinstance(registration_id, str) else "",
            register_event=_first_text(register_event, DEFAULT_REGISTER_EVENT),
            info=parse_json_or_empty(info).value if not isinstance(info, dict) else info,
            action_info=(
                parse_json_or_empty(action_info).value
                if not isinstance(action_info, dict) else action_info
            ),
            query=parse_query(query),
        )


@dataclass(frozen=True)
class SessionContext:
    """Addressing identifiers resolved once when the channel opens."""

    resolved: str
    registration_id: str
    action: str = DEFAULT_ACTION
    addressing: str = "registration"

    @property
    def address(self) -> str:
        """The ``context`` value put on per-panel messages ('' when unknown)."""
        if self.addressing == "context":
            return self.resolved or self.registration_id
        return self.registration_id or self.resolved

    @classmethod
    def resolve(
        cls,
        params: ConnectionParams,
        *,
        addressing: str = "registration",
        default_action: str = DEFAULT_ACTION,
    ) -> "SessionContext":
        return cls(
            resolved=resolve_context(params.action_info, params.registration_id, params.query),
            registration_id=params.registration_id,
            action=resolve_action(params.action_info, params.query, default_action),
            addressing=addressing if addressing in ADDRESSING_MODES else "registration",
        )


def describe(ctx: Optional[SessionContext]) -> str:
    """Short form for log lines."""
    if ctx is None:
        return "<unresolved>"
    return f"{ctx.address} (resolved={ctx.resolved}, action={ctx.action})"
