"""Configuration system for pi-sync.

Reads/writes config from $HOME/.config/pi-sync/config.yml (or --config-file).
Also merges a local .pi-sync.yml if found in the current directory (local
takes precedence over the user config).

Config strings can include shell variables like ${PI_SYNC_HOST} which are
expanded at load time.

Everything lives under the ``config`` key:
  - host / addressing / defaultAction: how the panel reaches the controller
  - pollIntervals: the allowed interval set and the default
  - reconciliation: cadence of the missed-event poll
  - appearance: fallback tile appearance
  - status: connected sentinel and status tints
  - colorScheme / logging: panel look and log verbosity
"""

from __future__ import annotations

import copy
import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from .appearance import AppearanceSettings
from .normalize import (
    ALLOWED_INTERVALS,
    DEFAULT_BACKGROUND,
    DEFAULT_INTERVAL,
    DEFAULT_TEXT_COLOR,
    normalize_color,
    normalize_interval,
)


DEFAULT_CONFIG_DIR = os.path.join(
    os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config")),
    "pi-sync",
)
DEFAULT_CONFIG_FILE = os.path.join(DEFAULT_CONFIG_DIR, "config.yml")
LOCAL_CONFIG_NAME = ".pi-sync.yml"

# Full default config: written on first run and used as fallback for missing keys
DEFAULT_CONFIG: dict[str, Any] = {
    "config": {
        "host": "${PI_SYNC_HOST:-127.0.0.1}",
        "colorScheme": "nord",
        # "registration" addresses per-panel messages with the panel's own
        # registration id; "context" uses the resolved action context.
        "addressing": "registration",
        "defaultAction": "com.moeilijk.lhm.settings",
        "pollIntervals": {
            "allowed": list(ALLOWED_INTERVALS),
            "default": DEFAULT_INTERVAL,
        },
        "reconciliation": {
            "intervalMs": 300,
        },
        "appearance": {
            "background": DEFAULT_BACKGROUND,
            "textColor": DEFAULT_TEXT_COLOR,
            "showLabel": True,
        },
        "status": {
            "connectedSentinel": "Connected",
            "okColor": "#44aa44",
            "errorColor": "#aa4444",
        },
        "logging": {
            "level": "INFO",
        },
    },
}

VALID_SCHEMES = {"nord", "tokyo-night", "dracula"}
VALID_ADDRESSING = {"registration", "context"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


def _expand_env(value: str) -> str:
    """Expand shell-style ${VAR} and ${VAR:-default} in a string."""
    def _replacer(m: re.Match) -> str:
        var_expr = m.group(1)
        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.environ.get(var_name, default)
        return os.environ.get(var_expr, "")
    return re.sub(r"\$\{([^}]+)\}", _replacer, value)


def _expand_config(obj: Any) -> Any:
    """Recursively expand env vars in all string values."""
    if isinstance(obj, str):
        return _expand_env(obj)
    elif isinstance(obj, dict):
        return {k: _expand_config(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_config(v) for v in obj]
    return obj


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep-merge override into base. Override values win."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _closest_match(key: str, valid_keys: set[str], max_distance: int = 3) -> str | None:
    """Find the closest match for a key in a set of valid keys.

    Uses Levenshtein-style edit distance to suggest typo corrections.
    Returns None if no match is close enough (within max_distance edits).
    """
    best_match = None
    best_dist = max_distance + 1
    key_lower = key.lower()
    for candidate in valid_keys:
        cand_lower = candidate.lower()
        if key_lower == cand_lower:
            return candidate
        if abs(len(key_lower) - len(cand_lower)) > max_distance:
            continue
        dist = _edit_distance(key_lower, cand_lower)
        if dist < best_dist:
            best_dist = dist
            best_match = candidate
    return best_match if best_dist <= max_distance else None


def _edit_distance(a: str, b: str) -> int:
    """Compute Levenshtein edit distance between two strings."""
    if len(a) > len(b):
        a, b = b, a
    prev = list(range(len(a) + 1))
    for j in range(1, len(b) + 1):
        curr = [j] + [0] * len(a)
        for i in range(1, len(a) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr[i] = min(curr[i - 1] + 1, prev[i] + 1, prev[i - 1] + cost)
        prev = curr
    return prev[len(a)]


def _unknown_key_warnings(section: Any, known: set[str], path: str) -> list[str]:
    warnings: list[str] = []
    if not isinstance(section, dict):
        return warnings
    for key in section:
        if key not in known:
            _suggest = _closest_match(key, known)
            hint = f" (did you mean '{_suggest}'?)" if _suggest else ""
            warnings.append(
                f"Unknown key '{path}.{key}'{hint} — "
                f"expected one of: {', '.join(sorted(known))}"
            )
    return warnings


@dataclass
class PiSyncConfig:
    """Parsed and expanded pi-sync configuration."""

    raw: dict[str, Any] = field(default_factory=dict)
    """The raw config as loaded from YAML (with env vars unexpanded)."""

    expanded: dict[str, Any] = field(default_factory=dict)
    """The config with all env vars expanded."""

    config_path: str = DEFAULT_CONFIG_FILE
    """Path to the config file."""

    validation_warnings: list[str] = field(default_factory=list)
    """Warnings from the last validation run."""

    @classmethod
    def defaults(cls) -> "PiSyncConfig":
        """Built-in defaults only.  Nothing is read from or written to disk."""
        raw = copy.deepcopy(DEFAULT_CONFIG)
        return cls(raw=raw, expanded=_expand_config(raw), config_path=os.devnull)

    @classmethod
    def reset(cls, config_path: Optional[str] = None) -> "PiSyncConfig":
        """Delete the config file and regenerate it with all current defaults."""
        path = config_path or DEFAULT_CONFIG_FILE
        if os.path.isfile(path):
            os.unlink(path)
            print(f"  Config: deleted {path}", flush=True)
        return cls.load(path)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "PiSyncConfig":
        """Load config from file, creating with defaults if not found.

        Merge order (later takes precedence):
        1. DEFAULT_CONFIG (built-in defaults)
        2. ~/.config/pi-sync/config.yml (user config)
        3. .pi-sync.yml in cwd (project-local)
        """
        path = config_path or DEFAULT_CONFIG_FILE
        raw = copy.deepcopy(DEFAULT_CONFIG)

        if os.path.isfile(path):
            try:
                with open(path, "r") as f:
                    user_config = yaml.safe_load(f)
                if user_config and isinstance(user_config, dict):
                    raw = _deep_merge(raw, user_config)
            except Exception as e:
                print(f"WARNING: Failed to load config from {path}: {e}", flush=True)
        else:
            try:
                os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
                with open(path, "w") as f:
                    yaml.dump(raw, f, default_flow_style=False, sort_keys=False)
                print(f"  Config: created {path}", flush=True)
            except Exception as e:
                print(f"WARNING: Failed to write default config to {path}: {e}", flush=True)

        local_path = os.path.join(os.getcwd(), LOCAL_CONFIG_NAME)
        if os.path.isfile(local_path):
            try:
                with open(local_path, "r") as f:
                    local_config = yaml.safe_load(f)
                if local_config and isinstance(local_config, dict):
                    raw = _deep_merge(raw, local_config)
                    print(f"  Config: merged local {local_path}", flush=True)
            except Exception as e:
                print(f"WARNING: Failed to load local config from {local_path}: {e}", flush=True)

        cfg = cls(raw=raw, expanded=_expand_config(raw), config_path=path)
        cfg._validate()

        # Write back defaults + user overrides so new keys show up in the file.
        try:
            cfg.save()
        except Exception:
            pass
        return cfg

    def _validate(self) -> None:
        """Validate config structure and report warnings for issues."""
        warnings: list[str] = []

        warnings += _unknown_key_warnings(self.raw, {"config"}, "<root>")
        user_config = self.raw.get("config", {})
        warnings += _unknown_key_warnings(
            user_config, set(DEFAULT_CONFIG["config"].keys()), "config",
        )
        if isinstance(user_config, dict):
            for section in ("pollIntervals", "reconciliation", "appearance", "status", "logging"):
                warnings += _unknown_key_warnings(
                    user_config.get(section, {}),
                    set(DEFAULT_CONFIG["config"][section].keys()),
                    f"config.{section}",
                )

        runtime = self.runtime

        if runtime.get("colorScheme", "nord") not in VALID_SCHEMES:
            warnings.append(
                f"config.colorScheme '{runtime.get('colorScheme')}' is not valid — "
                f"expected one of: {', '.join(sorted(VALID_SCHEMES))}"
            )

        if runtime.get("addressing", "registration") not in VALID_ADDRESSING:
            warnings.append(
                f"config.addressing '{runtime.get('addressing')}' is not valid — "
                f"expected one of: {', '.join(sorted(VALID_ADDRESSING))}"
            )

        allowed = runtime.get("pollIntervals", {}).get("allowed", [])
        if not isinstance(allowed, list) or not allowed or not all(
            isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in allowed
        ):
            warnings.append(
                f"config.pollIntervals.allowed must be a non-empty list of positive integers — "
                f"got {allowed!r}, using {list(ALLOWED_INTERVALS)}"
            )

        poll_ms = runtime.get("reconciliation", {}).get("intervalMs", 300)
        if not isinstance(poll_ms, (int, float)) or poll_ms < 50:
            warnings.append(
                f"config.reconciliation.intervalMs ({poll_ms}) is out of range — must be >= 50"
            )

        for key in ("background", "textColor"):
            value = runtime.get("appearance", {}).get(key)
            if value is not None and normalize_color(value, "") == "":
                warnings.append(f"config.appearance.{key} '{value}' is not a #rrggbb color")

        level = str(runtime.get("logging", {}).get("level", "INFO")).upper()
        if level not in VALID_LOG_LEVELS:
            warnings.append(
                f"config.logging.level '{level}' is not valid — "
                f"expected one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )

        self.validation_warnings = list(warnings)
        for w in warnings:
            print(f"  Config WARNING: {w}", flush=True)

    def save(self) -> None:
        """Write the raw config back to disk."""
        if self.config_path == os.devnull:
            return
        os.makedirs(os.path.dirname(self.config_path) or ".", exist_ok=True)
        with open(self.config_path, "w") as f:
            yaml.dump(self.raw, f, default_flow_style=False, sort_keys=False)
        self.expanded = _expand_config(self.raw)

    # ─── Accessors ──────────────────────────────────────────────────

    @property
    def runtime(self) -> dict[str, Any]:
        value = self.expanded.get("config", {})
        return value if isinstance(value, dict) else {}

    def _section(self, name: str) -> dict[str, Any]:
        value = self.runtime.get(name, {})
        return value if isinstance(value, dict) else {}

    @property
    def host(self) -> str:
        return str(self.runtime.get("host") or "127.0.0.1")

    @property
    def color_scheme(self) -> str:
        scheme = self.runtime.get("colorScheme", "nord")
        return scheme if scheme in VALID_SCHEMES else "nord"

    @property
    def addressing(self) -> str:
        mode = self.runtime.get("addressing", "registration")
        return mode if mode in VALID_ADDRESSING else "registration"

    @property
    def default_action(self) -> str:
        return str(self.runtime.get("defaultAction") or DEFAULT_CONFIG["config"]["defaultAction"])

    # ─── Poll intervals ─────────────────────────────────────────────

    @property
    def allowed_intervals(self) -> tuple[int, ...]:
        """Allowed interval set, falling back to the built-in set if invalid."""
        allowed = self._section("pollIntervals").get("allowed")
        if isinstance(allowed, list) and allowed and all(
            isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in allowed
        ):
            return tuple(allowed)
        return ALLOWED_INTERVALS

    @property
    def default_interval(self) -> int:
        """Default interval, itself snapped into the allowed set."""
        raw = self._section("pollIntervals").get("default", DEFAULT_INTERVAL)
        allowed = self.allowed_intervals
        fallback = DEFAULT_INTERVAL if DEFAULT_INTERVAL in allowed else allowed[0]
        return normalize_interval(raw, allowed, fallback)

    @property
    def reconciliation_seconds(self) -> float:
        """Reconciliation poll cadence in seconds (minimum 50ms)."""
        ms = self._section("reconciliation").get("intervalMs", 300)
        if not isinstance(ms, (int, float)) or isinstance(ms, bool) or ms < 50:
            ms = 300
        return ms / 1000.0

    # ─── Appearance / status ────────────────────────────────────────

    @property
    def default_appearance(self) -> AppearanceSettings:
        section = self._section("appearance")
        return AppearanceSettings(
            background=normalize_color(section.get("background"), DEFAULT_BACKGROUND),
            text_color=normalize_color(section.get("textColor"), DEFAULT_TEXT_COLOR),
            show_label=section.get("showLabel", True) is not False,
        )

    @property
    def connected_sentinel(self) -> str:
        return str(self._section("status").get("connectedSentinel", "Connected"))

    @property
    def status_ok_color(self) -> str:
        return normalize_color(self._section("status").get("okColor"), "#44aa44")

    @property
    def status_error_color(self) -> str:
        return normalize_color(self._section("status").get("errorColor"), "#aa4444")

    @property
    def log_level(self) -> str:
        level = str(self._section("logging").get("level", "INFO")).upper()
        return level if level in VALID_LOG_LEVELS else "INFO"
