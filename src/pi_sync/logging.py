"""Structured logging for pi-sync.

The panel runs inside a terminal UI, so nothing may be printed once the
app is up.  All diagnostics go to rotating log files instead:

* **RotatingFileHandler** – 5 MB max, 3 backups.
* **Structured JSON** – each line is a JSON object with ``timestamp``,
  ``level``, ``logger``, ``message``, and an optional ``context`` field.
* **Context support** – callers pass the addressing ``context``, the wire
  ``event``, the save ``reason`` and the appearance ``signature`` via
  ``extra={"context": log_context(...)}``.

Module loggers are plain ``logging.getLogger("pi-sync.<area>")`` children;
``configure_logging`` attaches the handler to the ``pi-sync`` parent once
at startup.
"""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any


# ── Log file paths ───────────────────────────────────────────────────

PANEL_LOG = "/tmp/pi-sync.log"
DEVHOST_LOG = "/tmp/pi-sync-devhost.log"

ROOT_LOGGER = "pi-sync"

# ── Rotation settings ────────────────────────────────────────────────

MAX_BYTES = 5 * 1024 * 1024  # 5 MB
BACKUP_COUNT = 3


class _JsonFormatter(logging.Formatter):
    """Emit each log record as a single-line JSON object.

    Fields:
        timestamp  – ISO-8601 with milliseconds
        level      – DEBUG / INFO / WARNING / ERROR / CRITICAL
        logger     – logger name
        message    – the log message
        context    – optional dict with context, event, reason, etc.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        ctx = getattr(record, "context", None)
        if ctx:
            entry["context"] = ctx
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class _PlainFormatter(logging.Formatter):
    """Simple one-line formatter for the dev host log."""

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, datefmt="%Y-%m-%d %H:%M:%S")
        return f"[{ts}] {record.levelname}: {record.getMessage()}"


def _make_handler(
    path: str,
    formatter: logging.Formatter,
    max_bytes: int = MAX_BYTES,
    backup_count: int = BACKUP_COUNT,
) -> RotatingFileHandler:
    """Create a RotatingFileHandler that writes to *path*."""
    os.makedirs(os.path.dirname(path) or "/tmp", exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    return handler


# ── Public helpers ────────────────────────────────────────────────────

_configured: set[str] = set()


def get_logger(
    name: str,
    log_file: str = PANEL_LOG,
    level: int = logging.DEBUG,
    *,
    json_format: bool = True,
) -> logging.Logger:
    """Return a logger that writes to *log_file*.

    Calling this multiple times with the same *name* and *log_file* only
    adds the handler once.

    Parameters
    ----------
    name:
        Logger name (e.g. ``"pi-sync"``, ``"pi-sync.devhost"``).
    log_file:
        Absolute path to the log file.
    level:
        Minimum level for this logger.
    json_format:
        ``True`` → JSON lines (default, machine-parseable).
        ``False`` → plain-text lines.
    """
    logger = logging.getLogger(name)
    key = f"{name}:{log_file}"
    if key not in _configured:
        fmt = _JsonFormatter() if json_format else _PlainFormatter()
        handler = _make_handler(log_file, fmt)
        handler.setLevel(level)
        logger.addHandler(handler)
        _configured.add(key)
    logger.setLevel(level)
    return logger


def configure_logging(level: str = "INFO", log_file: str = PANEL_LOG) -> logging.Logger:
    """Attach the JSON file handler to the ``pi-sync`` logger tree."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    logger = get_logger(ROOT_LOGGER, log_file, numeric)
    # Keep records off the terminal the UI is drawing on.
    logger.propagate = False
    return logger


def log_context(
    *,
    context: str = "",
    event: str = "",
    reason: str = "",
    signature: str = "",
    **extra: Any,
) -> dict[str, Any]:
    """Build a context dict for structured log entries.

    Usage::

        log.info("Saved appearance", extra={"context": log_context(
            context="uuid-1", reason="poll", signature="#000000|#ffffff|1"
        )})
    """
    ctx: dict[str, Any] = {}
    if context:
        ctx["context"] = context
    if event:
        ctx["event"] = event
    if reason:
        ctx["reason"] = reason
    if signature:
        ctx["signature"] = signature
    ctx.update(extra)
    return ctx
