"""Operator-facing log formatting.

Lines look like ``[2026-01-05T02:00:00.123Z] INFO: Processing batch 1/3``,
followed by any structured ``extra`` fields as ``key=value`` pairs.
"""

from __future__ import annotations

import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any

__all__ = ["IsoFormatter", "configure_logging", "reset_logging"]

_LOGGER_PREFIX = "hrms_kernel"

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}

_LEVEL_NAMES = {"WARNING": "WARN", "CRITICAL": "ERROR"}


class IsoFormatter(logging.Formatter):
    """Formats records as ``[ISO-8601] LEVEL: message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        stamp = ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"
        level = _LEVEL_NAMES.get(record.levelname, record.levelname)
        line = f"[{stamp}] {level}: {record.getMessage()}"

        extras = [
            f"{key}={val}"
            for key, val in vars(record).items()
            if key not in _STDLIB_KEYS
        ]
        if extras:
            line += " " + " ".join(extras)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            code = getattr(exc, "code", None)
            line += f" exc_type={type(exc).__name__}"
            if code:
                line += f" exc_code={code}"
            if record.levelno <= logging.DEBUG:
                line += "\n" + self.formatException(record.exc_info)
        return line


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    verbose: bool = False,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the hrms_kernel logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stdout)
    h.setFormatter(IsoFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True
