"""Log output for a reporting run.

``production`` writes one JSON object per line, suited to CI log
collectors. ``development`` writes short coloured lines for a terminal.
Both carry the attribution fields below when a call site passes them in
``extra``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ATTRIBUTION_FIELDS = ("contract", "selector", "address", "tx_hash", "strategy")

NOISY_LOGGERS = ("httpcore", "httpx", "asyncio")

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            (name, getattr(record, name))
            for name in ATTRIBUTION_FIELDS
            if hasattr(record, name)
        )

        exc_type, exc, _ = record.exc_info or (None, None, None)
        if exc is not None:
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else type(exc).__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),  # type: ignore[arg-type]
            }

        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """``HH:MM:SS [LEVEL] logger: [tx] message``, coloured by level."""

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname, "")
        stamp = _record_time(record).strftime("%H:%M:%S")
        message = record.getMessage()

        tx_hash = getattr(record, "tx_hash", None)
        if tx_hash:
            message = f"[{tx_hash[:10]}] {message}"

        line = f"{color}{stamp} [{record.levelname:>8s}]{RESET} {record.name}: {message}"
        if record.exc_info and record.exc_info[1]:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(env: str = "development", log_level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger.

    Args:
        env: ``production`` selects JSON lines, anything else coloured text
        log_level: Minimum level name, e.g. ``"DEBUG"``
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if env == "production" else DevFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
