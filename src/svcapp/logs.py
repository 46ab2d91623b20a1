"""
Logging setup. Two output styles:

- "rich": human-readable, colored, to stderr (interactive use, the daemon).
- "json": one JSON object per line on stdout (the supervised `run` child, so
  the daemon's journal gets structured lines). Values passed via `extra=` are
  included as top-level keys.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

import msgspec.json
from rich.console import Console
from rich.logging import RichHandler

from svcapp.config import LogFormat

# Attributes every LogRecord has; anything else came in through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                doc[key] = value
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return msgspec.json.encode(doc, enc_hook=str).decode()


def setup_logging(
    level: int | str = logging.INFO,
    fmt: LogFormat = "rich",
    *,
    stream: TextIO | None = None,
) -> logging.Handler:
    """
    Configure the root logger with a single handler, replacing any previous
    ones. Returns the installed handler.
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping()[level.upper()]

    root = logging.getLogger()
    root.setLevel(level)
    if root.hasHandlers():
        root.handlers.clear()

    handler: logging.Handler
    if fmt == "json":
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(JsonFormatter())
    else:
        console = Console(file=stream) if stream is not None else Console(stderr=True)
        handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))

    handler.setLevel(level)
    root.addHandler(handler)
    return handler
