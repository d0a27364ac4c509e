"""
Logging setup for the league backend.

Terminal output by default; JSON lines when LOG_JSON is set. Structured context
passed through ``extra=`` (invoice_number, league_id, reason, ...) is kept on the
JSON record.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

ROOT_LOGGER_NAME = "league_backend"

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, including extra context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class TerminalFormatter(logging.Formatter):
    """Plain text with extra context appended as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {
            k: v for k, v in vars(record).items()
            if k not in _RESERVED_ATTRS and not k.startswith("_")
        }
        if not context:
            return base
        pairs = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return f"{base} [{pairs}]"


def setup_logging(level: str | int = logging.INFO, json_output: bool = False) -> logging.Logger:
    """Configure the package logger. Safe to call more than once."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if getattr(handler, "_league_backend", False):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler._league_backend = True  # type: ignore[attr-defined]
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TerminalFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
