"""Structured JSON logs for the bootstrap, correlated with the active span."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import logging
from pathlib import Path
import sys
from typing import IO, Any

import orjson

from tinysearch_bridge.errors import BridgeError, LoadError
from tinysearch_bridge.observability.context import get_trace_context


# Attributes every LogRecord carries; anything else was passed via ``extra=``
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Library loggers that log every artifact request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class JsonFormatter(logging.Formatter):
    """One JSON object per record, carrying the trace ids and the published identifier."""

    SECRET_MARKERS = ("password", "token", "secret", "authorization", "api_key")
    MAX_MESSAGE_LEN = 2000
    MAX_EXTRA_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        entry = self._base_fields(record)
        entry.update(self._correlation_fields())
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(self._extra_fields(record))
        return orjson.dumps(entry, default=self._json_default).decode("utf-8")

    def _base_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _clip(record.getMessage(), self.MAX_MESSAGE_LEN),
        }
        _, _, component = record.name.rpartition(".")
        if component != record.name:
            fields["component"] = component
        return fields

    def _correlation_fields(self) -> dict[str, Any]:
        ctx = get_trace_context()
        fields = {"trace_id": ctx.get("trace_id", ""), "span_id": ctx.get("span_id", "")}
        if identifier := ctx.get("identifier"):
            fields["identifier"] = identifier
        return fields

    def _extra_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        extras = {}
        for key, value in vars(record).items():
            if key in _STANDARD_RECORD_ATTRS or key.startswith("_"):
                continue
            if any(marker in key.lower() for marker in self.SECRET_MARKERS):
                extras[key] = "[REDACTED]"
            elif isinstance(value, str):
                extras[key] = _clip(value, self.MAX_EXTRA_LEN)
            else:
                extras[key] = value
        return extras

    def _json_default(self, value: Any) -> Any:
        if isinstance(value, LoadError):
            return value.to_dict()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (set, frozenset)):
            try:
                return sorted(value)
            except TypeError:
                return list(value)
        if isinstance(value, Path):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            # Artifact payloads can be megabytes; log their size and preamble only
            return f"<{len(value)} bytes {bytes(value[:8]).hex()}>"
        if isinstance(value, (BridgeError, OSError)):
            return f"{type(value).__name__}: {value}"
        return repr(value)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    stream: IO[str] | None = None,
    logger_levels: dict[str, str] | None = None,
) -> logging.Handler:
    """Route all logging through a single handler on the root logger.

    Logs go to stderr by default so command output on stdout stays parseable.

    Args:
        level: Root log level name, case-insensitive.
        json_output: Use ``JsonFormatter`` instead of a plain text line.
        stream: Stream to write to instead of stderr.
        logger_levels: Per-logger level overrides (logger name -> level name).

    Returns:
        The installed handler.
    """
    root = logging.getLogger()
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_PLAIN_FORMAT))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, name_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(name_level.upper())
    return handler
