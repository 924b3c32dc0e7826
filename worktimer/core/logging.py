"""Log formatting.

Every record carries the request id and caller of the request that produced
it. Structured fields are passed as ``extra={"extra_data": {...}}`` and are
merged into the JSON object (or appended as ``key=value`` pairs in text mode).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var
from .config import settings

# The request middleware already logs one line per request.
QUIETED_LOGGERS = ("uvicorn.access",)


def _context(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    request_id = request_id_ctx_var.get()
    if request_id:
        fields["request_id"] = request_id
    principal = principal_ctx_var.get()
    if principal:
        fields["principal"] = principal
    extra = getattr(record, "extra_data", None)
    if isinstance(extra, Mapping):
        fields.update(extra)
    return fields


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), default=str)


class TextLogFormatter(logging.Formatter):
    """Human readable variant for local development."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _context(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    handler = logging.StreamHandler()
    use_text = (fmt or settings.LOG_FORMAT).lower() == "text"
    handler.setFormatter(TextLogFormatter() if use_text else JsonLogFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel((level or settings.LOG_LEVEL).upper())
    for name in QUIETED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
