"""
JSON logging for the realtime service.
Why: one machine-readable line per event; cache and stream context travel as fields.
"""

import json
import logging
from typing import Any, Dict

# Fields callers may attach with ``extra={...}``.
_EXTRA_FIELDS = (
    "request_id",
    "path",
    "method",
    "status",
    "duration_ms",
    "topic",
    "subject",
    "connection_id",
    "active_connections",
    "cache_key",
    "cache_pattern",
    "removed",
    "job",
    "error",
)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in _EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if any(isinstance(h.formatter, _JsonFormatter) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
