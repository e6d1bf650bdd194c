from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_EVENT_KEYS = ("document_id", "method", "stage", "outcome", "latency_ms", "fields_detected")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EVENT_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if root.handlers:
        for handler in root.handlers:
            handler.setFormatter(JsonFormatter())
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def log_document_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    document_id: str,
    method: str | None = None,
    stage: str | None = None,
    outcome: str | None = None,
    latency_ms: int | None = None,
    fields_detected: list[str] | None = None,
) -> None:
    extra: dict[str, Any] = {"document_id": document_id}
    if method is not None:
        extra["method"] = method
    if stage is not None:
        extra["stage"] = stage
    if outcome is not None:
        extra["outcome"] = outcome
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    if fields_detected is not None:
        extra["fields_detected"] = fields_detected
    logger.log(level, message, extra=extra)
