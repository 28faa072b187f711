from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_CONTEXT_FIELDS = (
    "request_id",
    "invoice_number",
    "zatca_uuid",
    "stage",
    "state",
    "table",
    "outcome",
    "latency_ms",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level: str = "INFO") -> None:
    formatter = JsonFormatter()
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(formatter)
    # urllib3 logs every outbound request at DEBUG.
    logging.getLogger("urllib3").setLevel(max(root.level, logging.INFO))


def log_invoice_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    request_id: str | None = None,
    invoice_number: int | str | None = None,
    zatca_uuid: str | None = None,
    stage: str | None = None,
    state: str | None = None,
    table: str | None = None,
    outcome: str | None = None,
    latency_ms: int | None = None,
) -> None:
    extra: dict[str, Any] = {}
    if request_id is not None:
        extra["request_id"] = request_id
    if invoice_number is not None:
        extra["invoice_number"] = invoice_number
    if zatca_uuid is not None:
        extra["zatca_uuid"] = zatca_uuid
    if stage is not None:
        extra["stage"] = stage
    if state is not None:
        extra["state"] = state
    if table is not None:
        extra["table"] = table
    if outcome is not None:
        extra["outcome"] = outcome
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    logger.log(level, message, extra=extra)
