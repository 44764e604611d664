from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
request_path_var: ContextVar[str | None] = ContextVar("request_path", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)


class LogContextFilter(logging.Filter):
    """Copies the current request context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = correlation_id_var.get()
        if getattr(record, "request_path", None) is None:
            record.request_path = request_path_var.get()
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    EXTRA_FIELDS = (
        "correlation_id",
        "request_path",
        "user_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "client_ip",
        "audit",
        "error",
        "key",
        "redis_key",
        "modules",
        "module_name",
        "auth_mode",
        "api_versions",
        "development",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(*, level: str = "INFO", json_logs: bool = True) -> None:
    root = logging.getLogger()
    if getattr(root, "_ingos_logging_configured", False):
        root.setLevel(level.upper())
        return

    root.handlers.clear()
    handler = logging.StreamHandler()
    handler.addFilter(LogContextFilter())
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s")
        )

    root.addHandler(handler)
    root.setLevel(level.upper())
    root._ingos_logging_configured = True  # type: ignore[attr-defined]
