from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from arara.context import get_actor_id, get_correlation_id
from arara.core.config import get_settings

# Structured fields copied from `extra=`; anything else stays out of the log line.
_KNOWN_FIELDS = frozenset(
    {
        "action",
        "actor_id",
        "target_id",
        "success",
        "details",
        "pendency_id",
        "from_status",
        "to_status",
        "permission",
        "role_name",
        "origin_ref_id",
        "error",
    }
)
_MAX_ERROR_LENGTH = 500


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


_DEFAULT_RECORD_FACTORY = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _DEFAULT_RECORD_FACTORY(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: envelope keys plus the whitelisted ``fields``.

    ``actor_id`` falls back to the operation bound in :mod:`arara.context`
    so lines logged deep inside a service call stay attributable.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = {key: value for key, value in record.__dict__.items() if key in _KNOWN_FIELDS}
        if "actor_id" not in fields and get_actor_id() is not None:
            fields["actor_id"] = get_actor_id()

        error_value = fields.get("error")
        if isinstance(error_value, str):
            fields["error"] = error_value[:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        return json.dumps(payload, default=str)


def configure_logging(level_name: str | None = None) -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_arara_configured", False):
        return

    level = getattr(logging, (level_name or get_settings().log_level).upper(), logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger.handlers.clear()
    root_logger.filters.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._arara_configured = True  # type: ignore[attr-defined]
