"""JSON logging for the API process.

Every record gets a ``correlation_id`` attribute at creation time, so
handlers other than ours (pytest's ``caplog`` included) see it too. The
formatter only emits a fixed set of extra fields; anything else passed via
``extra=`` is dropped so tokens and payloads never reach the log sink.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from typing import Any

from salescrm.core.context import get_correlation_id


LOGGED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "tenant_id",
        "actor_id",
        "role",
        "required_permissions",
        "required_roles",
        "code",
        "table",
        "environment",
        "error",
    }
)
MAX_ERROR_LENGTH = 500

_base_factory = logging.getLogRecordFactory()


def _correlated_record(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = {name: getattr(record, name) for name in LOGGED_FIELDS if hasattr(record, name)}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "fields": fields,
            },
            default=str,
        )


_configured = False


def configure_logging(level: str | None = None) -> None:
    global _configured
    if _configured:
        return

    logging.setLogRecordFactory(_correlated_record)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JsonLogFormatter}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                    "formatter": "json",
                }
            },
            "root": {
                "level": (level or os.getenv("LOG_LEVEL", "INFO")).upper(),
                "handlers": ["stdout"],
            },
        }
    )
    _configured = True
