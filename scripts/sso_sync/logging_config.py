"""Structured JSON logging for sync runs.

Every line is one JSON object. Engine mutations carry ``operation``,
``entity_type`` and ``key``; ``run_context`` stamps the run id and sync mode
onto everything logged while a run is in progress so a single run can be
pulled out of CloudWatch with one filter.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

LOGGER_NAME = "sso_sync"

_EXTRA_FIELDS = (
    "run_id", "sync_mode", "provider", "entity_type", "operation", "key", "records", "duration_s",
)

# Client libraries that are chatty at INFO.
_NOISY_LOGGERS = ("googleapiclient.discovery_cache", "botocore", "urllib3")

_run_fields: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "sso_sync_run_fields", default={}
)


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, default=str)


class RunContextFilter(logging.Filter):
    """Copy the active run's fields onto records that do not set them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, val in _run_fields.get().items():
            if getattr(record, key, None) is None:
                setattr(record, key, val)
        return True


@contextmanager
def run_context(**fields: Any) -> Iterator[None]:
    token = _run_fields.set({**_run_fields.get(), **fields})
    try:
        yield
    finally:
        _run_fields.reset(token)


def configure_logging(level: str = "INFO") -> None:
    """Send the sso_sync logger tree to stderr as JSON."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RunContextFilter())
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
