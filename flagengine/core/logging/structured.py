"""JSON logging for the flag engine.

Every line carries the service identity plus whatever evaluation context is
bound at the time: the HTTP request id, the subject being evaluated and the
flag key. Evaluation code can also attach ``flag_key``/``reason`` directly
through ``extra=``.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
subject_id_var: ContextVar[Optional[str]] = ContextVar("subject_id", default=None)
flag_key_var: ContextVar[Optional[str]] = ContextVar("flag_key", default=None)

_BOUND_FIELDS = {
    "request_id": request_id_var,
    "subject_id": subject_id_var,
    "flag_key": flag_key_var,
}

# Record attributes promoted to top-level keys when passed via extra=
_RECORD_FIELDS = ("flag_key", "reason")


class StructuredFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def __init__(self, service_name: str = "flagengine", environment: str = "production"):
        super().__init__()
        self.service_name = service_name
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "service": self.service_name,
            "env": self.environment,
        }

        for name, var in _BOUND_FIELDS.items():
            value = var.get()
            if value is not None:
                entry[name] = value
        for name in _RECORD_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = getattr(value, "value", value)

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            entry["extra"] = extra_fields

        if record.exc_info:
            entry["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "detail": str(record.exc_info[1]),
                "trace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


def setup_structured_logging(
    service_name: str = "flagengine",
    environment: str = "production",
    level: Union[int, str] = logging.INFO,
    json_output: bool = True,
) -> None:
    """Replace the root handlers with a single stdout handler."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(StructuredFormatter(service_name, environment))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


def bind_request_id(request_id: Optional[str] = None) -> str:
    """Bind the current request id, generating one if none was supplied."""
    request_id = request_id or uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


@contextmanager
def evaluation_log_context(
    subject_id: Optional[str] = None,
    flag_key: Optional[str] = None,
) -> Iterator[None]:
    """Tag log lines emitted inside the block with the subject and flag."""
    subject_token = subject_id_var.set(subject_id)
    flag_token = flag_key_var.set(flag_key)
    try:
        yield
    finally:
        flag_key_var.reset(flag_token)
        subject_id_var.reset(subject_token)


def clear_log_context() -> None:
    for var in _BOUND_FIELDS.values():
        var.set(None)
