"""Logging helpers."""

from flagengine.core.logging.structured import (
    StructuredFormatter,
    bind_request_id,
    clear_log_context,
    evaluation_log_context,
    flag_key_var,
    request_id_var,
    setup_structured_logging,
    subject_id_var,
)

__all__ = [
    "StructuredFormatter",
    "bind_request_id",
    "clear_log_context",
    "evaluation_log_context",
    "flag_key_var",
    "request_id_var",
    "setup_structured_logging",
    "subject_id_var",
]
