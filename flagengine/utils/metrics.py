"""Prometheus metrics for the flag registry and store.

Only operational health is tracked here; per-subject exposure is left to
callers, which receive everything they need in ``EvaluationResult``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

flag_registry_refresh_total = Counter(
    "flag_registry_refresh_total",
    "Registry snapshot refresh attempts",
    ["status"],
)
flag_registry_flags = Gauge(
    "flag_registry_flags",
    "Number of flags in the installed registry snapshot",
)
flag_store_operations_total = Counter(
    "flag_store_operations_total",
    "Flag store write operations",
    ["operation", "status"],
)
