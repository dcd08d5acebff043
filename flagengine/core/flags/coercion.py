"""Value coercion against a flag's declared type."""

from __future__ import annotations

import copy
import math
from typing import Any

from flagengine.core.errors import CoercionError
from flagengine.core.flags.models import FlagType


def _check_json(value: Any, path: str = "$") -> None:
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CoercionError(f"Non-finite number at {path}")
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_json(item, f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise CoercionError(f"Non-string key {key!r} at {path}")
            _check_json(item, f"{path}.{key}")
        return
    raise CoercionError(f"Unsupported JSON value of type {type(value).__name__} at {path}")


def coerce_value(raw: Any, flag_type: FlagType) -> Any:
    """Validate ``raw`` against ``flag_type`` and return the normalized value.

    JSON values are deep-copied so callers cannot mutate a registry snapshot.

    Raises:
        CoercionError: if the value does not match the declared type.
    """
    if flag_type == FlagType.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        raise CoercionError(f"Expected boolean, got {type(raw).__name__}")

    if flag_type == FlagType.NUMBER:
        # bool is an int subclass but not a number here
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise CoercionError(f"Expected number, got {type(raw).__name__}")
        if isinstance(raw, float) and not math.isfinite(raw):
            raise CoercionError("Expected finite number")
        return raw

    if flag_type == FlagType.STRING:
        if isinstance(raw, str):
            return raw
        raise CoercionError(f"Expected string, got {type(raw).__name__}")

    if flag_type == FlagType.JSON:
        _check_json(raw)
        return copy.deepcopy(raw)

    raise CoercionError(f"Unknown flag type: {flag_type!r}")


def is_valid_value(raw: Any, flag_type: FlagType) -> bool:
    try:
        coerce_value(raw, flag_type)
    except CoercionError:
        return False
    return True
