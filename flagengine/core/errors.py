"""Shared error codes and exceptions for the flag engine.

Evaluation never raises: failures are reported through
``EvaluationResult.error``. Write paths (store, manager, API) raise the
exceptions below.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    FLAG_NOT_FOUND = "FLAG_NOT_FOUND"
    FLAG_EXISTS = "FLAG_EXISTS"
    INVALID_CONTEXT = "INVALID_CONTEXT"  # missing subject for a partial rollout
    COERCION_ERROR = "COERCION_ERROR"  # stored value does not match flag type
    VALIDATION_FAILED = "VALIDATION_FAILED"  # rejected at write time
    STORE_ERROR = "STORE_ERROR"


class FlagError(Exception):
    """Base class for flag engine errors."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


class FlagNotFoundError(FlagError):
    def __init__(self, key: str) -> None:
        super().__init__(ErrorCode.FLAG_NOT_FOUND, f"Feature flag not found: {key}")
        self.key = key


class FlagExistsError(FlagError):
    def __init__(self, key: str) -> None:
        super().__init__(ErrorCode.FLAG_EXISTS, f"Feature flag already exists: {key}")
        self.key = key


class FlagValidationError(FlagError):
    """Malformed flag definition, rejected before it reaches the registry."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(ErrorCode.VALIDATION_FAILED, message)
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = self.details
        return data


class CoercionError(FlagError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.COERCION_ERROR, message)


class FlagStoreError(FlagError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.STORE_ERROR, message)


__all__ = [
    "ErrorCode",
    "FlagError",
    "FlagNotFoundError",
    "FlagExistsError",
    "FlagValidationError",
    "CoercionError",
    "FlagStoreError",
]
