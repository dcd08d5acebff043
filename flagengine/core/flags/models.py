"""Feature flag data model.

Provides:
- Flag, condition and operator enums
- Condition payload variants (plain operand, attribute operand, date window)
- FeatureFlag / EvaluationContext / EvaluationResult
- Conversion to and from the persisted camelCase form
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from flagengine.core.errors import ErrorCode


class FlagType(str, Enum):
    """Declared type of a flag's value/default value."""
    BOOLEAN = "boolean"
    STRING = "string"
    NUMBER = "number"
    JSON = "json"


class ConditionType(str, Enum):
    """Context field a condition targets."""
    USER_ROLE = "user_role"
    USER_ID = "user_id"
    USER_ATTRIBUTE = "user_attribute"
    DATE_RANGE = "date_range"
    RANDOM = "random"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"


class Reason(str, Enum):
    """Why an evaluation resolved the way it did."""
    INACTIVE = "inactive"
    CONDITION_FAILED = "condition_failed"
    ROLLOUT_EXCLUDED = "rollout_excluded"
    ROLLOUT_INCLUDED = "rollout_included"
    NOT_FOUND = "not_found"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_datetime(value: Any) -> datetime:
    """Parse a datetime, date or ISO-8601 string into an aware datetime.

    Raises:
        ValueError: if the value cannot be interpreted as a point in time.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"Not a datetime: {value!r}")


def _is_date_only(value: Any) -> bool:
    if isinstance(value, date) and not isinstance(value, datetime):
        return True
    # YYYY-MM-DD
    return isinstance(value, str) and len(value.strip()) == 10


def parse_window_end(value: Any) -> datetime:
    """Parse a window end bound. A bare date covers that whole day."""
    moment = parse_datetime(value)
    if _is_date_only(value):
        moment = moment.replace(hour=23, minute=59, second=59, microsecond=999999)
    return moment


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return value


@dataclass(frozen=True)
class AttributeOperand:
    """Payload of a ``user_attribute`` condition."""
    attribute: str
    value: Any = None


@dataclass(frozen=True)
class DateWindow:
    """Payload of a ``date_range`` condition. Bounds are inclusive."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, moment: datetime) -> bool:
        moment = ensure_utc(moment)
        if self.start is not None and moment < ensure_utc(self.start):
            return False
        if self.end is not None and moment > ensure_utc(self.end):
            return False
        return True


ConditionPayload = Union[AttributeOperand, DateWindow, Any]


@dataclass(frozen=True)
class Condition:
    """A single targeting predicate attached to a flag."""
    type: ConditionType
    operator: Operator
    value: ConditionPayload = None

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.value, AttributeOperand):
            payload: Any = {
                "attribute": self.value.attribute,
                "value": _thaw(self.value.value),
            }
        elif isinstance(self.value, DateWindow):
            payload = {
                "start": self.value.start.isoformat() if self.value.start else None,
                "end": self.value.end.isoformat() if self.value.end else None,
            }
        else:
            payload = _thaw(self.value)
        return {
            "type": self.type.value,
            "operator": self.operator.value,
            "value": payload,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        """Build a condition, selecting the payload variant by ``type``.

        Raises:
            ValueError: on an unknown type/operator or a payload of the wrong shape.
        """
        condition_type = ConditionType(data["type"])
        operator = Operator(data["operator"])
        raw = data.get("value")

        payload: ConditionPayload
        if condition_type == ConditionType.USER_ATTRIBUTE:
            if not isinstance(raw, Mapping) or not isinstance(raw.get("attribute"), str):
                raise ValueError("user_attribute condition needs {attribute, value}")
            payload = AttributeOperand(
                attribute=raw["attribute"],
                value=_freeze(raw.get("value")),
            )
        elif condition_type == ConditionType.DATE_RANGE:
            if not isinstance(raw, Mapping):
                raise ValueError("date_range condition needs {start, end}")
            start = raw.get("start")
            end = raw.get("end")
            payload = DateWindow(
                start=parse_datetime(start) if start is not None else None,
                end=parse_window_end(end) if end is not None else None,
            )
        else:
            payload = _freeze(raw)

        return cls(type=condition_type, operator=operator, value=payload)


def _pick(data: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


@dataclass(frozen=True)
class FeatureFlag:
    """A named, typed, toggleable configuration unit."""
    key: str
    type: FlagType
    value: Any
    default_value: Any
    name: str = ""
    description: str = ""
    is_active: bool = True
    rollout_percentage: int = 100
    conditions: Tuple[Condition, ...] = ()
    created_by: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not isinstance(self.conditions, tuple):
            object.__setattr__(self, "conditions", tuple(self.conditions))
        if not self.name:
            object.__setattr__(self, "name", self.key)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted wire form."""
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "value": copy.deepcopy(self.value),
            "defaultValue": copy.deepcopy(self.default_value),
            "isActive": self.is_active,
            "rolloutPercentage": self.rollout_percentage,
            "conditions": [c.to_dict() for c in self.conditions],
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureFlag":
        """Create from the persisted form (camelCase or snake_case keys).

        Structure and the gating fields (``isActive``, ``rolloutPercentage``)
        are checked; ``value``/``default_value`` are not matched against ``type`` here, so stored corruption surfaces at
        evaluation time as a coercion error.
        """
        key = data.get("key")
        if not isinstance(key, str) or not key:
            raise ValueError("Flag key must be a non-empty string")

        is_active = _pick(data, "isActive", "is_active", True)
        if not isinstance(is_active, bool):
            raise ValueError(f"isActive must be a boolean, got {is_active!r}")
        rollout = _pick(data, "rolloutPercentage", "rollout_percentage", 100)
        if isinstance(rollout, bool) or not isinstance(rollout, int) or not 0 <= rollout <= 100:
            raise ValueError(f"rolloutPercentage must be an integer in [0, 100], got {rollout!r}")

        created_at = _pick(data, "createdAt", "created_at")
        updated_at = _pick(data, "updatedAt", "updated_at")
        return cls(
            key=key,
            name=data.get("name") or key,
            description=data.get("description") or "",
            type=FlagType(data["type"]),
            value=data.get("value"),
            default_value=_pick(data, "defaultValue", "default_value"),
            is_active=is_active,
            rollout_percentage=rollout,
            conditions=tuple(
                Condition.from_dict(c) for c in (data.get("conditions") or [])
            ),
            created_by=_pick(data, "createdBy", "created_by", "") or "",
            created_at=parse_datetime(created_at) if created_at else utcnow(),
            updated_at=parse_datetime(updated_at) if updated_at else utcnow(),
        )


@dataclass(frozen=True)
class EvaluationContext:
    """Caller-supplied context for one evaluation. Never persisted."""
    subject_id: Optional[str] = None
    role: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    now: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class EvaluationResult:
    """Decision for one flag and one context."""
    flag_key: str
    value: Any
    is_on: bool
    reason: Reason
    error: Optional[ErrorCode] = None
    bucket: Optional[int] = None
    failed_condition: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flagKey": self.flag_key,
            "value": copy.deepcopy(self.value),
            "isOn": self.is_on,
            "reason": self.reason.value,
            "error": self.error.value if self.error else None,
            "bucket": self.bucket,
            "failedCondition": self.failed_condition,
        }
