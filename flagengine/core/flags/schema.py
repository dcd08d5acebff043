"""Write-time validation of flag definitions.

Every create/update passes through ``validate_flag_definition`` before it
reaches a store. Evaluation never re-validates; it only coerces.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from flagengine.core.errors import FlagValidationError
from flagengine.core.flags.coercion import is_valid_value
from flagengine.core.flags.models import (
    Condition,
    ConditionType,
    FeatureFlag,
    FlagType,
    Operator,
    parse_datetime,
    parse_window_end,
    utcnow,
)

_SEQUENCE_OPERATORS = (Operator.IN, Operator.NOT_IN)
_ORDERING_OPERATORS = (Operator.GREATER_THAN, Operator.LESS_THAN)

# snake_case names accepted in partial updates, mapped to the wire names
_WIRE_NAMES = {
    "default_value": "defaultValue",
    "is_active": "isActive",
    "rollout_percentage": "rolloutPercentage",
    "created_by": "createdBy",
}


def _is_orderable(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, (str, datetime)):
        try:
            parse_datetime(value)
        except ValueError:
            return False
        return True
    return False


class ConditionDefinition(BaseModel):
    """A targeting condition as submitted by an administrator."""

    model_config = ConfigDict(extra="forbid")

    type: ConditionType
    operator: Operator
    value: Any = None

    @model_validator(mode="after")
    def _check_payload(self) -> "ConditionDefinition":
        if self.type == ConditionType.DATE_RANGE:
            if not isinstance(self.value, dict) or set(self.value) - {"start", "end"}:
                raise ValueError("date_range value must be an object with optional 'start' and 'end'")
            start = self.value.get("start")
            end = self.value.get("end")
            start_dt = parse_datetime(start) if start is not None else None
            end_dt = parse_window_end(end) if end is not None else None
            if start_dt and end_dt and start_dt > end_dt:
                raise ValueError("date_range start must not be after end")
            return self

        operand = self.value
        if self.type == ConditionType.USER_ATTRIBUTE:
            if not isinstance(self.value, dict) or not isinstance(self.value.get("attribute"), str):
                raise ValueError("user_attribute value must be an object with 'attribute' and 'value'")
            if not self.value["attribute"]:
                raise ValueError("user_attribute 'attribute' must not be empty")
            if "value" not in self.value:
                raise ValueError("user_attribute value must carry an operand under 'value'")
            operand = self.value["value"]

        if self.operator in _SEQUENCE_OPERATORS and not isinstance(operand, list):
            raise ValueError(f"'{self.operator.value}' requires a list operand")
        if self.operator in _ORDERING_OPERATORS and not _is_orderable(operand):
            raise ValueError(f"'{self.operator.value}' requires a number or date operand")
        if operand is None:
            raise ValueError("condition operand must not be null")
        return self

    def to_condition(self) -> Condition:
        return Condition.from_dict(self.model_dump(mode="json"))


class FlagDefinition(BaseModel):
    """A complete flag definition, accepted in camelCase or snake_case."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.:\-]*$")
    name: str = Field(min_length=1)
    description: str = ""
    type: FlagType
    value: Any
    default_value: Any = Field(alias="defaultValue")
    is_active: bool = Field(True, alias="isActive")
    rollout_percentage: int = Field(100, ge=0, le=100, strict=True, alias="rolloutPercentage")
    conditions: List[ConditionDefinition] = Field(default_factory=list)
    created_by: str = Field("", alias="createdBy")

    @model_validator(mode="after")
    def _check_values(self) -> "FlagDefinition":
        if self.default_value is None:
            raise ValueError("defaultValue is required")
        if not is_valid_value(self.value, self.type):
            raise ValueError(f"value does not match flag type '{self.type.value}'")
        if not is_valid_value(self.default_value, self.type):
            raise ValueError(f"defaultValue does not match flag type '{self.type.value}'")
        return self

    def to_flag(
        self,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> FeatureFlag:
        now = utcnow()
        return FeatureFlag(
            key=self.key,
            name=self.name,
            description=self.description,
            type=self.type,
            value=self.value,
            default_value=self.default_value,
            is_active=self.is_active,
            rollout_percentage=self.rollout_percentage,
            conditions=tuple(c.to_condition() for c in self.conditions),
            created_by=self.created_by,
            created_at=created_at or now,
            updated_at=updated_at or now,
        )


def _error_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def validate_flag_definition(
    data: Mapping[str, Any],
    created_at: Optional[datetime] = None,
) -> FeatureFlag:
    """Validate a raw definition and build the flag.

    Raises:
        FlagValidationError: on a bad rollout percentage, a type/value
            mismatch, or an unknown or malformed condition.
    """
    try:
        definition = FlagDefinition.model_validate(dict(data))
    except ValidationError as e:
        raise FlagValidationError(
            f"Invalid feature flag definition: {e.error_count()} error(s)",
            details=_error_details(e),
        ) from e
    return definition.to_flag(created_at=created_at)


def to_wire_names(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename snake_case update fields to their persisted camelCase names."""
    return {_WIRE_NAMES.get(name, name): value for name, value in changes.items()}
