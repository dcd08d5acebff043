"""Targeting condition evaluation.

A condition selects one field of the evaluation context by its ``type`` and
compares it to the condition operand with its ``operator``. Evaluation is
pure and fails closed: absent fields, operands of the wrong shape and
incomparable values all make the condition false.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Optional, Sequence, Tuple

from flagengine.core.flags.bucketing import UNBUCKETED, compute_bucket
from flagengine.core.flags.models import (
    AttributeOperand,
    Condition,
    ConditionType,
    DateWindow,
    EvaluationContext,
    Operator,
    ensure_utc,
    parse_datetime,
)

# Seeds the "random" condition bucket apart from the flag-level rollout bucket
RANDOM_CONDITION_SALT = "condition"

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _equal(left: Any, right: Any) -> bool:
    if left == right:
        return True
    if isinstance(left, _SEQUENCE_TYPES + (dict,)) or isinstance(right, _SEQUENCE_TYPES + (dict,)):
        return False
    return str(left) == str(right)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, (datetime, date, str)):
        try:
            return parse_datetime(value)
        except ValueError:
            return None
    return None


def _comparable_pair(left: Any, right: Any) -> Optional[Tuple[Any, Any]]:
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num, right_num
    left_dt, right_dt = _as_datetime(left), _as_datetime(right)
    if left_dt is not None and right_dt is not None:
        return left_dt, right_dt
    return None


def apply_operator(left: Any, operator: Operator, right: Any) -> bool:
    """Compare a context value (``left``) with a condition operand (``right``)."""
    if operator == Operator.EQUALS:
        return _equal(left, right)
    elif operator == Operator.NOT_EQUALS:
        return not _equal(left, right)
    elif operator == Operator.IN:
        return isinstance(right, _SEQUENCE_TYPES) and any(_equal(left, r) for r in right)
    elif operator == Operator.NOT_IN:
        return isinstance(right, _SEQUENCE_TYPES) and not any(_equal(left, r) for r in right)
    elif operator in (Operator.GREATER_THAN, Operator.LESS_THAN):
        pair = _comparable_pair(left, right)
        if pair is None:
            return False
        if operator == Operator.GREATER_THAN:
            return pair[0] > pair[1]
        return pair[0] < pair[1]
    elif operator == Operator.CONTAINS:
        if isinstance(left, str) and isinstance(right, str):
            return right in left
        if isinstance(left, _SEQUENCE_TYPES):
            return any(_equal(item, right) for item in left)
        return False
    return False


def _evaluate_window(window: DateWindow, operator: Operator, now: datetime) -> bool:
    now = ensure_utc(now)
    if operator in (Operator.EQUALS, Operator.IN, Operator.CONTAINS):
        return window.contains(now)
    elif operator in (Operator.NOT_EQUALS, Operator.NOT_IN):
        return not window.contains(now)
    elif operator == Operator.GREATER_THAN:
        return window.start is not None and now > ensure_utc(window.start)
    elif operator == Operator.LESS_THAN:
        return window.end is not None and now < ensure_utc(window.end)
    return False


def evaluate_condition(
    condition: Condition,
    context: EvaluationContext,
    flag_key: str,
) -> bool:
    """Decide whether ``condition`` holds for ``context``.

    ``flag_key`` seeds the bucket used by ``random`` conditions.
    """
    operand = condition.value

    if condition.type == ConditionType.USER_ROLE:
        field_value = context.role
    elif condition.type == ConditionType.USER_ID:
        field_value = context.subject_id
    elif condition.type == ConditionType.USER_ATTRIBUTE:
        if not isinstance(operand, AttributeOperand):
            return False
        field_value = context.attributes.get(operand.attribute)
        operand = operand.value
    elif condition.type == ConditionType.DATE_RANGE:
        if not isinstance(operand, DateWindow) or not isinstance(context.now, datetime):
            return False
        return _evaluate_window(operand, condition.operator, context.now)
    elif condition.type == ConditionType.RANDOM:
        bucket = compute_bucket(flag_key, context.subject_id, salt=RANDOM_CONDITION_SALT)
        field_value = None if bucket == UNBUCKETED else bucket
    else:
        return False

    if field_value is None:
        return False
    return apply_operator(field_value, condition.operator, operand)


def first_failed_condition(
    conditions: Sequence[Condition],
    context: EvaluationContext,
    flag_key: str,
) -> Optional[int]:
    """Index of the first condition that does not hold, or None if all hold.

    Conditions are AND-combined; an empty sequence holds vacuously.
    """
    for index, condition in enumerate(conditions):
        if not evaluate_condition(condition, context, flag_key):
            return index
    return None
