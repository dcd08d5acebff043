"""Flag evaluation.

Each evaluation walks a fixed sequence of checks:

    ActiveCheck -> ConditionCheck -> RolloutCheck -> Resolved(on|off)

The kill switch always dominates, then targeting, then the statistical
rollout, so neither disabling a flag nor narrowing its targeting can be
bypassed by rollout math. Evaluation reads only the flag and the context,
performs no I/O and never raises for bad input: failures are reported on
the returned ``EvaluationResult``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from flagengine.core.errors import CoercionError, ErrorCode
from flagengine.core.flags.bucketing import UNBUCKETED, compute_bucket, in_rollout
from flagengine.core.flags.coercion import coerce_value
from flagengine.core.flags.conditions import first_failed_condition
from flagengine.core.flags.models import (
    EvaluationContext,
    EvaluationResult,
    FeatureFlag,
    Reason,
)

if TYPE_CHECKING:
    from flagengine.core.flags.registry import FlagRegistry

logger = logging.getLogger(__name__)


def _resolve_default(flag: FeatureFlag, reason: Reason) -> Tuple[Any, Optional[ErrorCode]]:
    try:
        return coerce_value(flag.default_value, flag.type), None
    except CoercionError as e:
        logger.warning(
            f"Default value of flag '{flag.key}' does not match its type: {e.message}",
            extra={"flag_key": flag.key, "reason": reason, "extra_fields": {"flag_type": flag.type.value}},
        )
        return flag.default_value, ErrorCode.COERCION_ERROR


def evaluate_flag(flag: FeatureFlag, context: EvaluationContext) -> EvaluationResult:
    """Decide whether ``flag`` is on for ``context`` and what value to return."""
    # ActiveCheck
    if not flag.is_active:
        default, error = _resolve_default(flag, Reason.INACTIVE)
        return EvaluationResult(
            flag_key=flag.key,
            value=default,
            is_on=False,
            reason=Reason.INACTIVE,
            error=error,
        )

    # ConditionCheck
    failed = first_failed_condition(flag.conditions, context, flag.key)
    if failed is not None:
        default, error = _resolve_default(flag, Reason.CONDITION_FAILED)
        return EvaluationResult(
            flag_key=flag.key,
            value=default,
            is_on=False,
            reason=Reason.CONDITION_FAILED,
            error=error,
            failed_condition=failed,
        )

    # RolloutCheck
    bucket = compute_bucket(flag.key, context.subject_id)
    recorded_bucket = None if bucket == UNBUCKETED else bucket
    if not in_rollout(bucket, flag.rollout_percentage):
        default, error = _resolve_default(flag, Reason.ROLLOUT_EXCLUDED)
        if error is None and bucket == UNBUCKETED:
            error = ErrorCode.INVALID_CONTEXT
        return EvaluationResult(
            flag_key=flag.key,
            value=default,
            is_on=False,
            reason=Reason.ROLLOUT_EXCLUDED,
            error=error,
        )

    try:
        value = coerce_value(flag.value, flag.type)
    except CoercionError as e:
        logger.warning(
            f"Value of flag '{flag.key}' does not match its type, serving default: {e.message}",
            extra={
                "flag_key": flag.key,
                "reason": Reason.ROLLOUT_INCLUDED,
                "extra_fields": {"flag_type": flag.type.value},
            },
        )
        default, _ = _resolve_default(flag, Reason.ROLLOUT_INCLUDED)
        return EvaluationResult(
            flag_key=flag.key,
            value=default,
            is_on=False,
            reason=Reason.ROLLOUT_INCLUDED,
            error=ErrorCode.COERCION_ERROR,
            bucket=recorded_bucket,
        )

    return EvaluationResult(
        flag_key=flag.key,
        value=value,
        is_on=True,
        reason=Reason.ROLLOUT_INCLUDED,
        bucket=recorded_bucket,
    )


def not_found_result(flag_key: str) -> EvaluationResult:
    return EvaluationResult(
        flag_key=flag_key,
        value=None,
        is_on=False,
        reason=Reason.NOT_FOUND,
        error=ErrorCode.FLAG_NOT_FOUND,
    )


class FlagEvaluator:
    """Evaluates flags by key against the registry's current snapshot."""

    def __init__(self, registry: "FlagRegistry"):
        self.registry = registry

    def evaluate(
        self,
        flag_key: str,
        context: Optional[EvaluationContext] = None,
    ) -> EvaluationResult:
        """Evaluate one flag.

        Unknown keys resolve off with ``Reason.NOT_FOUND`` and a ``None``
        value; the caller decides what default to use.
        """
        flag = self.registry.get(flag_key)
        if flag is None:
            return not_found_result(flag_key)
        return evaluate_flag(flag, context or EvaluationContext())

    def is_enabled(
        self,
        flag_key: str,
        context: Optional[EvaluationContext] = None,
    ) -> bool:
        return self.evaluate(flag_key, context).is_on

    def get_value(
        self,
        flag_key: str,
        context: Optional[EvaluationContext] = None,
        default: Any = None,
    ) -> Any:
        """Resolved value of a flag, or ``default`` if the key is unknown."""
        result = self.evaluate(flag_key, context)
        if result.reason == Reason.NOT_FOUND:
            return default
        return result.value

    def evaluate_all(
        self,
        context: Optional[EvaluationContext] = None,
    ) -> Dict[str, EvaluationResult]:
        """Evaluate every flag against one consistent snapshot."""
        ctx = context or EvaluationContext()
        snapshot = self.registry.snapshot
        return {key: evaluate_flag(flag, ctx) for key, flag in snapshot.flags.items()}

    def get_values(self, context: Optional[EvaluationContext] = None) -> Dict[str, Any]:
        """Map every flag key to its resolved value for ``context``."""
        return {key: result.value for key, result in self.evaluate_all(context).items()}
