"""Feature flag decorators."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Optional, TypeVar

from flagengine.core.flags.evaluator import FlagEvaluator
from flagengine.core.flags.models import EvaluationContext

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def feature_flag(
    flag_key: str,
    evaluator: Optional[FlagEvaluator] = None,
    fallback: Optional[Callable[..., Any]] = None,
    context_extractor: Optional[Callable[..., EvaluationContext]] = None,
) -> Callable[[F], F]:
    """Decorator to gate function execution behind a feature flag.

    Args:
        flag_key: Key of the feature flag
        evaluator: Evaluator to use; defaults to the process-wide manager's
        fallback: Function to call instead when the flag is off
        context_extractor: Builds the EvaluationContext from the call arguments

    Example:
        @feature_flag("new_checkout", fallback=old_checkout)
        def new_checkout(cart):
            return checkout_v2(cart)

        @feature_flag("beta_report", context_extractor=lambda req: EvaluationContext(subject_id=req.user_id))
        async def beta_report(request):
            return await build_report(request)
    """

    def _is_on(*args: Any, **kwargs: Any) -> bool:
        context = None
        if context_extractor:
            try:
                context = context_extractor(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Failed to extract flag context for '{flag_key}': {e}")
                return False

        active = evaluator
        if active is None:
            from flagengine.core.flags.manager import get_flag_manager

            active = get_flag_manager().evaluator
        return active.is_enabled(flag_key, context)

    def decorator(func: F) -> F:
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                if _is_on(*args, **kwargs):
                    return await func(*args, **kwargs)
                if fallback:
                    result = fallback(*args, **kwargs)
                    if asyncio.iscoroutine(result):
                        return await result
                    return result
                logger.debug(f"Feature flag '{flag_key}' is off, skipping {func.__name__}")
                return None

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if _is_on(*args, **kwargs):
                return func(*args, **kwargs)
            elif fallback:
                return fallback(*args, **kwargs)
            else:
                logger.debug(f"Feature flag '{flag_key}' is off, skipping {func.__name__}")
                return None

        return wrapper  # type: ignore

    return decorator
