"""Feature Flags.

Provides runtime-configurable feature flags:
- Targeting conditions (role, user id, attributes, date windows, random gate)
- Deterministic percentage rollouts
- Typed values with validation and coercion
- Atomically refreshed in-memory registry
"""

from flagengine.core.flags.models import (
    AttributeOperand,
    Condition,
    ConditionType,
    DateWindow,
    EvaluationContext,
    EvaluationResult,
    FeatureFlag,
    FlagType,
    Operator,
    Reason,
)
from flagengine.core.flags.bucketing import (
    UNBUCKETED,
    compute_bucket,
    in_rollout,
)
from flagengine.core.flags.coercion import coerce_value
from flagengine.core.flags.conditions import (
    apply_operator,
    evaluate_condition,
    first_failed_condition,
)
from flagengine.core.flags.evaluator import (
    FlagEvaluator,
    evaluate_flag,
)
from flagengine.core.flags.registry import (
    FlagRegistry,
    RegistryRefresher,
    RegistrySnapshot,
)
from flagengine.core.flags.schema import (
    ConditionDefinition,
    FlagDefinition,
    validate_flag_definition,
)
from flagengine.core.flags.store import (
    FileFlagStore,
    FlagStore,
    InMemoryFlagStore,
)
from flagengine.core.flags.manager import (
    FlagManager,
    get_flag_manager,
)
from flagengine.core.flags.decorators import feature_flag

__all__ = [
    # Model
    "AttributeOperand",
    "Condition",
    "ConditionType",
    "DateWindow",
    "EvaluationContext",
    "EvaluationResult",
    "FeatureFlag",
    "FlagType",
    "Operator",
    "Reason",
    # Evaluation
    "UNBUCKETED",
    "compute_bucket",
    "in_rollout",
    "coerce_value",
    "apply_operator",
    "evaluate_condition",
    "first_failed_condition",
    "FlagEvaluator",
    "evaluate_flag",
    # Registry
    "FlagRegistry",
    "RegistryRefresher",
    "RegistrySnapshot",
    # Validation
    "ConditionDefinition",
    "FlagDefinition",
    "validate_flag_definition",
    # Store
    "FileFlagStore",
    "FlagStore",
    "InMemoryFlagStore",
    # Manager
    "FlagManager",
    "get_flag_manager",
    "feature_flag",
]
