"""Tests for targeting condition evaluation."""

from datetime import datetime, timedelta, timezone

import pytest

from flagengine.core.flags import (
    AttributeOperand,
    Condition,
    ConditionType,
    DateWindow,
    EvaluationContext,
    Operator,
    apply_operator,
    compute_bucket,
    evaluate_condition,
    first_failed_condition,
)
from flagengine.core.flags.conditions import RANDOM_CONDITION_SALT


def cond(ctype, operator, value):
    return Condition(type=ConditionType(ctype), operator=Operator(operator), value=value)


class TestApplyOperator:
    """Tests for operator semantics."""

    def test_equals_and_not_equals(self):
        """Test structural and stringified equality."""
        assert apply_operator("ADMIN", Operator.EQUALS, "ADMIN") is True
        assert apply_operator(42, Operator.EQUALS, "42") is True
        assert apply_operator("ADMIN", Operator.EQUALS, "admin") is False
        assert apply_operator("VIEWER", Operator.NOT_EQUALS, "ADMIN") is True
        assert apply_operator("ADMIN", Operator.NOT_EQUALS, "ADMIN") is False

    def test_equals_does_not_stringify_collections(self):
        """Test that lists are compared structurally only."""
        assert apply_operator(["a"], Operator.EQUALS, ("a",)) is False
        assert apply_operator(["a"], Operator.EQUALS, ["a"]) is True

    def test_in_requires_sequence(self):
        """Test membership operators need a list operand."""
        assert apply_operator("EDITOR", Operator.IN, ["ADMIN", "EDITOR"]) is True
        assert apply_operator("VIEWER", Operator.IN, ["ADMIN", "EDITOR"]) is False
        assert apply_operator("VIEWER", Operator.NOT_IN, ["ADMIN"]) is True
        assert apply_operator("ADMIN", Operator.NOT_IN, ("ADMIN",)) is False
        # A string operand is not a sequence here: both operators fail closed
        assert apply_operator("A", Operator.IN, "ABC") is False
        assert apply_operator("A", Operator.NOT_IN, "XYZ") is False

    def test_numeric_comparison(self):
        """Test greater_than/less_than on numbers and numeric strings."""
        assert apply_operator(10, Operator.GREATER_THAN, 5) is True
        assert apply_operator("10", Operator.GREATER_THAN, 5) is True
        assert apply_operator(3.5, Operator.LESS_THAN, 4) is True
        assert apply_operator(5, Operator.LESS_THAN, 5) is False

    def test_comparison_fails_closed(self):
        """Test non-numeric operands make ordering false."""
        assert apply_operator("abc", Operator.GREATER_THAN, 1) is False
        assert apply_operator("abc", Operator.LESS_THAN, 1) is False
        assert apply_operator(True, Operator.GREATER_THAN, 0) is False
        assert apply_operator(None, Operator.LESS_THAN, 1) is False
        assert apply_operator(float("nan"), Operator.LESS_THAN, 1) is False

    def test_date_comparison(self):
        """Test ordering between datetimes and ISO strings."""
        joined = datetime(2024, 1, 10, tzinfo=timezone.utc)
        assert apply_operator(joined, Operator.GREATER_THAN, "2024-01-01T00:00:00Z") is True
        assert apply_operator("2023-12-31", Operator.LESS_THAN, joined) is True
        # Naive datetimes are treated as UTC
        assert apply_operator(datetime(2024, 1, 10), Operator.LESS_THAN, "2024-02-01") is True

    def test_contains(self):
        """Test substring and collection membership."""
        assert apply_operator("pro-annual", Operator.CONTAINS, "annual") is True
        assert apply_operator("pro-annual", Operator.CONTAINS, "monthly") is False
        assert apply_operator(["beta", "staff"], Operator.CONTAINS, "beta") is True
        assert apply_operator(["beta"], Operator.CONTAINS, "staff") is False
        assert apply_operator(42, Operator.CONTAINS, "4") is False


class TestEvaluateCondition:
    """Tests for field selection by condition type."""

    def test_user_role(self):
        """Test role targeting."""
        condition = cond("user_role", "equals", "ADMIN")
        assert evaluate_condition(condition, EvaluationContext(role="ADMIN"), "f") is True
        assert evaluate_condition(condition, EvaluationContext(role="VIEWER"), "f") is False

    def test_user_id(self):
        """Test subject id targeting."""
        condition = cond("user_id", "in", ("u1", "u2"))
        assert evaluate_condition(condition, EvaluationContext(subject_id="u1"), "f") is True
        assert evaluate_condition(condition, EvaluationContext(subject_id="u3"), "f") is False

    def test_absent_field_fails_for_every_operator(self):
        """Test missing context fields fail closed."""
        ctx = EvaluationContext()
        assert evaluate_condition(cond("user_role", "not_equals", "ADMIN"), ctx, "f") is False
        assert evaluate_condition(cond("user_id", "not_in", ("u1",)), ctx, "f") is False

    def test_user_attribute(self):
        """Test attribute lookup through the condition's own sub-key."""
        condition = cond("user_attribute", "equals", AttributeOperand("plan", "premium"))
        ctx = EvaluationContext(attributes={"plan": "premium"})
        assert evaluate_condition(condition, ctx, "f") is True

        ctx = EvaluationContext(attributes={"plan": "free"})
        assert evaluate_condition(condition, ctx, "f") is False

    def test_missing_attribute_is_false_regardless_of_operator(self):
        """Test absent attributes never match."""
        ctx = EvaluationContext(attributes={"country": "DE"})
        for operator in Operator:
            condition = cond("user_attribute", operator.value, AttributeOperand("plan", ["free"]))
            assert evaluate_condition(condition, ctx, "f") is False

    def test_user_attribute_numeric(self):
        """Test ordering on attribute values."""
        condition = cond("user_attribute", "greater_than", AttributeOperand("age", 18))
        assert evaluate_condition(condition, EvaluationContext(attributes={"age": 21}), "f") is True
        assert evaluate_condition(condition, EvaluationContext(attributes={"age": 16}), "f") is False
        assert evaluate_condition(condition, EvaluationContext(attributes={"age": "n/a"}), "f") is False

    def test_user_attribute_with_wrong_payload(self):
        """Test a scalar payload on an attribute condition fails closed."""
        condition = cond("user_attribute", "equals", "premium")
        ctx = EvaluationContext(attributes={"plan": "premium"})
        assert evaluate_condition(condition, ctx, "f") is False


class TestDateRangeCondition:
    """Tests for date window conditions."""

    def test_inclusive_bounds(self, fixed_now):
        """Test start and end are inclusive."""
        window = DateWindow(start=fixed_now, end=fixed_now)
        condition = cond("date_range", "in", window)
        assert evaluate_condition(condition, EvaluationContext(now=fixed_now), "f") is True

    def test_open_ended_windows(self, fixed_now):
        """Test omitted bounds are unbounded."""
        after = cond("date_range", "in", DateWindow(start=fixed_now - timedelta(days=1)))
        before = cond("date_range", "in", DateWindow(end=fixed_now + timedelta(days=1)))
        ctx = EvaluationContext(now=fixed_now)
        assert evaluate_condition(after, ctx, "f") is True
        assert evaluate_condition(before, ctx, "f") is True

    def test_outside_window(self, fixed_now):
        """Test contexts outside the window."""
        window = DateWindow(
            start=fixed_now + timedelta(days=1),
            end=fixed_now + timedelta(days=2),
        )
        ctx = EvaluationContext(now=fixed_now)
        assert evaluate_condition(cond("date_range", "equals", window), ctx, "f") is False
        assert evaluate_condition(cond("date_range", "not_in", window), ctx, "f") is True

    def test_ordering_operators(self, fixed_now):
        """Test greater_than/less_than against window bounds."""
        ctx = EvaluationContext(now=fixed_now)
        started = DateWindow(start=fixed_now - timedelta(hours=1))
        ends_soon = DateWindow(end=fixed_now + timedelta(hours=1))
        assert evaluate_condition(cond("date_range", "greater_than", started), ctx, "f") is True
        assert evaluate_condition(cond("date_range", "less_than", ends_soon), ctx, "f") is True
        # No bound to compare against
        assert evaluate_condition(cond("date_range", "greater_than", ends_soon), ctx, "f") is False

    def test_naive_now_treated_as_utc(self):
        """Test naive context timestamps compare with aware bounds."""
        window = DateWindow(
            start=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end=datetime(2024, 12, 31, tzinfo=timezone.utc),
        )
        ctx = EvaluationContext(now=datetime(2024, 6, 1))
        assert evaluate_condition(cond("date_range", "in", window), ctx, "f") is True

    def test_date_only_end_covers_whole_day(self):
        """Test a bare end date includes the rest of that day."""
        condition = Condition.from_dict({
            "type": "date_range",
            "operator": "in",
            "value": {"start": "2024-06-01", "end": "2024-06-30"},
        })
        assert condition.value.end == datetime(2024, 6, 30, 23, 59, 59, 999999, tzinfo=timezone.utc)
        evening = EvaluationContext(now=datetime(2024, 6, 30, 18, 0, tzinfo=timezone.utc))
        next_day = EvaluationContext(now=datetime(2024, 7, 1, tzinfo=timezone.utc))
        assert evaluate_condition(condition, evening, "f") is True
        assert evaluate_condition(condition, next_day, "f") is False

    def test_explicit_end_time_kept(self):
        """Test an end bound with a time of day is used as given."""
        condition = Condition.from_dict({
            "type": "date_range",
            "operator": "in",
            "value": {"end": "2024-06-30T12:00:00Z"},
        })
        assert condition.value.end == datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)
        afternoon = EvaluationContext(now=datetime(2024, 6, 30, 18, 0, tzinfo=timezone.utc))
        assert evaluate_condition(condition, afternoon, "f") is False


class TestRandomCondition:
    """Tests for the condition-level random gate."""

    def test_random_uses_salted_bucket(self):
        """Test the random gate compares the salted subject bucket."""
        ctx = EvaluationContext(subject_id="user-7")
        bucket = compute_bucket("promo", "user-7", salt=RANDOM_CONDITION_SALT)
        assert evaluate_condition(cond("random", "equals", bucket), ctx, "promo") is True
        assert evaluate_condition(cond("random", "less_than", bucket + 1), ctx, "promo") is True
        assert evaluate_condition(cond("random", "less_than", bucket), ctx, "promo") is False

    def test_random_is_deterministic(self):
        """Test repeated evaluation yields the same answer."""
        condition = cond("random", "less_than", 50)
        ctx = EvaluationContext(subject_id="user-1")
        results = {evaluate_condition(condition, ctx, "promo") for _ in range(20)}
        assert len(results) == 1

    def test_random_independent_of_rollout_bucket(self):
        """Test the random gate is seeded apart from the rollout bucket."""
        differing = sum(
            1
            for i in range(200)
            if compute_bucket("promo", f"u{i}") != compute_bucket("promo", f"u{i}", salt=RANDOM_CONDITION_SALT)
        )
        assert differing > 150

    def test_random_without_subject_fails(self):
        """Test the random gate fails closed without a subject."""
        condition = cond("random", "less_than", 100)
        assert evaluate_condition(condition, EvaluationContext(), "promo") is False


class TestFirstFailedCondition:
    """Tests for AND composition."""

    def test_empty_conditions_hold(self):
        """Test empty condition list is vacuously true."""
        assert first_failed_condition((), EvaluationContext(), "f") is None

    def test_reports_first_failure(self):
        """Test the index of the first failing condition is returned."""
        conditions = (
            cond("user_role", "in", ("ADMIN", "EDITOR")),
            cond("user_attribute", "equals", AttributeOperand("plan", "premium")),
            cond("user_id", "equals", "u1"),
        )
        ctx = EvaluationContext(subject_id="u2", role="EDITOR", attributes={"plan": "free"})
        assert first_failed_condition(conditions, ctx, "f") == 1

    @pytest.mark.parametrize("role", ["ADMIN", "EDITOR", "VIEWER", None])
    def test_adding_condition_only_narrows(self, role):
        """Test adding a condition never widens the matching set."""
        base = (cond("user_role", "in", ("ADMIN", "EDITOR")),)
        narrowed = base + (cond("user_id", "equals", "u1"),)
        for subject in ("u1", "u2", None):
            ctx = EvaluationContext(subject_id=subject, role=role)
            if first_failed_condition(narrowed, ctx, "f") is None:
                assert first_failed_condition(base, ctx, "f") is None
