"""Tests for value coercion."""

import pytest

from flagengine.core.errors import CoercionError, ErrorCode
from flagengine.core.flags import FlagType, coerce_value
from flagengine.core.flags.coercion import is_valid_value


class TestCoerceValue:
    """Tests for coerce_value."""

    def test_boolean(self):
        """Test only real booleans are accepted."""
        assert coerce_value(True, FlagType.BOOLEAN) is True
        assert coerce_value(False, FlagType.BOOLEAN) is False
        for bad in (1, 0, "true", None):
            with pytest.raises(CoercionError):
                coerce_value(bad, FlagType.BOOLEAN)

    def test_number(self):
        """Test finite numbers are accepted."""
        assert coerce_value(3, FlagType.NUMBER) == 3
        assert coerce_value(2.5, FlagType.NUMBER) == 2.5
        for bad in (True, "3", None, float("inf"), float("nan")):
            with pytest.raises(CoercionError):
                coerce_value(bad, FlagType.NUMBER)

    def test_string(self):
        """Test any text is accepted."""
        assert coerce_value("", FlagType.STRING) == ""
        assert coerce_value("blue", FlagType.STRING) == "blue"
        with pytest.raises(CoercionError):
            coerce_value(5, FlagType.STRING)

    def test_json(self):
        """Test nested structures pass through."""
        value = {"aiRecommendations": True, "limits": [1, 2.5, None], "name": "beta"}
        assert coerce_value(value, FlagType.JSON) == value
        assert coerce_value([], FlagType.JSON) == []
        assert coerce_value("plain", FlagType.JSON) == "plain"

    def test_json_is_copied(self):
        """Test callers cannot mutate the stored structure."""
        value = {"nested": {"items": [1, 2]}}
        result = coerce_value(value, FlagType.JSON)
        result["nested"]["items"].append(3)
        assert value == {"nested": {"items": [1, 2]}}

    def test_json_rejects_non_json(self):
        """Test unsupported JSON content is rejected."""
        for bad in ({1: "a"}, {"a": object()}, [float("nan")], {1, 2}):
            with pytest.raises(CoercionError):
                coerce_value(bad, FlagType.JSON)

    def test_error_code(self):
        """Test coercion errors carry their code."""
        with pytest.raises(CoercionError) as exc_info:
            coerce_value("yes", FlagType.BOOLEAN)
        assert exc_info.value.code == ErrorCode.COERCION_ERROR

    def test_is_valid_value(self):
        """Test boolean validity helper."""
        assert is_valid_value(1.5, FlagType.NUMBER) is True
        assert is_valid_value("1.5", FlagType.NUMBER) is False
