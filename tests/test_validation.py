"""Tests for tool argument validation."""

import pytest

from mcp_gateway.mcp.errors import ArgumentValidationError
from mcp_gateway.mcp.validation import matches_type, validate_arguments

ARGUMENT_SAMPLES = [
    {},
    {"query": "select 1"},
    {"table": "users", "limit": 5},
    {"anything": None, "nested": {"a": [1, 2]}},
    {"flag": True, "n": 1.5},
]

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "q": {"type": "string"},
        "limit": {"type": "integer"},
        "score": {"type": "number"},
        "exact": {"type": "boolean"},
        "filters": {"type": "object"},
        "tags": {"type": "array"},
        "mode": {"enum": ["a", "b"]},
    },
    "required": ["q"],
}


class TestZeroParameterTools:
    """Tests for schemas that declare no parameters."""

    @pytest.mark.parametrize(
        "schema",
        [None, {}, {"properties": {}}, {"type": "object", "properties": {}, "required": []}],
    )
    @pytest.mark.parametrize("arguments", ARGUMENT_SAMPLES)
    def test_accepts_anything_and_forwards_nothing(self, schema, arguments):
        """Test that a parameterless tool never reports violations."""
        result = validate_arguments(schema, arguments)

        assert result.ok
        assert result.violations == []
        assert result.arguments == {}


class TestFiltering:
    """Tests for dropping undeclared arguments."""

    @pytest.mark.parametrize("arguments", ARGUMENT_SAMPLES)
    def test_result_keys_are_declared_properties(self, arguments):
        """Test that filtered keys are always a subset of the properties."""
        result = validate_arguments(SEARCH_SCHEMA, {**arguments, "q": "x"})

        assert set(result.arguments) <= set(SEARCH_SCHEMA["properties"])

    def test_unknown_keys_are_dropped_silently(self):
        """Test that extra keys do not produce violations."""
        result = validate_arguments(SEARCH_SCHEMA, {"q": "react", "owner": "me", "repo": "x"})

        assert result.ok
        assert result.arguments == {"q": "react"}


class TestRequiredAndTypes:
    """Tests for required parameters and type checks."""

    def test_missing_required_parameter(self):
        """Test that a missing required parameter is a violation."""
        result = validate_arguments(SEARCH_SCHEMA, {"limit": 3})

        assert not result.ok
        assert result.violations == ["Missing required parameter: 'q'"]

    def test_required_key_supplied_only_as_unknown_is_still_missing(self):
        """Test that a required key cannot be satisfied by a dropped key."""
        schema = {"properties": {"table": {"type": "string"}}, "required": ["table"]}
        result = validate_arguments(schema, {"tables": "users"})

        assert result.violations == ["Missing required parameter: 'table'"]

    def test_required_name_not_in_properties_is_enforced(self):
        """Test that an undeclared required name is reported as missing."""
        schema = {"properties": {"a": {"type": "string"}}, "required": ["a", "b"]}

        result = validate_arguments(schema, {"a": "x", "b": "y"})

        assert result.arguments == {"a": "x"}
        assert result.violations == ["Missing required parameter: 'b'"]

    def test_required_without_properties_rejects_empty_call(self):
        """Test that a schema with only required names does not pass an empty call."""
        schema = {"properties": {}, "required": ["ghost"]}

        assert not validate_arguments(schema, {}).ok

    def test_required_must_be_a_list(self):
        """Test that a malformed required value is not iterated per character."""
        schema = {"properties": {"ab": {"type": "string"}}, "required": "ab"}

        result = validate_arguments(schema, {})

        assert result.ok

    def test_all_declared_types_accept_matching_values(self):
        """Test that values of every JSON type pass."""
        arguments = {
            "q": "react",
            "limit": 10,
            "score": 0.5,
            "exact": False,
            "filters": {"lang": "py"},
            "tags": ["a"],
            "mode": "whatever",
        }
        result = validate_arguments(SEARCH_SCHEMA, arguments)

        assert result.ok
        assert result.arguments == arguments

    def test_type_mismatch_is_violation(self):
        """Test that a wrongly typed value is reported."""
        result = validate_arguments(SEARCH_SCHEMA, {"q": 42, "limit": "ten"})

        assert len(result.violations) == 2
        assert any("'q'" in v and "string" in v for v in result.violations)
        assert any("'limit'" in v and "integer" in v for v in result.violations)

    def test_boolean_is_not_a_number(self):
        """Test that True is not accepted as an integer."""
        result = validate_arguments(SEARCH_SCHEMA, {"q": "x", "limit": True})

        assert not result.ok

    def test_integer_is_a_number(self):
        """Test that integers satisfy the number type."""
        assert matches_type(3, "number")
        assert not matches_type(3.5, "integer")

    def test_unknown_and_union_types(self):
        """Test permissive handling of unknown and list-valued types."""
        assert matches_type("x", "uuid")
        assert matches_type(None, None)
        assert matches_type("x", ["string", "null"])
        assert matches_type(None, ["string", "null"])
        assert not matches_type(1, ["string", "null"])


class TestPayload:
    """Tests for the structured rejection payload."""

    def test_payload_lists_violations(self):
        """Test that the payload names the tool and its violations."""
        result = validate_arguments(SEARCH_SCHEMA, {})

        with pytest.raises(ArgumentValidationError) as excinfo:
            result.raise_for_violations("search_repositories")

        assert excinfo.value.to_payload() == {
            "error": "invalid_arguments",
            "tool": "search_repositories",
            "violations": ["Missing required parameter: 'q'"],
        }

    def test_valid_arguments_do_not_raise(self):
        """Test that a clean result raises nothing."""
        validate_arguments(SEARCH_SCHEMA, {"q": "react"}).raise_for_violations("search_repositories")
