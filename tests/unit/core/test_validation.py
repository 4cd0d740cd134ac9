"""
Tests for apiflow.core.validation module.

Tests the validation expression language and response post-processing.
"""

import sys

import pytest

from apiflow.core.errors import ExpressionError
from apiflow.core.models import HttpResponse
from apiflow.core.validation import (
    compile_expression,
    evaluate_expression,
    process_response,
    tokenize,
    truthy,
)

CONTEXT = {
    "status": 200,
    "data": [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Lin"}],
    "headers": {"content-type": "application/json"},
    "response": {"items": [1, 2]},
}


class TestTokenize:
    """Tests for the tokenizer."""

    def test_kinds(self):
        """Test token classification."""
        kinds = [t.kind for t in tokenize('status >= 200 && "ok"')]
        assert kinds == ["ID", "OP", "NUMBER", "OP", "STRING", "EOF"]

    def test_keywords(self):
        """Test that keywords are not names."""
        assert [t.kind for t in tokenize("true and null")][:3] == ["KW", "KW", "KW"]

    def test_unexpected_character(self):
        """Test that stray characters are rejected."""
        with pytest.raises(ExpressionError):
            tokenize("status = 200")


class TestEvaluate:
    """Tests for evaluate_expression."""

    @pytest.mark.parametrize("source, expected", [
        ("status == 200", True),
        ("status === 200", True),
        ("status != 200", False),
        ("status >= 200 && status < 300", True),
        ("status < 200 || status == 200", True),
        ("data.length > 0", True),
        ("data.length == 2 and not false", True),
        ("data[0].name == 'Ada'", True),
        ('data[1].name == "Lin"', True),
        ("data[5].name == null", True),
        ("response.items[1] == 2", True),
        ('headers["content-type"] == "application/json"', True),
        ("-1 < 0", True),
        ("!(status == 404)", True),
        ("(status == 200) == true", True),
    ])
    def test_expressions(self, source, expected):
        """Test a range of expressions against one context."""
        assert evaluate_expression(source, CONTEXT) is expected

    def test_bool_never_equals_number(self):
        """Test strict equality between booleans and numbers."""
        assert evaluate_expression("true == 1", {}) is False
        assert evaluate_expression("0 == false", {}) is False

    def test_mismatched_comparison_is_false(self):
        """Test that comparing incompatible types is false rather than an error."""
        assert evaluate_expression("'a' < 1", {}) is False
        assert evaluate_expression("data > 1", {"data": None}) is False

    def test_short_circuit(self):
        """Test that && does not evaluate its right side when the left is false."""
        assert evaluate_expression("data != null && data.length > 0", {"data": None}) is False

    def test_empty_containers_are_truthy(self):
        """Test JSON-style truthiness."""
        assert truthy([])
        assert truthy({})
        assert not truthy("")
        assert not truthy(0)
        assert not truthy(None)

    def test_unknown_name(self):
        """Test that only the context names may be referenced."""
        with pytest.raises(ExpressionError):
            evaluate_expression("__import__ == 1", CONTEXT)

    def test_calls_are_not_supported(self):
        """Test that the language has no function calls."""
        with pytest.raises(ExpressionError):
            evaluate_expression("status(1)", CONTEXT)

    def test_negating_a_string(self):
        """Test evaluation errors."""
        with pytest.raises(ExpressionError):
            evaluate_expression("-'a'", {})

    def test_deep_nesting_is_an_expression_error(self):
        """Test that parser recursion limits surface as ExpressionError."""
        with pytest.raises(ExpressionError):
            evaluate_expression("(" * 400 + "status == 200" + ")" * 400, CONTEXT)

    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"),
        reason="interpreter has no integer string conversion limit",
    )
    def test_oversized_number_is_an_expression_error(self):
        """Test that integer literals past the conversion limit are rejected."""
        with pytest.raises(ExpressionError):
            evaluate_expression("status < " + "9" * 5000, CONTEXT)

    def test_compile_is_cached(self):
        """Test that identical sources share one tree."""
        assert compile_expression("status == 1") is compile_expression("status == 1")


class TestProcessResponse:
    """Tests for process_response."""

    def test_defaults_are_valid(self):
        """Test a response with no checks configured."""
        result = process_response(HttpResponse(status=201, data={"a": 1}))

        assert result.is_valid
        assert result.extracted == {"a": 1}

    def test_extract_path(self):
        """Test extraction into the data name."""
        response = HttpResponse(status=200, data={"data": {"items": [1, 2, 3]}})
        result = process_response(response, extract_path="data.items", expression="data.length == 3")

        assert result.extracted == [1, 2, 3]
        assert result.custom_valid
        assert result.is_valid

    def test_missing_extract_path_gives_none(self):
        """Test that a miss yields None."""
        result = process_response(HttpResponse(status=200, data={}), extract_path="nope")
        assert result.extracted is None

    def test_status_mismatch(self):
        """Test the expected status check."""
        result = process_response(HttpResponse(status=201), expected_status=200)

        assert not result.status_valid
        assert not result.is_valid

    def test_zero_expected_status_skips_check(self):
        """Test that 0 disables the status check."""
        assert process_response(HttpResponse(status=204), expected_status=0).status_valid

    def test_broken_expression_is_invalid(self):
        """Test that expression errors fail validation instead of raising."""
        result = process_response(HttpResponse(status=200, data={}), expression="status ==")

        assert result.status_valid
        assert not result.custom_valid
        assert not result.is_valid

    def test_headers_and_raw_response_available(self):
        """Test the context names."""
        response = HttpResponse(status=200, headers={"x-id": "7"}, data={"ok": True})
        result = process_response(
            response, extract_path="ok", expression='headers["x-id"] == "7" && response.ok'
        )
        assert result.is_valid
