"""Tests for the Math.* expression evaluator."""

import math
import pytest
from buildfish.services.expr_eval import (
    ExpressionError,
    evaluate,
    evaluate_expressions,
    tokenize,
)


class TestTokenize:
    def test_tokens(self):
        assert tokenize("Math.PI / 2") == [
            ("name", "Math.PI"),
            ("op", "/"),
            ("num", "2"),
        ]

    def test_exponent_literal(self):
        assert tokenize("1.5e3") == [("num", "1.5e3")]

    def test_rejects_unknown_characters(self):
        with pytest.raises(ExpressionError):
            tokenize("Math.PI ** 2; import os")


class TestEvaluate:
    def test_constant(self):
        assert evaluate("Math.PI") == pytest.approx(math.pi)

    def test_division(self):
        assert evaluate("Math.PI / 2") == pytest.approx(math.pi / 2)

    def test_precedence(self):
        assert evaluate("1 + 2 * 3") == 7.0
        assert evaluate("(1 + 2) * 3") == 9.0
        assert evaluate("10 - 4 - 3") == 3.0
        assert evaluate("8 / 4 / 2") == 1.0

    def test_unary_minus(self):
        assert evaluate("-Math.PI / 4") == pytest.approx(-math.pi / 4)
        assert evaluate("--2") == 2.0

    def test_functions(self):
        assert evaluate("Math.sqrt(16)") == 4.0
        assert evaluate("Math.cos(0)") == 1.0
        assert evaluate("Math.max(1, 5, 3)") == 5.0
        assert evaluate("Math.pow(2, 10)") == 1024.0
        assert evaluate("Math.atan2(1, 1)") == pytest.approx(math.pi / 4)

    def test_js_round_semantics(self):
        assert evaluate("Math.round(2.5)") == 3.0
        assert evaluate("Math.round(-2.5)") == -2.0

    def test_nested_calls(self):
        assert evaluate("Math.sin(Math.PI / 2) * 2") == pytest.approx(2.0)

    @pytest.mark.parametrize(
        "expr",
        [
            "Math.PI +",
            "Math.foo",
            "Math.evil(1)",
            "__import__('os')",
            "Math.sqrt()",
            "Math.pow(2)",
            "1 / 0",
            "Math.sqrt(-1)",
            "Math.exp(1000)",
            "(1 + 2",
            "1 2",
            "",
        ],
    )
    def test_rejected(self, expr):
        with pytest.raises(ExpressionError):
            evaluate(expr)

    def test_too_long(self):
        with pytest.raises(ExpressionError, match="longer"):
            evaluate("1 + " * 200 + "1")

    def test_moderate_nesting(self):
        assert evaluate("(" * 10 + "Math.PI" + ")" * 10) == pytest.approx(math.pi)

    def test_deep_parentheses_rejected(self):
        with pytest.raises(ExpressionError, match="nested deeper"):
            evaluate("Math.PI*" + "(" * 245 + "1" + ")" * 245)

    def test_deep_signs_rejected(self):
        with pytest.raises(ExpressionError, match="nested deeper"):
            evaluate("-" * 200 + "Math.PI")


class TestEvaluateExpressions:
    def test_walks_nested_structures(self):
        data = {
            "objects": [
                {
                    "type": "cylinder",
                    "rotation": {"x": "Math.PI / 2", "y": 0, "z": "0"},
                    "name": "Math teacher's desk leg",
                },
            ]
        }
        result = evaluate_expressions(data)
        rotation = result["objects"][0]["rotation"]
        assert rotation["x"] == pytest.approx(math.pi / 2)
        assert rotation["y"] == 0
        # strings without the marker are untouched
        assert rotation["z"] == "0"
        assert result["objects"][0]["name"] == "Math teacher's desk leg"

    def test_invalid_expression_kept(self):
        data = ["Math.PI radians", "Math.random()"]
        assert evaluate_expressions(data) == data

    def test_deeply_nested_expression_kept(self):
        deep = "Math.PI*" + "(" * 245 + "1" + ")" * 245
        assert evaluate_expressions({"x": deep}) == {"x": deep}

    def test_non_container_values(self):
        assert evaluate_expressions(3) == 3
        assert evaluate_expressions(None) is None
        assert evaluate_expressions("Math.E") == pytest.approx(math.e)
