"""Tests for the recursive-descent expression evaluator."""

import math

import pytest

from backend.nanlang.environment import Environment
from backend.nanlang.evaluator import EvalError, evaluate
from backend.nanlang.formatting import format_number


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("2 + 3 * 4", 14.0),
        ("(2 + 3) * 4", 20.0),
        ("10 - 2 - 3", 5.0),
        ("100 / 10 / 5", 2.0),
        ("2 * 3 % 4", 2.0),
        ("-2 * 3", -6.0),
        ("- -2", 2.0),
        ("+4", 4.0),
        ("!0", 1.0),
        ("!5", 0.0),
        ("1 < 2 == 1", 1.0),
        ("3 > 2 > 1", 0.0),
        ("2 >= 2", 1.0),
        ("2 <= 1", 0.0),
        ("1 != 2", 1.0),
        ("1 || 0 && 0", 1.0),
        ("0 || 0", 0.0),
        ("2 && 3", 1.0),
        ("-7 % 3", -1.0),
        ("7 % -3", 1.0),
        ("1e3", 1000.0),
        ("2.5E-1", 0.25),
        (".5 + 5.", 5.5),
        ("  1 +   2 ", 3.0),
    ],
)
def test_operators_and_precedence(expr, expected):
    assert evaluate(expr, {}) == expected


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("sqrt(16)", 4.0),
        ("pow(2, 10)", 1024.0),
        ("min(3, -1)", -1.0),
        ("max(2,5)", 5.0),
        ("abs(-3)", 3.0),
        ("floor(-1.5)", -2.0),
        ("ceil(1.2)", 2.0),
        ("exp(0)", 1.0),
        ("cos(0) + sin(0) + tan(0)", 1.0),
        ("max(1, min(4, 9)) * 2", 8.0),
    ],
)
def test_builtin_calls(expr, expected):
    assert evaluate(expr, {}) == expected


def test_invalid_operations_produce_ieee_values():
    assert evaluate("1 / 0", {}) == math.inf
    assert evaluate("-1 / 0", {}) == -math.inf
    assert math.isnan(evaluate("0 / 0", {}))
    assert math.isnan(evaluate("5 % 0", {}))
    assert math.isnan(evaluate("sqrt(-1)", {}))
    assert evaluate("log(0)", {}) == -math.inf


def test_nan_is_truthy():
    assert evaluate("!(0/0)", {}) == 0.0


def test_variables_are_read_from_environment():
    env = Environment({"x": 2, "long_name_1": 3})
    assert evaluate("x * long_name_1", env) == 6.0
    assert evaluate("x", {"x": 4.5}) == 4.5


def test_evaluation_does_not_modify_environment_and_is_repeatable():
    env = Environment({"x": 2})
    first = evaluate("x * 3 + sqrt(x)", env)
    second = evaluate("x * 3 + sqrt(x)", env)
    assert first == second
    assert env.snapshot() == {"x": 2.0}


@pytest.mark.parametrize(
    "expr, reason, remainder",
    [
        ("y + 1", "Unknown variable: y", "+ 1"),
        ("foo(1)", "Unknown function: foo", ""),
        ("sqrt()", "sqrt() expects 1 arg", ""),
        ("pow(1)", "pow() expects 2 args", ""),
        ("pow(2,3,4)", "pow() expects 2 args", ""),
        ("(1 + 2", "Expected ')'", ""),
        ("max(1 2)", "Expected ',' or ')'", "2)"),
        ("", "Expected primary expression", ""),
        ("* 2", "Expected primary expression", "* 2"),
        ("1e", "Unexpected trailing characters", "e"),
        ("1e+", "Unexpected trailing characters", "e+"),
        ("1 = 1", "Unexpected trailing characters", "= 1"),
        ("1 & 1", "Unexpected trailing characters", "& 1"),
        (".", "Expected number", "."),
    ],
)
def test_errors(expr, reason, remainder):
    with pytest.raises(EvalError) as exc:
        evaluate(expr, {})
    assert exc.value.reason == reason
    assert exc.value.remainder == remainder
    assert exc.value.text == expr


def test_variable_followed_by_paren_is_a_call():
    with pytest.raises(EvalError) as exc:
        evaluate("x (1)", {"x": 1.0})
    assert exc.value.reason == "Unknown function: x"


def test_logical_operators_evaluate_both_sides():
    with pytest.raises(EvalError):
        evaluate("0 && missing", {})


def test_error_message_carries_label_and_remainder():
    with pytest.raises(EvalError) as exc:
        evaluate("y", {}, "Set expr error: ")
    assert str(exc.value) == "Set expr error: Unknown variable: y near: ''"
    assert exc.value.label == "Set expr error: "
    assert exc.value.column == 1


def test_unknown_name_column_points_at_the_name():
    with pytest.raises(EvalError) as exc:
        evaluate("1 +   zz > 1", {})
    assert exc.value.remainder == "> 1"
    assert exc.value.column == 7
    with pytest.raises(EvalError) as exc:
        evaluate("2 * foo (1)", {})
    assert exc.value.reason == "Unknown function: foo"
    assert exc.value.column == 5


def test_deeply_nested_expression_fails_cleanly():
    expr = "(" * 5000 + "1" + ")" * 5000
    with pytest.raises(EvalError) as exc:
        evaluate(expr, {})
    assert exc.value.reason == "Expression nested too deeply"


def test_integer_output_round_trips_as_literal():
    value = evaluate("6 * 7 + 0.0000000001", {})
    text = format_number(value)
    assert text == "42"
    assert abs(evaluate(text, {}) - value) < 1e-9
