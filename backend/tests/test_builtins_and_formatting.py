"""Tests for the built-in function table, the environment and number formatting."""

import math

import pytest

from backend.nanlang import functions
from backend.nanlang.environment import Environment, is_identifier
from backend.nanlang.formatting import format_number


def test_arity_table():
    one = {"sqrt", "sin", "cos", "tan", "abs", "log", "exp", "floor", "ceil"}
    two = {"pow", "min", "max"}
    assert set(functions.BUILTINS) == one | two
    assert all(functions.BUILTINS[n].arity == 1 for n in one)
    assert all(functions.BUILTINS[n].arity == 2 for n in two)


def test_results_are_plain_floats():
    assert type(functions.BUILTINS["floor"]([2.5])) is float
    assert type(functions.divide(1.0, 4.0)) is float


def test_remainder_follows_dividend_sign():
    assert functions.remainder(-7.5, 2.0) == -1.5
    assert functions.remainder(7.5, -2.0) == 1.5
    assert math.isnan(functions.remainder(math.inf, 2.0))


def test_min_max_ignore_nan():
    assert functions.BUILTINS["min"]([math.nan, 3.0]) == 3.0
    assert functions.BUILTINS["max"]([1.0, math.nan]) == 1.0


def test_environment_contract():
    env = Environment()
    assert env.get("x") is None
    assert not env.contains("x")
    env.set("x", 3)
    assert env.contains("x") and "x" in env
    assert env["x"] == 3.0 and isinstance(env["x"], float)
    snap = env.snapshot()
    env.set("x", 4)
    assert snap == {"x": 3.0}
    assert list(env) == ["x"] and len(env) == 1


@pytest.mark.parametrize(
    "name, ok",
    [("x", True), ("_tmp", True), ("a1_b2", True), ("1a", False), ("", False), ("a-b", False)],
)
def test_is_identifier(name, ok):
    assert is_identifier(name) is ok


@pytest.mark.parametrize(
    "value, text",
    [
        (6.0, "6"),
        (-3.0, "-3"),
        (-0.0, "0"),
        (1e-10, "0"),
        (5.0000000001, "5"),
        (-2.000000000001, "-2"),
        (2.5, "2.5"),
        (-2.5, "-2.5"),
        (1 / 3, "0.333333333333"),
        (0.1 + 0.2, "0.3"),
        (123456.789, "123456.789"),
        (1e20, "100000000000000000000"),
        (math.nan, "nan"),
        (math.inf, "inf"),
        (-math.inf, "-inf"),
    ],
)
def test_format_number(value, text):
    assert format_number(value) == text
