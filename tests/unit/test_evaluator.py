"""Tests for the tree-walking evaluator."""

from __future__ import annotations

import math

import pytest

from dimeval.core.errors import ExpressionEvalError
from dimeval.core.expression_lang.evaluator import Environment, evaluate
from dimeval.core.expression_lang.parser import parse_expr
from dimeval.core.ir.expressions import Expr, Literal, UnaryExpr, UnaryOp
from dimeval.core.units import DIMENSIONLESS, METRE, UnitVector
from dimeval.core.values import Boolean, EValue, Function, Scalar, ValueList


def run(source: str, env: Environment | None = None) -> EValue:
    return evaluate(parse_expr(source), env or Environment())


def value_of(source: str, env: Environment | None = None) -> float:
    result = run(source, env)
    assert isinstance(result, Scalar)
    return result.value


def _env(**variables: EValue) -> Environment:
    return Environment(variables=dict(variables))


class TestArithmetic:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("2^3", 8.0),
            ("\\sqrt{16}+2", 6.0),
            ("2^{3^2}", 512.0),
            ("2^3^2", 512.0),
            ("\\frac{1}{2} + \\sqrt{9}", 3.5),
            ("-2^2", -4.0),
            ("2^-1", 0.5),
            ("3!", 6.0),
            ("10 - 4 - 3", 3.0),
            ("\\left(1 + 2\\right) 3", 9.0),
            ("\\log_28", 3.0),
            ("\\log 1000", 3.0),
        ],
    )
    def test_values(self, source: str, expected: float) -> None:
        assert value_of(source) == pytest.approx(expected)

    @pytest.mark.parametrize("source", ["2\\pi", "\\pi2", "2(\\pi)", "2 \\times \\pi"])
    def test_implicit_products_agree(self, source: str) -> None:
        assert value_of(source) == pytest.approx(2 * math.pi)

    def test_ncr_then_constant(self) -> None:
        assert value_of("\\nCr(6,2)\\pi") == pytest.approx(47.1238898)

    def test_abs_then_constant(self) -> None:
        assert value_of("|2-5|\\pi") == pytest.approx(9.42477796)

    def test_greedy_bare_argument(self) -> None:
        assert value_of("\\sin\\pi/2") == pytest.approx(1.0)

    def test_sin_squared(self) -> None:
        assert value_of("\\sin^2 x + \\cos^2 x", _env(x=Scalar(0.7))) == pytest.approx(1.0)

    @pytest.mark.parametrize("source", ["\\ln 0", "\\log_1 5", "\\arcsin 2", "0/0"])
    def test_nan_results(self, source: str) -> None:
        assert math.isnan(value_of(source))

    def test_division_by_zero(self) -> None:
        assert value_of("1/0") == math.inf


class TestUnits:
    def test_unit_literal(self) -> None:
        result = run("5\\km")
        assert result == Scalar(5000.0, unit=METRE)

    def test_speed(self) -> None:
        result = run("\\frac{100\\m}{10\\s}")
        assert result.value == pytest.approx(10.0)
        assert result.unit == UnitVector(length=1, time=-1)

    def test_mismatch_collapses(self) -> None:
        result = run("1\\m + 1\\s")
        assert result.value == 2.0
        assert result.unit == DIMENSIONLESS

    def test_unit_power(self) -> None:
        assert run("(2\\m)^3").unit == UnitVector(length=3)

    def test_sqrt_of_area(self) -> None:
        result = run("\\sqrt{4\\m^2}")
        assert result.value == pytest.approx(2.0)
        assert result.unit == METRE

    @pytest.mark.parametrize(
        "source", ["\\abs(-3\\m)", "\\floor(3.7\\m)", "\\ceil(2.2\\m)", "\\round(3.14\\m, 0)"]
    )
    def test_unit_preserving_functions(self, source: str) -> None:
        result = run(source)
        assert result.value == pytest.approx(3.0)
        assert result.unit == METRE

    def test_factorial_zeroes_unit(self) -> None:
        result = run("\\fact(3\\m)")
        assert result.value == 6.0
        assert result.unit == DIMENSIONLESS

    def test_sig_figs_from_literals(self) -> None:
        assert run("2.50 \\cdot 1.2").sig_figs == 2
        assert run("2 \\cdot 3").sig_figs == 0


class TestLists:
    def test_literal(self) -> None:
        result = run("[1, 2\\m, 3]")
        assert isinstance(result, ValueList)
        assert result.elements[1].unit == METRE

    def test_zip_to_shorter(self) -> None:
        result = run("[1, 2, 3] + [10, 20]")
        assert isinstance(result, ValueList)
        assert [e.value for e in result.elements] == [11.0, 22.0]

    def test_broadcast_function(self) -> None:
        result = run("\\sqrt{[4, 9]}")
        assert [e.value for e in result.elements] == pytest.approx([2.0, 3.0])

    def test_nested_list_rejected(self) -> None:
        with pytest.raises(ExpressionEvalError, match="List elements"):
            run("[[1], 2]")


class TestComparisons:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("1 < 2", True),
            ("3 > 4", False),
            ("2 \\le 2", True),
            ("2 \\geq 3", False),
            ("1 \\ne 2", True),
        ],
    )
    def test_results(self, source: str, expected: bool) -> None:
        assert run(source) == Boolean(expected)

    def test_abs_of_boolean(self) -> None:
        assert run("|1 < 2|") == Scalar(1.0)


class TestNames:
    def test_variable_lookup(self) -> None:
        assert value_of("2x", _env(x=Scalar(3.0))) == 6.0

    def test_unknown_identifier(self) -> None:
        with pytest.raises(ExpressionEvalError, match="Unknown identifier: y"):
            run("y + 1")

    def test_constants_shadow_variables(self) -> None:
        env = Environment(constants={"c": Scalar(1.0)}, variables={"c": Scalar(2.0)})
        assert value_of("c", env) == 1.0

    def test_assignment_stores_variable(self) -> None:
        env = Environment()
        assert value_of("x = 5", env) == 5.0
        assert env.variables["x"] == Scalar(5.0)

    def test_assign_to_constant(self) -> None:
        env = Environment(constants={"c": Scalar(1.0)})
        with pytest.raises(ExpressionEvalError, match="constant"):
            run("c = 3", env)

    def test_subscripted_names(self) -> None:
        assert value_of("x_{1} + x_1", _env(x_1=Scalar(2.0))) == 4.0

    def test_backslash_names(self) -> None:
        assert value_of("2\\alpha", _env(alpha=Scalar(1.5))) == 3.0


class TestUserFunctions:
    def test_define_and_call(self) -> None:
        env = Environment()
        definition = run("f(x, y) = x^2 + y", env)
        assert isinstance(definition, Function)
        assert definition.params == ("x", "y")
        assert value_of("f(3, 1)", env) == 10.0

    def test_parameters_shadow_variables(self) -> None:
        env = _env(x=Scalar(100.0))
        run("g(x) = 2x", env)
        assert value_of("g(4)", env) == 8.0

    def test_body_sees_globals(self) -> None:
        env = _env(k=Scalar(3.0))
        run("h(x) = k x", env)
        assert value_of("h(2)", env) == 6.0

    def test_wrong_argument_count(self) -> None:
        env = Environment()
        run("f(x) = x", env)
        with pytest.raises(ExpressionEvalError, match="takes 1"):
            run("f(1, 2)", env)

    def test_variable_times_group(self) -> None:
        assert value_of("x(2 + 1)", _env(x=Scalar(2.0))) == 6.0

    def test_non_function_with_many_args(self) -> None:
        with pytest.raises(ExpressionEvalError, match="not a function"):
            run("x(1, 2)", _env(x=Scalar(2.0)))

    def test_runaway_recursion_is_bounded(self) -> None:
        env = Environment(max_depth=64)
        run("f(x) = f(x)", env)
        with pytest.raises(ExpressionEvalError, match="nested deeper"):
            run("f(1)", env)


class TestDepthLimit:
    def test_deep_tree_rejected(self) -> None:
        env = Environment(max_depth=5)
        with pytest.raises(ExpressionEvalError, match="nested deeper than 5"):
            run("1+1+1+1+1+1+1+1", env)

    def test_shallow_tree_fine(self) -> None:
        assert value_of("1+1+1", Environment(max_depth=5)) == 3.0

    def test_stack_exhaustion_is_an_eval_error(self) -> None:
        expr: Expr = Literal(value=1.0)
        for _ in range(5000):
            expr = UnaryExpr(op=UnaryOp.NEG, operand=expr)
        with pytest.raises(ExpressionEvalError, match="too deeply"):
            evaluate(expr, Environment(max_depth=100_000))

    def test_sign_chain_hits_depth_limit(self) -> None:
        with pytest.raises(ExpressionEvalError, match="nested deeper"):
            run("2^" + "-" * 3000 + "1")
