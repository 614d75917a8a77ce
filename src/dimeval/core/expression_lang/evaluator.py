"""
Tree-walking evaluator for the dimeval expression AST.

Evaluates AST nodes against an :class:`Environment` of fixed constants,
user variables and (inside a user function) local parameters. Pure apart
from assignments, which write to ``Environment.variables``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dimeval.core import values
from dimeval.core.builtins import apply_builtin
from dimeval.core.errors import ExpressionEvalError
from dimeval.core.ir.expressions import (
    Assignment,
    BinaryExpr,
    BinaryOp,
    Call,
    Expr,
    FuncCall,
    FunctionDef,
    Identifier,
    ListExpr,
    Literal,
    UnaryExpr,
    UnaryOp,
)
from dimeval.core.values import EValue, Function, Scalar, ValueList

# Each AST level costs two or three interpreter frames
DEFAULT_EVAL_DEPTH = 256


@dataclass
class Environment:
    """Name bindings visible to an evaluation."""

    constants: dict[str, EValue] = field(default_factory=dict)
    variables: dict[str, EValue] = field(default_factory=dict)
    locals: dict[str, EValue] | None = None
    max_depth: int = DEFAULT_EVAL_DEPTH

    def lookup(self, name: str) -> EValue | None:
        """Locals shadow constants, which shadow variables."""
        if self.locals is not None and name in self.locals:
            return self.locals[name]
        if name in self.constants:
            return self.constants[name]
        return self.variables.get(name)

    def scoped(self, bindings: dict[str, EValue]) -> Environment:
        """A child environment for a function body sharing the same maps."""
        return Environment(
            constants=self.constants,
            variables=self.variables,
            locals=bindings,
            max_depth=self.max_depth,
        )


def evaluate(expr: Expr, env: Environment) -> EValue:
    """Evaluate an expression in an environment.

    Args:
        expr: Parsed expression AST.
        env: Constants, variables and depth limit.

    Returns:
        The computed value.

    Raises:
        ExpressionEvalError: On unknown names, bad calls, incompatible
            operands or nesting beyond ``env.max_depth``. Numeric domain
            errors produce NaN instead.
    """
    try:
        return _interpret(expr, env, 0)
    except RecursionError:
        raise ExpressionEvalError("Evaluation nested too deeply") from None


def _interpret(expr: Expr, env: Environment, depth: int) -> EValue:
    """Dispatch evaluation to the appropriate handler."""
    if depth > env.max_depth:
        raise ExpressionEvalError(f"Evaluation nested deeper than {env.max_depth} levels")

    if isinstance(expr, Literal):
        return Scalar(expr.value, expr.imag, expr.unit, expr.sig_figs)

    if isinstance(expr, Identifier):
        return _interpret_identifier(expr, env)

    if isinstance(expr, BinaryExpr):
        return _interpret_binary(expr, env, depth)

    if isinstance(expr, UnaryExpr):
        return _interpret_unary(expr, env, depth)

    if isinstance(expr, FuncCall):
        args = [_interpret(a, env, depth + 1) for a in expr.args]
        special = _interpret(expr.special, env, depth + 1) if expr.special is not None else None
        return apply_builtin(expr.func, args, special)

    if isinstance(expr, Call):
        return _interpret_call(expr, env, depth)

    if isinstance(expr, ListExpr):
        return _interpret_list(expr, env, depth)

    if isinstance(expr, Assignment):
        _check_assignable(expr.target, env)
        value = _interpret(expr.value, env, depth + 1)
        env.variables[expr.target] = value
        return value

    if isinstance(expr, FunctionDef):
        _check_assignable(expr.name, env)
        function = Function(name=expr.name, params=tuple(expr.params), body=expr.body)
        env.variables[expr.name] = function
        return function

    raise ExpressionEvalError(f"Unsupported expression node: {type(expr).__name__}")


def _interpret_identifier(expr: Identifier, env: Environment) -> EValue:
    value = env.lookup(expr.name)
    if value is None:
        raise ExpressionEvalError(f"Unknown identifier: {expr.name}")
    return value


def _check_assignable(name: str, env: Environment) -> None:
    if name in env.constants:
        raise ExpressionEvalError(f"Cannot assign to constant {name}")


_ARITHMETIC = {
    BinaryOp.ADD: values.add,
    BinaryOp.SUB: values.sub,
    BinaryOp.MUL: values.mul,
    BinaryOp.DIV: values.div,
    BinaryOp.POW: values.power,
}


def _interpret_binary(expr: BinaryExpr, env: Environment, depth: int) -> EValue:
    """Evaluate a binary expression."""
    left = _interpret(expr.left, env, depth + 1)
    right = _interpret(expr.right, env, depth + 1)

    handler = _ARITHMETIC.get(expr.op)
    if handler is not None:
        return handler(left, right)
    return values.compare(expr.op.value, left, right)


def _interpret_unary(expr: UnaryExpr, env: Environment, depth: int) -> EValue:
    """Evaluate a unary expression."""
    operand = _interpret(expr.operand, env, depth + 1)

    if expr.op == UnaryOp.NEG:
        return values.negate(operand)
    if expr.op == UnaryOp.FACT:
        return values.factorial(operand)
    if isinstance(operand, (Scalar, ValueList)):
        return operand
    raise ExpressionEvalError(f"Unsupported operand for unary +: {type(operand).__name__}")


def _interpret_call(expr: Call, env: Environment, depth: int) -> EValue:
    """Call a user function, or multiply a value by a parenthesised group."""
    callee = env.lookup(expr.name)
    if callee is None:
        raise ExpressionEvalError(f"Unknown identifier: {expr.name}")

    args = [_interpret(a, env, depth + 1) for a in expr.args]

    if isinstance(callee, Function):
        if len(args) != len(callee.params):
            raise ExpressionEvalError(
                f"{callee.name} takes {len(callee.params)} argument(s), got {len(args)}"
            )
        scope = env.scoped(dict(zip(callee.params, args)))
        return _interpret(callee.body, scope, depth + 1)

    if len(args) != 1:
        raise ExpressionEvalError(f"{expr.name} is not a function")
    return values.mul(callee, args[0])


def _interpret_list(expr: ListExpr, env: Environment, depth: int) -> ValueList:
    elements: list[Scalar] = []
    for item in expr.items:
        value = _interpret(item, env, depth + 1)
        if not isinstance(value, Scalar):
            raise ExpressionEvalError(f"List elements must be numbers, got {type(value).__name__}")
        elements.append(value)
    return ValueList(tuple(elements))
