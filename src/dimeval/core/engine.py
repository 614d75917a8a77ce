"""
Batch evaluation of expression lists.

:class:`Evaluator` owns the fixed constants and the user variables and
evaluates a list of expressions as one worksheet:

1. every input is lexed and parsed on its own; a failure fills only its slot
2. expressions are ordered by their name dependencies, so forward
   references work (``["y = 2x", "x = 3"]``)
3. ``ans`` reads the latest successful result before it in input order
4. an optional conversion unit rescales the result when the units match
5. only "display leaves" keep their significant-figure annotation
"""

from __future__ import annotations

import heapq
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace

from pydantic import BaseModel, ConfigDict, Field

from dimeval.core import values
from dimeval.core.config import EvaluatorConfig
from dimeval.core.errors import DimevalError, ExpressionEvalError
from dimeval.core.expression_lang.evaluator import Environment, evaluate
from dimeval.core.expression_lang.parser import parse_expr
from dimeval.core.ir.expressions import (
    Assignment,
    BinaryExpr,
    BinaryOp,
    Expr,
    FunctionDef,
    collect_identifiers,
    defined_name,
)
from dimeval.core.values import EValue, Scalar, ValueList

logger = logging.getLogger(__name__)

ANSWER_NAME = "ans"

# (name, value expression, unit expression)
DEFAULT_CONSTANTS: tuple[tuple[str, str, str], ...] = (
    ("e_c", "1.602176634\\cdot 10^{-19}", "\\C"),
    ("e_0", "8.8541878128\\cdot 10^{-12}", "\\frac{\\F}{\\m}"),
    ("k_e", "8.9875517923\\cdot 10^{9}", "\\frac{\\N\\m^2}{\\C^2}"),
    ("c", "2.99792458\\cdot 10^{8}", "\\frac{\\m}{\\s}"),
    ("m_e", "9.1093837015\\cdot 10^{-31}", "\\kg"),
    ("m_p", "1.67262192369\\cdot 10^{-27}", "\\kg"),
    ("m_n", "1.67492749804\\cdot 10^{-27}", "\\kg"),
    ("C_K", "273.15", "\\K"),
    ("h", "6.62607015\\cdot 10^{-34}", "\\J\\s"),
    ("a_0", "5.29177210903\\cdot 10^{-11}", "\\m"),
    ("N_A", "6.02214076\\cdot 10^{23}", "\\mol^{-1}"),
    ("R", "8.314462618", "\\frac{\\J}{\\K\\mol}"),
)


class Expression(BaseModel):
    """An input expression with optional unit and conversion unit.

    The result is ``value_expr · unit_expr``; for an assignment the unit
    multiplies the right-hand side. When ``conversion_unit_expr`` has the
    same unit vector as the result, the result is expressed in it.
    """

    value_expr: str = Field(description="LaTeX expression, possibly an assignment")
    unit_expr: str = Field(default="", description="Unit multiplying the value")
    conversion_unit_expr: str = Field(default="", description="Unit to express the result in")

    model_config = ConfigDict(frozen=True)


@dataclass
class EvaluationResult:
    """Outcome of one expression in a batch: a value or an error."""

    source: str
    value: EValue | None = None
    error: DimevalError | None = None
    target: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _Parsed:
    index: int
    expression: Expression
    ast: Expr | None = None
    error: DimevalError | None = None
    target: str | None = None
    dependencies: set[str] = field(default_factory=set)


def _as_expression(item: str | Expression) -> Expression:
    if isinstance(item, Expression):
        return item
    return Expression(value_expr=item)


def _attach_unit(ast: Expr, unit: Expr) -> Expr:
    """Multiply the value part of ``ast`` by ``unit``."""
    if isinstance(ast, Assignment):
        return Assignment(
            target=ast.target,
            value=BinaryExpr(op=BinaryOp.MUL, left=ast.value, right=unit),
        )
    if isinstance(ast, FunctionDef):
        return FunctionDef(
            name=ast.name,
            params=ast.params,
            body=BinaryExpr(op=BinaryOp.MUL, left=ast.body, right=unit),
        )
    return BinaryExpr(op=BinaryOp.MUL, left=ast, right=unit)


def _strip_sig_figs(value: EValue) -> EValue:
    if isinstance(value, Scalar):
        return replace(value, sig_figs=0)
    if isinstance(value, ValueList):
        return ValueList(tuple(replace(e, sig_figs=0) for e in value.elements))
    return value


class Evaluator:
    """Evaluates expressions against fixed constants and user variables.

    ``fixed_constants`` and ``evaluated_variables`` are plain dicts that
    callers may pre-populate. Variables persist across batches; call
    :meth:`reset` to clear them.
    """

    def __init__(
        self, config: EvaluatorConfig | None = None, include_defaults: bool = True
    ) -> None:
        self.config = config or EvaluatorConfig()
        self.fixed_constants: dict[str, EValue] = {}
        self.evaluated_variables: dict[str, EValue] = {}

        if include_defaults:
            self.fixed_constants["e"] = Scalar(math.e)
            self.fixed_constants["i"] = Scalar(0.0, 1.0)
            for name, value_expr, unit_expr in DEFAULT_CONSTANTS:
                self.insert_constant(name, value_expr, unit_expr)
        for constant in self.config.constants:
            self.insert_constant(constant.name, constant.value, constant.unit)

    def _environment(self) -> Environment:
        return Environment(
            constants=self.fixed_constants,
            variables=self.evaluated_variables,
            max_depth=self.config.max_eval_depth,
        )

    def parse(self, expression: str | Expression) -> Expr:
        """Parse an expression, folding its unit into the AST."""
        expression = _as_expression(expression)
        ast = parse_expr(expression.value_expr, max_depth=self.config.max_depth)
        if expression.unit_expr.strip():
            unit = parse_expr(expression.unit_expr, max_depth=self.config.max_depth)
            ast = _attach_unit(ast, unit)
        return ast

    def insert_constant(self, name: str, value_expr: str, unit_expr: str = "") -> EValue:
        """Evaluate ``value_expr · unit_expr`` and store it as a fixed constant.

        Constants are exact: their significant-figure count is zeroed.
        """
        ast = self.parse(Expression(value_expr=value_expr, unit_expr=unit_expr))
        value = evaluate(ast, self._environment())
        value = _strip_sig_figs(value)
        self.fixed_constants[name] = value
        logger.debug("Constant %s = %s", name, value)
        return value

    def evaluate_expression(self, expression: str | Expression) -> EValue:
        """Evaluate one expression against the current state.

        Raises:
            ExpressionTokenError, ExpressionParseError, ExpressionEvalError
        """
        expression = _as_expression(expression)
        result = evaluate(self.parse(expression), self._environment())
        return self._convert(result, expression)

    def evaluate_expression_list(
        self, expressions: Sequence[str | Expression]
    ) -> list[EvaluationResult]:
        """Evaluate a batch, returning one result per input in input order."""
        parsed = [self._parse_item(i, item) for i, item in enumerate(expressions)]
        results = [
            EvaluationResult(source=p.expression.value_expr, error=p.error, target=p.target)
            for p in parsed
        ]
        previous_answer = self.evaluated_variables.get(ANSWER_NAME)
        answer_defined = any(p.target == ANSWER_NAME for p in parsed)

        for index in self._evaluation_order(parsed):
            item = parsed[index]
            if item.ast is None:
                continue
            if ANSWER_NAME in item.dependencies and not answer_defined:
                self._bind_answer(results[:index], previous_answer)
            try:
                value = evaluate(item.ast, self._environment())
                value = self._convert(value, item.expression)
            except DimevalError as e:
                logger.debug("Expression %d failed: %s", index, e.message)
                results[index].error = e
                continue
            logger.debug("Expression %d = %s", index, value)
            results[index].value = value

        if not answer_defined:
            self._bind_answer(results, previous_answer)

        leaves = self._display_leaves(parsed)
        for index, result in enumerate(results):
            if result.value is not None and index not in leaves:
                result.value = _strip_sig_figs(result.value)
        return results

    def reset(self) -> None:
        """Forget all user variables and functions."""
        self.evaluated_variables.clear()

    # -- Batch helpers --

    def _bind_answer(self, earlier: list[EvaluationResult], fallback: EValue | None) -> None:
        """Set ``ans`` to the last successful result in input order."""
        for result in reversed(earlier):
            if result.value is not None:
                self.evaluated_variables[ANSWER_NAME] = result.value
                return
        if fallback is None:
            self.evaluated_variables.pop(ANSWER_NAME, None)
        else:
            self.evaluated_variables[ANSWER_NAME] = fallback

    def _parse_item(self, index: int, item: str | Expression) -> _Parsed:
        expression = _as_expression(item)
        parsed = _Parsed(index=index, expression=expression)
        try:
            parsed.ast = self.parse(expression)
        except DimevalError as e:
            logger.debug("Expression %d did not parse: %s", index, e.message)
            parsed.error = e
            return parsed
        parsed.target = defined_name(parsed.ast)
        parsed.dependencies = collect_identifiers(parsed.ast)
        return parsed

    def _convert(self, value: EValue, expression: Expression) -> EValue:
        """Express ``value`` in the conversion unit when the units match."""
        if not expression.conversion_unit_expr.strip():
            return value
        conversion = evaluate(
            parse_expr(expression.conversion_unit_expr, max_depth=self.config.max_depth),
            self._environment(),
        )
        if not isinstance(conversion, Scalar) or conversion.value == 0.0:
            raise ExpressionEvalError(f"Invalid conversion unit: {expression.conversion_unit_expr}")

        def rescale(s: Scalar) -> Scalar:
            if s.unit != conversion.unit:
                logger.warning(
                    "Conversion unit %s does not match result unit %s",
                    expression.conversion_unit_expr,
                    s.unit,
                )
                return s
            return replace(s, value=s.value / conversion.value, imag=s.imag / conversion.value)

        if isinstance(value, (Scalar, ValueList)):
            return values.map_scalar(rescale, value, "conversion")
        return value

    def _evaluation_order(self, parsed: list[_Parsed]) -> list[int]:
        """Stable topological order of the batch; ties go to input order.

        A read of ``x`` depends on the nearest earlier definition of ``x``,
        or failing that on the first later one. Every other definition of
        ``x`` after the one read must run after the reader, and definitions
        of the same name keep their relative order.
        """
        count = len(parsed)
        successors: list[set[int]] = [set() for _ in range(count)]
        definitions: dict[str, list[int]] = {}
        for item in parsed:
            if item.target is not None:
                definitions.setdefault(item.target, []).append(item.index)

        for defs in definitions.values():
            for earlier, later in zip(defs, defs[1:]):
                successors[earlier].add(later)

        # Readers of ans run after every earlier slot
        if ANSWER_NAME not in definitions:
            for item in parsed:
                if ANSWER_NAME in item.dependencies:
                    for earlier in range(item.index):
                        successors[earlier].add(item.index)

        for item in parsed:
            for name in item.dependencies:
                if name in self.fixed_constants or name not in definitions:
                    continue
                defs = [d for d in definitions[name] if d != item.index]
                if not defs:
                    continue
                before = [d for d in defs if d < item.index]
                source = before[-1] if before else defs[0]
                successors[source].add(item.index)
                for other in defs:
                    if other > source and other != item.index:
                        successors[item.index].add(other)

        indegree = [0] * count
        for succ in successors:
            for target in succ:
                indegree[target] += 1

        ready = [i for i in range(count) if indegree[i] == 0]
        heapq.heapify(ready)
        order: list[int] = []
        while ready:
            index = heapq.heappop(ready)
            order.append(index)
            for target in successors[index]:
                indegree[target] -= 1
                if indegree[target] == 0:
                    heapq.heappush(ready, target)

        if len(order) < count:
            done = set(order)
            stuck = [i for i in range(count) if i not in done]
            logger.warning("Dependency cycle among expressions %s; using input order", stuck)
            order.extend(stuck)
        return order

    def _display_leaves(self, parsed: Iterable[_Parsed]) -> set[int]:
        """Indices that read a batch-defined name and are read by nobody."""
        items = list(parsed)
        defined = {p.target for p in items if p.target is not None}
        leaves: set[int] = set()
        for item in items:
            if item.ast is None:
                continue
            if not any(d in defined and d != item.target for d in item.dependencies):
                continue
            depended_upon = item.target is not None and any(
                item.target in other.dependencies for other in items if other.index != item.index
            )
            if not depended_upon:
                leaves.add(item.index)
        return leaves
