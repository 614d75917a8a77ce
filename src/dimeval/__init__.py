"""
dimeval - LaTeX-syntax math expression evaluator with SI unit tracking.

Usage:
    from dimeval import Evaluator

    evaluator = Evaluator()
    results = evaluator.evaluate_expression_list(["x = 5\\km", "\\frac{x}{2\\s}"])
"""

from __future__ import annotations

from ._version import get_version
from .core.engine import EvaluationResult, Evaluator, Expression
from .core.errors import (
    ConfigError,
    DimevalError,
    ExpressionEvalError,
    ExpressionParseError,
    ExpressionTokenError,
)
from .core.units import UnitVector
from .core.values import Boolean, EValue, Function, Scalar, ValueList

__version__ = get_version()

__all__ = [
    "__version__",
    "Evaluator",
    "Expression",
    "EvaluationResult",
    # Values
    "EValue",
    "Scalar",
    "ValueList",
    "Boolean",
    "Function",
    "UnitVector",
    # Errors
    "DimevalError",
    "ExpressionTokenError",
    "ExpressionParseError",
    "ExpressionEvalError",
    "ConfigError",
]
