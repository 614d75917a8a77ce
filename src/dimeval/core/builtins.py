"""
Builtin numeric functions.

Pure functions from values to values. Domain errors never raise; they
produce NaN (``\\ln 0``, ``\\arcsin 2``, ``\\log_1 5``). Every function
applies element-wise to a list argument.

Trig, log and combinatoric results are dimensionless. ``abs``, ``floor``,
``ceil`` and ``round`` keep the argument's unit; ``fact`` zeroes it; roots
go through the normal power rule, so ``\\sqrt{\\m^2}`` is in metres.
"""

from __future__ import annotations

import cmath
import logging
import math
from collections.abc import Callable

from dimeval.core import values
from dimeval.core.errors import ExpressionEvalError
from dimeval.core.ir.expressions import BuiltinFunc
from dimeval.core.units import DIMENSIONLESS
from dimeval.core.values import EValue, Scalar, ValueList, safe_divide

logger = logging.getLogger(__name__)


def _dimensionless(value: float, imag: float = 0.0, sig_figs: int = 0) -> Scalar:
    return Scalar(value, imag, DIMENSIONLESS, sig_figs)


def _real_fn(fn: Callable[[float], float]) -> Callable[[Scalar], Scalar]:
    """Lift a real function to scalars; ValueError and overflow become NaN/inf."""

    def apply(s: Scalar) -> Scalar:
        try:
            result = fn(s.value)
        except ValueError:
            result = math.nan
        except OverflowError:
            result = math.inf
        return _dimensionless(result, sig_figs=s.sig_figs)

    return apply


def _complex_fn(
    real: Callable[[float], float], complex_: Callable[[complex], complex]
) -> Callable[[Scalar], Scalar]:
    """Use ``complex_`` when the argument has an imaginary part."""
    real_apply = _real_fn(real)

    def apply(s: Scalar) -> Scalar:
        if not s.is_complex:
            return real_apply(s)
        try:
            z = complex_(s.as_complex())
        except (ValueError, OverflowError):
            return _dimensionless(math.nan, sig_figs=s.sig_figs)
        return _dimensionless(z.real, z.imag, s.sig_figs)

    return apply


# =============================================================================
# Real kernels
# =============================================================================


def _ln(x: float) -> float:
    if x <= 0:
        return math.nan
    return math.log(x)


def _reciprocal(fn: Callable[[float], float]) -> Callable[[float], float]:
    return lambda x: safe_divide(1.0, fn(x))


def _of_reciprocal(fn: Callable[[float], float]) -> Callable[[float], float]:
    """``fn(1/x)``: the inverse of sec/csc/cot."""

    def apply(x: float) -> float:
        if x == 0:
            return math.nan
        return fn(1.0 / x)

    return apply


def _arccot(x: float) -> float:
    if x == 0:
        return math.pi / 2
    return math.atan(1.0 / x)


def _ceil(x: float) -> float:
    return float(math.ceil(x)) if math.isfinite(x) else x


def _floor(x: float) -> float:
    return float(math.floor(x)) if math.isfinite(x) else x


def round_half_away(x: float, places: float = 0.0) -> float:
    """Round to ``places`` decimals, halves away from zero."""
    if not math.isfinite(x):
        return x
    try:
        multiplier = math.pow(10.0, places)
    except OverflowError:
        return x
    if multiplier == 0.0:
        return math.copysign(0.0, x)
    scaled = abs(x) * multiplier
    if not math.isfinite(scaled):
        return x
    return math.copysign(math.floor(scaled + 0.5) / multiplier, x)


def log(x: float, base: float | None = None) -> float:
    """Logarithm; base None or 0 means base 10."""
    if base is None or base == 0:
        base = 10.0
    if x <= 0 or base < 0 or base == 1 or math.isnan(x) or math.isnan(base):
        return math.nan
    if base == 10:
        return math.log10(x)
    return math.log(x) / math.log(base)


def n_choose_r(n: float, r: float) -> float:
    """Combinations; 0 when r < 0 or r > n."""
    if math.isnan(n) or math.isnan(r):
        return math.nan
    if r < 0 or r > n:
        return 0.0
    try:
        return float(math.comb(math.trunc(n), math.trunc(r)))
    except OverflowError:
        return math.inf


def n_permute_r(n: float, r: float) -> float:
    """Permutations; 0 when r < 0 or r > n."""
    if math.isnan(n) or math.isnan(r):
        return math.nan
    if r < 0 or r > n:
        return 0.0
    try:
        return float(math.perm(math.trunc(n), math.trunc(r)))
    except OverflowError:
        return math.inf


# =============================================================================
# Scalar lifts
# =============================================================================

_UNARY: dict[BuiltinFunc, Callable[[Scalar], Scalar]] = {
    BuiltinFunc.LN: _complex_fn(_ln, cmath.log),
    BuiltinFunc.SIN: _complex_fn(math.sin, cmath.sin),
    BuiltinFunc.COS: _complex_fn(math.cos, cmath.cos),
    BuiltinFunc.TAN: _complex_fn(math.tan, cmath.tan),
    BuiltinFunc.SEC: _real_fn(_reciprocal(math.cos)),
    BuiltinFunc.CSC: _real_fn(_reciprocal(math.sin)),
    BuiltinFunc.COT: _real_fn(_reciprocal(math.tan)),
    BuiltinFunc.ARCSIN: _real_fn(math.asin),
    BuiltinFunc.ARCCOS: _real_fn(math.acos),
    BuiltinFunc.ARCTAN: _real_fn(math.atan),
    BuiltinFunc.ARCSEC: _real_fn(_of_reciprocal(math.acos)),
    BuiltinFunc.ARCCSC: _real_fn(_of_reciprocal(math.asin)),
    BuiltinFunc.ARCCOT: _real_fn(_arccot),
}


def _keep_unit(fn: Callable[[float], float]) -> Callable[[Scalar], Scalar]:
    return lambda s: Scalar(fn(s.value), 0.0, s.unit, s.sig_figs)


_UNIT_PRESERVING: dict[BuiltinFunc, Callable[[Scalar], Scalar]] = {
    BuiltinFunc.CEIL: _keep_unit(_ceil),
    BuiltinFunc.FLOOR: _keep_unit(_floor),
}


def _scalar_of(value: EValue | None, what: str) -> Scalar:
    if isinstance(value, Scalar):
        return value
    if isinstance(value, ValueList):
        return value.representative
    raise ExpressionEvalError(f"{what} must be a number, got {type(value).__name__}")


def _binary_scalar(fn: Callable[[float, float], float]) -> Callable[[Scalar, Scalar], Scalar]:
    return lambda a, b: _dimensionless(fn(a.value, b.value))


def nth_root(value: EValue, index: EValue | None = None) -> EValue:
    """``value ^ (1/n)``; the default index is 2."""
    n = _scalar_of(index, "Root index").value if index is not None else 2.0
    return values.power(value, Scalar(safe_divide(1.0, n)))


def apply_builtin(func: BuiltinFunc, args: list[EValue], special: EValue | None = None) -> EValue:
    """Evaluate a builtin call on already-evaluated arguments."""
    if len(args) != func.arity:
        raise ExpressionEvalError(f"\\{func.value} takes {func.arity} argument(s), got {len(args)}")

    if func in _UNARY:
        return values.map_scalar(_UNARY[func], args[0], func.value)
    if func in _UNIT_PRESERVING:
        return values.map_scalar(_UNIT_PRESERVING[func], args[0], func.value)

    if func == BuiltinFunc.ABS:
        return values.absolute(args[0])
    if func == BuiltinFunc.FACT:
        return values.factorial(args[0])
    if func == BuiltinFunc.SQRT:
        return nth_root(args[0], special)
    if func == BuiltinFunc.LOG:
        base = _scalar_of(special, "Log base").value if special is not None else None
        return values.map_scalar(
            lambda s: _dimensionless(log(s.value, base), sig_figs=s.sig_figs), args[0], "log"
        )
    if func == BuiltinFunc.ROUND:
        places = _scalar_of(args[1], "Decimal places").value
        return values.map_scalar(
            lambda s: Scalar(round_half_away(s.value, places), 0.0, s.unit, s.sig_figs),
            args[0],
            "round",
        )
    if func == BuiltinFunc.NCR:
        return values.broadcast(_binary_scalar(n_choose_r), args[0], args[1], "nCr")
    if func == BuiltinFunc.NPR:
        return values.broadcast(_binary_scalar(n_permute_r), args[0], args[1], "nPr")

    logger.debug("No implementation for builtin %s", func)
    raise ExpressionEvalError(f"Unsupported builtin function: {func.value}")
