"""
Runtime values and the dimensional arithmetic between them.

An ``EValue`` is exactly one of:

- :class:`Scalar`: a real or complex number carrying a :class:`UnitVector`
  and a significant-figure count (0 means exact)
- :class:`ValueList`: an ordered list of scalars
- :class:`Boolean`: the result of a comparison
- :class:`Function`: a user-defined function

Unit rules:

- ``+``/``-`` keep the unit when both sides agree and collapse it to
  dimensionless otherwise (never an error)
- ``*``/``/`` add/subtract exponents
- ``^`` with a dimensionless exponent multiplies the exponents by the
  exponent value (truncated); with a dimensioned exponent the two vectors
  are multiplied component-wise

Lists broadcast against scalars and zip against other lists, truncating
to the shorter one. Element-wise list arithmetic is real-only.
"""

from __future__ import annotations

import cmath
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from dimeval.core.errors import ExpressionEvalError
from dimeval.core.units import DIMENSIONLESS, UnitVector

# Largest n for which n! fits in a double
MAX_FACTORIAL = 170


@dataclass(frozen=True)
class Scalar:
    """A dimensioned real or complex number."""

    value: float
    imag: float = 0.0
    unit: UnitVector = DIMENSIONLESS
    sig_figs: int = 0

    @property
    def is_complex(self) -> bool:
        return self.imag != 0.0

    def as_complex(self) -> complex:
        return complex(self.value, self.imag)

    def real(self) -> Scalar:
        """Drop the imaginary part."""
        if self.imag == 0.0:
            return self
        return replace(self, imag=0.0)

    def with_unit(self, unit: UnitVector) -> Scalar:
        return replace(self, unit=unit)

    def __str__(self) -> str:
        number = format_number(self.value, self.imag)
        unit = str(self.unit)
        return f"{number} {unit}" if unit else number


@dataclass(frozen=True)
class ValueList:
    """An ordered list of scalars."""

    elements: tuple[Scalar, ...] = ()

    @property
    def representative(self) -> Scalar:
        """First element, or a dimensionless zero for an empty list."""
        if self.elements:
            return self.elements[0]
        return Scalar(0.0)

    def __len__(self) -> int:
        return len(self.elements)

    def __str__(self) -> str:
        return "[" + ", ".join(str(e) for e in self.elements) + "]"


@dataclass(frozen=True)
class Boolean:
    """Result of a comparison."""

    value: bool

    def __str__(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class Function:
    """A user-defined function: ``f(x, y) = body``."""

    name: str
    params: tuple[str, ...]
    body: Any  # dimeval.core.ir.Expr; kept untyped to avoid an import cycle

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.params)})"


EValue = Scalar | ValueList | Boolean | Function


def format_number(value: float, imag: float) -> str:
    if imag == 0.0:
        return f"{value:.10g}"
    sign = "-" if imag < 0 else "+"
    return f"{value:.10g} {sign} {abs(imag):.10g}i"


def combine_sig_figs(a: int, b: int) -> int:
    """Minimum of the non-zero counts; zero means exact."""
    if a == 0:
        return b
    if b == 0:
        return a
    return min(a, b)


def _describe(value: EValue) -> str:
    return type(value).__name__


# =============================================================================
# Safe real arithmetic
# =============================================================================


def safe_divide(a: float, b: float) -> float:
    """Real division where x/0 is +-inf and 0/0 is NaN."""
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def safe_pow(base: float, exponent: float) -> float:
    """Real power where domain errors give NaN and overflow gives signed inf."""
    if base == 0.0 and exponent < 0:
        return math.inf
    try:
        return math.pow(base, exponent)
    except ValueError:
        return math.nan
    except OverflowError:
        if base < 0 and float(exponent).is_integer() and int(exponent) % 2 == 1:
            return -math.inf
        return math.inf


def _complex_divide(a: complex, b: complex) -> complex:
    if b == 0:
        return complex(safe_divide(a.real, 0.0), safe_divide(a.imag, 0.0) if a.imag else 0.0)
    return a / b


def _complex_pow(base: complex, exponent: complex) -> complex:
    """Polar-form complex power."""
    if base == 0:
        if exponent == 0:
            return complex(1.0, 0.0)
        if exponent.real > 0:
            return complex(0.0, 0.0)
        return complex(math.inf, 0.0)
    r, theta = cmath.polar(base)
    log_r = math.log(r)
    c, d = exponent.real, exponent.imag
    try:
        magnitude = math.exp(c * log_r - d * theta)
    except OverflowError:
        magnitude = math.inf
    angle = d * log_r + c * theta
    return cmath.rect(magnitude, angle) if math.isfinite(magnitude) else complex(magnitude, 0.0)


# =============================================================================
# Scalar operations
# =============================================================================


def _scalar_add(a: Scalar, b: Scalar, sign: float = 1.0) -> Scalar:
    unit = a.unit if a.unit == b.unit else DIMENSIONLESS
    return Scalar(
        value=a.value + sign * b.value,
        imag=a.imag + sign * b.imag,
        unit=unit,
        sig_figs=combine_sig_figs(a.sig_figs, b.sig_figs),
    )


def _scalar_sub(a: Scalar, b: Scalar) -> Scalar:
    return _scalar_add(a, b, sign=-1.0)


def _scalar_mul(a: Scalar, b: Scalar) -> Scalar:
    sig_figs = combine_sig_figs(a.sig_figs, b.sig_figs)
    unit = a.unit * b.unit
    if a.is_complex or b.is_complex:
        z = a.as_complex() * b.as_complex()
        return Scalar(z.real, z.imag, unit, sig_figs)
    return Scalar(a.value * b.value, 0.0, unit, sig_figs)


def _scalar_div(a: Scalar, b: Scalar) -> Scalar:
    sig_figs = combine_sig_figs(a.sig_figs, b.sig_figs)
    unit = a.unit / b.unit
    if a.is_complex or b.is_complex:
        z = _complex_divide(a.as_complex(), b.as_complex())
        return Scalar(z.real, z.imag, unit, sig_figs)
    return Scalar(safe_divide(a.value, b.value), 0.0, unit, sig_figs)


def _scalar_pow(base: Scalar, exponent: Scalar) -> Scalar:
    sig_figs = combine_sig_figs(base.sig_figs, exponent.sig_figs)
    if exponent.unit.is_dimensionless():
        unit = base.unit.scaled(exponent.value)
    else:
        unit = base.unit.product(exponent.unit)
    if base.is_complex or exponent.is_complex:
        z = _complex_pow(base.as_complex(), exponent.as_complex())
        return Scalar(z.real, z.imag, unit, sig_figs)
    return Scalar(safe_pow(base.value, exponent.value), 0.0, unit, sig_figs)


# =============================================================================
# Dispatch over value shapes
# =============================================================================


def broadcast(
    op: Callable[[Scalar, Scalar], Scalar],
    a: EValue,
    b: EValue,
    symbol: str,
) -> EValue:
    """Apply a scalar operation across scalars and lists.

    scalar∘scalar applies ``op`` directly (complex-aware); scalar∘list and
    list∘scalar map over the list; list∘list zips to the shorter length.
    List elements are combined with their real parts only.
    """
    if isinstance(a, Scalar) and isinstance(b, Scalar):
        return op(a, b)
    if isinstance(a, Scalar) and isinstance(b, ValueList):
        left = a.real()
        return ValueList(tuple(op(left, e.real()) for e in b.elements))
    if isinstance(a, ValueList) and isinstance(b, Scalar):
        right = b.real()
        return ValueList(tuple(op(e.real(), right) for e in a.elements))
    if isinstance(a, ValueList) and isinstance(b, ValueList):
        return ValueList(tuple(op(x.real(), y.real()) for x, y in zip(a.elements, b.elements)))
    raise ExpressionEvalError(
        f"Unsupported operands for {symbol}: {_describe(a)} and {_describe(b)}"
    )


def add(a: EValue, b: EValue) -> EValue:
    return broadcast(_scalar_add, a, b, "+")


def sub(a: EValue, b: EValue) -> EValue:
    return broadcast(_scalar_sub, a, b, "-")


def mul(a: EValue, b: EValue) -> EValue:
    return broadcast(_scalar_mul, a, b, "*")


def div(a: EValue, b: EValue) -> EValue:
    return broadcast(_scalar_div, a, b, "/")


def power(a: EValue, b: EValue) -> EValue:
    return broadcast(_scalar_pow, a, b, "^")


def map_scalar(fn: Callable[[Scalar], Scalar], value: EValue, name: str) -> EValue:
    """Apply ``fn`` to a scalar, or to every element of a list."""
    if isinstance(value, Scalar):
        return fn(value)
    if isinstance(value, ValueList):
        return ValueList(tuple(fn(e) for e in value.elements))
    raise ExpressionEvalError(f"Unsupported operand for {name}: {_describe(value)}")


def negate(value: EValue) -> EValue:
    """Flip the sign of magnitude and imaginary part; units unchanged."""
    return map_scalar(lambda s: replace(s, value=-s.value, imag=-s.imag), value, "negation")


def absolute(value: EValue) -> EValue:
    """Magnitude of a value; units unchanged. Booleans become 1 or 0."""
    if isinstance(value, Boolean):
        return Scalar(1.0 if value.value else 0.0)

    def _abs(s: Scalar) -> Scalar:
        if s.is_complex:
            return replace(s, value=math.hypot(s.value, s.imag), imag=0.0)
        return replace(s, value=math.fabs(s.value))

    return map_scalar(_abs, value, "abs")


def _factorial_of(x: float) -> float:
    if math.isnan(x):
        return math.nan
    if x >= MAX_FACTORIAL + 1:
        return math.inf
    if x < 2:
        return 1.0
    result = 1.0
    for k in range(2, math.trunc(x) + 1):
        result *= k
    return result


def factorial(value: EValue) -> EValue:
    """Iterative product ``2..trunc(x)``; the result is dimensionless."""
    return map_scalar(
        lambda s: Scalar(_factorial_of(s.value), 0.0, DIMENSIONLESS, s.sig_figs),
        value,
        "factorial",
    )


_COMPARISONS: dict[str, Callable[[float, float], bool]] = {
    "<": lambda x, y: x < y,
    ">": lambda x, y: x > y,
    "<=": lambda x, y: x <= y,
    ">=": lambda x, y: x >= y,
    "!=": lambda x, y: x != y,
}


def compare(op: str, a: EValue, b: EValue) -> Boolean:
    """Compare the real magnitudes of two scalars."""
    check = _COMPARISONS.get(op)
    if check is None:
        raise ExpressionEvalError(f"Unknown comparison operator: {op}")
    if isinstance(a, Scalar) and isinstance(b, Scalar):
        return Boolean(check(a.value, b.value))
    if op == "!=" and isinstance(a, Boolean) and isinstance(b, Boolean):
        return Boolean(a.value != b.value)
    raise ExpressionEvalError(
        f"Unsupported operands for {op}: {_describe(a)} and {_describe(b)}"
    )
