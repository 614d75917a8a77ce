"""SI unit vectors and the table of backslash unit words.

A :class:`UnitVector` holds integer exponents over the seven SI base
quantities in the order ``(length, time, mass, current, temperature,
amount, luminous)``. All zeros means dimensionless.

The unit table maps words such as ``km``, ``mus`` or ``kOhm`` to a scale
factor (relative to the SI base unit) and a vector. The lexer turns
``\\km`` into a numeric literal with value ``1000`` and unit ``m``.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, fields

_BASE_SYMBOLS: tuple[str, ...] = ("m", "s", "kg", "A", "K", "mol", "cd")


@dataclass(frozen=True)
class UnitVector:
    """Exponents of the SI base units carried by a value."""

    length: int = 0
    time: int = 0
    mass: int = 0
    current: int = 0
    temperature: int = 0
    amount: int = 0
    luminous: int = 0

    @classmethod
    def from_tuple(cls, exponents: tuple[int, ...] | list[int]) -> UnitVector:
        if len(exponents) != 7:
            raise ValueError(f"UnitVector needs 7 exponents, got {len(exponents)}")
        return cls(*(int(e) for e in exponents))

    def as_tuple(self) -> tuple[int, ...]:
        return tuple(getattr(self, f.name) for f in fields(self))

    def __iter__(self) -> Iterator[int]:
        return iter(self.as_tuple())

    # -- Algebra -----------------------------------------------------------
    def __mul__(self, other: UnitVector) -> UnitVector:
        """Multiply two units by adding their exponents."""
        return UnitVector(*(a + b for a, b in zip(self, other)))

    def __truediv__(self, other: UnitVector) -> UnitVector:
        """Divide two units by subtracting their exponents."""
        return UnitVector(*(a - b for a, b in zip(self, other)))

    def scaled(self, factor: float) -> UnitVector:
        """Raise to a dimensionless power.

        Each exponent is multiplied by ``factor`` and truncated toward zero,
        so ``m^2`` to the power ``0.5`` is ``m`` and ``m`` to the power
        ``0.5`` is dimensionless.
        """
        if not math.isfinite(factor):
            return DIMENSIONLESS
        return UnitVector(*(math.trunc(e * factor) for e in self))

    def product(self, other: UnitVector) -> UnitVector:
        """Component-wise product, used when an exponent itself carries units."""
        return UnitVector(*(a * b for a, b in zip(self, other)))

    def is_dimensionless(self) -> bool:
        return not any(self.as_tuple())

    def __str__(self) -> str:
        parts = []
        for symbol, exponent in zip(_BASE_SYMBOLS, self):
            if exponent == 1:
                parts.append(symbol)
            elif exponent:
                parts.append(f"{symbol}^{exponent}")
        return "·".join(parts)


DIMENSIONLESS = UnitVector()

# Base units
METRE = UnitVector(length=1)
SECOND = UnitVector(time=1)
KILOGRAM = UnitVector(mass=1)
AMPERE = UnitVector(current=1)
KELVIN = UnitVector(temperature=1)
MOLE = UnitVector(amount=1)
CANDELA = UnitVector(luminous=1)

# Derived units
HERTZ = UnitVector(time=-1)
NEWTON = UnitVector(length=1, time=-2, mass=1)
JOULE = UnitVector(length=2, time=-2, mass=1)
PASCAL = UnitVector(length=-1, time=-2, mass=1)
WATT = UnitVector(length=2, time=-3, mass=1)
COULOMB = UnitVector(time=1, current=1)
VOLT = UnitVector(length=2, time=-3, mass=1, current=-1)
OHM = UnitVector(length=2, time=-3, mass=1, current=-2)
SIEMENS = UnitVector(length=-2, time=3, mass=-1, current=2)
FARAD = UnitVector(length=-2, time=4, mass=-1, current=2)
TESLA = UnitVector(time=-2, mass=1, current=-1)
WEBER = UnitVector(length=2, time=-2, mass=1, current=-1)
HENRY = UnitVector(length=2, time=-2, mass=1, current=-2)


PREFIXES: dict[str, float] = {
    "a": 1e-18,
    "f": 1e-15,
    "p": 1e-12,
    "n": 1e-9,
    "mu": 1e-6,
    "m": 1e-3,
    "c": 1e-2,
    "d": 1e-1,
    "": 1.0,
    "k": 1e3,
    "M": 1e6,
    "G": 1e9,
    "T": 1e12,
    "P": 1e15,
    "E": 1e18,
}

# Symbol -> (scale relative to the SI base unit, vector)
_PREFIXABLE: dict[str, tuple[float, UnitVector]] = {
    "m": (1.0, METRE),
    "s": (1.0, SECOND),
    "g": (1e-3, KILOGRAM),
    "A": (1.0, AMPERE),
    "K": (1.0, KELVIN),
    "mol": (1.0, MOLE),
    "cd": (1.0, CANDELA),
    "N": (1.0, NEWTON),
    "J": (1.0, JOULE),
    "Pa": (1.0, PASCAL),
    "C": (1.0, COULOMB),
    "Hz": (1.0, HERTZ),
    "S": (1.0, SIEMENS),
    "Ohm": (1.0, OHM),
    "Omega": (1.0, OHM),
    "F": (1.0, FARAD),
    "V": (1.0, VOLT),
    "W": (1.0, WATT),
    "T": (1.0, TESLA),
    "Wb": (1.0, WEBER),
    "H": (1.0, HENRY),
}


def _build_unit_table() -> dict[str, tuple[float, UnitVector]]:
    table: dict[str, tuple[float, UnitVector]] = {}
    for symbol, (scale, vector) in _PREFIXABLE.items():
        for prefix, factor in PREFIXES.items():
            table.setdefault(prefix + symbol, (factor * scale, vector))
    # Unprefixed symbols win over any prefixed spelling that collides
    for symbol, entry in _PREFIXABLE.items():
        table[symbol] = entry
    return table


UNIT_TABLE: dict[str, tuple[float, UnitVector]] = _build_unit_table()


def lookup_unit(word: str) -> tuple[float, UnitVector] | None:
    """Return ``(scale, vector)`` for a unit word such as ``km``, or None."""
    return UNIT_TABLE.get(word)
