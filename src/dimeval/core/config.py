"""
Configuration loaded from ``dimeval.toml``.

Example::

    [evaluator]
    max_depth = 128
    max_eval_depth = 256
    log_level = "WARNING"

    [constants]
    g = { value = "9.80665", unit = "\\\\frac{\\\\m}{\\\\s^2}" }
"""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from dimeval.core.errors import ConfigError

CONFIG_FILENAME = "dimeval.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ConstantConfig:
    """A user constant: a value expression and an optional unit expression."""

    name: str
    value: str
    unit: str = ""


@dataclass
class EvaluatorConfig:
    """Evaluator limits, logging and extra constants."""

    max_depth: int = 128  # parser nesting limit
    max_eval_depth: int = 256  # evaluator recursion limit
    log_level: str = "WARNING"
    constants: list[ConstantConfig] = field(default_factory=list)

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def number_source(value: int | float) -> str:
    """Render a number in expression syntax: 1e-05 becomes 1\\cdot 10^{-5}."""
    text = repr(value)
    mantissa, sep, exponent = text.partition("e")
    if not sep:
        return text
    return f"{mantissa}\\cdot 10^{{{int(exponent)}}}"


def _positive_int(section: dict, key: str, default: int, path: Path | None) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"evaluator.{key} must be a positive integer, got {value!r}", path)
    return value


def parse_config(data: dict, path: Path | None = None) -> EvaluatorConfig:
    """Build an :class:`EvaluatorConfig` from parsed TOML data."""
    evaluator = data.get("evaluator", {})
    constants = data.get("constants", {})
    if not isinstance(evaluator, dict):
        raise ConfigError("[evaluator] must be a table", path)
    if not isinstance(constants, dict):
        raise ConfigError("[constants] must be a table", path)

    log_level = str(evaluator.get("log_level", "WARNING")).upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(f"evaluator.log_level must be one of {', '.join(_LOG_LEVELS)}", path)

    constant_configs: list[ConstantConfig] = []
    for name, entry in constants.items():
        if isinstance(entry, (int, float)) and not isinstance(entry, bool):
            constant_configs.append(ConstantConfig(name=name, value=number_source(entry)))
            continue
        if isinstance(entry, str):
            constant_configs.append(ConstantConfig(name=name, value=entry))
            continue
        if not isinstance(entry, dict) or "value" not in entry:
            raise ConfigError(f"constants.{name} needs a 'value'", path)
        value = entry["value"]
        unit = entry.get("unit", "")
        if not isinstance(unit, str):
            raise ConfigError(f"constants.{name}.unit must be a string", path)
        constant_configs.append(
            ConstantConfig(
                name=name,
                value=value if isinstance(value, str) else number_source(value),
                unit=unit,
            )
        )

    return EvaluatorConfig(
        max_depth=_positive_int(evaluator, "max_depth", 128, path),
        max_eval_depth=_positive_int(evaluator, "max_eval_depth", 256, path),
        log_level=log_level,
        constants=constant_configs,
    )


def load_config(path: Path) -> EvaluatorConfig:
    """Read and validate a ``dimeval.toml`` file."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError("config file not found", path) from e
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML: {e}", path) from e
    return parse_config(data, path)


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from ``start`` (default: cwd) looking for ``dimeval.toml``."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
