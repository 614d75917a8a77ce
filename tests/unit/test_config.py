"""Tests for dimeval.toml loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dimeval.core.config import (
    CONFIG_FILENAME,
    ConstantConfig,
    EvaluatorConfig,
    find_config,
    load_config,
    number_source,
    parse_config,
)
from dimeval.core.errors import ConfigError

SAMPLE = r"""
[evaluator]
max_depth = 64
max_eval_depth = 512
log_level = "debug"

[constants]
g = { value = "9.80665", unit = '\frac{\m}{\s^2}' }
k = 1.380649e-23
two = "2"
"""


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / CONFIG_FILENAME
        path.write_text(SAMPLE, encoding="utf-8")

        config = load_config(path)

        assert config.max_depth == 64
        assert config.max_eval_depth == 512
        assert config.log_level == "DEBUG"
        assert config.log_level_value == logging.DEBUG
        assert config.constants == [
            ConstantConfig(name="g", value="9.80665", unit="\\frac{\\m}{\\s^2}"),
            ConstantConfig(name="k", value="1.380649\\cdot 10^{-23}"),
            ConstantConfig(name="two", value="2"),
        ]

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / CONFIG_FILENAME
        path.write_text("", encoding="utf-8")
        assert load_config(path) == EvaluatorConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / CONFIG_FILENAME
        path.write_text("[evaluator\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="invalid TOML"):
            load_config(path)

    def test_error_names_file(self, tmp_path: Path) -> None:
        path = tmp_path / CONFIG_FILENAME
        path.write_text("[evaluator]\nmax_depth = 0\n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.path == path
        assert str(path) in str(exc_info.value)


class TestParseConfig:
    @pytest.mark.parametrize("bad", [0, -3, "10", True, 1.5])
    def test_depth_must_be_positive_int(self, bad: object) -> None:
        with pytest.raises(ConfigError, match="max_depth"):
            parse_config({"evaluator": {"max_depth": bad}})

    def test_bad_log_level(self) -> None:
        with pytest.raises(ConfigError, match="log_level"):
            parse_config({"evaluator": {"log_level": "chatty"}})

    def test_sections_must_be_tables(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"evaluator": 3})
        with pytest.raises(ConfigError):
            parse_config({"constants": ["g"]})

    def test_constant_needs_value(self) -> None:
        with pytest.raises(ConfigError, match="needs a 'value'"):
            parse_config({"constants": {"g": {"unit": "\\m"}}})

    def test_constant_unit_must_be_string(self) -> None:
        with pytest.raises(ConfigError, match="unit"):
            parse_config({"constants": {"g": {"value": 1, "unit": 2}}})

    def test_numeric_table_value(self) -> None:
        config = parse_config({"constants": {"g": {"value": 9.81, "unit": "\\m"}}})
        assert config.constants == [ConstantConfig(name="g", value="9.81", unit="\\m")]


class TestNumberSource:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (6, "6"),
            (9.81, "9.81"),
            (1e-05, "1\\cdot 10^{-5}"),
            (6.02214076e23, "6.02214076\\cdot 10^{23}"),
        ],
    )
    def test_render(self, value: float, expected: str) -> None:
        assert number_source(value) == expected


class TestFindConfig:
    def test_walks_up(self, tmp_path: Path) -> None:
        config = tmp_path / CONFIG_FILENAME
        config.write_text("", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == config.resolve()

    def test_none_when_absent(self, tmp_path: Path) -> None:
        nested = tmp_path / "a"
        nested.mkdir()
        assert find_config(nested) is None
