"""Tests for the dimeval tokenizer.

Covers:
- Numbers, significant figures and unit words
- Backslash keywords, relations and \\operatorname
- Identifiers with subscripts
- Error markers and ExpressionTokenError
- Token text round-trip
"""

from __future__ import annotations

import math

import pytest

from dimeval.core.errors import ExpressionTokenError
from dimeval.core.expression_lang.tokenizer import (
    Lexer,
    TokenKind,
    count_sig_figs,
    normalize_identifier,
    render_tokens,
    tokenize,
)
from dimeval.core.units import KILOGRAM, METRE, OHM, SECOND


def kinds(source: str) -> list[TokenKind]:
    return [t.kind for t in tokenize(source)]


class TestNumbers:
    def test_integer(self) -> None:
        tokens = tokenize("42")
        assert tokens[0].kind == TokenKind.NUMBER
        assert tokens[0].value == 42.0
        assert tokens[0].sig_figs == 0

    def test_decimal_sig_figs(self) -> None:
        tokens = tokenize("2.50")
        assert tokens[0].value == 2.5
        assert tokens[0].sig_figs == 3

    def test_leading_dot(self) -> None:
        tokens = tokenize(".5")
        assert tokens[0].value == 0.5

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("12", 0), ("1.0", 2), ("0.0012", 2), ("3.14159", 6), ("0.0", 1)],
    )
    def test_count_sig_figs(self, text: str, expected: int) -> None:
        assert count_sig_figs(text) == expected

    def test_pi_is_number(self) -> None:
        tokens = tokenize("\\pi")
        assert tokens[0].kind == TokenKind.NUMBER
        assert tokens[0].value == pytest.approx(math.pi)
        assert tokens[0].text == "\\pi"


class TestUnits:
    def test_metre(self) -> None:
        tok = tokenize("\\m")[0]
        assert tok.kind == TokenKind.NUMBER
        assert tok.value == 1.0
        assert tok.unit == METRE

    def test_prefixed_unit(self) -> None:
        tok = tokenize("\\km")[0]
        assert tok.value == pytest.approx(1000.0)
        assert tok.unit == METRE

    def test_micro_prefix(self) -> None:
        tok = tokenize("\\mus")[0]
        assert tok.value == pytest.approx(1e-6)
        assert tok.unit == SECOND

    def test_gram_scale(self) -> None:
        assert tokenize("\\kg")[0].value == pytest.approx(1.0)
        assert tokenize("\\g")[0].value == pytest.approx(1e-3)
        assert tokenize("\\g")[0].unit == KILOGRAM

    def test_ohm_spellings(self) -> None:
        assert tokenize("\\kOhm")[0].unit == OHM
        assert tokenize("\\Omega")[0].unit == OHM

    def test_unit_after_number(self) -> None:
        assert kinds("5\\km") == [TokenKind.NUMBER, TokenKind.NUMBER, TokenKind.EOF]


class TestKeywords:
    def test_functions(self) -> None:
        assert kinds("\\sin \\cos \\arctan \\ln \\log \\sqrt") == [
            TokenKind.SIN,
            TokenKind.COS,
            TokenKind.ARCTAN,
            TokenKind.LN,
            TokenKind.LOG,
            TokenKind.SQRT,
            TokenKind.EOF,
        ]

    def test_inverse_trig_power_spelling(self) -> None:
        assert kinds("\\sin^{-1}")[0] == TokenKind.ARCSIN
        assert kinds("\\cot^{-1}")[0] == TokenKind.ARCCOT

    def test_left_right_delimiters(self) -> None:
        assert kinds("\\left( \\right) \\left| \\right| \\left[ \\right]")[:-1] == [
            TokenKind.LEFT_PAREN,
            TokenKind.RIGHT_PAREN,
            TokenKind.LEFT_PIPE,
            TokenKind.RIGHT_PIPE,
            TokenKind.LEFT_BRACKET,
            TokenKind.RIGHT_BRACKET,
        ]

    def test_times_spellings(self) -> None:
        assert kinds("2 \\cdot 3 \\times 4 * 5").count(TokenKind.TIMES) == 3

    @pytest.mark.parametrize(
        ("source", "kind"),
        [
            ("\\le", TokenKind.LE),
            ("\\leq", TokenKind.LE),
            ("\\ge", TokenKind.GE),
            ("\\geq", TokenKind.GE),
            ("\\ne", TokenKind.NE),
            ("\\neq", TokenKind.NE),
        ],
    )
    def test_relations(self, source: str, kind: TokenKind) -> None:
        assert kinds(source)[0] == kind

    def test_relation_needs_whole_word(self) -> None:
        tok = tokenize("\\neg")[0]
        assert tok.kind == TokenKind.IDENT
        assert tok.text == "\\neg"

    def test_operatorname(self) -> None:
        assert kinds("\\operatorname{floor}")[0] == TokenKind.FLOOR
        assert kinds("\\operatorname{nCr}")[0] == TokenKind.NCR

    def test_unknown_operatorname(self) -> None:
        with pytest.raises(ExpressionTokenError) as exc_info:
            tokenize("\\operatorname{foo}(2)")
        assert exc_info.value.error_kind == "unknown"

    def test_spacing_commands_skipped(self) -> None:
        assert kinds("2\\,3\\;4\\ 5") == [TokenKind.NUMBER] * 4 + [TokenKind.EOF]


class TestIdentifiers:
    def test_single_letters(self) -> None:
        tokens = tokenize("xy")
        assert [t.text for t in tokens[:-1]] == ["x", "y"]

    def test_subscript_short(self) -> None:
        tok = tokenize("m_e")[0]
        assert tok.kind == TokenKind.IDENT
        assert tok.text == "m_e"

    def test_subscript_braced(self) -> None:
        tok = tokenize("x_{12}")[0]
        assert tok.text == "x_{12}"

    def test_backslash_identifier(self) -> None:
        tok = tokenize("\\alpha_{0}")[0]
        assert tok.kind == TokenKind.IDENT
        assert normalize_identifier(tok.text) == "alpha_0"

    def test_normalize_identifier(self) -> None:
        assert normalize_identifier("x_{1}") == "x_1"
        assert normalize_identifier("x_1") == "x_1"
        assert normalize_identifier("x_{12}") == "x_{12}"
        assert normalize_identifier("\\ans") == "ans"


class TestErrors:
    def test_two_dots(self) -> None:
        with pytest.raises(ExpressionTokenError) as exc_info:
            tokenize("1.2.3")
        assert exc_info.value.error_kind == "bad_numeric"
        assert exc_info.value.text == "1.2.3"
        assert exc_info.value.pos == 0

    def test_lone_dot(self) -> None:
        with pytest.raises(ExpressionTokenError):
            tokenize("2 + .")

    def test_unterminated_subscript(self) -> None:
        with pytest.raises(ExpressionTokenError) as exc_info:
            tokenize("x_{abc")
        assert exc_info.value.error_kind == "bad_identifier"

    def test_empty_subscript(self) -> None:
        with pytest.raises(ExpressionTokenError) as exc_info:
            tokenize("x_{}")
        assert exc_info.value.error_kind == "bad_identifier"

    def test_unknown_character(self) -> None:
        with pytest.raises(ExpressionTokenError) as exc_info:
            tokenize("2 # 3")
        assert exc_info.value.error_kind == "unknown"
        assert exc_info.value.pos == 2

    def test_error_message_points_at_source(self) -> None:
        with pytest.raises(ExpressionTokenError) as exc_info:
            tokenize("1 + 2.3.4")
        assert "1 + 2.3.4" in str(exc_info.value)
        assert "    ^" in str(exc_info.value)

    def test_lexer_emits_markers_without_raising(self) -> None:
        lexer = Lexer("1..2")
        assert lexer.consume_next_token().kind == TokenKind.BAD_NUMERIC
        assert lexer.consume_next_token().kind == TokenKind.EOF


class TestRoundTrip:
    @pytest.mark.parametrize(
        "source",
        [
            "\\frac{1}{2}\\sin^2 x + 5\\km",
            "\\log_{2} 8 - \\sqrt[3]{27}",
            "f(x, y) = x_{1} y \\le 3",
            "\\left|-2.50\\mus\\right| \\cdot \\nCr(6, 2)!",
        ],
    )
    def test_render_retokenizes(self, source: str) -> None:
        tokens = tokenize(source)
        again = tokenize(render_tokens(tokens))
        assert [t.kind for t in again] == [t.kind for t in tokens]
        assert [t.value for t in again] == [t.value for t in tokens]
        assert [t.unit for t in again] == [t.unit for t in tokens]

    def test_positions(self) -> None:
        tokens = tokenize("12 + \\pi")
        assert [t.pos for t in tokens] == [0, 3, 5, 8]
