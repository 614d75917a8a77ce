"""
Tokenizer for the dimeval LaTeX expression language.

Converts an expression string such as ``\\frac{1}{2}\\sin^2 x + 5\\km`` into a
sequence of typed tokens.

Backslash commands are resolved in this order:

1. longest-prefix match against the keyword table (8, 6, 5, 4, 3, 2 chars)
2. ``\\operatorname{name}``
3. an exact SI unit word (``\\km``, ``\\mus``, ``\\kOhm``), which becomes a
   numeric literal carrying the unit's scale and vector
4. a generic identifier (``\\alpha``, ``\\Delta_{x}``)
"""

from __future__ import annotations

import math
from enum import StrEnum, auto

from dimeval.core.errors import ExpressionTokenError
from dimeval.core.units import DIMENSIONLESS, UnitVector, lookup_unit


class TokenKind(StrEnum):
    """Token types for the expression language."""

    # Literals and names
    NUMBER = auto()
    IDENT = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    TIMES = auto()  # *, \times, \cdot
    DIVIDE = auto()
    POWER = auto()
    FACTORIAL = auto()
    EQUAL = auto()
    LT = auto()
    GT = auto()
    LE = auto()
    GE = auto()
    NE = auto()

    # Punctuation
    COMMA = auto()
    SUBSCRIPT = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    PIPE = auto()
    LEFT_PAREN = auto()  # \left(
    RIGHT_PAREN = auto()  # \right)
    LEFT_PIPE = auto()
    RIGHT_PIPE = auto()
    LEFT_BRACKET = auto()
    RIGHT_BRACKET = auto()

    # Commands
    FRAC = auto()
    SQRT = auto()
    LOG = auto()
    LN = auto()
    SIN = auto()
    COS = auto()
    TAN = auto()
    SEC = auto()
    CSC = auto()
    COT = auto()
    ARCSIN = auto()
    ARCCOS = auto()
    ARCTAN = auto()
    ARCSEC = auto()
    ARCCSC = auto()
    ARCCOT = auto()
    ABS = auto()
    FLOOR = auto()
    CEIL = auto()
    ROUND = auto()
    FACT = auto()
    NCR = auto()
    NPR = auto()

    # Error markers
    BAD_IDENTIFIER = auto()
    BAD_NUMERIC = auto()
    UNKNOWN = auto()

    # End of input
    EOF = auto()


class Token:
    """A single token from the expression tokenizer."""

    __slots__ = ("kind", "text", "pos", "value", "unit", "sig_figs")

    def __init__(
        self,
        kind: TokenKind,
        text: str,
        pos: int,
        value: float = 0.0,
        unit: UnitVector = DIMENSIONLESS,
        sig_figs: int = 0,
    ) -> None:
        self.kind = kind
        self.text = text
        self.pos = pos
        self.value = value
        self.unit = unit
        self.sig_figs = sig_figs

    def __repr__(self) -> str:
        if self.kind == TokenKind.NUMBER:
            return f"Token({self.kind}, {self.text!r}, pos={self.pos}, value={self.value!r})"
        return f"Token({self.kind}, {self.text!r}, pos={self.pos})"


ERROR_KINDS = frozenset({TokenKind.BAD_IDENTIFIER, TokenKind.BAD_NUMERIC, TokenKind.UNKNOWN})

_ERROR_MESSAGES: dict[TokenKind, str] = {
    TokenKind.BAD_IDENTIFIER: "Malformed identifier",
    TokenKind.BAD_NUMERIC: "Malformed number",
    TokenKind.UNKNOWN: "Unrecognised input",
}

# Backslash keywords, matched as a prefix of the text after the backslash.
_KEYWORDS: dict[str, TokenKind] = {
    # 8
    "sin^{-1}": TokenKind.ARCSIN,
    "cos^{-1}": TokenKind.ARCCOS,
    "tan^{-1}": TokenKind.ARCTAN,
    "sec^{-1}": TokenKind.ARCSEC,
    "csc^{-1}": TokenKind.ARCCSC,
    "cot^{-1}": TokenKind.ARCCOT,
    # 6
    "arcsin": TokenKind.ARCSIN,
    "arccos": TokenKind.ARCCOS,
    "arctan": TokenKind.ARCTAN,
    "arcsec": TokenKind.ARCSEC,
    "arccsc": TokenKind.ARCCSC,
    "arccot": TokenKind.ARCCOT,
    "right)": TokenKind.RIGHT_PAREN,
    "right|": TokenKind.RIGHT_PIPE,
    "right]": TokenKind.RIGHT_BRACKET,
    # 5
    "floor": TokenKind.FLOOR,
    "round": TokenKind.ROUND,
    "times": TokenKind.TIMES,
    "left(": TokenKind.LEFT_PAREN,
    "left|": TokenKind.LEFT_PIPE,
    "left[": TokenKind.LEFT_BRACKET,
    # 4
    "sqrt": TokenKind.SQRT,
    "ceil": TokenKind.CEIL,
    "fact": TokenKind.FACT,
    "frac": TokenKind.FRAC,
    "cdot": TokenKind.TIMES,
    # 3
    "sin": TokenKind.SIN,
    "cos": TokenKind.COS,
    "tan": TokenKind.TAN,
    "sec": TokenKind.SEC,
    "csc": TokenKind.CSC,
    "cot": TokenKind.COT,
    "abs": TokenKind.ABS,
    "nCr": TokenKind.NCR,
    "nPr": TokenKind.NPR,
    "log": TokenKind.LOG,
    # 2
    "pi": TokenKind.NUMBER,
    "ln": TokenKind.LN,
}

# Relation commands only match as whole words so \left, \neg, \geometry
# and friends are not split.
_RELATIONS: dict[str, TokenKind] = {
    "leq": TokenKind.LE,
    "geq": TokenKind.GE,
    "neq": TokenKind.NE,
    "le": TokenKind.LE,
    "ge": TokenKind.GE,
    "ne": TokenKind.NE,
}

_KEYWORD_LENGTHS = (8, 6, 5, 4, 3, 2)

_OPERATOR_NAMES: dict[str, TokenKind] = {
    "floor": TokenKind.FLOOR,
    "round": TokenKind.ROUND,
    "ceil": TokenKind.CEIL,
    "fact": TokenKind.FACT,
    "abs": TokenKind.ABS,
    "nCr": TokenKind.NCR,
    "nPr": TokenKind.NPR,
}

_SINGLE_CHARS: dict[str, TokenKind] = {
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "*": TokenKind.TIMES,
    "/": TokenKind.DIVIDE,
    "^": TokenKind.POWER,
    "!": TokenKind.FACTORIAL,
    "=": TokenKind.EQUAL,
    "<": TokenKind.LT,
    ">": TokenKind.GT,
    ",": TokenKind.COMMA,
    "_": TokenKind.SUBSCRIPT,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    "|": TokenKind.PIPE,
}

# \, \; \: \! and "\ " are LaTeX spacing
_SPACING_COMMANDS = frozenset(",;:! ")


def count_sig_figs(text: str) -> int:
    """Significant figures of a numeric literal; integers are exact (0)."""
    if "." not in text:
        return 0
    digits = text.replace(".", "").lstrip("0")
    return max(len(digits), 1)


class Lexer:
    """Scans expression text into tokens one at a time."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0

    def _remaining(self) -> int:
        return len(self.source) - self.pos

    def _emit(
        self,
        kind: TokenKind,
        length: int,
        value: float = 0.0,
        unit: UnitVector = DIMENSIONLESS,
        sig_figs: int = 0,
    ) -> Token:
        start = self.pos
        self.pos += length
        return Token(kind, self.source[start : self.pos], start, value, unit, sig_figs)

    def consume_next_token(self) -> Token:
        """Produce the next token, possibly an error marker, or EOF."""
        source = self.source
        while self.pos < len(source):
            c = source[self.pos]
            if c.isspace():
                self.pos += 1
                continue
            if c == "\\" and source[self.pos + 1 : self.pos + 2] in _SPACING_COMMANDS:
                self.pos += 2
                continue
            break
        else:
            return Token(TokenKind.EOF, "", self.pos)

        c = source[self.pos]
        if c.isdigit() or c == ".":
            return self._lex_number()
        if c.isascii() and c.isalpha():
            return self._lex_identifier(self.pos + 1)
        if c == "\\":
            return self._lex_command()
        if c in _SINGLE_CHARS:
            return self._emit(_SINGLE_CHARS[c], 1)
        return self._emit(TokenKind.UNKNOWN, 1)

    def extract_all_tokens(self) -> list[Token]:
        """Tokenize the whole source, raising on the first error marker."""
        tokens: list[Token] = []
        while True:
            tok = self.consume_next_token()
            if tok.kind in ERROR_KINDS:
                raise ExpressionTokenError(
                    f"{_ERROR_MESSAGES[tok.kind]}: {tok.text!r}",
                    tok.pos,
                    error_kind=tok.kind.value,
                    text=tok.text,
                    source=self.source,
                )
            tokens.append(tok)
            if tok.kind == TokenKind.EOF:
                return tokens

    # -- Literals ------------------------------------------------------------

    def _lex_number(self) -> Token:
        end = self.pos
        dots = 0
        while end < len(self.source) and (self.source[end].isdigit() or self.source[end] == "."):
            if self.source[end] == ".":
                dots += 1
            end += 1
        text = self.source[self.pos : end]
        if dots > 1 or text == ".":
            return self._emit(TokenKind.BAD_NUMERIC, end - self.pos)
        return self._emit(
            TokenKind.NUMBER,
            end - self.pos,
            value=float(text),
            sig_figs=count_sig_figs(text),
        )

    def _lex_identifier(self, end: int) -> Token:
        """Identifier from ``self.pos`` to ``end`` plus an optional subscript."""
        source = self.source
        if end + 1 < len(source) and source[end] == "_":
            nxt = source[end + 1]
            if nxt == "{":
                close = source.find("}", end + 2)
                if close == -1:
                    return self._emit(TokenKind.BAD_IDENTIFIER, len(source) - self.pos)
                if close == end + 2:
                    return self._emit(TokenKind.BAD_IDENTIFIER, close + 1 - self.pos)
                end = close + 1
            elif nxt.isascii() and nxt.isalnum():
                end += 2
        return self._emit(TokenKind.IDENT, end - self.pos)

    # -- Commands ------------------------------------------------------------

    def _lex_command(self) -> Token:
        source = self.source
        body = self.pos + 1

        for length in _KEYWORD_LENGTHS:
            candidate = source[body : body + length]
            if len(candidate) == length and candidate in _KEYWORDS:
                kind = _KEYWORDS[candidate]
                if kind == TokenKind.NUMBER:
                    return self._emit(kind, length + 1, value=math.pi)
                return self._emit(kind, length + 1)

        word_end = body
        while word_end < len(source) and source[word_end].isascii() and source[word_end].isalpha():
            word_end += 1
        word = source[body:word_end]

        if word in _RELATIONS:
            return self._emit(_RELATIONS[word], word_end - self.pos)

        if word == "operatorname" and source.startswith("{", word_end):
            close = source.find("}", word_end)
            if close == -1:
                return self._emit(TokenKind.UNKNOWN, len(source) - self.pos)
            kind = _OPERATOR_NAMES.get(source[word_end + 1 : close])
            if kind is None:
                return self._emit(TokenKind.UNKNOWN, close + 1 - self.pos)
            return self._emit(kind, close + 1 - self.pos)

        if not word:
            return self._emit(TokenKind.UNKNOWN, min(2, self._remaining()))

        unit = lookup_unit(word)
        if unit is not None:
            scale, vector = unit
            return self._emit(TokenKind.NUMBER, word_end - self.pos, value=scale, unit=vector)

        return self._lex_identifier(word_end)


def normalize_identifier(text: str) -> str:
    """Canonical variable name for an IDENT token's text.

    ``x_{1}`` and ``x_1`` are the same variable, and ``\\alpha`` is named
    ``alpha`` (plain letters always lex one character at a time, so the
    backslash is not needed to tell them apart).
    """
    base, sep, subscript = text.removeprefix("\\").partition("_")
    if sep and len(subscript) == 3 and subscript[0] == "{" and subscript[2] == "}":
        return f"{base}_{subscript[1]}"
    return text.removeprefix("\\")


def tokenize(source: str) -> list[Token]:
    """Tokenize an expression string into a list of tokens ending in EOF."""
    return Lexer(source).extract_all_tokens()


def render_tokens(tokens: list[Token]) -> str:
    """Rebuild source text that re-tokenizes to an equivalent sequence."""
    return " ".join(tok.text for tok in tokens if tok.kind != TokenKind.EOF)
