"""
Pratt parser for the dimeval LaTeX expression language.

Binding powers (left, right), low to high:

    =                     (2, 1)    right-associative
    < > \\le \\ge \\ne       (5, 6)
    + -                   (10, 11)
    * / and implicit *    (20, 21)
    ^                     (31, 30)  right-associative

Prefix ``+``/``-`` parse their operand at 15, so ``-x^2`` is ``-(x^2)``.
Postfix ``!`` binds to the preceding primary.

Implicit multiplication is synthesised whenever the next token can start
an operand but is not an operator: ``2\\pi``, ``\\pi 2``, ``2(\\pi)`` and
``2|x|`` are all products.

A builtin called without parentheses takes a bare argument parsed at 19.
The argument absorbs powers, products and quotients but stops at ``+``,
``-``, comparisons, closing delimiters, and the start of another builtin:

    \\sin\\pi/2      → sin(π/2)
    \\sin x + 1      → sin(x) + 1
    \\sin x\\cos x    → sin(x)·cos(x)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from dimeval.core.errors import ExpressionParseError
from dimeval.core.expression_lang.tokenizer import (
    Token,
    TokenKind,
    normalize_identifier,
    tokenize,
)
from dimeval.core.ir.expressions import (
    Assignment,
    BinaryExpr,
    BinaryOp,
    BuiltinFunc,
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

DEFAULT_MAX_DEPTH = 128

_BINARY_OPS: dict[TokenKind, tuple[BinaryOp | None, int, int]] = {
    TokenKind.EQUAL: (None, 2, 1),
    TokenKind.LT: (BinaryOp.LT, 5, 6),
    TokenKind.GT: (BinaryOp.GT, 5, 6),
    TokenKind.LE: (BinaryOp.LE, 5, 6),
    TokenKind.GE: (BinaryOp.GE, 5, 6),
    TokenKind.NE: (BinaryOp.NE, 5, 6),
    TokenKind.PLUS: (BinaryOp.ADD, 10, 11),
    TokenKind.MINUS: (BinaryOp.SUB, 10, 11),
    TokenKind.TIMES: (BinaryOp.MUL, 20, 21),
    TokenKind.DIVIDE: (BinaryOp.DIV, 20, 21),
    TokenKind.POWER: (BinaryOp.POW, 31, 30),
}

_IMPLICIT_MUL_BP = (20, 21)
_PREFIX_BP = 15
_BARE_ARGUMENT_BP = 19

_FUNCTIONS: dict[TokenKind, BuiltinFunc] = {
    TokenKind.SIN: BuiltinFunc.SIN,
    TokenKind.COS: BuiltinFunc.COS,
    TokenKind.TAN: BuiltinFunc.TAN,
    TokenKind.SEC: BuiltinFunc.SEC,
    TokenKind.CSC: BuiltinFunc.CSC,
    TokenKind.COT: BuiltinFunc.COT,
    TokenKind.ARCSIN: BuiltinFunc.ARCSIN,
    TokenKind.ARCCOS: BuiltinFunc.ARCCOS,
    TokenKind.ARCTAN: BuiltinFunc.ARCTAN,
    TokenKind.ARCSEC: BuiltinFunc.ARCSEC,
    TokenKind.ARCCSC: BuiltinFunc.ARCCSC,
    TokenKind.ARCCOT: BuiltinFunc.ARCCOT,
    TokenKind.LN: BuiltinFunc.LN,
    TokenKind.LOG: BuiltinFunc.LOG,
    TokenKind.SQRT: BuiltinFunc.SQRT,
    TokenKind.ABS: BuiltinFunc.ABS,
    TokenKind.FLOOR: BuiltinFunc.FLOOR,
    TokenKind.CEIL: BuiltinFunc.CEIL,
    TokenKind.ROUND: BuiltinFunc.ROUND,
    TokenKind.FACT: BuiltinFunc.FACT,
    TokenKind.NCR: BuiltinFunc.NCR,
    TokenKind.NPR: BuiltinFunc.NPR,
}

_TERMINATORS = frozenset(
    {
        TokenKind.EOF,
        TokenKind.RPAREN,
        TokenKind.RIGHT_PAREN,
        TokenKind.RBRACE,
        TokenKind.RBRACKET,
        TokenKind.RIGHT_BRACKET,
        TokenKind.RIGHT_PIPE,
        TokenKind.COMMA,
    }
)

_OPERAND_STARTS = frozenset(
    {
        TokenKind.NUMBER,
        TokenKind.IDENT,
        TokenKind.LPAREN,
        TokenKind.LEFT_PAREN,
        TokenKind.LBRACE,
        TokenKind.LBRACKET,
        TokenKind.LEFT_BRACKET,
        TokenKind.LEFT_PIPE,
        TokenKind.PIPE,
        TokenKind.FRAC,
    }
    | set(_FUNCTIONS)
)

_CLOSERS: dict[TokenKind, TokenKind] = {
    TokenKind.LPAREN: TokenKind.RPAREN,
    TokenKind.LEFT_PAREN: TokenKind.RIGHT_PAREN,
    TokenKind.LBRACE: TokenKind.RBRACE,
    TokenKind.LBRACKET: TokenKind.RBRACKET,
    TokenKind.LEFT_BRACKET: TokenKind.RIGHT_BRACKET,
}


class _Parser:
    """Precedence-climbing parser over a token list."""

    def __init__(
        self, tokens: list[Token], source: str = "", max_depth: int = DEFAULT_MAX_DEPTH
    ) -> None:
        # Private copy: exponent splitting replaces slots with new tokens
        self.tokens = list(tokens)
        self.source = source
        self.max_depth = max_depth
        self.pos = 0
        self._depth = 0
        self._abs_depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx < len(self.tokens):
            return self.tokens[idx]
        return self.tokens[-1]  # EOF

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def expect(self, kind: TokenKind) -> Token:
        tok = self.current
        if tok.kind != kind:
            raise self.error(f"Expected {kind}, got {tok.kind} ({tok.text!r})", tok)
        return self.advance()

    def match(self, *kinds: TokenKind) -> Token | None:
        if self.current.kind in kinds:
            return self.advance()
        return None

    def error(self, message: str, tok: Token | None = None) -> ExpressionParseError:
        tok = tok or self.current
        return ExpressionParseError(message, tok.pos, source=self.source or None)

    @contextmanager
    def _nested(self) -> Iterator[None]:
        self._depth += 1
        if self._depth > self.max_depth:
            raise self.error(f"Expression nested deeper than {self.max_depth} levels")
        try:
            yield
        finally:
            self._depth -= 1

    # -- Precedence loop --

    def parse_expression(self, min_bp: int = 0, stop_before_func: bool = False) -> Expr:
        """Parse operators whose left binding power is at least ``min_bp``."""
        with self._nested():
            lhs = self.parse_prefix()

            while True:
                tok = self.current
                if tok.kind in _TERMINATORS:
                    break
                if tok.kind == TokenKind.PIPE and self._abs_depth > 0:
                    break

                if tok.kind in _BINARY_OPS:
                    op, lbp, rbp = _BINARY_OPS[tok.kind]
                    if lbp < min_bp:
                        break
                    self.advance()
                    if tok.kind == TokenKind.POWER:
                        lhs = BinaryExpr(op=BinaryOp.POW, left=lhs, right=self.parse_exponent())
                    elif op is None:
                        lhs = self._make_assignment(lhs, self.parse_expression(rbp), tok)
                    else:
                        lhs = BinaryExpr(op=op, left=lhs, right=self.parse_expression(rbp))
                    continue

                if tok.kind in _OPERAND_STARTS:
                    lbp, rbp = _IMPLICIT_MUL_BP
                    if lbp < min_bp:
                        break
                    if stop_before_func and tok.kind in _FUNCTIONS:
                        break
                    lhs = BinaryExpr(op=BinaryOp.MUL, left=lhs, right=self.parse_expression(rbp))
                    continue

                break

            return lhs

    def parse_prefix(self) -> Expr:
        """Unary '+'/'-' or a primary."""
        tok = self.current
        if tok.kind in (TokenKind.MINUS, TokenKind.PLUS):
            self.advance()
            op = UnaryOp.NEG if tok.kind == TokenKind.MINUS else UnaryOp.POS
            return UnaryExpr(op=op, operand=self.parse_expression(_PREFIX_BP))
        return self.parse_primary()

    def parse_primary(self) -> Expr:
        """An atom followed by any number of postfix '!'."""
        expr = self._parse_atom()
        while self.match(TokenKind.FACTORIAL):
            expr = UnaryExpr(op=UnaryOp.FACT, operand=expr)
        return expr

    def parse_exponent(self) -> Expr:
        """Operand of '^': a braced group or a single operand, right-associative."""
        with self._nested():
            base = self._parse_exponent_operand()
            if self.match(TokenKind.POWER):
                return BinaryExpr(op=BinaryOp.POW, left=base, right=self.parse_exponent())
            return base

    def _parse_exponent_operand(self) -> Expr:
        signs: list[UnaryOp] = []
        while tok := self.match(TokenKind.MINUS, TokenKind.PLUS):
            signs.append(UnaryOp.NEG if tok.kind == TokenKind.MINUS else UnaryOp.POS)
        tok = self.current
        if tok.kind == TokenKind.NUMBER and _is_multi_digit(tok):
            expr: Expr = self._split_leading_digit()
            while self.match(TokenKind.FACTORIAL):
                expr = UnaryExpr(op=UnaryOp.FACT, operand=expr)
        else:
            expr = self.parse_primary()
        for op in reversed(signs):
            expr = UnaryExpr(op=op, operand=expr)
        return expr

    def _split_leading_digit(self) -> Literal:
        """Take the first digit of an integer token; leave the rest in place."""
        tok = self.current
        head, rest = tok.text[0], tok.text[1:]
        self.tokens[self.pos] = Token(TokenKind.NUMBER, rest, tok.pos + 1, float(rest))
        return Literal(value=float(head), text=head)

    # -- Atoms --

    def _parse_atom(self) -> Expr:
        tok = self.current

        if tok.kind == TokenKind.NUMBER:
            self.advance()
            return Literal(value=tok.value, unit=tok.unit, sig_figs=tok.sig_figs, text=tok.text)

        if tok.kind == TokenKind.IDENT:
            self.advance()
            name = normalize_identifier(tok.text)
            if self.current.kind == TokenKind.LPAREN:
                args = self._parse_arguments(TokenKind.LPAREN)
                return Call(name=name, args=args)
            return Identifier(name=name)

        if tok.kind in (TokenKind.LPAREN, TokenKind.LEFT_PAREN, TokenKind.LBRACE):
            return self._parse_group(tok.kind)

        if tok.kind in (TokenKind.LBRACKET, TokenKind.LEFT_BRACKET):
            return ListExpr(items=self._parse_arguments(tok.kind))

        if tok.kind == TokenKind.PIPE:
            return self._parse_abs_bars()

        if tok.kind == TokenKind.LEFT_PIPE:
            self.advance()
            inner = self._parse_isolated(TokenKind.RIGHT_PIPE)
            return FuncCall(func=BuiltinFunc.ABS, args=[inner])

        if tok.kind == TokenKind.FRAC:
            self.advance()
            numerator = self._parse_braced()
            denominator = self._parse_braced()
            return BinaryExpr(op=BinaryOp.DIV, left=numerator, right=denominator)

        if tok.kind == TokenKind.SQRT:
            return self._parse_sqrt()

        if tok.kind == TokenKind.LOG:
            return self._parse_log()

        if tok.kind in _FUNCTIONS:
            return self._parse_function()

        if tok.kind == TokenKind.EOF:
            raise self.error("Unexpected end of expression", tok)
        raise self.error(f"Unexpected token: {tok.kind} ({tok.text!r})", tok)

    def _parse_isolated(self, closer: TokenKind) -> Expr:
        """Parse a full expression up to ``closer``, outside any |...| context."""
        saved, self._abs_depth = self._abs_depth, 0
        try:
            expr = self.parse_expression()
        finally:
            self._abs_depth = saved
        self.expect(closer)
        return expr

    def _parse_group(self, opener: TokenKind) -> Expr:
        """'(' expr ')' | '\\left(' expr '\\right)' | '{' expr '}'"""
        self.expect(opener)
        return self._parse_isolated(_CLOSERS[opener])

    def _parse_braced(self) -> Expr:
        if self.current.kind != TokenKind.LBRACE:
            raise self.error(f"Expected '{{', got {self.current.text!r}")
        return self._parse_group(TokenKind.LBRACE)

    def _parse_abs_bars(self) -> FuncCall:
        """'|' expr '|'"""
        self.expect(TokenKind.PIPE)
        self._abs_depth += 1
        try:
            inner = self.parse_expression()
        finally:
            self._abs_depth -= 1
        self.expect(TokenKind.PIPE)
        return FuncCall(func=BuiltinFunc.ABS, args=[inner])

    def _parse_arguments(self, opener: TokenKind) -> list[Expr]:
        """opener (expr (',' expr)*)? closer"""
        closer = _CLOSERS[opener]
        self.expect(opener)
        saved, self._abs_depth = self._abs_depth, 0
        try:
            args: list[Expr] = []
            if self.current.kind != closer:
                args.append(self.parse_expression())
                while self.match(TokenKind.COMMA):
                    args.append(self.parse_expression())
        finally:
            self._abs_depth = saved
        self.expect(closer)
        return args

    # -- Builtin functions --

    def _parse_power_suffix(self) -> Expr | None:
        """Optional '^exp' between a function name and its argument."""
        if self.match(TokenKind.POWER):
            return self.parse_exponent()
        return None

    def _parse_function_args(self, func: BuiltinFunc, name_tok: Token) -> list[Expr]:
        if self.current.kind in (TokenKind.LPAREN, TokenKind.LEFT_PAREN):
            args = self._parse_arguments(self.current.kind)
            if len(args) != func.arity:
                raise self.error(
                    f"\\{func.value} takes {func.arity} argument(s), got {len(args)}", name_tok
                )
            return args
        if func.arity != 1:
            raise self.error(f"\\{func.value} requires parenthesised arguments", name_tok)
        if self.current.kind in _TERMINATORS:
            raise self.error(f"Missing argument for \\{func.value}", name_tok)
        return [self.parse_expression(_BARE_ARGUMENT_BP, stop_before_func=True)]

    def _parse_function(self) -> Expr:
        """\\func [^exp] ( '(' args ')' | bare_argument )"""
        name_tok = self.advance()
        func = _FUNCTIONS[name_tok.kind]
        exponent = self._parse_power_suffix()
        call = FuncCall(func=func, args=self._parse_function_args(func, name_tok))
        if exponent is not None:
            return BinaryExpr(op=BinaryOp.POW, left=call, right=exponent)
        return call

    def _parse_log(self) -> Expr:
        """\\log [_base] [^exp] argument"""
        name_tok = self.expect(TokenKind.LOG)
        base: Expr | None = None
        if self.match(TokenKind.SUBSCRIPT):
            if self.current.kind == TokenKind.LBRACE:
                base = self._parse_group(TokenKind.LBRACE)
            elif self.current.kind == TokenKind.NUMBER and _is_multi_digit(self.current):
                base = self._split_leading_digit()
            elif self.current.kind == TokenKind.NUMBER:
                tok = self.advance()
                base = Literal(value=tok.value, unit=tok.unit, sig_figs=tok.sig_figs, text=tok.text)
            else:
                raise self.error("Expected a numeral or '{' after \\log_")
        exponent = self._parse_power_suffix()
        call = FuncCall(
            func=BuiltinFunc.LOG,
            args=self._parse_function_args(BuiltinFunc.LOG, name_tok),
            special=base,
        )
        if exponent is not None:
            return BinaryExpr(op=BinaryOp.POW, left=call, right=exponent)
        return call

    def _parse_sqrt(self) -> FuncCall:
        """\\sqrt [ '[' index ']' ] '{' radicand '}'"""
        self.expect(TokenKind.SQRT)
        index: Expr | None = None
        if self.current.kind in (TokenKind.LBRACKET, TokenKind.LEFT_BRACKET):
            opener = self.advance().kind
            index = self._parse_isolated(_CLOSERS[opener])
        radicand = self._parse_braced()
        return FuncCall(func=BuiltinFunc.SQRT, args=[radicand], special=index)

    # -- Assignment --

    def _make_assignment(self, target: Expr, value: Expr, eq_tok: Token) -> Expr:
        if isinstance(target, Identifier):
            return Assignment(target=target.name, value=value)
        if isinstance(target, Call) and all(isinstance(a, Identifier) for a in target.args):
            params = [a.name for a in target.args if isinstance(a, Identifier)]
            if len(set(params)) != len(params):
                raise self.error(f"Duplicate parameter in definition of {target.name}", eq_tok)
            return FunctionDef(name=target.name, params=params, body=value)
        raise self.error(f"Cannot assign to {target}", eq_tok)


def _is_multi_digit(tok: Token) -> bool:
    return len(tok.text) > 1 and tok.text.isdigit()


def parse_tokens(tokens: list[Token], source: str = "", max_depth: int = DEFAULT_MAX_DEPTH) -> Expr:
    """Parse a token list (ending in EOF) into an AST.

    Raises:
        ExpressionParseError: If the tokens do not form one complete expression.
    """
    if not tokens or tokens[-1].kind != TokenKind.EOF:
        raise ExpressionParseError("Token list must end with EOF")

    parser = _Parser(tokens, source=source, max_depth=max_depth)
    if parser.current.kind == TokenKind.EOF:
        raise parser.error("Empty expression")
    try:
        expr = parser.parse_expression()
    except RecursionError:
        # Deep delimiter nesting can exhaust the interpreter stack below max_depth
        raise parser.error("Expression nested too deeply to parse") from None

    # Ensure all tokens consumed
    if parser.current.kind != TokenKind.EOF:
        raise parser.error(f"Unexpected token after expression: {parser.current.text!r}")

    return expr


def parse_expr(source: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Expr:
    """Parse an expression string into an AST.

    Args:
        source: LaTeX expression (e.g., "\\frac{1}{2} + \\sqrt{9}")
        max_depth: Maximum nesting depth before giving up

    Returns:
        Parsed expression AST.

    Raises:
        ExpressionTokenError: If tokenization fails.
        ExpressionParseError: If the expression is invalid.
    """
    return parse_tokens(tokenize(source), source=source, max_depth=max_depth)
