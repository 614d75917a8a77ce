"""
dimeval LaTeX expression language.

Tokenizer, Pratt parser, and tree-walking evaluator.

Usage:
    from dimeval.core.expression_lang import Environment, evaluate, parse_expr

    expr = parse_expr("\\frac{1}{2} + \\sqrt{9}")
    result = evaluate(expr, Environment())
    # result.value == 3.5
"""

from dimeval.core.expression_lang.evaluator import Environment, evaluate
from dimeval.core.expression_lang.parser import parse_expr, parse_tokens
from dimeval.core.expression_lang.tokenizer import Lexer, Token, TokenKind, tokenize

__all__ = [
    "Environment",
    "Lexer",
    "Token",
    "TokenKind",
    "evaluate",
    "parse_expr",
    "parse_tokens",
    "tokenize",
]
