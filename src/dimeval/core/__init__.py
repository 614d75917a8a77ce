"""Core lexer, parser, evaluator and dimensional arithmetic for dimeval."""
