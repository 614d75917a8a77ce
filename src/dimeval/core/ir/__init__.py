"""
dimeval intermediate representation: the expression AST.

All node types are re-exported from this package.
"""

from .expressions import (
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
    collect_identifiers,
    defined_name,
)

__all__ = [
    "Assignment",
    "BinaryExpr",
    "BinaryOp",
    "BuiltinFunc",
    "Call",
    "Expr",
    "FuncCall",
    "FunctionDef",
    "Identifier",
    "ListExpr",
    "Literal",
    "UnaryExpr",
    "UnaryOp",
    "collect_identifiers",
    "defined_name",
]
