"""
Expression AST for dimeval.

Every node is an immutable pydantic model that owns its children. The
parser builds the tree once; the evaluator only reads it.

Supports:
- Numeric literals, including unit words (\\km, \\N) and \\pi
- Arithmetic: +, -, *, /, ^ (implicit products become *)
- Comparison: <, >, \\le, \\ge, \\ne
- Unary minus/plus and postfix factorial
- Builtin functions: \\sin, \\log_b, \\sqrt[n], \\nCr, ...
- User functions: f(x, y) = x y, then f(2, 3)
- Lists: [1, 2, 3]
- Assignment: x = 5\\m
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from dimeval.core.units import DIMENSIONLESS, UnitVector

# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class BinaryOp(StrEnum):
    """Binary operators for expressions."""

    # Arithmetic
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    POW = "^"
    # Comparison
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    NE = "!="


class UnaryOp(StrEnum):
    """Unary operators for expressions."""

    NEG = "-"
    POS = "+"
    FACT = "!"


class BuiltinFunc(StrEnum):
    """Builtin numeric functions."""

    SIN = "sin"
    COS = "cos"
    TAN = "tan"
    SEC = "sec"
    CSC = "csc"
    COT = "cot"
    ARCSIN = "arcsin"
    ARCCOS = "arccos"
    ARCTAN = "arctan"
    ARCSEC = "arcsec"
    ARCCSC = "arccsc"
    ARCCOT = "arccot"
    LN = "ln"
    LOG = "log"
    SQRT = "sqrt"
    ABS = "abs"
    FLOOR = "floor"
    CEIL = "ceil"
    ROUND = "round"
    FACT = "fact"
    NCR = "nCr"
    NPR = "nPr"

    @property
    def arity(self) -> int:
        """Number of parenthesised arguments the function takes."""
        return 2 if self in _TWO_ARG_FUNCS else 1


_TWO_ARG_FUNCS = frozenset({BuiltinFunc.NCR, BuiltinFunc.NPR, BuiltinFunc.ROUND})


# ---------------------------------------------------------------------------
# AST node types
# ---------------------------------------------------------------------------


class Literal(BaseModel):
    """A numeric literal with its cached value, unit and significant figures."""

    value: float = Field(description="Real part")
    imag: float = Field(default=0.0, description="Imaginary part")
    unit: UnitVector = Field(default=DIMENSIONLESS, description="SI unit vector")
    sig_figs: int = Field(default=0, description="Significant figures; 0 means exact")
    text: str = Field(default="", description="Source text the literal came from")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.text or f"{self.value:g}"


class Identifier(BaseModel):
    """Reference to a variable or constant, e.g. ``x``, ``m_e``, ``\\alpha``."""

    name: str = Field(description="Identifier name including any subscript")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.name


class BinaryExpr(BaseModel):
    """Binary operation: left op right."""

    op: BinaryOp = Field(description="Operator")
    left: Expr = Field(description="Left operand")
    right: Expr = Field(description="Right operand")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"({self.left} {self.op.value} {self.right})"


class UnaryExpr(BaseModel):
    """Unary operation: -x, +x or x!."""

    op: UnaryOp = Field(description="Operator")
    operand: Expr = Field(description="Operand")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        if self.op == UnaryOp.FACT:
            return f"({self.operand})!"
        return f"{self.op.value}{self.operand}"


class FuncCall(BaseModel):
    """
    Call of a builtin function.

    ``special`` carries the auxiliary operand of two-part syntax:
    the base of ``\\log_{b}`` and the index of ``\\sqrt[n]{}``.
    """

    func: BuiltinFunc = Field(description="Builtin function")
    args: list[Expr] = Field(default_factory=list, description="Arguments")
    special: Expr | None = Field(default=None, description="Log base or root index")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        args_str = ", ".join(str(a) for a in self.args)
        if self.special is not None:
            return f"{self.func.value}[{self.special}]({args_str})"
        return f"{self.func.value}({args_str})"


class Call(BaseModel):
    """
    ``name(args)``: a user function call, or an identifier multiplied by a
    parenthesised group when ``name`` is not bound to a function.
    """

    name: str = Field(description="Callee name")
    args: list[Expr] = Field(default_factory=list, description="Arguments")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        args_str = ", ".join(str(a) for a in self.args)
        return f"{self.name}({args_str})"


class ListExpr(BaseModel):
    """List literal: [a, b, c]."""

    items: list[Expr] = Field(default_factory=list, description="Elements")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return "[" + ", ".join(str(i) for i in self.items) + "]"


class Assignment(BaseModel):
    """Variable assignment: target = value."""

    target: str = Field(description="Variable name")
    value: Expr = Field(description="Assigned expression")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.target} = {self.value}"


class FunctionDef(BaseModel):
    """User function definition: name(params) = body."""

    name: str = Field(description="Function name")
    params: list[str] = Field(default_factory=list, description="Parameter names")
    body: Expr = Field(description="Function body")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.params)}) = {self.body}"


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

Expr = (
    Literal
    | Identifier
    | BinaryExpr
    | UnaryExpr
    | FuncCall
    | Call
    | ListExpr
    | Assignment
    | FunctionDef
)

# Rebuild models for recursive forward references
BinaryExpr.model_rebuild()
UnaryExpr.model_rebuild()
FuncCall.model_rebuild()
Call.model_rebuild()
ListExpr.model_rebuild()
Assignment.model_rebuild()
FunctionDef.model_rebuild()


# ---------------------------------------------------------------------------
# Tree queries
# ---------------------------------------------------------------------------


def defined_name(expr: Expr) -> str | None:
    """Name an expression binds: the assignment target or function name."""
    if isinstance(expr, Assignment):
        return expr.target
    if isinstance(expr, FunctionDef):
        return expr.name
    return None


def collect_identifiers(expr: Expr) -> set[str]:
    """Names an expression reads, excluding function parameters.

    Walks with an explicit stack so long operator chains never hit the
    interpreter recursion limit.
    """
    names: set[str] = set()
    stack: list[tuple[Expr, frozenset[str]]] = [(expr, frozenset())]
    while stack:
        node, bound = stack.pop()
        if isinstance(node, Identifier):
            if node.name not in bound:
                names.add(node.name)
        elif isinstance(node, BinaryExpr):
            stack.append((node.left, bound))
            stack.append((node.right, bound))
        elif isinstance(node, UnaryExpr):
            stack.append((node.operand, bound))
        elif isinstance(node, FuncCall):
            stack.extend((arg, bound) for arg in node.args)
            if node.special is not None:
                stack.append((node.special, bound))
        elif isinstance(node, Call):
            if node.name not in bound:
                names.add(node.name)
            stack.extend((arg, bound) for arg in node.args)
        elif isinstance(node, ListExpr):
            stack.extend((item, bound) for item in node.items)
        elif isinstance(node, Assignment):
            stack.append((node.value, bound))
        elif isinstance(node, FunctionDef):
            stack.append((node.body, bound | set(node.params)))
    return names
