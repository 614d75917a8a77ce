"""
Error types for dimeval lexing, parsing, evaluation, and configuration.

Numeric domain problems (log of a negative number, 0/0, ...) are never
raised: they evaluate to NaN or infinity. The exceptions here cover
structural failures only.
"""

from dataclasses import dataclass
from pathlib import Path


class DimevalError(Exception):
    """Base exception for all dimeval errors."""

    def __init__(self, message: str, context: "ErrorContext | None" = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.message}\n{self.context.format()}"
        return self.message


@dataclass
class ErrorContext:
    """
    Location of an error inside an expression source string.

    Attributes:
        source: The full expression text
        pos: Zero-based character offset of the offending token
    """

    source: str
    pos: int

    def format(self) -> str:
        """
        Format the source with a marker under the error position.

        Returns:
            Two lines: the expression and a caret under ``pos``.
        """
        pos = min(max(self.pos, 0), len(self.source))
        return f"  {self.source}\n  {' ' * pos}^"


class ExpressionTokenError(DimevalError):
    """
    Raised when the lexer meets text it cannot turn into a token.

    ``error_kind`` is one of ``bad_identifier``, ``bad_numeric`` or
    ``unknown`` and ``text`` is the offending input.
    """

    def __init__(
        self,
        message: str,
        pos: int,
        error_kind: str = "unknown",
        text: str = "",
        source: str | None = None,
    ) -> None:
        self.pos = pos
        self.error_kind = error_kind
        self.text = text
        context = ErrorContext(source=source, pos=pos) if source is not None else None
        super().__init__(message, context)


class ExpressionParseError(DimevalError):
    """
    Raised when a token sequence does not form a valid expression.

    Examples:
    - Missing closing delimiter
    - ``\\frac`` without both brace groups
    - Wrong number of arguments to a builtin
    - Trailing tokens after a complete expression
    """

    def __init__(self, message: str, pos: int = 0, source: str | None = None) -> None:
        self.pos = pos
        context = ErrorContext(source=source, pos=pos) if source is not None else None
        super().__init__(message, context)


class ExpressionEvalError(DimevalError):
    """
    Raised when a well-formed AST cannot be evaluated.

    Examples:
    - Unknown identifier
    - Assignment to a fixed constant
    - Call with the wrong number of arguments
    - Arithmetic between incompatible value shapes
    - Nesting deeper than the configured limit
    """

    pass


class ConfigError(DimevalError):
    """Raised when ``dimeval.toml`` is missing, malformed or has bad values."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)
