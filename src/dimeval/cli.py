"""
dimeval command line.

Commands:
    eval    Evaluate one or more expressions as a single batch
    tokens  Show the token stream of an expression
    tree    Show the parsed syntax tree of an expression
"""

import json
import logging
import math
import platform
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from dimeval._version import get_version
from dimeval.core.config import EvaluatorConfig, find_config, load_config
from dimeval.core.engine import EvaluationResult, Evaluator, Expression
from dimeval.core.errors import ConfigError, DimevalError
from dimeval.core.expression_lang.parser import parse_expr
from dimeval.core.expression_lang.tokenizer import TokenKind, tokenize
from dimeval.core.values import Boolean, EValue, Function, Scalar, ValueList, format_number

app = typer.Typer(
    help="Evaluate LaTeX math expressions with SI units.",
    no_args_is_help=True,
)
console = Console()

logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        typer.echo(f"dimeval {get_version()}")
        typer.echo(f"Python {platform.python_version()} ({platform.python_implementation()})")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version information",
    ),
) -> None:
    """dimeval CLI main callback for global options."""
    pass


def _load_settings(config_path: Path | None, verbose: bool) -> EvaluatorConfig:
    """Load ``dimeval.toml`` and configure logging from it."""
    path = config_path or find_config()
    try:
        config = load_config(path) if path else EvaluatorConfig()
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    level = logging.DEBUG if verbose else config.log_level_value
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    if path:
        logger.debug("Loaded config from %s", path)
    return config


# =============================================================================
# Value rendering
# =============================================================================


def _value_text(value: EValue) -> tuple[str, str]:
    """(number, unit) columns for a result value."""
    if isinstance(value, Scalar):
        return format_number(value.value, value.imag), str(value.unit)
    if isinstance(value, ValueList):
        numbers = ", ".join(format_number(e.value, e.imag) for e in value.elements)
        return f"[{numbers}]", str(value.representative.unit)
    return str(value), ""


def _json_number(x: float) -> float | str:
    return x if math.isfinite(x) else str(x)


def _scalar_json(s: Scalar) -> dict[str, Any]:
    return {
        "value": _json_number(s.value),
        "imag": _json_number(s.imag),
        "unit": list(s.unit.as_tuple()),
        "sig_figs": s.sig_figs,
    }


def _value_json(value: EValue | None) -> Any:
    if value is None:
        return None
    if isinstance(value, Scalar):
        return {"type": "scalar", **_scalar_json(value)}
    if isinstance(value, ValueList):
        return {"type": "list", "elements": [_scalar_json(e) for e in value.elements]}
    if isinstance(value, Boolean):
        return {"type": "boolean", "value": value.value}
    if isinstance(value, Function):
        return {"type": "function", "name": value.name, "params": list(value.params)}
    return str(value)


def _result_json(result: EvaluationResult) -> dict[str, Any]:
    return {
        "expression": result.source,
        "target": result.target,
        "value": _value_json(result.value),
        "error": result.error.message if result.error else None,
    }


# =============================================================================
# Commands
# =============================================================================


@app.command("eval")
def eval_command(
    expressions: Annotated[list[str], typer.Argument(help="Expressions, evaluated as one batch")],
    unit: Annotated[
        str | None,
        typer.Option("--unit", "-u", help="Unit multiplying every expression, e.g. '\\m'"),
    ] = None,
    to: Annotated[
        str | None,
        typer.Option("--to", "-t", help="Express results in this unit, e.g. '\\km'"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to dimeval.toml"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Evaluate expressions; later ones may reference names defined in others."""
    config = _load_settings(config_path, verbose)
    try:
        evaluator = Evaluator(config)
    except DimevalError as e:
        console.print(f"[red]Invalid constant in config:[/red] {escape(e.message)}")
        raise typer.Exit(1)

    batch = [
        Expression(value_expr=expr, unit_expr=unit or "", conversion_unit_expr=to or "")
        for expr in expressions
    ]
    results = evaluator.evaluate_expression_list(batch)
    failed = any(not r.ok for r in results)

    if json_output:
        console.print_json(json.dumps([_result_json(r) for r in results]))
        if failed:
            raise typer.Exit(1)
        return

    table = Table(title="Results")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Expression", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Unit", style="green")
    table.add_column("Sig figs", justify="right", style="dim")

    for index, result in enumerate(results, start=1):
        if result.error is not None:
            message = escape(result.error.message)
            table.add_row(str(index), escape(result.source), f"[red]{message}[/red]", "", "")
            continue
        assert result.value is not None
        number, unit_text = _value_text(result.value)
        sig_figs = result.value.sig_figs if isinstance(result.value, Scalar) else 0
        table.add_row(
            str(index),
            escape(result.source),
            escape(number),
            unit_text,
            str(sig_figs) if sig_figs else "",
        )

    console.print(table)
    if failed:
        raise typer.Exit(1)


@app.command("tokens")
def tokens_command(
    expression: Annotated[str, typer.Argument(help="Expression to tokenize")],
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Show the token stream of an expression."""
    _load_settings(None, verbose)
    try:
        tokens = tokenize(expression)
    except DimevalError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title="Tokens")
    table.add_column("Pos", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Text")
    table.add_column("Value", justify="right")
    table.add_column("Unit", style="green")

    for token in tokens:
        is_number = token.kind == TokenKind.NUMBER
        value = format_number(token.value, 0.0) if is_number else ""
        unit_text = str(token.unit) if is_number else ""
        table.add_row(str(token.pos), token.kind.value, escape(token.text), value, unit_text)

    console.print(table)


def _node_label(node: BaseModel) -> str:
    parts = [f"[bold]{type(node).__name__}[/bold]"]
    for name, info in type(node).model_fields.items():
        value = getattr(node, name)
        if isinstance(value, BaseModel) or value is None:
            continue
        if isinstance(value, list) and any(isinstance(v, BaseModel) for v in value):
            continue
        if value == info.default or value == []:
            continue
        text = value.value if isinstance(value, Enum) else value
        parts.append(escape(f"{name}={text!s}"))
    return " ".join(parts)


def _add_node(tree: Tree, node: BaseModel, role: str = "") -> None:
    label = _node_label(node)
    branch = tree.add(f"[dim]{role}:[/dim] {label}" if role else label)
    for name in type(node).model_fields:
        value = getattr(node, name)
        if isinstance(value, BaseModel):
            _add_node(branch, value, name)
        elif isinstance(value, list):
            for i, child in enumerate(value):
                if isinstance(child, BaseModel):
                    _add_node(branch, child, f"{name}[{i}]")


@app.command("tree")
def tree_command(
    expression: Annotated[str, typer.Argument(help="Expression to parse")],
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Show the parsed syntax tree of an expression."""
    config = _load_settings(None, verbose)
    try:
        ast = parse_expr(expression, max_depth=config.max_depth)
    except DimevalError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    root = Tree(f"[cyan]{escape(expression)}[/cyan]")
    try:
        _add_node(root, ast)
        console.print(root)
    except RecursionError:
        console.print("[red]Syntax tree is too deep to display[/red]")
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
