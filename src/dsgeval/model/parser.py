"""Parse equation text into expression trees.

Equation text is a Python expression, optionally of the form ``lhs = rhs``
(stored as ``lhs - rhs``). Time series are indexed by ``t``; see
:mod:`dsgeval.model.time_ops` for the time-offset operators, which are
expanded before conversion.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dsgeval.exceptions import (
    MetaFunctionError,
    MultipleTimeIndicesError,
    ParseError,
    UndeclaredSymbolError,
    UnsupportedTimeIndexError,
)
from dsgeval.model.equations import (
    KNOWN_FUNCTIONS,
    BinaryOp,
    Constant,
    Expression,
    FunctionCall,
    ParameterRef,
    SteadyStateRef,
    UnaryOp,
    VariableRef,
)
from dsgeval.model.symbols import TimedVariable
from dsgeval.model.time_ops import TIME, int_literal, normalize, time_offset

if TYPE_CHECKING:
    from dsgeval.model.symbols import SymbolTable


_BINARY_OPS: dict[type[ast.operator], str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Pow: "^",
}

# A single '=' that is not part of '==', '<=', '>=' or '!='.
_ASSIGN_RE = re.compile(r"(?<![=!<>])=(?!=)")


@dataclass(frozen=True)
class ParsedEquation:
    """Normalized residual expression with its ordered references."""

    expression: Expression
    tsrefs: tuple[TimedVariable, ...]
    ssrefs: tuple[str, ...]
    params: tuple[str, ...]


def split_equation(text: str) -> ast.expr:
    """Parse ``lhs = rhs`` (or a bare expression) into a residual tree."""
    source = text.replace("^", "**").strip()
    parts = _ASSIGN_RE.split(source)
    if len(parts) > 2:
        raise ParseError(f"Equation has more than one '=': {text}")
    try:
        sides = [ast.parse(part.strip(), mode="eval").body for part in parts]
    except SyntaxError as exc:
        raise ParseError(f"Invalid equation syntax: {text}") from exc
    if len(sides) == 1:
        return sides[0]
    return ast.BinOp(left=sides[0], op=ast.Sub(), right=sides[1])


class _Converter:
    """Convert a normalized :mod:`ast` tree into an :class:`Expression`."""

    def __init__(self, symbols: SymbolTable, context: str):
        self.symbols = symbols
        self.context = context

    def convert(self, node: ast.expr) -> Expression:
        if isinstance(node, ast.Constant):
            if type(node.value) not in (int, float):
                raise ParseError(f"Unsupported constant {node.value!r} in {self.context}")
            return Constant(float(node.value))
        if isinstance(node, ast.Name):
            return self._name(node.id)
        if isinstance(node, ast.Subscript):
            return self._subscript(node)
        if isinstance(node, ast.BinOp):
            op = _BINARY_OPS.get(type(node.op))
            if op is None:
                raise ParseError(
                    f"Unsupported operator in '{ast.unparse(node)}' in {self.context}"
                )
            return BinaryOp(op, self.convert(node.left), self.convert(node.right))
        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.USub):
                return UnaryOp("-", self.convert(node.operand))
            if isinstance(node.op, ast.UAdd):
                return self.convert(node.operand)
            raise ParseError(f"Unsupported operator in '{ast.unparse(node)}' in {self.context}")
        if isinstance(node, ast.Call):
            return self._call(node)
        raise ParseError(f"Unsupported expression '{ast.unparse(node)}' in {self.context}")

    def _name(self, name: str) -> Expression:
        if name == TIME:
            raise ParseError(f"`{TIME}` may only appear in a time index, in {self.context}")
        if self.symbols.is_parameter(name):
            return ParameterRef(name)
        if self.symbols.is_time_series(name):
            return VariableRef(TimedVariable(name, 0))
        raise UndeclaredSymbolError(name, context=self.context)

    def _subscript(self, node: ast.Subscript) -> Expression:
        if isinstance(node.value, ast.Subscript):
            raise MultipleTimeIndicesError(ast.unparse(node.value.value), self.context)
        if not isinstance(node.value, ast.Name):
            raise ParseError(f"Unsupported indexing '{ast.unparse(node)}' in {self.context}")
        name = node.value.id
        if isinstance(node.slice, ast.Tuple):
            raise MultipleTimeIndicesError(name, self.context)
        if self.symbols.is_time_series(name):
            try:
                offset = time_offset(node.slice)
            except UnsupportedTimeIndexError as exc:
                raise UnsupportedTimeIndexError(exc.index, self.context) from None
            return VariableRef(TimedVariable(name, offset))
        if self.symbols.is_parameter(name):
            index = int_literal(node.slice)
            if index is None:
                raise ParseError(
                    f"Parameter '{name}' must be indexed by an integer literal in {self.context}"
                )
            return ParameterRef(name, index)
        raise UndeclaredSymbolError(name, context=self.context)

    def _call(self, node: ast.Call) -> Expression:
        if not isinstance(node.func, ast.Name) or node.keywords:
            raise ParseError(f"Unsupported call '{ast.unparse(node)}' in {self.context}")
        fname = node.func.id
        if fname == "sstate":
            if len(node.args) != 1 or not isinstance(node.args[0], ast.Name):
                raise ParseError(f"sstate() takes a single variable name, in {self.context}")
            name = node.args[0].id
            if name not in self.symbols.variable_names:
                raise UndeclaredSymbolError(name, context=f"sstate() in {self.context}")
            return SteadyStateRef(name)
        if fname not in KNOWN_FUNCTIONS:
            raise UndeclaredSymbolError(fname, context=f"function call in {self.context}")
        return FunctionCall(fname, tuple(self.convert(arg) for arg in node.args))


def collect_references(
    expression: Expression,
) -> tuple[tuple[TimedVariable, ...], tuple[str, ...], tuple[str, ...]]:
    """Time series, steady-state and parameter references in order of appearance."""
    tsrefs: dict[TimedVariable, None] = {}
    ssrefs: dict[str, None] = {}
    params: dict[str, None] = {}
    for node in expression.walk():
        if isinstance(node, VariableRef):
            tsrefs.setdefault(node.timed_var)
        elif isinstance(node, SteadyStateRef):
            ssrefs.setdefault(node.name)
        elif isinstance(node, ParameterRef):
            params.setdefault(node.name)
    return tuple(tsrefs), tuple(ssrefs), tuple(params)


def check_references(expression: Expression, symbols: SymbolTable, context: str) -> None:
    """Validate a programmatically built expression against the symbol table."""
    for node in expression.walk():
        if isinstance(node, VariableRef) and not symbols.is_time_series(node.timed_var.name):
            raise UndeclaredSymbolError(node.timed_var.name, context=context)
        if isinstance(node, SteadyStateRef) and node.name not in symbols.variable_names:
            raise UndeclaredSymbolError(node.name, context=f"sstate() in {context}")
        if isinstance(node, ParameterRef) and not symbols.is_parameter(node.name):
            raise UndeclaredSymbolError(node.name, context=context)


def parse_equation(text: str, symbols: SymbolTable, name: str = "") -> ParsedEquation:
    """Parse, normalize and convert equation text.

    Raises:
        ParseError: On syntax errors and unsupported time indices.
        UndeclaredSymbolError: On unknown identifiers or steady-state references.
    """
    context = f"equation '{name}': {text}" if name else f"equation: {text}"
    tree = split_equation(text)
    time_series = [*symbols.variable_names, *symbols.shock_names]
    try:
        tree = normalize(tree, time_series)
    except UnsupportedTimeIndexError as exc:
        raise UnsupportedTimeIndexError(exc.index, context) from None
    except MetaFunctionError as exc:
        raise MetaFunctionError(f"{exc} in {context}") from exc
    expression = _Converter(symbols, context).convert(tree)
    tsrefs, ssrefs, params = collect_references(expression)
    return ParsedEquation(expression, tsrefs, ssrefs, params)
