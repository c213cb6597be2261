"""Expression trees and compiled equations.

This module provides:
- Expression: typed tree nodes for residual expressions
- Equation: a compiled model equation (LHS - RHS = 0)
- helpers for building expressions programmatically

Expression nodes are frozen dataclasses, so two trees compare equal (and hash
equal) exactly when they are structurally identical. The evaluator cache in
:mod:`dsgeval.evaluation.compiler` relies on this.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from dsgeval.model.symbols import TimedVariable

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from dsgeval.evaluation.compiler import EquationEvaluator, EquationGradient


# =============================================================================
# Expression tree nodes
# =============================================================================


def _binary(op: str, reflected: bool = False) -> Callable[[Expression, object], Expression]:
    """Operator method building ``BinaryOp(op, ...)``; constants are wrapped."""

    def method(self: Expression, other: object) -> Expression:
        if reflected:
            return BinaryOp(op, _to_expr(other), self)
        return BinaryOp(op, self, _to_expr(other))

    return method


class Expression(ABC):
    """Abstract base class for expression nodes."""

    @abstractmethod
    def children(self) -> tuple[Expression, ...]:
        """Direct sub-expressions, left to right."""

    def walk(self) -> Iterator[Expression]:
        """Depth-first, left-to-right traversal including this node."""
        yield self
        for child in self.children():
            yield from child.walk()

    __add__ = _binary("+")
    __radd__ = _binary("+", reflected=True)
    __sub__ = _binary("-")
    __rsub__ = _binary("-", reflected=True)
    __mul__ = _binary("*")
    __rmul__ = _binary("*", reflected=True)
    __truediv__ = _binary("/")
    __rtruediv__ = _binary("/", reflected=True)
    __pow__ = _binary("^")
    __rpow__ = _binary("^", reflected=True)

    def __neg__(self) -> Expression:
        return UnaryOp("-", self)

    def __pos__(self) -> Expression:
        return self


def _to_expr(value: object) -> Expression:
    if isinstance(value, Expression):
        return value
    return Constant(float(value))


BINARY_OPERATORS: tuple[str, ...] = ("+", "-", "*", "/", "^")
UNARY_OPERATORS: tuple[str, ...] = ("-", "+")

# Canonical list of function names recognized by FunctionCall.
KNOWN_FUNCTIONS: tuple[str, ...] = (
    "log", "ln", "exp", "sqrt", "abs", "sin", "cos", "tan", "pow", "min", "max",
)


@dataclass(frozen=True, slots=True)
class Constant(Expression):
    """A numeric constant."""

    value: float

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True)
class VariableRef(Expression):
    """Reference to a time series at an offset from ``t``."""

    timed_var: TimedVariable

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        return str(self.timed_var)


@dataclass(frozen=True, slots=True)
class SteadyStateRef(Expression):
    """Reference to the steady-state level of a variable."""

    name: str

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        return f"sstate({self.name})"


@dataclass(frozen=True, slots=True)
class ParameterRef(Expression):
    """Reference to a parameter, or to one element of a vector parameter."""

    name: str
    index: int | None = None

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        if self.index is None:
            return self.name
        return f"{self.name}[{self.index}]"


@dataclass(frozen=True, slots=True)
class BinaryOp(Expression):
    """Binary operation (+, -, *, /, ^)."""

    op: str
    left: Expression
    right: Expression

    def __post_init__(self) -> None:
        if self.op not in BINARY_OPERATORS:
            raise ValueError(f"Unknown binary operator: {self.op}")

    def children(self) -> tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


@dataclass(frozen=True, slots=True)
class UnaryOp(Expression):
    """Unary operation (negation)."""

    op: str
    operand: Expression

    def __post_init__(self) -> None:
        if self.op not in UNARY_OPERATORS:
            raise ValueError(f"Unknown unary operator: {self.op}")

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"({self.op}{self.operand})"


@dataclass(frozen=True, slots=True)
class FunctionCall(Expression):
    """Built-in function call (log, exp, sqrt, etc.)."""

    name: str
    args: tuple[Expression, ...]

    def __post_init__(self) -> None:
        if self.name not in KNOWN_FUNCTIONS:
            raise ValueError(f"Unknown function: {self.name}")

    def children(self) -> tuple[Expression, ...]:
        return self.args

    def __str__(self) -> str:
        args_str = ", ".join(str(arg) for arg in self.args)
        return f"{self.name}({args_str})"


# =============================================================================
# Equation
# =============================================================================


@dataclass(frozen=True)
class Equation:
    """A compiled model equation.

    Equations are stored in residual form: expression = 0
    where expression = LHS - RHS from the original equation.

    Attributes:
        name: Identifier of the equation within its model.
        expression: The normalized residual expression.
        tsrefs: Time series references, in input order.
        ssrefs: Names of variables referenced at steady state, in input order.
        params: Names of referenced parameters.
        eval_resid: Residual evaluator over ``(tsrefs..., ssrefs...)``.
        eval_RJ: Residual-and-gradient evaluator over the same inputs.
        linear: Whether the equation is flagged for selective linearization.
        source: Original equation text, if any.
    """

    name: str
    expression: Expression
    tsrefs: tuple[TimedVariable, ...]
    ssrefs: tuple[str, ...]
    params: tuple[str, ...]
    eval_resid: EquationEvaluator = field(repr=False, compare=False)
    eval_RJ: EquationGradient = field(repr=False, compare=False)
    linear: bool = False
    source: str = ""

    @property
    def n_inputs(self) -> int:
        return len(self.tsrefs) + len(self.ssrefs)

    @property
    def max_lag(self) -> int:
        return max((-tv.offset for tv in self.tsrefs), default=0)

    @property
    def max_lead(self) -> int:
        return max((tv.offset for tv in self.tsrefs), default=0)

    def __str__(self) -> str:
        flag = "@lin " if self.linear else ""
        text = self.source or f"{self.expression} = 0"
        return f"[{self.name}] {flag}{text}"


# =============================================================================
# Helper functions for building expressions
# =============================================================================


def var(name: str, offset: int = 0) -> VariableRef:
    """Create a reference to ``name[t+offset]``."""
    return VariableRef(TimedVariable(name, offset))


def sstate(name: str) -> SteadyStateRef:
    """Create a steady-state reference."""
    return SteadyStateRef(name)


def param(name: str, index: int | None = None) -> ParameterRef:
    """Create a parameter reference."""
    return ParameterRef(name, index)


def call(name: str, *args: Expression | float) -> FunctionCall:
    """Create a built-in function call."""
    return FunctionCall(name, tuple(_to_expr(arg) for arg in args))
