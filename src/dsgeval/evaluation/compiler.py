"""Equation compiler.

Turns a normalized expression tree into a pair of callables:

- :class:`EquationEvaluator` maps a flat input vector, ordered as
  ``(tsrefs..., ssrefs...)``, to the residual value.
- :class:`EquationGradient` maps the same vector to ``(value, gradient)``
  by chunked forward-mode differentiation of the same compiled function.

The tree is compiled once into nested closures ``f(x, p)`` where ``x`` is the
input vector and ``p`` the tuple of bound parameter values. Compiled pairs are
cached in an :class:`EvaluatorRegistry` owned by the model, keyed by the
expression together with its reference lists, so structurally identical
equations share the same evaluator instances.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from dsgeval.derivatives import (
    FUNCTIONS,
    MAX_CHUNK_SIZE,
    ForwardGradient,
    chunk_size_for,
    dual_div,
    dual_pow,
)
from dsgeval.model.equations import (
    BinaryOp,
    Constant,
    Expression,
    FunctionCall,
    ParameterRef,
    SteadyStateRef,
    UnaryOp,
    VariableRef,
)

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from dsgeval.model.calibration import Calibration
    from dsgeval.model.symbols import TimedVariable

logger = logging.getLogger(__name__)

CompiledFn = Callable[[Sequence[Any], Sequence[Any]], Any]

_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": dual_div,
    "^": dual_pow,
}


# =============================================================================
# Tree compilation
# =============================================================================


def compile_expression(
    expression: Expression,
    tsrefs: Sequence[TimedVariable],
    ssrefs: Sequence[str],
    params: Sequence[str],
) -> CompiledFn:
    """Compile ``expression`` into ``f(x, p)``.

    Args:
        expression: Normalized residual expression.
        tsrefs: Time series references; slot ``i`` of ``x`` holds ``tsrefs[i]``.
        ssrefs: Steady-state references; they follow the time series in ``x``.
        params: Parameter names; slot ``k`` of ``p`` holds ``params[k]``.

    Raises:
        KeyError: If the expression references something not listed.
    """
    ts_slots = {tv: i for i, tv in enumerate(tsrefs)}
    ss_slots = {name: len(ts_slots) + i for i, name in enumerate(ssrefs)}
    p_slots = {name: k for k, name in enumerate(params)}

    def build(node: Expression) -> CompiledFn:
        if isinstance(node, Constant):
            value = node.value
            return lambda x, p: value
        if isinstance(node, VariableRef):
            i = ts_slots[node.timed_var]
            return lambda x, p: x[i]
        if isinstance(node, SteadyStateRef):
            i = ss_slots[node.name]
            return lambda x, p: x[i]
        if isinstance(node, ParameterRef):
            k = p_slots[node.name]
            if node.index is None:
                return lambda x, p: p[k]
            j = node.index
            return lambda x, p: p[k][j]
        if isinstance(node, UnaryOp):
            inner = build(node.operand)
            if node.op == "+":
                return inner
            return lambda x, p: -inner(x, p)
        if isinstance(node, BinaryOp):
            op = _BINARY[node.op]
            left = build(node.left)
            right = build(node.right)
            return lambda x, p: op(left(x, p), right(x, p))
        if isinstance(node, FunctionCall):
            fn = FUNCTIONS[node.name]
            args = [build(arg) for arg in node.args]
            if len(args) == 1:
                (a,) = args
                return lambda x, p: fn(a(x, p))
            if len(args) == 2:
                a, b = args
                return lambda x, p: fn(a(x, p), b(x, p))
            return lambda x, p: fn(*[a(x, p) for a in args])
        raise TypeError(f"Cannot compile expression node {type(node).__name__}")

    return build(expression)


# =============================================================================
# Evaluators
# =============================================================================


class EquationEvaluator:
    """Residual evaluator bound to a fixed input ordering.

    Parameter values are copied from the calibration by
    :meth:`update_parameters`, which does nothing when the calibration
    revision has not changed since the last refresh.
    """

    def __init__(self, name: str, fn: CompiledFn, n_inputs: int, param_names: Sequence[str]):
        self.name = name
        self.fn = fn
        self.n_inputs = n_inputs
        self.param_names = tuple(param_names)
        self.revision = -1
        self.param_values: tuple[Any, ...] = ()

    def update_parameters(self, calibration: Calibration) -> bool:
        """Refresh bound parameter values. Returns True if they were refreshed."""
        if self.revision == calibration.revision:
            return False
        self.param_values = tuple(
            calibration.evaluation_value(name) for name in self.param_names
        )
        self.revision = calibration.revision
        return True

    def __call__(self, x: Sequence[float] | NDArray[np.float64]) -> float:
        if self.param_names and self.revision < 0:
            from dsgeval.exceptions import EvaluationError

            raise EvaluationError(
                f"Parameters of evaluator '{self.name}' have not been bound"
            )
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            return float(self.fn(x, self.param_values))

    def __repr__(self) -> str:
        return (
            f"EquationEvaluator({self.name!r}, n_inputs={self.n_inputs}, "
            f"params={list(self.param_names)})"
        )


class EquationGradient:
    """Residual-and-gradient evaluator wrapping an :class:`EquationEvaluator`."""

    def __init__(self, evaluator: EquationEvaluator, max_chunk_size: int = MAX_CHUNK_SIZE):
        self.evaluator = evaluator
        self.chunk = chunk_size_for(evaluator.n_inputs, max_chunk_size)
        self._gradient = ForwardGradient(self._call, evaluator.n_inputs, self.chunk)

    def _call(self, x: Sequence[Any]) -> Any:
        return self.evaluator.fn(x, self.evaluator.param_values)

    def update_parameters(self, calibration: Calibration) -> bool:
        return self.evaluator.update_parameters(calibration)

    def __call__(
        self, x: Sequence[float] | NDArray[np.float64]
    ) -> tuple[float, NDArray[np.float64]]:
        if self.evaluator.param_names and self.evaluator.revision < 0:
            from dsgeval.exceptions import EvaluationError

            raise EvaluationError(
                f"Parameters of evaluator '{self.evaluator.name}' have not been bound"
            )
        return self._gradient(x)

    def __repr__(self) -> str:
        return f"EquationGradient({self.evaluator.name!r}, chunk={self.chunk})"


# =============================================================================
# Registry
# =============================================================================


EvaluatorKey = tuple[Expression, tuple["TimedVariable", ...], tuple[str, ...], tuple[str, ...]]


class EvaluatorRegistry:
    """Content-addressed cache of compiled evaluator pairs.

    Entries are bucketed by the hash of their key and resolved by exact
    structural comparison, so a hash collision never returns the wrong pair.
    """

    def __init__(self, max_chunk_size: int = MAX_CHUNK_SIZE):
        self.max_chunk_size = max_chunk_size
        self._table: dict[int, list[tuple[EvaluatorKey, tuple[EquationEvaluator, EquationGradient]]]] = {}
        self.hits = 0

    def compile(
        self,
        name: str,
        expression: Expression,
        tsrefs: Sequence[TimedVariable],
        ssrefs: Sequence[str],
        params: Sequence[str],
    ) -> tuple[EquationEvaluator, EquationGradient]:
        """Return the evaluator pair for an equation, compiling it if needed."""
        key: EvaluatorKey = (expression, tuple(tsrefs), tuple(ssrefs), tuple(params))
        bucket = self._table.setdefault(hash(key), [])
        for existing, pair in bucket:
            if existing == key:
                self.hits += 1
                logger.debug("Reusing compiled evaluator '%s' for '%s'", pair[0].name, name)
                return pair

        fn = compile_expression(expression, tsrefs, ssrefs, params)
        evaluator = EquationEvaluator(name, fn, len(tsrefs) + len(ssrefs), params)
        pair = (evaluator, EquationGradient(evaluator, self.max_chunk_size))
        bucket.append((key, pair))
        return pair

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._table.values())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple):
            return False
        try:
            bucket = self._table.get(hash(key), [])
        except TypeError:
            return False
        return any(existing == key for existing, _ in bucket)
