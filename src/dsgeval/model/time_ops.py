"""Time-offset operators for equation expressions.

Equations are Python expressions in which ``t`` denotes the current period
and time series are indexed as ``x[t]``, ``x[t-1]``, ``x[t+2]``. The
operators below rewrite an expression tree so that every time reference is
an explicit integer offset from ``t``:

    lag(e, n=1)          e with every time index shifted back by n
    lead(e, n=1)         lag(e, -n)
    d(e, n=1, s=0)       (1-L)^n (1-L^s) e
    dlog(e, n=1, s=0)    d(log(e), n, s)
    movsum(e, n)         e + lag(e) + ... + lag(e, n-1)
    movav(e, n)          movsum(e, n) / n
    movsumw(e, n, p)     p[0]*e + p[1]*lag(e) + ...  (p a vector parameter)
    movsumw(e, n, w1, ..., wn)
    movavw(...)          movsumw(...) / (sum of weights)
    movsumew(e, n, r)    e + r**1*lag(e) + ... + r**(n-1)*lag(e, n-1)
    movavew(e, n, r)     movsumew(e, n, r) normalized by (1 - r**n) / (1 - r)

:func:`normalize` expands all of them, innermost first, so the result
contains no operator calls. Trees are :mod:`ast` expression nodes; inputs are
never modified.
"""

from __future__ import annotations

import ast
import copy
import math
from collections.abc import Callable, Collection, Sequence
from functools import reduce

from dsgeval.exceptions import MetaFunctionError, UnsupportedTimeIndexError

TIME = "t"

_COEF_TOL = 1e-12


# =============================================================================
# Time index helpers
# =============================================================================


def has_t(node: ast.AST) -> bool:
    """True if the expression mentions ``t``."""
    return any(isinstance(n, ast.Name) and n.id == TIME for n in ast.walk(node))


def normal_ref(offset: int) -> ast.expr:
    """Normalized time index: ``t``, ``t + k`` or ``t - k``."""
    t = ast.Name(id=TIME, ctx=ast.Load())
    if offset == 0:
        return t
    if offset > 0:
        return ast.BinOp(left=t, op=ast.Add(), right=ast.Constant(value=offset))
    return ast.BinOp(left=t, op=ast.Sub(), right=ast.Constant(value=-offset))


def int_literal(node: ast.AST) -> int | None:
    """Value of an integer literal (optionally signed), else None."""
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        inner = int_literal(node.operand)
        if inner is None:
            return None
        return -inner if isinstance(node.op, ast.USub) else inner
    if isinstance(node, ast.Constant) and type(node.value) is int:
        return node.value
    return None


def number_literal(node: ast.AST) -> float | None:
    """Value of a numeric literal (optionally signed), else None."""
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        inner = number_literal(node.operand)
        if inner is None:
            return None
        return -inner if isinstance(node.op, ast.USub) else inner
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    return None


def time_offset(index: ast.expr) -> int:
    """Offset ``k`` of a time index ``t``, ``t+k`` or ``t-k``.

    Raises:
        UnsupportedTimeIndexError: For any other form, e.g. ``3+t`` or ``t*2``.
    """
    if isinstance(index, ast.Name) and index.id == TIME:
        return 0
    if (
        isinstance(index, ast.BinOp)
        and isinstance(index.left, ast.Name)
        and index.left.id == TIME
        and isinstance(index.op, (ast.Add, ast.Sub))
    ):
        k = int_literal(index.right)
        if k is not None:
            return k if isinstance(index.op, ast.Add) else -k
    raise UnsupportedTimeIndexError(ast.unparse(index))


# =============================================================================
# Operators
# =============================================================================


class _Shift(ast.NodeTransformer):
    """Move every time index mentioning ``t`` back by ``n`` periods."""

    def __init__(self, n: int):
        self.n = n

    def visit_Subscript(self, node: ast.Subscript) -> ast.Subscript:
        node.value = self.visit(node.value)
        if isinstance(node.slice, ast.Tuple):
            node.slice.elts = [self._shift(index) for index in node.slice.elts]
        else:
            node.slice = self._shift(node.slice)
        return node

    def _shift(self, index: ast.expr) -> ast.expr:
        if not has_t(index):
            return index
        return normal_ref(time_offset(index) - self.n)


def at_lag(expr: ast.expr, n: int = 1) -> ast.expr:
    """Apply the lag operator ``n`` times."""
    expr = copy.deepcopy(expr)
    if n == 0:
        return expr
    return _Shift(n).visit(expr)


def at_lead(expr: ast.expr, n: int = 1) -> ast.expr:
    """Apply the lead operator ``n`` times. Same as ``at_lag(expr, -n)``."""
    return at_lag(expr, -n)


def _sum(terms: Sequence[ast.expr]) -> ast.expr:
    return reduce(lambda a, b: ast.BinOp(left=a, op=ast.Add(), right=b), terms)


def _mul(a: ast.expr, b: ast.expr) -> ast.expr:
    return ast.BinOp(left=a, op=ast.Mult(), right=b)


def _div(a: ast.expr, b: ast.expr) -> ast.expr:
    return ast.BinOp(left=a, op=ast.Div(), right=b)


def _sub(a: ast.expr, b: ast.expr) -> ast.expr:
    return ast.BinOp(left=a, op=ast.Sub(), right=b)


def difference_coefficients(n: int = 1, s: int = 0) -> list[int]:
    """Coefficients of ``(1-L)^n (1-L^s)`` on ``L^0 .. L^(n+s)``."""
    if n < 0 or s < 0:
        raise MetaFunctionError(
            f"In d() call `n` and `s` must not be negative, got n={n}, s={s}"
        )
    coefs = [math.comb(n, i) * (-1) ** i for i in range(n + 1)] + [0] * s
    if s > 0:
        base = coefs[: n + 1]
        for i, c in enumerate(base):
            coefs[s + i] -= c
    return coefs


def at_d(expr: ast.expr, n: int = 1, s: int = 0) -> ast.expr:
    """Apply the difference operator ``(1-L)^n (1-L^s)``."""
    coefs = difference_coefficients(n, s)
    ret = copy.deepcopy(expr)
    for lag, c in enumerate(coefs[1:], start=1):
        if abs(c) < _COEF_TOL:
            continue
        term = at_lag(expr, lag)
        if c == 1:
            ret = ast.BinOp(left=ret, op=ast.Add(), right=term)
        elif c == -1:
            ret = _sub(ret, term)
        elif c > 0:
            ret = ast.BinOp(left=ret, op=ast.Add(), right=_mul(ast.Constant(value=c), term))
        else:
            ret = _sub(ret, _mul(ast.Constant(value=-c), term))
    return ret


def at_dlog(expr: ast.expr, n: int = 1, s: int = 0) -> ast.expr:
    """Difference of the log: ``d(log(expr), n, s)``."""
    log_expr = ast.Call(
        func=ast.Name(id="log", ctx=ast.Load()), args=[copy.deepcopy(expr)], keywords=[]
    )
    return at_d(log_expr, n, s)


def at_movsum(expr: ast.expr, n: int) -> ast.expr:
    """Moving sum over ``n`` periods backwards."""
    _check_window(n, "movsum")
    return _sum([at_lag(expr, i) for i in range(n)])


def at_movav(expr: ast.expr, n: int) -> ast.expr:
    """Moving average over ``n`` periods backwards."""
    return _div(at_movsum(expr, n), ast.Constant(value=n))


def _weights(n: int, weights: Sequence[ast.expr], op: str) -> list[ast.expr]:
    """Resolve weights: one vector parameter ``p`` or ``n`` explicit weights."""
    _check_window(n, op)
    if len(weights) == 1 and n > 1:
        p = weights[0]
        return [
            ast.Subscript(value=copy.deepcopy(p), slice=ast.Constant(value=i), ctx=ast.Load())
            for i in range(n)
        ]
    if len(weights) != n:
        raise MetaFunctionError(
            f"Number of weights does not match in {op}(): expected {n}, got {len(weights)}"
        )
    return [copy.deepcopy(w) for w in weights]


def at_movsumw(expr: ast.expr, n: int, *weights: ast.expr) -> ast.expr:
    """Moving weighted sum over ``n`` periods backwards."""
    ws = _weights(n, weights, "movsumw")
    return _sum([_mul(w, at_lag(expr, i)) for i, w in enumerate(ws)])


def at_movavw(expr: ast.expr, n: int, *weights: ast.expr) -> ast.expr:
    """Moving weighted average; weights are normalized to sum to one."""
    ws = _weights(n, weights, "movavw")
    return _div(at_movsumw(expr, n, *weights), _sum(ws))


def at_movsumew(expr: ast.expr, n: int, r: ast.expr) -> ast.expr:
    """Moving sum with exponential weights ``r**i``."""
    _check_window(n, "movsumew")
    ratio = number_literal(r)
    if ratio is not None:
        if math.isclose(ratio, 1.0):
            return at_movsum(expr, n)
        terms = [_mul(ast.Constant(value=float(ratio) ** i), at_lag(expr, i)) for i in range(1, n)]
    else:
        terms = [
            _mul(
                ast.BinOp(left=copy.deepcopy(r), op=ast.Pow(), right=ast.Constant(value=i)),
                at_lag(expr, i),
            )
            for i in range(1, n)
        ]
    return _sum([copy.deepcopy(expr), *terms])


def at_movavew(expr: ast.expr, n: int, r: ast.expr) -> ast.expr:
    """Moving average with exponential weights ``r**i``."""
    ratio = number_literal(r)
    if ratio is not None:
        if math.isclose(ratio, 1.0):
            return at_movav(expr, n)
        total = (1 - float(ratio) ** n) / (1 - float(ratio))
        return _div(at_movsumew(expr, n, r), ast.Constant(value=total))
    one = ast.Constant(value=1)
    numerator = _mul(at_movsumew(expr, n, r), _sub(one, copy.deepcopy(r)))
    denominator = _sub(
        ast.Constant(value=1),
        ast.BinOp(left=copy.deepcopy(r), op=ast.Pow(), right=ast.Constant(value=n)),
    )
    return _div(numerator, denominator)


def _check_window(n: int, op: str) -> None:
    if n < 1:
        raise MetaFunctionError(f"In {op}() call the number of periods must be >= 1, got {n}")


# =============================================================================
# Normalization
# =============================================================================


def _int_arg(node: ast.expr, op: str, what: str) -> int:
    value = int_literal(node)
    if value is None:
        raise MetaFunctionError(
            f"In {op}() call `{what}` must be an integer literal, got {ast.unparse(node)}"
        )
    return value


def _expand_lag(args: list[ast.expr]) -> ast.expr:
    _arity(args, 1, 2, "lag")
    return at_lag(args[0], _int_arg(args[1], "lag", "n") if len(args) > 1 else 1)


def _expand_lead(args: list[ast.expr]) -> ast.expr:
    _arity(args, 1, 2, "lead")
    return at_lead(args[0], _int_arg(args[1], "lead", "n") if len(args) > 1 else 1)


def _expand_d(op: str, fn: Callable[..., ast.expr]) -> Callable[[list[ast.expr]], ast.expr]:
    def expand(args: list[ast.expr]) -> ast.expr:
        _arity(args, 1, 3, op)
        n = _int_arg(args[1], op, "n") if len(args) > 1 else 1
        s = _int_arg(args[2], op, "s") if len(args) > 2 else 0
        return fn(args[0], n, s)

    return expand


def _expand_window(op: str, fn: Callable[..., ast.expr]) -> Callable[[list[ast.expr]], ast.expr]:
    def expand(args: list[ast.expr]) -> ast.expr:
        _arity(args, 2, 2, op)
        return fn(args[0], _int_arg(args[1], op, "n"))

    return expand


def _expand_weighted(op: str, fn: Callable[..., ast.expr]) -> Callable[[list[ast.expr]], ast.expr]:
    def expand(args: list[ast.expr]) -> ast.expr:
        if len(args) < 3:
            raise MetaFunctionError(f"{op}() takes an expression, a period count and weights")
        return fn(args[0], _int_arg(args[1], op, "n"), *args[2:])

    return expand


def _expand_exponential(op: str, fn: Callable[..., ast.expr]) -> Callable[[list[ast.expr]], ast.expr]:
    def expand(args: list[ast.expr]) -> ast.expr:
        _arity(args, 3, 3, op)
        return fn(args[0], _int_arg(args[1], op, "n"), args[2])

    return expand


def _arity(args: list[ast.expr], lo: int, hi: int, op: str) -> None:
    if not lo <= len(args) <= hi:
        expected = str(lo) if lo == hi else f"{lo} to {hi}"
        raise MetaFunctionError(f"{op}() takes {expected} arguments, got {len(args)}")


# Mapping: operator name in equations -> expander over its argument nodes.
META_FUNCTIONS: dict[str, Callable[[list[ast.expr]], ast.expr]] = {
    "lag": _expand_lag,
    "lead": _expand_lead,
    "d": _expand_d("d", at_d),
    "dlog": _expand_d("dlog", at_dlog),
    "movsum": _expand_window("movsum", at_movsum),
    "movav": _expand_window("movav", at_movav),
    "movsumw": _expand_weighted("movsumw", at_movsumw),
    "movavw": _expand_weighted("movavw", at_movavw),
    "movsumew": _expand_exponential("movsumew", at_movsumew),
    "movavew": _expand_exponential("movavew", at_movavew),
}


class _CurrentTime(ast.NodeTransformer):
    """Rewrite bare time-series names ``x`` as ``x[t]``."""

    def __init__(self, names: Collection[str]):
        self.names = names

    def visit_Subscript(self, node: ast.Subscript) -> ast.Subscript:
        # indexed already; only the index may contain bare names
        node.slice = self.visit(node.slice)
        return node

    def visit_Call(self, node: ast.Call) -> ast.Call:
        # sstate(x) refers to the variable itself, not x[t]
        if isinstance(node.func, ast.Name) and node.func.id == "sstate":
            return node
        node.args = [self.visit(arg) for arg in node.args]
        return node

    def visit_Name(self, node: ast.Name) -> ast.expr:
        if node.id in self.names:
            return ast.Subscript(
                value=ast.Name(id=node.id, ctx=ast.Load()), slice=normal_ref(0), ctx=ast.Load()
            )
        return node


class _Expand(ast.NodeTransformer):
    def visit_Call(self, node: ast.Call) -> ast.expr:
        self.generic_visit(node)
        if isinstance(node.func, ast.Name) and node.func.id in META_FUNCTIONS:
            if node.keywords:
                raise MetaFunctionError(f"{node.func.id}() does not take keyword arguments")
            return META_FUNCTIONS[node.func.id](node.args)
        return node


def normalize(expr: ast.expr, time_series: Collection[str] = ()) -> ast.expr:
    """Expand all time-offset operators in ``expr``.

    Args:
        expr: Expression tree.
        time_series: Names of variables and shocks; bare occurrences are
            read as ``name[t]`` before expansion.

    Returns:
        A new tree in which every time index is ``t``, ``t+k`` or ``t-k``.
    """
    expr = copy.deepcopy(expr)
    if time_series:
        expr = _CurrentTime(time_series).visit(expr)
    expr = _Expand().visit(expr)
    return ast.fix_missing_locations(expr)
