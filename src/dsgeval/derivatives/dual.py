"""Dual numbers for forward-mode automatic differentiation.

A :class:`Dual` carries a value and a vector of partial derivatives with
respect to the inputs seeded in the current chunk. Arithmetic and the
built-in equation functions propagate both; plain numbers pass through the
same functions unchanged, so one compiled expression serves both the
residual and the gradient evaluators.

Values are numpy scalars and all elementary functions are numpy ufuncs, so
both evaluators follow IEEE semantics at the edges of a function's domain:
``1 / 0`` is ``inf`` and ``log(-1)`` or ``(-1) ** 0.5`` is ``nan``.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
from numpy.typing import NDArray


class Dual:
    """Value with first-order partial derivatives.

    ``partials`` arrays are shared between duals and must never be modified
    in place.
    """

    __slots__ = ("value", "partials")

    # Make numpy scalars defer to our reflected operators.
    __array_ufunc__ = None

    def __init__(self, value: float, partials: NDArray[np.float64]):
        self.value = value
        self.partials = partials

    def __repr__(self) -> str:
        return f"Dual({self.value!r}, {self.partials!r})"

    def __add__(self, other: Dual | float) -> Dual:
        if isinstance(other, Dual):
            return Dual(self.value + other.value, self.partials + other.partials)
        return Dual(self.value + other, self.partials)

    __radd__ = __add__

    def __sub__(self, other: Dual | float) -> Dual:
        if isinstance(other, Dual):
            return Dual(self.value - other.value, self.partials - other.partials)
        return Dual(self.value - other, self.partials)

    def __rsub__(self, other: float) -> Dual:
        return Dual(other - self.value, -self.partials)

    def __mul__(self, other: Dual | float) -> Dual:
        if isinstance(other, Dual):
            return Dual(
                self.value * other.value,
                self.partials * other.value + other.partials * self.value,
            )
        return Dual(self.value * other, self.partials * other)

    __rmul__ = __mul__

    def __truediv__(self, other: Dual | float) -> Dual:
        if isinstance(other, Dual):
            value = self.value / other.value
            return Dual(value, (self.partials - other.partials * value) / other.value)
        return Dual(self.value / other, self.partials / other)

    def __rtruediv__(self, other: float) -> Dual:
        value = other / self.value
        return Dual(value, -self.partials * (value / self.value))

    def __pow__(self, other: Dual | float) -> Dual:
        if isinstance(other, Dual):
            value = np.power(self.value, other.value)
            partials = self.partials * (other.value * np.power(self.value, other.value - 1))
            if self.value > 0:
                partials = partials + other.partials * (value * np.log(self.value))
            return Dual(value, partials)
        if other == 0:
            return Dual(np.float64(1.0), self.partials * 0.0)
        return Dual(
            np.power(self.value, other),
            self.partials * (other * np.power(self.value, other - 1)),
        )

    def __rpow__(self, other: float) -> Dual:
        value = np.power(np.float64(other), self.value)
        if other == 0:
            return Dual(value, self.partials * 0.0)
        return Dual(value, self.partials * (value * np.log(np.float64(other))))

    def __neg__(self) -> Dual:
        return Dual(-self.value, -self.partials)

    def __pos__(self) -> Dual:
        return self

    def __abs__(self) -> Dual:
        return dual_abs(self)

    def __float__(self) -> float:
        return float(self.value)


# =============================================================================
# Elementary functions
# =============================================================================


def _unary(
    f: Callable[[float], float],
    df: Callable[[float, float], float],
) -> Callable[[Dual | float], Dual | float]:
    """Lift ``f`` to duals given ``df(x, f(x))``."""

    def lifted(x: Dual | float) -> Dual | float:
        if isinstance(x, Dual):
            value = f(x.value)
            return Dual(value, x.partials * df(x.value, value))
        return f(x)

    lifted.__name__ = f.__name__
    return lifted


dual_log = _unary(np.log, lambda x, fx: 1.0 / x)
dual_exp = _unary(np.exp, lambda x, fx: fx)
dual_sqrt = _unary(np.sqrt, lambda x, fx: 0.5 / fx)
dual_sin = _unary(np.sin, lambda x, fx: np.cos(x))
dual_cos = _unary(np.cos, lambda x, fx: -np.sin(x))
dual_tan = _unary(np.tan, lambda x, fx: 1.0 + fx * fx)


def dual_abs(x: Dual | float) -> Dual | float:
    if isinstance(x, Dual):
        sign = 1.0 if x.value > 0 else (-1.0 if x.value < 0 else 0.0)
        return Dual(abs(x.value), x.partials * sign)
    return abs(x)


def dual_pow(x: Dual | float, y: Dual | float) -> Dual | float:
    if isinstance(x, Dual) or isinstance(y, Dual):
        return x**y
    return np.power(np.float64(x), y)


def dual_div(x: Dual | float, y: Dual | float) -> Dual | float:
    if isinstance(x, Dual) or isinstance(y, Dual):
        return x / y
    return np.true_divide(np.float64(x), y)


def _value(x: Dual | float) -> float:
    return x.value if isinstance(x, Dual) else x


def dual_min(x: Dual | float, y: Dual | float) -> Dual | float:
    return x if _value(x) <= _value(y) else y


def dual_max(x: Dual | float, y: Dual | float) -> Dual | float:
    return x if _value(x) >= _value(y) else y


# Mapping: function name in equations -> dual-aware implementation.
FUNCTIONS: dict[str, Callable[..., Dual | float]] = {
    "log": dual_log,
    "ln": dual_log,
    "exp": dual_exp,
    "sqrt": dual_sqrt,
    "abs": dual_abs,
    "sin": dual_sin,
    "cos": dual_cos,
    "tan": dual_tan,
    "pow": dual_pow,
    "min": dual_min,
    "max": dual_max,
}
