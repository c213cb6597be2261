"""Per-equation evaluation data.

Each equation of a model is evaluated through one of three variants:

- :class:`DynamicEqnData`: the equation only references time series; the
  gathered window values are passed to its evaluators unchanged.
- :class:`SteadyStateEqnData`: the equation also references steady state
  values, which are resolved once and appended to every input vector.
- :class:`LinearizedEqnData`: a cached first-order expansion of the
  equation about a fixed point.

All variants expose ``update_parameters``, ``eval_resid`` and ``eval_RJ``;
``eval_RJ`` returns the gradient with respect to the time series inputs only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Union

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from dsgeval.model.calibration import Calibration
    from dsgeval.model.equations import Equation
    from dsgeval.model.steady_state import SteadyState

logger = logging.getLogger(__name__)


class DynamicEqnData:
    """Evaluation of an equation without steady state references."""

    __slots__ = ("eqn",)

    def __init__(self, eqn: Equation):
        self.eqn = eqn

    def update_parameters(self, calibration: Calibration) -> None:
        self.eqn.eval_resid.update_parameters(calibration)

    def eval_resid(self, x: NDArray[np.float64]) -> float:
        return self.eqn.eval_resid(x)

    def eval_RJ(self, x: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
        return self.eqn.eval_RJ(x)


class SteadyStateEqnData:
    """Evaluation of an equation that references steady state levels.

    The steady state is assumed flat at the referenced variables; a
    non-zero slope is reported and ignored.
    """

    __slots__ = ("eqn", "ssvalues", "n_dynamic")

    def __init__(self, eqn: Equation, steady_state: SteadyState, tol: float = 1e-12):
        self.eqn = eqn
        self.n_dynamic = len(eqn.tsrefs)
        for name in eqn.ssrefs:
            if abs(steady_state.slope(name)) > tol:
                logger.warning(
                    "@sstate used with non-zero slope: sstate(%s) in equation %s",
                    name,
                    eqn.name,
                )
        self.ssvalues = np.array(
            [steady_state.level(name) for name in eqn.ssrefs], dtype=np.float64
        )

    def update_parameters(self, calibration: Calibration) -> None:
        self.eqn.eval_resid.update_parameters(calibration)

    def _inputs(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.concatenate((np.asarray(x, dtype=np.float64), self.ssvalues))

    def eval_resid(self, x: NDArray[np.float64]) -> float:
        return self.eqn.eval_resid(self._inputs(x))

    def eval_RJ(self, x: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
        value, grad = self.eqn.eval_RJ(self._inputs(x))
        return value, grad[: self.n_dynamic]


class LinearizedEqnData:
    """First-order expansion ``resid + grad . (x - point)`` of an equation.

    Attributes:
        resid: Residual at the expansion point.
        grad: Gradient at the expansion point (constant).
        point: Expansion point, in the equation's input order.
    """

    __slots__ = ("eqn", "resid", "grad", "point")

    def __init__(
        self,
        eqn: Equation,
        resid: float,
        grad: NDArray[np.float64],
        point: NDArray[np.float64],
    ):
        self.eqn = eqn
        self.resid = float(resid)
        self.grad = np.array(grad, dtype=np.float64)
        self.point = np.array(point, dtype=np.float64)

    def update_parameters(self, calibration: Calibration) -> None:
        # The expansion is frozen at the parameter values used to build it.
        return None

    def eval_resid(self, x: NDArray[np.float64]) -> float:
        return self.resid + float(self.grad @ (np.asarray(x, dtype=np.float64) - self.point))

    def eval_RJ(self, x: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
        return self.eval_resid(x), self.grad


EqnData = Union[DynamicEqnData, SteadyStateEqnData, LinearizedEqnData]


def eqn_data_for(eqn: Equation, steady_state: SteadyState, tol: float = 1e-12) -> EqnData:
    """Dynamic evaluation data for an equation."""
    if eqn.ssrefs:
        return SteadyStateEqnData(eqn, steady_state, tol)
    return DynamicEqnData(eqn)
