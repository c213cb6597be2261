"""Selective and full linearization about the steady state.

Equations flagged ``linear`` (or all equations, for full linearization)
are replaced by their first-order expansion at the steady state. The
expansion is computed once, at construction; the remaining equations are
evaluated as usual. The sparse Jacobian and its pattern are those of the
underlying :class:`ModelEvaluationData`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import scipy.sparse as sp
from numpy.typing import NDArray

from dsgeval.evaluation.eqn_data import EqnData, LinearizedEqnData
from dsgeval.evaluation.model_data import EvaluationData, ModelEvaluationData

if TYPE_CHECKING:
    from dsgeval.model.ir import ModelIR

logger = logging.getLogger(__name__)


class SelectiveLinearizationData(EvaluationData):
    """Evaluation data with some equations replaced by their linearization.

    Args:
        model: Model with a solved, flat steady state.
        linearize_all: Linearize every equation instead of only flagged ones.

    Raises:
        LinearizationError: If the steady state is not solved or has a
            non-zero slope.
    """

    def __init__(self, model: ModelIR, linearize_all: bool = False):
        from dsgeval.exceptions import LinearizationError

        tol = model.options.tol
        if not model.steady_state.is_solved:
            raise LinearizationError("steady state solution is not available")
        if model.steady_state.max_abs_slope() > tol:
            raise LinearizationError("steady state solution has non-zero slope")

        self.model = model
        self.med = ModelEvaluationData(model)
        self.sspt = model.steady_state_point()
        self.linearize_all = linearize_all

        med = self.med
        med.update_parameters()
        self.eqn_data: list[EqnData] = list(med.eqn_data)
        self.linearized: list[str] = []
        for i, eqn in enumerate(med.equations):
            if not (linearize_all or eqn.linear):
                continue
            x = med.inputs(self.sspt, i)
            resid, grad = med.eqn_data[i].eval_RJ(x)
            if abs(resid) > tol:
                logger.warning(
                    "Non-zero steady state residual in equation %s: %g", eqn.name, resid
                )
            self.eqn_data[i] = LinearizedEqnData(eqn, resid, grad, x)
            self.linearized.append(eqn.name)

        if not self.linearized:
            logger.warning("No equations were linearized")
        logger.debug(
            "Linearized %d of %d equations of '%s'",
            len(self.linearized),
            len(med.equations),
            model.name,
        )

    @property
    def J(self) -> sp.csr_matrix:
        return self.med.J

    def evaluate_residual(
        self,
        point: NDArray[np.float64],
        out: NDArray[np.float64] | None = None,
    ) -> NDArray[np.float64]:
        return self.med.residual_with(point, self.eqn_data, out)

    def evaluate_residual_and_jacobian(
        self, point: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], sp.csr_matrix]:
        return self.med.residual_and_jacobian_with(point, self.eqn_data)


def selective_linearize(model: ModelIR) -> ModelIR:
    """Linearize the flagged equations of ``model`` about its steady state."""
    data = SelectiveLinearizationData(model)
    model.options = model.options.copy(variant="selective_linearize")
    model.evaldata = data
    return model


def linearize(model: ModelIR) -> ModelIR:
    """Linearize every equation of ``model`` about its steady state."""
    data = SelectiveLinearizationData(model, linearize_all=True)
    model.options = model.options.copy(variant="linearize")
    model.evaldata = data
    return model


def is_linearized(model: ModelIR) -> bool:
    """True when every equation of the active evaluation data is linearized."""
    data = model._evaldata
    return isinstance(data, SelectiveLinearizationData) and data.linearize_all
