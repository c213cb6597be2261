"""Model-level residual and sparse Jacobian evaluation.

An evaluation point is a ``(maxlag + maxlead + 1) x nvars`` array: rows are
the periods ``t-maxlag .. t+maxlead`` and columns follow
``model.all_variable_names`` (variables, then shocks).

The Jacobian has one row per equation and one column per (variable, offset),
laid out variable-major::

    column = var_index * (maxlag + maxlead + 1) + (offset + maxlag)

Its sparsity pattern is fixed when the evaluation data is built. Every
evaluation overwrites the stored values in place and never changes the
pattern, so callers may cache ``J.indices`` / ``J.indptr``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import scipy.sparse as sp
from numpy.typing import NDArray

from dsgeval.evaluation.eqn_data import EqnData, eqn_data_for

if TYPE_CHECKING:
    from dsgeval.model.equations import Equation
    from dsgeval.model.ir import ModelIR

logger = logging.getLogger(__name__)


class EvaluationData(ABC):
    """Common interface of all model evaluation data variants."""

    @abstractmethod
    def evaluate_residual(
        self,
        point: NDArray[np.float64],
        out: NDArray[np.float64] | None = None,
    ) -> NDArray[np.float64]:
        """Residual vector at ``point``."""

    @abstractmethod
    def evaluate_residual_and_jacobian(
        self, point: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], sp.csr_matrix]:
        """Residual vector and sparse Jacobian at ``point``."""


class ModelEvaluationData(EvaluationData):
    """Residuals and Jacobian of all equations of a model.

    Attributes:
        model: The model evaluated.
        var_names: Column names of an evaluation point.
        time0: Row of ``t`` in an evaluation point (= maxlag).
        ntimes: Number of rows of an evaluation point.
        time_inds: Per equation, the point rows of its time series inputs.
        var_inds: Per equation, the point columns of its time series inputs.
        rowinds: Per equation, positions in ``J.data`` its gradient fills.
        eqn_data: Per equation evaluation data.
        J: Sparse Jacobian (CSR), updated in place by each evaluation.
    """

    def __init__(self, model: ModelIR):
        from dsgeval.exceptions import WindowError

        self.model = model
        self.equations: list[Equation] = list(model.equations)
        self.var_names = model.all_variable_names
        self.maxlag = model.maxlag
        self.maxlead = model.maxlead
        self.time0 = self.maxlag
        self.ntimes = self.maxlag + self.maxlead + 1
        nvars = len(self.var_names)
        var_index = {name: i for i, name in enumerate(self.var_names)}

        self.time_inds: list[NDArray[np.intp]] = []
        self.var_inds: list[NDArray[np.intp]] = []
        rows: list[int] = []
        cols: list[int] = []
        for row, eqn in enumerate(self.equations):
            t_inds: list[int] = []
            v_inds: list[int] = []
            for tv in eqn.tsrefs:
                vi = var_index.get(tv.name)
                if vi is None:
                    raise WindowError(
                        f"Variable '{tv.name}' of equation '{eqn.name}' is not in the model"
                    )
                if not -self.maxlag <= tv.offset <= self.maxlead:
                    raise WindowError(
                        f"Reference {tv} of equation '{eqn.name}' is outside the "
                        f"window t-{self.maxlag}..t+{self.maxlead}"
                    )
                t_inds.append(self.time0 + tv.offset)
                v_inds.append(vi)
                rows.append(row)
                cols.append(vi * self.ntimes + self.time0 + tv.offset)
            self.time_inds.append(np.array(t_inds, dtype=np.intp))
            self.var_inds.append(np.array(v_inds, dtype=np.intp))

        # Tag each entry with its (1-based) order so the CSR positions of every
        # equation's entries can be read back after conversion.
        nnz = len(rows)
        tags = np.arange(1, nnz + 1, dtype=np.float64)
        J = sp.csr_matrix(
            (tags, (np.array(rows, dtype=np.intp), np.array(cols, dtype=np.intp))),
            shape=(len(self.equations), nvars * self.ntimes),
        )
        J.sort_indices()
        positions = np.empty(nnz, dtype=np.intp)
        positions[J.data.astype(np.intp) - 1] = np.arange(nnz, dtype=np.intp)
        J.data[:] = 0.0
        self.J = J

        self.rowinds: list[NDArray[np.intp]] = []
        start = 0
        for eqn in self.equations:
            stop = start + len(eqn.tsrefs)
            self.rowinds.append(positions[start:stop])
            start = stop

        tol = model.options.tol
        if not model.steady_state.is_solved and any(eqn.ssrefs for eqn in self.equations):
            logger.warning("Steady state not solved; sstate() references use current values")
        self.eqn_data: list[EqnData] = [
            eqn_data_for(eqn, model.steady_state, tol) for eqn in self.equations
        ]
        logger.debug(
            "Built evaluation data for '%s': %d equations, %d nonzeros, "
            "%d compiled evaluators, %d cache hits",
            model.name,
            len(self.equations),
            nnz,
            len(model.registry),
            model.registry.hits,
        )

    @property
    def shape(self) -> tuple[int, int]:
        """Expected shape of an evaluation point."""
        return (self.ntimes, len(self.var_names))

    def _check_point(self, point: NDArray[np.float64]) -> NDArray[np.float64]:
        from dsgeval.exceptions import EvaluationError

        arr = np.asarray(point, dtype=np.float64)
        if arr.shape != self.shape:
            raise EvaluationError(
                f"Evaluation point must have shape {self.shape}, got {arr.shape}"
            )
        return arr

    def update_parameters(self, eqn_data: Iterable[EqnData] | None = None) -> None:
        calibration = self.model.calibration
        for ed in self.eqn_data if eqn_data is None else eqn_data:
            ed.update_parameters(calibration)

    def inputs(self, point: NDArray[np.float64], i: int) -> NDArray[np.float64]:
        """Time series inputs of equation ``i`` gathered from ``point``."""
        return point[self.time_inds[i], self.var_inds[i]]

    def residual_with(
        self,
        point: NDArray[np.float64],
        eqn_data: Sequence[EqnData],
        out: NDArray[np.float64] | None = None,
    ) -> NDArray[np.float64]:
        """Residuals at ``point`` using the given per-equation data."""
        arr = self._check_point(point)
        self.update_parameters(eqn_data)
        res = np.empty(len(eqn_data), dtype=np.float64) if out is None else out
        for i, ed in enumerate(eqn_data):
            res[i] = ed.eval_resid(self.inputs(arr, i))
        return res

    def residual_and_jacobian_with(
        self,
        point: NDArray[np.float64],
        eqn_data: Sequence[EqnData],
    ) -> tuple[NDArray[np.float64], sp.csr_matrix]:
        """Residuals and Jacobian at ``point`` using the given per-equation data."""
        arr = self._check_point(point)
        self.update_parameters(eqn_data)
        res = np.empty(len(eqn_data), dtype=np.float64)
        # J is only touched once every equation has evaluated
        data = np.empty_like(self.J.data)
        for i, ed in enumerate(eqn_data):
            res[i], grad = ed.eval_RJ(self.inputs(arr, i))
            data[self.rowinds[i]] = grad
        self.J.data[:] = data
        return res, self.J

    def evaluate_residual(
        self,
        point: NDArray[np.float64],
        out: NDArray[np.float64] | None = None,
    ) -> NDArray[np.float64]:
        return self.residual_with(point, self.eqn_data, out)

    def evaluate_residual_and_jacobian(
        self, point: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], sp.csr_matrix]:
        """Residuals and Jacobian at ``point``.

        The returned matrix is owned by this object and overwritten by the
        next call; use :meth:`clone` for independent buffers.
        """
        return self.residual_and_jacobian_with(point, self.eqn_data)

    def clone(self) -> ModelEvaluationData:
        """Copy with its own Jacobian values, sharing the sparsity pattern."""
        other = object.__new__(type(self))
        other.__dict__.update(self.__dict__)
        other.J = sp.csr_matrix(
            (self.J.data.copy(), self.J.indices, self.J.indptr),
            shape=self.J.shape,
        )
        return other

    def column_labels(self) -> list[tuple[str, int]]:
        """(variable, offset) for every Jacobian column."""
        return [
            (name, offset)
            for name in self.var_names
            for offset in range(-self.maxlag, self.maxlead + 1)
        ]


# =============================================================================
# Evaluation over a simulated trajectory
# =============================================================================


def evaluate_equation_over_range(
    model: ModelIR,
    equation: Equation | str,
    trajectory: NDArray[np.float64] | pd.DataFrame,
    time_range: Iterable[int] | None = None,
) -> NDArray[np.float64] | pd.Series:
    """Residual of one equation at each period of a trajectory.

    Args:
        model: The model the equation belongs to.
        equation: The equation, or its name.
        trajectory: ``T x nvars`` array with columns in
            ``model.all_variable_names`` order, or a DataFrame with a column
            per variable.
        time_range: 0-based rows at which to evaluate (default: all rows).

    Returns:
        Residuals, NaN where the model's lag/lead window around the period
        does not fit in the trajectory. A Series indexed like the trajectory
        when a DataFrame is given.

    Raises:
        EvaluationError: If the range is outside the trajectory.
    """
    from dsgeval.exceptions import EvaluationError

    eqn = model.get_equation(equation) if isinstance(equation, str) else equation
    names = model.all_variable_names

    if isinstance(trajectory, pd.DataFrame):
        missing = [name for name in names if name not in trajectory.columns]
        if missing:
            raise EvaluationError(f"Trajectory has no column(s) for {missing}")
        data = trajectory[names].to_numpy(dtype=np.float64)
    else:
        data = np.asarray(trajectory, dtype=np.float64)
        if data.ndim != 2 or data.shape[1] != len(names):
            raise EvaluationError(
                f"Trajectory must have shape (T, {len(names)}), got {data.shape}"
            )

    nrows = data.shape[0]
    periods = list(range(nrows) if time_range is None else time_range)
    if periods and (min(periods) < 0 or max(periods) >= nrows):
        raise EvaluationError(
            f"The range specified is out of bounds: rows must lie in 0..{nrows - 1}"
        )

    var_index = {name: i for i, name in enumerate(names)}
    time_inds = np.array([model.maxlag + tv.offset for tv in eqn.tsrefs], dtype=np.intp)
    var_inds = np.array([var_index[tv.name] for tv in eqn.tsrefs], dtype=np.intp)

    ed = eqn_data_for(eqn, model.steady_state, model.options.tol)
    ed.update_parameters(model.calibration)

    res = np.full(len(periods), np.nan)
    for k, t in enumerate(periods):
        lo, hi = t - model.maxlag, t + model.maxlead
        if lo >= 0 and hi < nrows:
            window = data[lo : hi + 1]
            res[k] = ed.eval_resid(window[time_inds, var_inds])

    if isinstance(trajectory, pd.DataFrame):
        return pd.Series(res, index=trajectory.index[periods], name=eqn.name)
    return res
