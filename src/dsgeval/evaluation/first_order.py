"""First-order state-space form of a linearized model.

The linearized model is rewritten as::

    FWD @ x[t+1] + BCK @ x[t] + EX @ z[t] = 0

where ``x`` stacks the backward states followed by the forward states and
``z`` holds the exogenous entries. Variables referenced at more than one lag
(or lead) get one state per extra period, tied together by link equations
appended after the model's own equations.

State keys are ``(variable, offset)``:

- backward states ``(v, 0), (v, -1), ...`` hold ``v[t-1], v[t-2], ...`` in ``x[t]``
- forward states ``(v, 0), (v, 1), ...`` hold ``v[t], v[t+1], ...`` in ``x[t]``
- exogenous entries ``(v, k)`` hold ``v[t+k]`` in ``z[t]``

A variable referenced only at offset 0 gets the single backward state
``(v, 0)``. An offset-0 entry of a variable that has both a backward and a
forward state ``(v, 0)`` is always assigned to the backward state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import scipy.sparse as sp
from numpy.typing import NDArray

from dsgeval.evaluation.linearization import SelectiveLinearizationData
from dsgeval.evaluation.model_data import EvaluationData

if TYPE_CHECKING:
    from dsgeval.model.ir import ModelIR

logger = logging.getLogger(__name__)

StateKey = tuple[str, int]


class FirstOrderData(EvaluationData):
    """Linearized evaluation data plus its first-order matrices.

    Attributes:
        bck_vars: Backward state keys, in state order.
        fwd_vars: Forward state keys, in state order.
        ex_vars: Exogenous keys, in column order of ``EX``.
        bck_inds: Backward key -> column (0 .. nbck-1).
        fwd_inds: Forward key -> column (nbck .. nbck+nfwd-1).
        ex_inds: Exogenous key -> column of ``EX``.
        FWD: Coefficients on ``x[t+1]``.
        BCK: Coefficients on ``x[t]``.
        EX: Coefficients on ``z[t]``.
        lmed: The underlying fully linearized evaluation data.
    """

    def __init__(self, model: ModelIR):
        from dsgeval.exceptions import ModelSpecError

        self.lmed = SelectiveLinearizationData(model, linearize_all=True)
        self.row_names: list[str] = [eqn.name for eqn in model.equations]

        self.bck_vars: list[StateKey] = []
        self.fwd_vars: list[StateKey] = []
        self.ex_vars: list[StateKey] = []
        for mvar in model.all_variables:
            name = mvar.name
            lags, leads = model.lead_lag.offset_range(name)
            if mvar.is_exogenous:
                self.ex_vars.extend((name, tt) for tt in range(lags, leads + 1))
            elif lags == 0 and leads == 0:
                self.bck_vars.append((name, 0))
            else:
                self.bck_vars.extend((name, 1 - k) for k in range(1, -lags + 1))
                self.fwd_vars.extend((name, k - 1) for k in range(1, leads + 1))

        nbck = len(self.bck_vars)
        nfwd = len(self.fwd_vars)
        nstates = nbck + nfwd
        self.bck_inds: dict[StateKey, int] = {key: i for i, key in enumerate(self.bck_vars)}
        self.fwd_inds: dict[StateKey, int] = {
            key: nbck + i for i, key in enumerate(self.fwd_vars)
        }
        self.ex_inds: dict[StateKey, int] = {key: i for i, key in enumerate(self.ex_vars)}

        links = self._links()
        nrows = len(self.row_names) + len(links)
        if nrows > nstates:
            raise ModelSpecError(
                f"First-order form of '{model.name}' needs {nrows} rows "
                f"({len(self.row_names)} equations, {len(links)} links) "
                f"but has only {nstates} states"
            )

        self.FWD = np.zeros((nstates, nstates))
        self.BCK = np.zeros((nstates, nstates))
        self.EX = np.zeros((nstates, len(self.ex_vars)))

        # The linearized Jacobian does not depend on the point.
        _, J = self.lmed.evaluate_residual_and_jacobian(self.lmed.sspt)
        self._scatter(J, model)

        row = len(self.row_names)
        for fwd_col, bck_col, label in links:
            self.FWD[row, fwd_col] = 1.0
            self.BCK[row, bck_col] = -1.0
            self.row_names.append(label)
            row += 1

        logger.debug(
            "First-order form of '%s': %d backward, %d forward, %d exogenous, %d links",
            model.name,
            nbck,
            nfwd,
            len(self.ex_vars),
            len(links),
        )

    def _scatter(self, J: sp.csr_matrix, model: ModelIR) -> None:
        ntimes = 1 + model.maxlag + model.maxlead
        names = model.all_variable_names
        coo = J.tocoo()
        for row, col, val in zip(coo.row.tolist(), coo.col.tolist(), coo.data.tolist()):
            vno, tt = divmod(col, ntimes)
            tt -= model.maxlag
            var = names[vno]
            ex_i = self.ex_inds.get((var, tt))
            if ex_i is not None:
                self.EX[row, ex_i] = val
            elif tt < 0:
                self.BCK[row, self.bck_inds[(var, tt + 1)]] = val
            elif tt > 0:
                self.FWD[row, self.fwd_inds[(var, tt - 1)]] = val
            else:
                bck_i = self.bck_inds.get((var, 0))
                if bck_i is not None:
                    self.FWD[row, bck_i] = val
                else:
                    self.BCK[row, self.fwd_inds[(var, 0)]] = val

    def _links(self) -> list[tuple[int, int, str]]:
        """Link equations as (FWD column, BCK column, label)."""
        links: list[tuple[int, int, str]] = []
        for var, tt in self.fwd_vars:
            if tt == 0:
                b_i = self.bck_inds.get((var, 0))
                if b_i is not None:
                    links.append((b_i, self.fwd_inds[(var, 0)], f"link_{var}_bf"))
            else:
                links.append(
                    (self.fwd_inds[(var, tt - 1)], self.fwd_inds[(var, tt)], f"link_{var}_f{tt}")
                )
        for var, tt in self.bck_vars:
            if tt != 0:
                links.append(
                    (self.bck_inds[(var, tt)], self.bck_inds[(var, tt + 1)], f"link_{var}_b{-tt}")
                )
        return links

    @property
    def nbck(self) -> int:
        return len(self.bck_vars)

    @property
    def nfwd(self) -> int:
        return len(self.fwd_vars)

    @property
    def nex(self) -> int:
        return len(self.ex_vars)

    def evaluate_residual(
        self,
        point: NDArray[np.float64],
        out: NDArray[np.float64] | None = None,
    ) -> NDArray[np.float64]:
        return self.lmed.evaluate_residual(point, out)

    def evaluate_residual_and_jacobian(
        self, point: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], sp.csr_matrix]:
        return self.lmed.evaluate_residual_and_jacobian(point)

    def to_frames(self) -> dict[str, pd.DataFrame]:
        """FWD, BCK and EX as labelled DataFrames."""
        states = pd.MultiIndex.from_tuples(
            [("bck", var, tt) for var, tt in self.bck_vars]
            + [("fwd", var, tt) for var, tt in self.fwd_vars],
            names=["role", "variable", "offset"],
        )
        exog = pd.MultiIndex.from_tuples(
            [("ex", var, tt) for var, tt in self.ex_vars],
            names=["role", "variable", "offset"],
        )
        rows = pd.Index(
            self.row_names + [""] * (self.FWD.shape[0] - len(self.row_names)),
            name="equation",
        )
        return {
            "FWD": pd.DataFrame(self.FWD, index=rows, columns=states),
            "BCK": pd.DataFrame(self.BCK, index=rows, columns=states),
            "EX": pd.DataFrame(self.EX, index=rows, columns=exog),
        }


def first_order(model: ModelIR) -> ModelIR:
    """Install the first-order form as the model's evaluation data."""
    data = FirstOrderData(model)
    model.options = model.options.copy(variant="firstorder")
    model.evaldata = data
    return model


def is_first_order(model: ModelIR) -> bool:
    return isinstance(model._evaldata, FirstOrderData)
