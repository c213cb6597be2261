"""Intermediate Representation (IR) for dynamic models.

The ModelIR holds everything evaluation needs:

- ordered variables, shocks and parameters (symbol table)
- equations, each compiled to residual and gradient evaluators
- parameter values (calibration) and the steady state
- options and the lead/lag structure

A model in general form:
    f(x_{t-maxlag}, ..., x_t, ..., x_{t+maxlead}, θ) = 0

where x_t stacks the variables followed by the shocks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from dsgeval.config import Options
from dsgeval.model.calibration import Calibration
from dsgeval.model.equations import Equation, Expression
from dsgeval.model.parser import check_references, collect_references, parse_equation
from dsgeval.model.steady_state import SteadyState
from dsgeval.model.symbols import (
    Parameter,
    Shock,
    SymbolTable,
    Variable,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    import numpy as np
    import scipy.sparse as sp
    from numpy.typing import NDArray

    from dsgeval.evaluation.compiler import EvaluatorRegistry
    from dsgeval.evaluation.model_data import EvaluationData

logger = logging.getLogger(__name__)


@dataclass
class LeadLagStructure:
    """Lags and leads at which each time series is referenced.

    Attributes:
        max_lag: Maximum lag in the model.
        max_lead: Maximum lead in the model.
        incidence: Mapping name -> set of offsets used.
    """

    max_lag: int = 0
    max_lead: int = 0
    incidence: dict[str, set[int]] = field(default_factory=dict)

    @property
    def n_timings(self) -> int:
        """Total number of time periods: lag + current + lead."""
        return self.max_lag + 1 + self.max_lead

    def add(self, name: str, offset: int) -> None:
        self.incidence.setdefault(name, set()).add(offset)
        if offset < 0:
            self.max_lag = max(self.max_lag, -offset)
        elif offset > 0:
            self.max_lead = max(self.max_lead, offset)

    def offset_range(self, name: str) -> tuple[int, int]:
        """Smallest and largest offset of ``name``; (0, 0) if never referenced."""
        offsets = self.incidence.get(name)
        if not offsets:
            return 0, 0
        return min(offsets), max(offsets)


@dataclass
class ModelIR:
    """Canonical in-memory representation of a model.

    Attributes:
        name: Model name/identifier.
        symbols: Symbol table with all variables, shocks, parameters.
        equations: Model equations (in residual form).
        calibration: Parameter values.
        steady_state: Steady state levels and slopes.
        options: Evaluation options.
        lead_lag: Lead/lag structure, kept current as equations are added.
        registry: Cache of compiled evaluators shared by this model's equations.
    """

    name: str = "unnamed"
    symbols: SymbolTable = field(default_factory=SymbolTable)
    equations: list[Equation] = field(default_factory=list)
    calibration: Calibration = field(default_factory=Calibration)
    steady_state: SteadyState = field(default_factory=SteadyState)
    options: Options = field(default_factory=Options)
    lead_lag: LeadLagStructure = field(default_factory=LeadLagStructure)
    registry: EvaluatorRegistry = field(default=None, repr=False)  # type: ignore[assignment]

    _evaldata: EvaluationData | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.registry is None:
            from dsgeval.evaluation.compiler import EvaluatorRegistry

            self.registry = EvaluatorRegistry(self.options.max_chunk_size)

    # -------------------------------------------------------------------------
    # Declaration
    # -------------------------------------------------------------------------

    def add_variable(self, name: str, description: str = "", exogenous: bool = False) -> Variable:
        """Add a variable (endogenous unless ``exogenous``)."""
        var = Variable(name, description, exogenous)
        self.symbols.add_variable(var)
        self.steady_state.register(name)
        self._evaldata = None
        return var

    def add_shock(self, name: str, description: str = "") -> Shock:
        """Add a shock."""
        shock = Shock(name, description)
        self.symbols.add_shock(shock)
        self.steady_state.register(name, shock=True)
        self._evaldata = None
        return shock

    def add_parameter(self, name: str, value: object = None, description: str = "") -> Parameter:
        """Add a parameter, optionally with its value."""
        par = Parameter(name, description)
        self.symbols.add_parameter(par)
        self.calibration.set_parameter(name, value)
        return par

    def set_parameters(self, **values: object) -> None:
        """Change parameter values."""
        from dsgeval.exceptions import UndeclaredSymbolError

        for name in values:
            if not self.symbols.is_parameter(name):
                raise UndeclaredSymbolError(name, context="parameter assignment")
        self.calibration.set_parameters(values)

    def set_steady_state(self, name: str, level: float, slope: float = 0.0) -> None:
        """Set the steady state of a variable and mark it solved."""
        from dsgeval.exceptions import UndeclaredSymbolError

        if name not in self.symbols.variable_names:
            raise UndeclaredSymbolError(name, context="steady state assignment")
        self.steady_state.set(name, level, slope)

    def add_equation(
        self,
        equation: str | Expression,
        name: str = "",
        linear: bool = False,
    ) -> Equation:
        """Compile and add an equation.

        Args:
            equation: Equation text (``"lhs = rhs"``) or a residual expression.
            name: Equation name; defaults to ``eq_<n>``.
            linear: Flag the equation for selective linearization.

        Raises:
            ParseError: If the text cannot be parsed.
            ModelSpecError: On undeclared symbols or a duplicate name.
        """
        from dsgeval.exceptions import ModelSpecError

        if not name:
            name = f"eq_{len(self.equations) + 1}"
        if any(eqn.name == name for eqn in self.equations):
            raise ModelSpecError(f"Duplicate equation name '{name}'")

        if isinstance(equation, str):
            parsed = parse_equation(equation, self.symbols, name)
            expression = parsed.expression
            tsrefs, ssrefs, params = parsed.tsrefs, parsed.ssrefs, parsed.params
            source = equation.strip()
        else:
            check_references(equation, self.symbols, f"equation '{name}'")
            expression = equation
            tsrefs, ssrefs, params = collect_references(expression)
            source = ""

        eval_resid, eval_RJ = self.registry.compile(name, expression, tsrefs, ssrefs, params)
        eqn = Equation(
            name=name,
            expression=expression,
            tsrefs=tsrefs,
            ssrefs=ssrefs,
            params=params,
            eval_resid=eval_resid,
            eval_RJ=eval_RJ,
            linear=linear,
            source=source,
        )
        self.equations.append(eqn)
        for tv in tsrefs:
            self.lead_lag.add(tv.name, tv.offset)
        self._evaldata = None
        logger.debug("Added %s", eqn)
        return eqn

    def get_equation(self, name: str) -> Equation:
        for eqn in self.equations:
            if eqn.name == name:
                return eqn
        raise KeyError(f"No equation named '{name}'")

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    @property
    def maxlag(self) -> int:
        return self.lead_lag.max_lag

    @property
    def maxlead(self) -> int:
        return self.lead_lag.max_lead

    @property
    def n_equations(self) -> int:
        return len(self.equations)

    @property
    def variable_names(self) -> list[str]:
        """Ordered list of variable names (endogenous and exogenous)."""
        return self.symbols.variable_names

    @property
    def shock_names(self) -> list[str]:
        return self.symbols.shock_names

    @property
    def parameter_names(self) -> list[str]:
        return self.symbols.parameter_names

    @property
    def all_variables(self) -> list[Variable | Shock]:
        """Variables followed by shocks: the columns of an evaluation point."""
        return self.symbols.all_variables

    @property
    def all_variable_names(self) -> list[str]:
        return [v.name for v in self.symbols.all_variables]

    @property
    def has_steady_state_refs(self) -> bool:
        return any(eqn.ssrefs for eqn in self.equations)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    @property
    def evaldata(self) -> EvaluationData:
        """Active evaluation data, built on first use for the configured variant."""
        if self._evaldata is None:
            from dsgeval.evaluation import refresh_evaluation_data

            refresh_evaluation_data(self)
        return self._evaldata  # type: ignore[return-value]

    @evaldata.setter
    def evaldata(self, value: EvaluationData | None) -> None:
        self._evaldata = value

    def evaluate_residual(self, point: NDArray[np.float64]) -> NDArray[np.float64]:
        """Residuals of all equations at a ``(maxlag+maxlead+1) x nvars`` point."""
        return self.evaldata.evaluate_residual(point)

    def evaluate_residual_and_jacobian(
        self, point: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], sp.csr_matrix]:
        """Residuals and sparse Jacobian at a point."""
        return self.evaldata.evaluate_residual_and_jacobian(point)

    def steady_state_point(self) -> NDArray[np.float64]:
        """Steady state trajectory over the model's time window."""
        return self.steady_state.point(self.all_variable_names, self.maxlag, self.maxlead)

    def update(self, options: Mapping[str, object] | None = None, **overrides: object) -> None:
        """Change options; evaluation data is rebuilt on next use.

        A new ``max_chunk_size`` recompiles every equation.
        """
        data = dict(options or {})
        data.update(overrides)
        old_chunk = self.options.max_chunk_size
        self.options = self.options.copy(**data)
        if self.options.max_chunk_size != old_chunk:
            self._recompile()
        self._evaldata = None

    def _recompile(self) -> None:
        from dsgeval.evaluation.compiler import EvaluatorRegistry

        self.registry = EvaluatorRegistry(self.options.max_chunk_size)
        equations = []
        for eqn in self.equations:
            eval_resid, eval_RJ = self.registry.compile(
                eqn.name, eqn.expression, eqn.tsrefs, eqn.ssrefs, eqn.params
            )
            equations.append(replace(eqn, eval_resid=eval_resid, eval_RJ=eval_RJ))
        self.equations = equations
        logger.debug(
            "Recompiled %d equations of '%s' with chunk size %d",
            len(equations),
            self.name,
            self.options.max_chunk_size,
        )

    def summary(self) -> str:
        """Return a human-readable summary of the model."""
        n_lin = sum(1 for eqn in self.equations if eqn.linear)
        lines = [
            f"Model: {self.name}",
            f"  Variables: {len(self.variable_names)}",
            f"  Shocks: {len(self.shock_names)}",
            f"  Parameters: {len(self.parameter_names)}",
            f"  Equations: {self.n_equations} ({n_lin} flagged linear)",
            f"  Max lag: {self.maxlag}",
            f"  Max lead: {self.maxlead}",
            f"  Compiled evaluators: {len(self.registry)}",
        ]
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()

