"""Fluent Python API for building models.

Provides a builder pattern for constructing models programmatically:

    model = (
        ModelBuilder("MyModel")
        .var("y", "Output")
        .exog("z", "Foreign demand")
        .varexo("y_shk", "Output shock")
        .param("rho", 0.9)
        .equation("y[t] = rho * y[t-1] + z[t] + y_shk[t]", name="output")
        .steady_state(y=0.0, z=0.0)
        .build()
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dsgeval.config import Options
from dsgeval.model.ir import ModelIR


@dataclass
class ModelBuilder:
    """Fluent builder for models.

    Example:
        model = (
            ModelBuilder("AR1")
            .var("y")
            .varexo("e")
            .param("rho", 0.9)
            .equation("y[t] = rho * y[t-1] + e[t]")
            .build()
        )
    """

    name: str
    _variables: list[tuple[str, str, bool]] = field(default_factory=list)
    _shocks: list[tuple[str, str]] = field(default_factory=list)
    _parameters: list[tuple[str, str]] = field(default_factory=list)
    _equations: list[tuple[str, str, bool]] = field(default_factory=list)
    _param_values: dict[str, Any] = field(default_factory=dict)
    _sstate: dict[str, tuple[float, float]] = field(default_factory=dict)
    _options: dict[str, Any] = field(default_factory=dict)

    def var(self, name: str, description: str = "") -> ModelBuilder:
        """Add an endogenous variable."""
        self._variables.append((name, description, False))
        return self

    def vars(self, *names: str) -> ModelBuilder:
        """Add multiple endogenous variables."""
        for name in names:
            self._variables.append((name, "", False))
        return self

    def exog(self, name: str, description: str = "") -> ModelBuilder:
        """Add an exogenous variable."""
        self._variables.append((name, description, True))
        return self

    def varexo(self, name: str, description: str = "") -> ModelBuilder:
        """Add a shock."""
        self._shocks.append((name, description))
        return self

    def varexos(self, *names: str) -> ModelBuilder:
        """Add multiple shocks."""
        for name in names:
            self._shocks.append((name, ""))
        return self

    def param(self, name: str, value: Any = None, description: str = "") -> ModelBuilder:
        """Add a parameter, optionally with its value (scalar or vector)."""
        self._parameters.append((name, description))
        if value is not None:
            self._param_values[name] = value
        return self

    def params(self, **name_values: Any) -> ModelBuilder:
        """Add multiple parameters with values."""
        for name, value in name_values.items():
            self._parameters.append((name, ""))
            self._param_values[name] = value
        return self

    def equation(self, expr: str, name: str = "", lin: bool = False) -> ModelBuilder:
        """Add a model equation.

        The equation can be in the form:
        - "lhs = rhs" (stored as lhs - rhs = 0)
        - "expression" (treated as expression = 0)

        Timing notation:
        - x[t-1]: lagged variable
        - x or x[t]: current variable
        - x[t+1]: lead variable

        ``lin=True`` flags the equation for selective linearization.
        """
        self._equations.append((expr, name, lin))
        return self

    def calibrate(self, **param_values: Any) -> ModelBuilder:
        """Set parameter values."""
        self._param_values.update(param_values)
        return self

    def steady_state(self, **levels: float | tuple[float, float]) -> ModelBuilder:
        """Set steady state values as ``name=level`` or ``name=(level, slope)``."""
        for name, value in levels.items():
            if isinstance(value, tuple):
                level, slope = value
            else:
                level, slope = value, 0.0
            self._sstate[name] = (float(level), float(slope))
        return self

    def options(self, **options: Any) -> ModelBuilder:
        """Set evaluation options (see :class:`dsgeval.config.Options`)."""
        self._options.update(options)
        return self

    def build(self) -> ModelIR:
        """Build the model.

        Returns:
            ModelIR with equations compiled and steady state set.

        Raises:
            ParseError: If equations cannot be parsed
            ModelSpecError: If model is invalid
            ConfigError: If options are invalid
        """
        from dsgeval.exceptions import UndeclaredSymbolError

        model = ModelIR(name=self.name, options=Options.from_dict(self._options))

        for name, desc, exogenous in self._variables:
            model.add_variable(name, desc, exogenous=exogenous)
        for name, desc in self._shocks:
            model.add_shock(name, desc)
        for name, desc in self._parameters:
            model.add_parameter(name, self._param_values.get(name), desc)

        extra = sorted(set(self._param_values) - set(model.parameter_names))
        if extra:
            raise UndeclaredSymbolError(extra[0], context="calibration")

        for eq_str, eq_name, lin in self._equations:
            model.add_equation(eq_str, name=eq_name, linear=lin)

        for name, (level, slope) in self._sstate.items():
            model.set_steady_state(name, level, slope)

        return model
