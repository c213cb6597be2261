"""Symbols of a dynamic model.

Three kinds of names can appear in an equation:

- variables, indexed by time (``x[t-1]``, ``x[t]``, ``x[t+1]``); a variable
  may be flagged exogenous when its path is given as data
- shocks, indexed by time and always exogenous
- parameters, constant during evaluation (scalars or vectors)

Names are unique across the three kinds.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Symbol:
    """A named model symbol."""

    name: str
    description: str = ""

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class Parameter(Symbol):
    pass


@dataclass(frozen=True, slots=True)
class Shock(Symbol):
    @property
    def is_exogenous(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Variable(Symbol):
    """A time series of the model.

    Exogenous variables, like shocks, never become states of the
    first-order form.

    Example:
        y = Variable("y", description="Output")
        z = Variable("z", exogenous=True)
    """

    exogenous: bool = False

    @property
    def is_exogenous(self) -> bool:
        return self.exogenous


@dataclass(frozen=True, slots=True)
class TimedVariable:
    """Reference to a time series at ``t + offset``."""

    name: str
    offset: int = 0

    def __str__(self) -> str:
        if self.offset == 0:
            return f"{self.name}[t]"
        sign = "+" if self.offset > 0 else "-"
        return f"{self.name}[t{sign}{abs(self.offset)}]"


@dataclass
class SymbolTable:
    """Declared symbols, in declaration order per kind."""

    _variables: dict[str, Variable] = field(default_factory=dict)
    _shocks: dict[str, Shock] = field(default_factory=dict)
    _parameters: dict[str, Parameter] = field(default_factory=dict)

    def kind(self, name: str) -> str | None:
        """``"variable"``, ``"shock"``, ``"parameter"`` or None if undeclared."""
        if name in self._variables:
            return "variable"
        if name in self._shocks:
            return "shock"
        if name in self._parameters:
            return "parameter"
        return None

    def _declare(self, table: dict, symbol: Symbol, kind: str) -> None:
        from dsgeval.exceptions import DuplicateSymbolError

        existing = self.kind(symbol.name)
        if existing is not None:
            raise DuplicateSymbolError(symbol.name, existing, kind)
        table[symbol.name] = symbol

    def add_variable(self, var: Variable) -> None:
        self._declare(self._variables, var, "variable")

    def add_shock(self, shock: Shock) -> None:
        self._declare(self._shocks, shock, "shock")

    def add_parameter(self, par: Parameter) -> None:
        self._declare(self._parameters, par, "parameter")

    def is_time_series(self, name: str) -> bool:
        return name in self._variables or name in self._shocks

    def is_parameter(self, name: str) -> bool:
        return name in self._parameters

    @property
    def all_variables(self) -> list[Variable | Shock]:
        """Variables followed by shocks: the columns of an evaluation point."""
        return [*self._variables.values(), *self._shocks.values()]

    @property
    def variable_names(self) -> list[str]:
        return list(self._variables)

    @property
    def shock_names(self) -> list[str]:
        return list(self._shocks)

    @property
    def parameter_names(self) -> list[str]:
        return list(self._parameters)

    def __contains__(self, name: str) -> bool:
        return self.kind(name) is not None

    def __len__(self) -> int:
        return len(self._variables) + len(self._shocks) + len(self._parameters)
