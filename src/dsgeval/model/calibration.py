"""Parameter values for a model.

A calibration maps parameter names to values. Values are scalars or 1-D
vectors (used for weights, e.g. ``movsumw(x[t], 3, p)`` reads ``p[0]``,
``p[1]`` and ``p[2]``).

Every change bumps :attr:`Calibration.revision`. Compiled evaluators keep a
copy of the values they use and refresh it only when the revision differs
from the one they last saw.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dsgeval.model.ir import ModelIR


ParameterValue = Union[float, NDArray[np.float64], None]

# Revisions are drawn from one process-wide counter so that a copied
# calibration never reuses a revision seen by an evaluator.
_REVISIONS = itertools.count(1)


def _coerce(name: str, value: object) -> ParameterValue:
    if value is None:
        return None
    if np.ndim(value) == 0:
        return float(value)  # type: ignore[arg-type]
    array = np.asarray(value, dtype=np.float64)
    if array.ndim != 1:
        raise ValueError(f"Parameter '{name}' must be a scalar or a 1-D vector")
    return array


@dataclass
class Calibration:
    """Parameter values of a model.

    Attributes:
        parameters: Mapping param_name -> value (None while unset).
        revision: Stamp that changes whenever any value changes.
    """

    parameters: dict[str, ParameterValue] = field(default_factory=dict)
    revision: int = field(default_factory=lambda: next(_REVISIONS))

    def __post_init__(self) -> None:
        self.parameters = {
            name: _coerce(name, value) for name, value in self.parameters.items()
        }

    def _touch(self) -> None:
        self.revision = next(_REVISIONS)

    def set_parameter(self, name: str, value: object) -> None:
        """Set a parameter value."""
        self.parameters[name] = _coerce(name, value)
        self._touch()

    def set_parameters(self, params: Mapping[str, object]) -> None:
        """Set multiple parameter values with a single revision bump."""
        for name, value in params.items():
            self.parameters[name] = _coerce(name, value)
        self._touch()

    def get_parameter(self, name: str) -> ParameterValue:
        """Get a parameter value."""
        if name not in self.parameters:
            raise KeyError(f"Parameter '{name}' not calibrated")
        return self.parameters[name]

    def evaluation_value(self, name: str) -> float | tuple[float, ...]:
        """Value in the form bound into compiled evaluators.

        Raises:
            EvaluationError: If the parameter is missing or has no value.
        """
        from dsgeval.exceptions import EvaluationError

        value = self.parameters.get(name)
        if value is None:
            raise EvaluationError(f"Parameter '{name}' has no value")
        if isinstance(value, np.ndarray):
            return tuple(float(v) for v in value)
        return value

    def validate(self, model: ModelIR) -> list[str]:
        """Names of model parameters that have no value, as messages."""
        return [
            f"Parameter '{name}' not calibrated"
            for name in model.parameter_names
            if self.parameters.get(name) is None
        ]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "parameters": {
                name: value.tolist() if isinstance(value, np.ndarray) else value
                for name, value in self.parameters.items()
            }
        }

    @classmethod
    def from_dict(cls, data: dict) -> Calibration:
        """Create from dictionary."""
        return cls(parameters=dict(data.get("parameters", {})))

    def copy(self) -> Calibration:
        """Create a copy of this calibration (with a new revision)."""
        return Calibration(
            parameters={
                name: value.copy() if isinstance(value, np.ndarray) else value
                for name, value in self.parameters.items()
            }
        )

    def __str__(self) -> str:
        lines = ["Calibration:"]
        for name, val in sorted(self.parameters.items()):
            lines.append(f"  {name} = {val}")
        return "\n".join(lines)
