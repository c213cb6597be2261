"""Steady state of a model.

The steady state of each variable is a linear trend: ``level + slope * k``
at ``k`` periods from the reference time. Solving for it is out of scope
here; values are supplied by the caller and marked as solved.

Shocks always have a steady state of zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


@dataclass
class SteadyState:
    """Steady state levels, slopes and solved flags, keyed by variable name.

    Attributes:
        levels: Mapping var_name -> level at the reference time.
        slopes: Mapping var_name -> change per period.
        solved: Mapping var_name -> whether the value is known.
    """

    levels: dict[str, float] = field(default_factory=dict)
    slopes: dict[str, float] = field(default_factory=dict)
    solved: dict[str, bool] = field(default_factory=dict)

    def register(self, name: str, *, shock: bool = False) -> None:
        """Add an entry for a new variable (unsolved) or shock (solved at zero)."""
        self.levels.setdefault(name, 0.0)
        self.slopes.setdefault(name, 0.0)
        self.solved.setdefault(name, shock)

    def set(self, name: str, level: float, slope: float = 0.0, solved: bool = True) -> None:
        """Set the steady state of a variable."""
        if name not in self.levels:
            raise KeyError(f"No steady state entry for '{name}'")
        self.levels[name] = float(level)
        self.slopes[name] = float(slope)
        self.solved[name] = bool(solved)

    def level(self, name: str) -> float:
        return self.levels[name]

    def slope(self, name: str) -> float:
        return self.slopes[name]

    def __getitem__(self, name: str) -> float:
        return self.levels[name]

    def __contains__(self, name: str) -> bool:
        return name in self.levels

    @property
    def is_solved(self) -> bool:
        """True when every entry is marked solved."""
        return all(self.solved.values())

    def unsolved(self) -> list[str]:
        return [name for name, ok in self.solved.items() if not ok]

    def max_abs_slope(self, names: Iterable[str] | None = None) -> float:
        """Largest absolute slope, over ``names`` or all entries."""
        keys = self.slopes.keys() if names is None else names
        return max((abs(self.slopes[name]) for name in keys), default=0.0)

    def window(self, name: str, offsets: Sequence[int]) -> NDArray[np.float64]:
        """Steady state values of ``name`` at the given offsets."""
        offs = np.asarray(offsets, dtype=np.float64)
        return self.levels[name] + self.slopes[name] * offs

    def point(self, names: Sequence[str], maxlag: int, maxlead: int) -> NDArray[np.float64]:
        """Steady state trajectory over ``-maxlag..maxlead`` as a time x variable array."""
        offsets = range(-maxlag, maxlead + 1)
        if not names:
            return np.zeros((len(offsets), 0))
        return np.column_stack([self.window(name, offsets) for name in names])

    def __str__(self) -> str:
        lines = ["Steady State:"]
        for name in self.levels:
            flag = "" if self.solved[name] else " (unsolved)"
            lines.append(
                f"  {name} = {self.levels[name]:.6g} + {self.slopes[name]:.6g}*t{flag}"
            )
        return "\n".join(lines)
