"""Chunked forward-mode gradients of scalar functions."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import numpy as np
from numpy.typing import NDArray

from dsgeval.derivatives.dual import Dual

MAX_CHUNK_SIZE = 4


def chunk_size_for(n_inputs: int, max_chunk_size: int = MAX_CHUNK_SIZE) -> int:
    """Chunk size used for a function of ``n_inputs`` arguments."""
    return min(n_inputs, max_chunk_size)


class ForwardGradient:
    """Value and gradient of ``fn: R^n -> R`` by chunked forward mode.

    Each pass seeds ``chunk`` consecutive inputs with unit partials and
    evaluates ``fn`` on duals, so a gradient of ``n`` inputs takes
    ``ceil(n / chunk)`` evaluations. The dual workspace and the result
    buffer are allocated once and reused across calls.
    """

    def __init__(
        self,
        fn: Callable[[Sequence[Dual | float]], Dual | float],
        n_inputs: int,
        chunk: int,
    ):
        if n_inputs < 0:
            raise ValueError(f"n_inputs must be >= 0, got {n_inputs}")
        if n_inputs > 0 and not 1 <= chunk <= n_inputs:
            raise ValueError(f"chunk must be in [1, {n_inputs}], got {chunk}")
        self.fn = fn
        self.n_inputs = int(n_inputs)
        self.chunk = int(chunk)
        self._seeds = np.eye(max(self.chunk, 1), dtype=np.float64)
        self._zero = np.zeros(max(self.chunk, 1), dtype=np.float64)
        self._workspace: list[Dual] = [Dual(0.0, self._zero) for _ in range(self.n_inputs)]
        self._gradient = np.zeros(self.n_inputs, dtype=np.float64)

    def __call__(self, x: Sequence[float] | NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
        values = np.asarray(x, dtype=np.float64)
        if values.shape != (self.n_inputs,):
            raise ValueError(
                f"Expected {self.n_inputs} inputs, got array of shape {values.shape}"
            )
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            if self.n_inputs == 0:
                return float(self.fn(values)), self._gradient.copy()
            value = self._passes(values)
        return float(value), self._gradient.copy()

    def _passes(self, values: NDArray[np.float64]) -> Dual | float:
        workspace = self._workspace
        # numpy scalars keep IEEE results (inf, nan) where Python floats raise
        for i in range(self.n_inputs):
            workspace[i] = Dual(values[i], self._zero)

        value = 0.0
        for start in range(0, self.n_inputs, self.chunk):
            stop = min(start + self.chunk, self.n_inputs)
            for k, i in enumerate(range(start, stop)):
                workspace[i] = Dual(workspace[i].value, self._seeds[k])
            out = self.fn(workspace)
            if isinstance(out, Dual):
                value = out.value
                self._gradient[start:stop] = out.partials[: stop - start]
            else:
                value = out
                self._gradient[start:stop] = 0.0
            for i in range(start, stop):
                workspace[i] = Dual(workspace[i].value, self._zero)
        return value
