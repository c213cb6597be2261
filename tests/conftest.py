"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import numpy as np
import pytest

from dsgeval.model import ModelBuilder, ModelIR


@pytest.fixture
def e1_model() -> ModelIR:
    """One equation with a lag, a lead and a shock."""
    return (
        ModelBuilder("E1")
        .var("y")
        .varexo("y_shk")
        .param("alpha", 0.5)
        .param("beta", 0.5)
        .equation("y[t] = alpha * y[t-1] + beta * y[t+1] + y_shk[t]", name="y")
        .steady_state(y=0.0)
        .build()
    )


@pytest.fixture
def deep_model() -> ModelIR:
    """Linear model with two-period lags and leads and an exogenous variable."""
    return (
        ModelBuilder("deep")
        .vars("y", "c", "w")
        .exog("g")
        .varexo("e")
        .equation(
            "y[t] = 0.4*y[t-1] + 0.1*y[t-2] + 0.3*y[t+1] + 0.1*y[t+2] + e[t]", name="y"
        )
        .equation("c[t] = 0.9*c[t-1] + 0.2*y[t] + g[t] - 0.5*g[t-1]", name="c")
        .equation("w[t] = 0.5*w[t+1] + c[t]", name="w")
        .steady_state(y=0.0, c=0.0, w=0.0, g=0.0)
        .build()
    )


@pytest.fixture
def mixed_model() -> ModelIR:
    """Nonlinear capital equation and a flagged linear consumption equation."""
    return (
        ModelBuilder("mixed")
        .var("k")
        .var("c")
        .varexo("e")
        .param("delta", 0.1)
        .param("alpha", 0.3)
        .equation(
            "k[t] = (1 - delta) * k[t-1] + exp(e[t]) * k[t-1] ** alpha - c[t]",
            name="capital",
        )
        .equation("c[t] = 0.8 * c[t-1] + 0.2 * sstate(c)", name="consumption", lin=True)
        .steady_state(k=1.0, c=0.9)
        .build()
    )


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(12345)
