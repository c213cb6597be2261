"""First-order form of a small growth model.

Run from repository root:
    python examples/rbc_first_order.py
"""

from __future__ import annotations

import numpy as np

from dsgeval import ModelBuilder
from dsgeval.evaluation import first_order, selective_linearize


def build_model():
    alpha, beta, delta = 0.33, 0.99, 0.025
    k_ss = (alpha / (1 / beta - 1 + delta)) ** (1 / (1 - alpha))
    c_ss = k_ss**alpha - delta * k_ss
    return (
        ModelBuilder("growth")
        .vars("k", "c", "a")
        .varexo("e_a")
        .params(alpha=alpha, beta=beta, delta=delta, rho=0.95)
        .equation(
            "1 / c[t] = beta / c[t+1] * (alpha * exp(a[t+1]) * k[t] ** (alpha - 1) + 1 - delta)",
            name="euler",
        )
        .equation(
            "k[t] = exp(a[t]) * k[t-1] ** alpha + (1 - delta) * k[t-1] - c[t]",
            name="capital",
        )
        .equation("a[t] = rho * a[t-1] + e_a[t]", name="tfp", lin=True)
        .steady_state(k=k_ss, c=c_ss, a=0.0)
        .build()
    )


def main() -> None:
    model = build_model()
    print(model.summary())
    print()

    selective_linearize(model)
    point = model.steady_state_point()
    point[:, model.all_variable_names.index("a")] += 0.01
    print("Residuals at a perturbed point:", model.evaluate_residual(point))
    print()

    first_order(model)
    for label, frame in model.evaldata.to_frames().items():
        print(label)
        print(frame.to_string())
        print()


if __name__ == "__main__":
    np.set_printoptions(precision=6, suppress=True)
    main()
