"""dsgeval: residual, Jacobian and first-order evaluation of dynamic models.

Equations written over time series (``y[t] = rho * y[t-1] + e[t]``) are
compiled into residual and gradient evaluators, assembled into a sparse
model Jacobian, and optionally linearized (selectively or fully) or
rewritten in first-order state-space form.

Example:
    >>> from dsgeval import ModelBuilder
    >>> model = (
    ...     ModelBuilder("AR1")
    ...     .var("y")
    ...     .varexo("e")
    ...     .param("rho", 0.9)
    ...     .equation("y[t] = rho * y[t-1] + e[t]")
    ...     .build()
    ... )
    >>> model.maxlag, model.maxlead
    (1, 0)
"""

import logging

from dsgeval.config import Options
from dsgeval.evaluation import (
    FirstOrderData,
    ModelEvaluationData,
    SelectiveLinearizationData,
    evaluate_equation_over_range,
    first_order,
    linearize,
    refresh_evaluation_data,
    selective_linearize,
)
from dsgeval.exceptions import DSGEvalError
from dsgeval.model import ModelBuilder, ModelIR

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "DSGEvalError",
    "Options",
    "ModelBuilder",
    "ModelIR",
    "ModelEvaluationData",
    "SelectiveLinearizationData",
    "FirstOrderData",
    "evaluate_equation_over_range",
    "selective_linearize",
    "linearize",
    "first_order",
    "refresh_evaluation_data",
]
