"""Selection of a model's evaluation data by variant."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from dsgeval.evaluation.first_order import FirstOrderData
from dsgeval.evaluation.linearization import SelectiveLinearizationData
from dsgeval.evaluation.model_data import EvaluationData, ModelEvaluationData

if TYPE_CHECKING:
    from dsgeval.model.ir import ModelIR


# Mapping: Options.variant -> evaluation data constructor.
VARIANT_BUILDERS: dict[str, Callable[[ModelIR], EvaluationData]] = {
    "default": ModelEvaluationData,
    "selective_linearize": SelectiveLinearizationData,
    "linearize": lambda model: SelectiveLinearizationData(model, linearize_all=True),
    "firstorder": FirstOrderData,
}


def refresh_evaluation_data(model: ModelIR) -> ModelIR:
    """Rebuild the evaluation data of ``model`` for its configured variant.

    Needed after the steady state or parameters change for variants that
    cache values (linearizations, ``sstate()`` references).
    """
    model.evaldata = VARIANT_BUILDERS[model.options.variant](model)
    return model
