"""Residual and Jacobian evaluation of compiled models."""

from dsgeval.evaluation.compiler import (
    EquationEvaluator,
    EquationGradient,
    EvaluatorRegistry,
    compile_expression,
)
from dsgeval.evaluation.dispatch import VARIANT_BUILDERS, refresh_evaluation_data
from dsgeval.evaluation.eqn_data import (
    DynamicEqnData,
    LinearizedEqnData,
    SteadyStateEqnData,
    eqn_data_for,
)
from dsgeval.evaluation.first_order import FirstOrderData, first_order, is_first_order
from dsgeval.evaluation.linearization import (
    SelectiveLinearizationData,
    is_linearized,
    linearize,
    selective_linearize,
)
from dsgeval.evaluation.model_data import (
    EvaluationData,
    ModelEvaluationData,
    evaluate_equation_over_range,
)

__all__ = [
    "EquationEvaluator",
    "EquationGradient",
    "EvaluatorRegistry",
    "compile_expression",
    "VARIANT_BUILDERS",
    "refresh_evaluation_data",
    "DynamicEqnData",
    "SteadyStateEqnData",
    "LinearizedEqnData",
    "eqn_data_for",
    "EvaluationData",
    "ModelEvaluationData",
    "evaluate_equation_over_range",
    "SelectiveLinearizationData",
    "selective_linearize",
    "linearize",
    "is_linearized",
    "FirstOrderData",
    "first_order",
    "is_first_order",
]
