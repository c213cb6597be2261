"""Forward-mode automatic differentiation for equation residuals."""

from dsgeval.derivatives.dual import FUNCTIONS, Dual, dual_div, dual_pow
from dsgeval.derivatives.gradient import MAX_CHUNK_SIZE, ForwardGradient, chunk_size_for

__all__ = [
    "Dual",
    "dual_div",
    "dual_pow",
    "FUNCTIONS",
    "ForwardGradient",
    "MAX_CHUNK_SIZE",
    "chunk_size_for",
]
