"""Exception hierarchy for dsgeval.

All errors raised by the package derive from :class:`DSGEvalError` so callers
can catch everything from this library with a single ``except`` clause.
"""

from __future__ import annotations


class DSGEvalError(Exception):
    """Base class for all dsgeval errors."""


# =============================================================================
# Model specification
# =============================================================================


class ModelSpecError(DSGEvalError):
    """The model structure is inconsistent."""


class DuplicateSymbolError(ModelSpecError):
    """A symbol name is declared twice."""

    def __init__(self, name: str, existing_type: str, new_type: str):
        self.name = name
        self.existing_type = existing_type
        self.new_type = new_type
        super().__init__(
            f"Cannot declare {new_type} '{name}': already declared as {existing_type}"
        )


class UndeclaredSymbolError(ModelSpecError):
    """An identifier does not name any declared symbol."""

    def __init__(self, name: str, context: str = ""):
        self.name = name
        self.context = context
        where = f" in {context}" if context else ""
        super().__init__(f"Undeclared symbol '{name}'{where}")


class WindowError(ModelSpecError):
    """A variable/time-offset reference falls outside the evaluation window."""


# =============================================================================
# Equation text
# =============================================================================


class ParseError(DSGEvalError):
    """Equation text could not be turned into an expression."""


class UnsupportedTimeIndexError(ParseError):
    """A time index is not of the form ``t``, ``t+k`` or ``t-k``."""

    def __init__(self, index: str, context: str = ""):
        self.index = index
        where = f" in {context}" if context else ""
        super().__init__(
            f"Unsupported time index form '{index}'{where}: "
            "must use `t`, `t+n` or `t-n` with integer n"
        )


class MultipleTimeIndicesError(ParseError):
    """A variable reference carries more than one index."""

    def __init__(self, name: str, context: str = ""):
        self.name = name
        where = f" in {context}" if context else ""
        super().__init__(f"Multiple time indices on variable '{name}'{where}")


class MetaFunctionError(ParseError):
    """Invalid arguments passed to a time-offset operator (lag, d, movav, ...)."""


# =============================================================================
# Evaluation
# =============================================================================


class EvaluationError(DSGEvalError):
    """A precondition of a residual/Jacobian evaluation is violated."""


class LinearizationError(DSGEvalError):
    """The model cannot be linearized about its steady state."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Unable to linearize model: {reason}")


class ConfigError(DSGEvalError):
    """Invalid configuration options."""
