"""Model container: symbols, equations, parameters and steady state."""

from dsgeval.model.builder import ModelBuilder
from dsgeval.model.calibration import Calibration
from dsgeval.model.equations import (
    BinaryOp,
    Constant,
    Equation,
    Expression,
    FunctionCall,
    ParameterRef,
    SteadyStateRef,
    UnaryOp,
    VariableRef,
    call,
    param,
    sstate,
    var,
)
from dsgeval.model.ir import LeadLagStructure, ModelIR
from dsgeval.model.parser import parse_equation
from dsgeval.model.steady_state import SteadyState
from dsgeval.model.symbols import (
    Parameter,
    Shock,
    Symbol,
    SymbolTable,
    TimedVariable,
    Variable,
)

__all__ = [
    "ModelBuilder",
    "ModelIR",
    "LeadLagStructure",
    "Calibration",
    "SteadyState",
    "Equation",
    "Expression",
    "Constant",
    "VariableRef",
    "SteadyStateRef",
    "ParameterRef",
    "UnaryOp",
    "BinaryOp",
    "FunctionCall",
    "var",
    "sstate",
    "param",
    "call",
    "parse_equation",
    "Symbol",
    "SymbolTable",
    "Variable",
    "Shock",
    "Parameter",
    "TimedVariable",
]
