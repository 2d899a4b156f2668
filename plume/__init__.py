from plume.plume_datatypes import (
    StringPrim, BooleanPrim, NumberPrim, Variable, Scope, Param,
    Constructor, register_constructor, find_constructor,
    PlumeValue, PlumeObject, PlumeArray, PlumeFunction,
    BoundMethod, VariableNotFound, get_property, set_property, has_property, plume_params,
)
from plume.plume_interpreter import Evaluator, NodeKind, InvalidExpression, interpret
from plume.plume_runtime import ScriptRunner, ExecutionResult, StdLib, make_builtins

__version__ = "0.1.0"
