# plume_runtime.py

import inspect
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Literal, Dict, Mapping

import pystache
import yaml

from plume.plume_interpreter import Evaluator, InvalidExpression
from plume.plume_datatypes import (
    Scope, Variable, VariableNotFound, PrimitiveWrapper, StringPrim, BooleanPrim, NumberPrim,
    PlumeObject, PlumeArray, PlumeFunction, plume_params, has_property,
    coerce_boolean, coerce_number,
)
from plume.plume_convert import to_plume, to_py, to_py_string
from plume.plume_printer import Printer, format_node
from plume.plume_serialize import serialize, deserialize, load_ast

# ===================================================================
# 1. The Standard Library
# ===================================================================

# Operator spellings bound to the same functions as their named forms.
OPERATOR_ALIASES = {
    '+': 'add',
    '-': 'sub',
    '*': 'mul',
    '/': 'div',
}

_printer = Printer()


def _divide(a: float, b: float) -> float:
    # IEEE division: x/0 is a signed infinity, 0/0 is NaN
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _strict_equal(a, b) -> bool:
    if isinstance(a, PrimitiveWrapper) or isinstance(b, PrimitiveWrapper):
        return a == b
    return a is b


class StdLib:
    """Contains Python implementations for the default Plume builtins.

    Each `_name` method is exposed as `name` (underscores become dashes).
    """
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    # --- Output and strings ---
    def _print(self, *args):
        message = " ".join(_printer.pstr(a) for a in args)
        self.evaluator.side_effects.append({'topics': ['stdout'], 'message': message})

    def _concat(self, *args):
        return StringPrim("".join(_printer.pstr(a) for a in args))

    def _template(self, text=None, context=None):
        """Render a Mustache template against an object's fields."""
        data = to_py(context) if context is not None else {}
        if not isinstance(data, dict):
            data = {"value": data}
        renderer = pystache.Renderer(escape=lambda u: u)
        return StringPrim(renderer.render(to_py_string(text), data))

    # --- Math ---
    def _add(self, *nums):
        return NumberPrim(sum(coerce_number(n) for n in nums))

    def _sub(self, first=None, *rest):
        if not rest:
            return NumberPrim(-coerce_number(first))
        result = coerce_number(first)
        for n in rest:
            result -= coerce_number(n)
        return NumberPrim(result)

    def _mul(self, *nums):
        result = 1.0
        for n in nums:
            result *= coerce_number(n)
        return NumberPrim(result)

    def _div(self, first=None, *rest):
        result = coerce_number(first)
        for n in rest:
            result = _divide(result, coerce_number(n))
        return NumberPrim(result)

    # --- Logic and comparison ---
    def _and(self, *vals): return BooleanPrim(all(coerce_boolean(v) for v in vals))
    def _or(self, *vals): return BooleanPrim(any(coerce_boolean(v) for v in vals))
    def _not(self, x=None): return BooleanPrim(not coerce_boolean(x))
    def _eq(self, a=None, b=None): return BooleanPrim(_strict_equal(a, b))
    def _lt(self, a=None, b=None): return BooleanPrim(coerce_number(a) < coerce_number(b))
    def _gt(self, a=None, b=None): return BooleanPrim(coerce_number(a) > coerce_number(b))

    # --- Control flow ---
    @plume_params("cond", ("then", "unevaluated"), ("else", "unevaluated"))
    def _if(self, cond=None, then=None, otherwise=None):
        branch = then if coerce_boolean(cond) else otherwise
        if branch is None:
            return None
        result = self.evaluator.call_values(branch, [])
        # A block written as a zero-argument function literal is run as well.
        if isinstance(result, PlumeFunction) and not result.is_native and not result.params:
            result = self.evaluator.call_values(result, [])
        return result

    @plume_params("cond", ("then", "unevaluated"), ("else", "unevaluated"))
    def _ifel(self, cond=None, then=None, otherwise=None):
        return self._if(cond, then, otherwise)

    # --- Objects ---
    def _object(self, *pairs):
        obj = PlumeObject()
        for i in range(0, len(pairs) - 1, 2):
            obj.set(pairs[i], pairs[i + 1])
        return obj

    def _array(self, *items): return PlumeArray(list(items))
    def _has(self, obj=None, key=None): return BooleanPrim(has_property(obj, key))

    # --- Serialization ---
    def _to_json(self, value=None): return StringPrim(serialize(value, fmt='json', pretty=False))
    def _from_json(self, text=None): return to_plume(deserialize(to_py_string(text), fmt='json'))
    def _to_yaml(self, value=None): return StringPrim(serialize(value, fmt='yaml'))
    def _from_yaml(self, text=None): return to_plume(deserialize(to_py_string(text), fmt='yaml'))


def make_builtins(evaluator: Evaluator) -> Dict[str, Variable]:
    """Builds the default top-level bindings: name -> Variable."""
    stdlib = StdLib(evaluator)
    cells: Dict[str, Variable] = {}
    for name, member in inspect.getmembers(stdlib):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            plume_name = name[1:].replace('_', '-')
            cells[plume_name] = Variable(PlumeFunction(member, name=plume_name))
    for op, target in OPERATOR_ALIASES.items():
        cells[op] = cells[target]
    return cells


# ===================================================================
# 2. Program Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a program run."""
    status: Literal['success', 'error']
    value: Any = None
    scope: Optional[Scope] = None
    error_message: Optional[str] = None
    error_node: Any = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def output(self) -> List[str]:
        """Messages written to stdout by `print`, in order."""
        return [e.get('message', '') for e in self.side_effects if e.get('topics') == ['stdout']]

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class ScriptRunner:
    """Runs Plume programs against a persistent top-level scope."""

    def __init__(self, builtins: Optional[Mapping[str, Any]] = None, load_stdlib: bool = True):
        self.evaluator = Evaluator()
        self.root_scope = Scope()
        if load_stdlib:
            for name, cell in make_builtins(self.evaluator).items():
                self.root_scope.bind(name, cell)
        for name, value in (builtins or {}).items():
            cell = value if isinstance(value, Variable) else Variable(to_plume(value))
            self.root_scope.bind(name, cell)

    def _format_runtime_error(self, e, node) -> str:
        match e:
            case VariableNotFound() as vn:
                msg = f"VariableNotFound: {vn.name}"
            case InvalidExpression() as ie:
                msg = f"InvalidExpression: {format_node(ie.node)}"
            case TypeError():
                msg = f"TypeError: {e}"
            case _:
                msg = f"InternalError: {type(e).__name__}: {e}"

        plume_obj = getattr(e, 'plume_obj', None)
        if plume_obj is not None:
            msg = f"{msg}\n{Printer().pformat(plume_obj)}"
        if node is not None and not isinstance(e, InvalidExpression):
            msg = f"{msg}\nAt node {format_node(node)}"

        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        frames = []
        for frame in stack:
            name = frame.get('name') or '<call>'
            args = frame.get('args') or []
            frame_str = f"({name}"
            if args and name != 'return':
                frame_str += " " + " ".join(format_node(a) for a in args)
            frames.append(frame_str + ")")
        return "Plume stacktrace: " + " ".join(frames)

    def _error_result(self, msg: str, node=None) -> ExecutionResult:
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            scope=self.root_scope,
            error_message=msg,
            error_node=node,
            side_effects=self.evaluator.side_effects,
        )

    def handle_ast(self, ast: List[Any]) -> ExecutionResult:
        """The main entry point to execute a program given as AST nodes."""
        self.evaluator.side_effects = []
        self.evaluator.call_stack.clear()
        self.evaluator.current_node = None
        try:
            results, scope = self.evaluator.run(ast, self.root_scope)
        except Exception as e:
            node = self.evaluator.current_node
            return self._error_result(self._format_runtime_error(e, node), node)
        return ExecutionResult(
            status='success',
            value=results,
            scope=scope,
            side_effects=self.evaluator.side_effects,
        )

    def handle_text(self, text: str, *, filename: Optional[str] = None,
                    fmt: Optional[str] = None) -> ExecutionResult:
        """Loads a JSON/YAML AST document and runs it."""
        try:
            ast = load_ast(text, filename=filename, fmt=fmt)
        except (yaml.YAMLError, ValueError) as e:
            self.evaluator.side_effects = []
            return self._error_result(f"ParseError: {e}")
        return self.handle_ast(ast)
