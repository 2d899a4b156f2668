"""
The core Plume interpreter: the Evaluator and the function call protocol.
"""
import os
import sys
from enum import Enum
from typing import Any, List, Optional, Tuple, Mapping

from plume.plume_datatypes import (
    Scope, Variable, Param, PlumeValue, PlumeFunction, BoundMethod,
    get_property, set_property,
)
from plume.plume_convert import to_plume, to_plume_string, to_plume_boolean, to_plume_number


class NodeKind(str, Enum):
    """Tags agreed between the AST producer and the evaluator."""
    COMMENT = "comment"
    CALL = "call"
    READ = "read"
    DEFINE = "define"
    CHANGE = "change"
    FN = "fn"
    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    SET_PROP = "set-prop"
    GET_PROP = "get-prop"

    def __str__(self) -> str:
        return self.value


class InvalidExpression(Exception):
    def __init__(self, node: Any):
        super().__init__(f"invalid expression type: {node!r}")
        self.node = node


def is_sequence(node: Any) -> bool:
    """A sequence is a list of node-lists; the empty list is an empty sequence."""
    return isinstance(node, (list, tuple)) and all(isinstance(n, (list, tuple)) for n in node)


def _callee_name(fn_expr: Any) -> Optional[str]:
    match fn_expr:
        case [NodeKind.READ, str() as name]:
            return name
        case [NodeKind.GET_PROP, _, key]:
            return str(key)
    return None


class Evaluator:
    """The Plume execution engine."""

    def __init__(self):
        self.side_effects: List[Any] = []
        self.call_stack: List[dict] = []
        self.current_node = None

    def _push_frame(self, name, func, args):
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("PLUME_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # -----------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------

    def run(self, ast: List[Any], scope: Scope) -> Tuple[List[Any], Scope]:
        """Evaluates a program and returns (results, scope)."""
        if ast is None:
            raise ValueError("No syntax tree to evaluate")
        results = self.eval_each(ast, scope)
        return results, scope

    def eval_each(self, nodes: List[Any], scope: Scope) -> List[Any]:
        return [self.eval(node, scope) for node in nodes]

    def eval(self, node: Any, scope: Scope) -> Any:
        """Recursive dispatcher for evaluating any AST node."""
        self.current_node = node
        match node:
            case [NodeKind.COMMENT, *_]:
                return None

            case list() | tuple() if is_sequence(node):
                return self.eval_each(node, scope)

            case [NodeKind.CALL, fn_expr, list() | tuple() as arg_exprs]:
                func = self.eval(fn_expr, scope)
                name = _callee_name(fn_expr)
                return self.call(func, list(arg_exprs), scope, name=name)

            case [NodeKind.READ, str() as name]:
                return scope.lookup(name).value

            case [NodeKind.DEFINE, str() as name, value_expr]:
                value = self.eval(value_expr, scope)
                # Christen anonymous functions with the name they are first bound to.
                if isinstance(value, PlumeFunction) and value.name is None:
                    value.name = name
                scope.define(name, value)
                self._dbg("define", name)
                return None

            case [NodeKind.CHANGE, str() as name, value_expr]:
                value = self.eval(value_expr, scope)
                scope.change(name, value)
                self._dbg("change", name)
                return None

            case [NodeKind.FN, list() | tuple() as params, list() | tuple() as body]:
                try:
                    param_list = [Param.coerce(p) for p in params]
                except (ValueError, KeyError) as e:
                    raise InvalidExpression(node) from e
                return PlumeFunction(body=list(body), params=param_list, closure=scope.snapshot())

            case [NodeKind.STRING, raw]:
                return to_plume_string(raw)

            case [NodeKind.BOOLEAN, raw]:
                return to_plume_boolean(raw)

            case [NodeKind.NUMBER, raw]:
                return to_plume_number(raw)

            case [NodeKind.SET_PROP, obj_expr, key, value_expr]:
                obj = self.eval(obj_expr, scope)
                value = self.eval(value_expr, scope)
                set_property(obj, key, value)
                return None

            case [NodeKind.GET_PROP, obj_expr, key]:
                obj = self.eval(obj_expr, scope)
                return get_property(obj, key)

            case _:
                raise InvalidExpression(node)

    # -----------------------------------------------------------------
    # Call protocol
    # -----------------------------------------------------------------

    def call(self, func: Any, arg_exprs: List[Any], scope: Scope, name: Optional[str] = None) -> Any:
        """Invokes a callable value; argument expressions are handed over unevaluated."""
        if not isinstance(func, PlumeValue):
            err = TypeError(f"Object is not callable: {func!r}")
            err.plume_obj = func
            raise err
        frame_name = name or getattr(func, 'name', None) or '<call>'
        self._push_frame(frame_name, func, arg_exprs)
        _ok = False
        try:
            result = func.call(self, arg_exprs, scope)
            _ok = True
        finally:
            if _ok:
                self._pop_frame()
        return result

    def call_values(self, func: Any, values: List[Any]) -> Any:
        """Calls func with already evaluated arguments (for natives and hosts)."""
        holder = Scope()
        exprs = []
        for i, value in enumerate(values):
            slot = f"%arg{i}"
            holder.define(slot, value)
            exprs.append([NodeKind.READ, slot])
        return self.call(func, exprs, holder)

    def apply_function(self, func: PlumeFunction, arg_exprs: List[Any], scope: Scope,
                       bound_args: List[Any] = ()) -> Any:
        """Runs a PlumeFunction. Called back from PlumeFunction.call."""
        if isinstance(func, BoundMethod):
            return self.apply_function(func.target, arg_exprs, scope, [func.receiver, *bound_args])
        if func.is_native:
            return self._call_native(func, arg_exprs, scope, list(bound_args))
        return self._call_user(func, arg_exprs, scope, list(bound_args))

    def _make_thunk(self, expr: Any, scope: Scope, name: str) -> PlumeFunction:
        """A native function that re-evaluates expr in scope every time it is called."""
        def thunk(*_args):
            return self.eval(expr, scope)
        return PlumeFunction(thunk, name=name)

    def _constant_thunk(self, value: Any, name: str) -> PlumeFunction:
        return PlumeFunction(lambda *_args: value, name=name)

    def _bind_arguments(self, params: List[Param], arg_exprs: List[Any], scope: Scope,
                        bound_args: List[Any]) -> List[Any]:
        """Produces one value per parameter according to its passing mode.

        Missing arguments bind None; excess argument expressions are still
        evaluated, after the parameters, and their results dropped.
        """
        values = []
        offset = len(bound_args)
        for i, param in enumerate(params):
            if i < offset:
                value = bound_args[i]
                values.append(self._constant_thunk(value, param.name) if param.lazy else value)
                continue
            j = i - offset
            if j >= len(arg_exprs):
                values.append(None)
            elif param.lazy:
                values.append(self._make_thunk(arg_exprs[j], scope, param.name))
            else:
                values.append(self.eval(arg_exprs[j], scope))
        for expr in arg_exprs[max(0, len(params) - offset):]:
            self.eval(expr, scope)
        return values

    def _call_native(self, func: PlumeFunction, arg_exprs: List[Any], scope: Scope,
                     bound_args: List[Any]) -> Any:
        if func.params is None:
            args = bound_args + [self.eval(expr, scope) for expr in arg_exprs]
        else:
            args = self._bind_arguments(func.params, arg_exprs, scope, bound_args)
        self._dbg("native call", func.name, "argc", len(args))
        return to_plume(func.fn(*args))

    def _call_user(self, func: PlumeFunction, arg_exprs: List[Any], scope: Scope,
                   bound_args: List[Any]) -> Any:
        # The call scope starts as a snapshot of the closure: shared cells, own mapping.
        call_scope = func.closure.snapshot() if func.closure is not None else Scope()

        # `return` records a value; it is not a control-flow exit, the body always runs to the end.
        pending = Variable(None)

        def _return(*values):
            pending.value = values[0] if values else None

        call_scope.define("return", PlumeFunction(_return, name="return"))

        params = func.params or []
        values = self._bind_arguments(params, arg_exprs, scope, bound_args)
        for param, value in zip(params, values):
            call_scope.define(param.name, value)
        self._dbg("user call", func.name, "params", [p.name for p in params])

        self.eval_each(func.body or [], call_scope)
        return pending.value


def interpret(ast: List[Any], builtins: Optional[Mapping[str, Any]] = None,
              evaluator: Optional[Evaluator] = None) -> Tuple[List[Any], Scope]:
    """Runs a program against a fresh top-level scope.

    The scope is seeded with `builtins` (name -> Variable, or name -> value);
    when omitted the default StdLib table is used. Errors propagate.
    """
    evaluator = evaluator or Evaluator()
    if builtins is None:
        from plume.plume_runtime import make_builtins
        builtins = make_builtins(evaluator)
    scope = Scope()
    for name, cell in builtins.items():
        scope.bind(name, cell if isinstance(cell, Variable) else Variable(cell))
    return evaluator.run(ast, scope)
