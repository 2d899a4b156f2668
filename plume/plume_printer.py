"""
A pretty-printer for Plume values.
"""
import collections.abc

from plume.plume_datatypes import (
    StringPrim, BooleanPrim, NumberPrim, PrimitiveWrapper,
    PlumeValue, PlumeObject, PlumeArray, PlumeFunction, BoundMethod,
    Scope, Variable, Param, coerce_string,
)


class Printer:
    """Formats Plume values into readable strings."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()
        self._seen = set()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def pstr(self, obj):
        """Display form used for program output: strings are not quoted."""
        if isinstance(obj, (StringPrim, str)):
            return str(obj)
        if isinstance(obj, PrimitiveWrapper) or obj is None:
            return coerce_string(obj)
        return self.pformat(obj)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        # Subclasses of the runtime types
        if isinstance(obj, BoundMethod): return self._pformat_bound_method
        if isinstance(obj, PlumeFunction): return self._pformat_function
        if isinstance(obj, PlumeArray): return self._pformat_array
        if isinstance(obj, PlumeObject): return self._pformat_object
        if isinstance(obj, PrimitiveWrapper): return self._pformat_primitive
        if isinstance(obj, collections.abc.Mapping): return self._pformat_dict
        if isinstance(obj, (list, tuple)): return self._pformat_list
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            StringPrim: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            NumberPrim: self._pformat_primitive,
            bool: self._pformat_primitive,
            BooleanPrim: self._pformat_primitive,
            type(None): self._pformat_primitive,
            PlumeObject: self._pformat_object,
            PlumeArray: self._pformat_array,
            PlumeFunction: self._pformat_function,
            BoundMethod: self._pformat_bound_method,
            Scope: self._pformat_scope,
            Variable: self._pformat_variable,
            Param: self._pformat_param,
            list: self._pformat_list,
            tuple: self._pformat_list,
            dict: self._pformat_dict,
        }

    def _pformat_primitive(self, obj, level):
        return coerce_string(obj)

    def _pformat_str(self, obj, level):
        # Basic string formatting, does not handle complex escapes
        return f"'{obj}'"

    def _guarded(self, obj, placeholder, render):
        key = id(obj)
        if key in self._seen:
            return placeholder
        self._seen.add(key)
        try:
            return render()
        finally:
            self._seen.discard(key)

    def _pformat_array(self, obj, level):
        def render():
            items = ", ".join(self.pformat(item, level + 1) for item in obj.items())
            return f"#[{items}]"
        return self._guarded(obj, "#[...]", render)

    def _pformat_object(self, obj, level):
        def render():
            pairs = ", ".join(f"{k}: {self.pformat(v, level + 1)}" for k, v in obj.data.items())
            return f"#{{{pairs}}}"
        return self._guarded(obj, "#{...}", render)

    def _pformat_param(self, obj, level):
        return f"~{obj.name}" if obj.lazy else obj.name

    def _pformat_function(self, obj, level):
        if obj.is_native:
            return f"<native {obj.name or 'fn'}>"
        params = ", ".join(self._pformat_param(p, level) for p in obj.params or [])
        count = len(obj.body or [])
        noun = "node" if count == 1 else "nodes"
        return f"fn({params}) {{{count} {noun}}}"

    def _pformat_bound_method(self, obj, level):
        return f"<method {obj.target.name or 'fn'} of {self.pformat(obj.receiver, level + 1)}>"

    def _pformat_scope(self, obj, level):
        return f"<Scope names=[{', '.join(obj)}]>"

    def _pformat_variable(self, obj, level):
        return f"<Variable {self.pformat(obj.value, level)}>"

    def _pformat_list(self, obj, level):
        def render():
            return "[" + ", ".join(self.pformat(item, level + 1) for item in obj) + "]"
        return self._guarded(obj, "[...]", render)

    def _pformat_dict(self, obj, level):
        def render():
            pairs = ", ".join(f"{k}: {self.pformat(v, level + 1)}" for k, v in obj.items())
            return "{" + pairs + "}"
        return self._guarded(obj, "{...}", render)


def format_node(node) -> str:
    """Renders an AST node compactly for error messages."""
    if isinstance(node, (list, tuple)):
        return "[" + ", ".join(format_node(n) for n in node) + "]"
    if isinstance(node, (PlumeValue, PrimitiveWrapper)):
        return Printer().pformat(node)
    return repr(str(node)) if isinstance(node, str) else repr(node)
