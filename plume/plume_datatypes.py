"""
Defines the core data types for the Plume language runtime.

This module provides the primitive wrappers, variable cells and scopes, and the
prototype-chained object model (objects, arrays, functions) that the Plume
evaluator works with.
"""

import math
import sys
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Callable, Iterator, Mapping, Union
import collections.abc


class VariableNotFound(LookupError):
    def __init__(self, name: str):
        super().__init__(f"Variable {name!r} not found")
        self.name = name


# =================================================================
# Canonical coercions
# =================================================================

def coerce_string(value: Any) -> str:
    """Coerce any value to the canonical Plume string form."""
    if isinstance(value, PrimitiveWrapper):
        value = value.value
    if value is None:
        return "none"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _number_to_str(coerce_number(value))
    return str(value)


def coerce_boolean(value: Any) -> bool:
    if isinstance(value, PrimitiveWrapper):
        value = value.value
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


_NON_FINITE_WORDS = ("inf", "infinity", "nan")


def coerce_number(value: Any) -> float:
    if isinstance(value, PrimitiveWrapper):
        value = value.value
    if isinstance(value, (bool, int, float)):
        try:
            return float(value)
        except OverflowError:
            # ints beyond the double range
            return math.inf if value > 0 else -math.inf
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        # Only the literal spellings of numbers: no digit separators, no inf/nan words
        if "_" in text:
            return math.nan
        word = text.lstrip("+-")
        if word.lower() in _NON_FINITE_WORDS and word != "Infinity":
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _number_to_str(num: float) -> str:
    if math.isnan(num):
        return "NaN"
    if math.isinf(num):
        return "Infinity" if num > 0 else "-Infinity"
    if num.is_integer() and abs(num) < 1e16:
        return str(int(num))
    return repr(num)


def key_string(key: Any) -> str:
    """Stringify a property key the way object data maps store it."""
    return coerce_string(key)


# =================================================================
# Primitive wrappers
# =================================================================

class PrimitiveWrapper(ABC):
    """Abstract base class for the String/Boolean/Number primitives.

    The wrapped value is coerced on every write and re-coerced on every read,
    so a wrapper can never hold a value of the wrong kind.
    """
    kind = "primitive"

    def __init__(self, value: Any):
        self.value = value

    @staticmethod
    @abstractmethod
    def coerce(value: Any) -> Any:
        raise NotImplementedError

    @property
    def value(self) -> Any:
        return self.coerce(self._value)

    @value.setter
    def value(self, value: Any):
        self._value = self.coerce(value)

    def __eq__(self, other):
        if isinstance(other, PrimitiveWrapper):
            return type(self) is type(other) and self.value == other.value
        return self.value == other

    def __hash__(self):
        # Equal to the raw value, so it must hash like it
        return hash(self.value)

    def __repr__(self) -> str:
        return f"<{self.kind.capitalize()} {coerce_string(self.value)}>"


class StringPrim(PrimitiveWrapper):
    """A Plume string."""
    kind = "string"
    coerce = staticmethod(coerce_string)

    def __str__(self) -> str:
        return self.value

    def __len__(self) -> int:
        return len(self.value)


class BooleanPrim(PrimitiveWrapper):
    """A Plume boolean."""
    kind = "boolean"
    coerce = staticmethod(coerce_boolean)

    def __bool__(self) -> bool:
        return self.value

    def __str__(self) -> str:
        return coerce_string(self.value)


class NumberPrim(PrimitiveWrapper):
    """A Plume number. Every number is stored as a float."""
    kind = "number"
    coerce = staticmethod(coerce_number)

    def __bool__(self) -> bool:
        return coerce_boolean(self.value)

    def __float__(self) -> float:
        return self.value

    def __int__(self) -> int:
        return int(self.value)

    def __str__(self) -> str:
        return _number_to_str(self.value)


# =================================================================
# Variables and scopes
# =================================================================

class Variable:
    """A single mutable slot holding one runtime value.

    Cells are the only unit of mutation in the scope model: two bindings that
    alias the same cell observe each other's writes.
    """
    __slots__ = ("value",)

    def __init__(self, value: Any = None):
        self.value = value

    def __repr__(self) -> str:
        return "<Variable>"


class Scope(collections.abc.Mapping):
    """A name -> Variable mapping representing one evaluation context.

    Scopes do not chain to a parent. A function's captured scope is a shallow
    snapshot of its defining scope, so captured cells alias the originals
    while new bindings made inside a call never leak back.
    """
    def __init__(self, cells: Optional[Mapping[str, Variable]] = None):
        self.cells: Dict[str, Variable] = dict(cells or {})

    def __getitem__(self, name: str) -> Variable:
        return self.cells[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def __contains__(self, name: Any) -> bool:
        return name in self.cells

    def lookup(self, name: str) -> Variable:
        try:
            return self.cells[name]
        except KeyError:
            raise VariableNotFound(name) from None

    def define(self, name: str, value: Any) -> Variable:
        """Bind a fresh cell under name, shadowing any previous binding."""
        cell = Variable(value)
        self.cells[name] = cell
        return cell

    def bind(self, name: str, cell: Variable):
        """Install an existing cell under name (used to seed builtins)."""
        self.cells[name] = cell

    def change(self, name: str, value: Any):
        """Overwrite the value of an existing cell in place."""
        self.lookup(name).value = value

    def snapshot(self) -> 'Scope':
        """Shallow copy: a new mapping sharing the same cells."""
        return Scope(self.cells)

    def values_dict(self) -> Dict[str, Any]:
        """Returns the current value of every binding, for introspection."""
        return {name: cell.value for name, cell in self.cells.items()}

    def __repr__(self) -> str:
        return f"<Scope names=[{', '.join(self.cells)}]>"


class Param:
    """One entry of a function's parameter specification."""
    NORMAL = "normal"
    UNEVALUATED = "unevaluated"
    MODES = (NORMAL, UNEVALUATED)

    def __init__(self, name: str, mode: str = NORMAL):
        if mode not in self.MODES:
            raise ValueError(f"Unknown passing mode {mode!r} for parameter {name!r}")
        self.name = name
        self.mode = mode

    @property
    def lazy(self) -> bool:
        return self.mode == self.UNEVALUATED

    @classmethod
    def coerce(cls, spec: Any) -> 'Param':
        """Accept a Param, a {name, mode|type} mapping, a [name, mode] pair or a bare name."""
        if isinstance(spec, Param):
            return spec
        if isinstance(spec, collections.abc.Mapping):
            return cls(spec["name"], spec.get("mode", spec.get("type", cls.NORMAL)))
        if isinstance(spec, (list, tuple)) and len(spec) == 2:
            return cls(spec[0], spec[1])
        if isinstance(spec, str):
            return cls(spec)
        raise ValueError(f"Invalid parameter specification: {spec!r}")

    def __eq__(self, other):
        return isinstance(other, Param) and self.name == other.name and self.mode == other.mode

    def __hash__(self):
        return hash((self.name, self.mode))

    def __repr__(self) -> str:
        return f"Param({self.name!r}, {self.mode!r})"


# =================================================================
# Constructors and prototype tables
# =================================================================

class Constructor:
    """A built-in type variant: its prototype table and optional parent.

    Prototype tables map method names to PlumeFunctions and are consulted only
    when an object's own data lacks the requested key.
    """
    def __init__(self, name: str, prototype: Optional[Dict[str, 'PlumeFunction']] = None,
                 parent: Optional['Constructor'] = None):
        self.name = name
        self.prototype: Dict[str, 'PlumeFunction'] = dict(prototype or {})
        self.parent = parent

    def chain(self) -> Iterator['Constructor']:
        """Yields this constructor and then each ancestor, nearest first."""
        current: Optional[Constructor] = self
        seen = set()
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            current = current.parent

    def lookup(self, key: str) -> Any:
        for ctor in self.chain():
            if key in ctor.prototype:
                return ctor.prototype[key]
        return None

    def __repr__(self) -> str:
        parent = f" < {self.parent.name}" if self.parent else ""
        return f"<Constructor {self.name}{parent}>"


CONSTRUCTORS: Dict[str, Constructor] = {}


def find_constructor(name: str) -> Constructor:
    try:
        return CONSTRUCTORS[name]
    except KeyError:
        raise LookupError(f"No constructor registered as {name!r}") from None


def register_constructor(name: str, prototype: Optional[Dict[str, 'PlumeFunction']] = None,
                         parent: Union[Constructor, str, None] = None) -> Constructor:
    """Registers a constructor with its prototype table and optional super-constructor.

    The parent may be given by its registered name.
    """
    if isinstance(parent, str):
        parent = find_constructor(parent)
    ctor = Constructor(name, prototype, parent)
    CONSTRUCTORS[name] = ctor
    return ctor


# =================================================================
# Runtime objects
# =================================================================

class PlumeValue(ABC):
    """The capability interface the evaluator programs against.

    Any value exposing get/set/call can stand in for an object.
    """
    @abstractmethod
    def get(self, key: Any) -> Any:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: Any, value: Any) -> Any:
        raise NotImplementedError

    def call(self, evaluator, arg_exprs: List[Any], scope: Scope) -> Any:
        err = TypeError(f"Object is not callable: {self!r}")
        err.plume_obj = self
        raise err


def default_get(obj: 'PlumeObject', key: Any) -> Any:
    name = key_string(key)
    if name in obj.data:
        return obj.data[name]
    value = obj.constructor.lookup(name)
    if isinstance(value, PlumeFunction):
        return value.bind(obj)
    return value


def default_set(obj: 'PlumeObject', key: Any, value: Any) -> Any:
    obj.data[key_string(key)] = value
    return value


class PlumeObject(PlumeValue):
    """A generic Plume object: a data map plus a constructor tag."""
    default_constructor: Optional[Constructor] = None

    def __init__(self, data: Optional[Mapping[str, Any]] = None,
                 constructor: Optional[Constructor] = None):
        self.data: Dict[str, Any] = {}
        self._constructor = constructor or self.default_constructor
        for key, value in (data or {}).items():
            self.data[key_string(key)] = value

    @property
    def constructor(self) -> Constructor:
        return self._constructor

    def get(self, key: Any) -> Any:
        return default_get(self, key)

    def set(self, key: Any, value: Any) -> Any:
        return default_set(self, key, value)

    def has(self, key: Any) -> bool:
        return key_string(key) in self.data

    def __repr__(self) -> str:
        keys = ', '.join(self.data)
        return f"<{self.constructor.name} data=[{keys}]>"


class PlumeArray(PlumeObject):
    """An object with a reserved numeric "length" key and index-keyed data."""

    def __init__(self, items: Optional[List[Any]] = None,
                 constructor: Optional[Constructor] = None):
        super().__init__(constructor=constructor)
        self.data["length"] = NumberPrim(0)
        for item in items or []:
            self.push(item)

    @property
    def length(self) -> int:
        return int(coerce_number(self.data.get("length")))

    def push(self, value: Any) -> int:
        n = self.length
        self.data[str(n)] = value
        self.data["length"] = NumberPrim(n + 1)
        return n + 1

    def pop(self) -> Any:
        n = self.length
        if n <= 0:
            return None
        value = self.data.pop(str(n - 1), None)
        self.data["length"] = NumberPrim(n - 1)
        return value

    def items(self) -> List[Any]:
        return [self.data.get(str(i)) for i in range(self.length)]


class PlumeFunction(PlumeObject):
    """A Plume function: either a native callable or a user-defined body.

    Native functions receive fully evaluated arguments. User-defined
    functions carry a parameter specification, a body of AST nodes and the
    scope snapshot captured when the function literal was evaluated.
    """
    def __init__(self, fn: Optional[Callable] = None, *, body: Optional[List[Any]] = None,
                 params: Optional[List[Any]] = None, closure: Optional[Scope] = None,
                 name: Optional[str] = None, constructor: Optional[Constructor] = None):
        super().__init__(constructor=constructor)
        self.fn = fn
        self.body = list(body) if body is not None else None
        if params is None and fn is not None:
            params = getattr(fn, "_plume_params", None)
        self.params: Optional[List[Param]] = (
            [Param.coerce(p) for p in params] if params is not None else None
        )
        self.closure = closure
        self.name = name or (getattr(fn, "__name__", None) if fn is not None else None)

    @property
    def is_native(self) -> bool:
        return self.fn is not None

    def call(self, evaluator, arg_exprs: List[Any], scope: Scope) -> Any:
        return evaluator.apply_function(self, arg_exprs, scope)

    def bind(self, receiver: Any) -> 'BoundMethod':
        """Returns a function that calls this one with receiver prepended to its arguments."""
        return BoundMethod(self, receiver)

    def __repr__(self) -> str:
        if self.is_native:
            return f"<Function native {self.name or '<anonymous>'}>"
        params = ', '.join(p.name for p in self.params or [])
        return f"<Function ({params})>"


class BoundMethod(PlumeFunction):
    """A prototype method paired with the object it was looked up on.

    There is no implicit receiver in Plume; calling a BoundMethod calls the
    target with the receiver as its first argument.
    """
    def __init__(self, target: PlumeFunction, receiver: Any):
        super().__init__(name=target.name)
        self.target = target
        self.receiver = receiver

    def __repr__(self) -> str:
        return f"<BoundMethod {self.target.name or '<anonymous>'} of {self.receiver!r}>"


def plume_params(*specs):
    """A decorator declaring the passing modes of a native function's parameters."""
    def decorate(func):
        func._plume_params = [Param.coerce(s) for s in specs]
        return func
    return decorate


# =================================================================
# Object model protocol
# =================================================================

def _require_value(obj: Any, action: str) -> PlumeValue:
    if not isinstance(obj, PlumeValue):
        err = TypeError(f"Cannot {action} property of {obj!r}")
        err.plume_obj = obj
        raise err
    return obj


def get_property(obj: Any, key: Any) -> Any:
    """Resolve key on obj: own data first, then the prototype chain; None on a miss."""
    return _require_value(obj, "get").get(key)


def set_property(obj: Any, key: Any, value: Any) -> Any:
    """Write key into obj's own data. Prototypes are never written."""
    return _require_value(obj, "set").set(key, value)


def has_property(obj: Any, key: Any) -> bool:
    """Own-data membership only; inherited methods do not count."""
    obj = _require_value(obj, "check")
    if isinstance(obj, PlumeObject):
        return obj.has(key)
    has = getattr(obj, "has", None)
    return bool(has(key)) if callable(has) else False


# =================================================================
# Built-in constructors
# =================================================================

def _array_push(self, value=None):
    return NumberPrim(self.push(value))


def _array_pop(self):
    return self.pop()


def _function_debug(self):
    from plume.plume_printer import Printer
    text = Printer().pformat(self)
    print("** DEBUG **", file=sys.stderr)
    print(text, file=sys.stderr)
    return StringPrim(text)


OBJECT = register_constructor("Object")
ARRAY = register_constructor("Array", parent=OBJECT)
FUNCTION = register_constructor("Function", parent=OBJECT)

PlumeObject.default_constructor = OBJECT
PlumeArray.default_constructor = ARRAY
PlumeFunction.default_constructor = FUNCTION

ARRAY.prototype.update({
    "push": PlumeFunction(_array_push, name="push"),
    "pop": PlumeFunction(_array_pop, name="pop"),
})
FUNCTION.prototype.update({
    "debug": PlumeFunction(_function_debug, name="debug"),
})
