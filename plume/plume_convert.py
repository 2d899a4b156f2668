"""
Conversion between host (Python) values and Plume values.

The primitive conversions are total: they never raise, coercing where the
input is not already of the requested kind.
"""
from typing import Any, Mapping, Optional, Sequence
import collections.abc

from plume.plume_datatypes import (
    PrimitiveWrapper, StringPrim, BooleanPrim, NumberPrim,
    PlumeValue, PlumeObject, PlumeArray, PlumeFunction, Scope,
    coerce_string, coerce_boolean, coerce_number,
)


# --- Host -> Plume primitives ---

def to_plume_string(value: Any) -> StringPrim:
    return StringPrim(value)


def to_plume_boolean(value: Any) -> BooleanPrim:
    return BooleanPrim(value)


def to_plume_number(value: Any) -> NumberPrim:
    return NumberPrim(value)


# --- Plume (or host) -> host primitives ---

def to_py_string(value: Any) -> str:
    """Accepts a wrapper or a raw host value and returns a Python str."""
    return coerce_string(value)


def to_py_boolean(value: Any) -> bool:
    return coerce_boolean(value)


def to_py_number(value: Any) -> float:
    return coerce_number(value)


# --- Structured values ---

def to_plume_object(data: Mapping[Any, Any]) -> PlumeObject:
    """Builds a generic object whose data holds the converted values of a mapping."""
    obj = PlumeObject()
    for key, value in data.items():
        obj.set(key, to_plume(value))
    return obj


def to_plume_array(items: Sequence[Any]) -> PlumeArray:
    return PlumeArray([to_plume(item) for item in items])


def to_plume(value: Any) -> Any:
    """Convert an arbitrary host value into a Plume value.

    Runtime values and None pass through unchanged; Python callables become
    native functions.
    """
    match value:
        case None:
            return None
        case PrimitiveWrapper() | PlumeValue():
            return value
        case bool():
            return BooleanPrim(value)
        case int() | float():
            return NumberPrim(value)
        case str():
            return StringPrim(value)
    if isinstance(value, collections.abc.Mapping):
        return to_plume_object(value)
    if isinstance(value, (list, tuple)):
        return to_plume_array(value)
    if callable(value):
        return PlumeFunction(value)
    return value


def to_py(value: Any, _active: Optional[set] = None) -> Any:
    """Convert a Plume value into plain Python data.

    Arrays become lists and objects become dicts; functions are returned
    unchanged since they have no data form. A container that contains itself
    has no data form either and raises ValueError.
    """
    match value:
        case StringPrim():
            return value.value
        case BooleanPrim():
            return value.value
        case NumberPrim():
            num = value.value
            return int(num) if num.is_integer() else num
        case PlumeFunction():
            return value
    if not isinstance(value, (PlumeObject, Scope, list, tuple, collections.abc.Mapping)):
        return value

    active = _active if _active is not None else set()
    if id(value) in active:
        raise ValueError(f"Cannot convert a cyclic value: {value!r}")
    active.add(id(value))
    try:
        match value:
            case PlumeArray():
                return [to_py(item, active) for item in value.items()]
            case PlumeObject():
                return {key: to_py(item, active) for key, item in value.data.items()}
            case list() | tuple():
                return [to_py(item, active) for item in value]
            case Scope():
                return {name: to_py(item, active) for name, item in value.values_dict().items()}
        return {key: to_py(item, active) for key, item in value.items()}
    finally:
        active.discard(id(value))


__all__ = [
    "to_plume_string", "to_plume_boolean", "to_plume_number",
    "to_py_string", "to_py_boolean", "to_py_number",
    "to_plume_object", "to_plume_array", "to_plume", "to_py",
]
