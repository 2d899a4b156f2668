import math

import pytest

from plume.plume_datatypes import (
    StringPrim, BooleanPrim, NumberPrim, Variable, Scope, Param, VariableNotFound,
    PlumeObject, PlumeArray, PlumeFunction, BoundMethod, PlumeValue,
    register_constructor, find_constructor, get_property, set_property, has_property,
    coerce_string, coerce_boolean, coerce_number, key_string, ARRAY, OBJECT, FUNCTION,
)
from plume.plume_interpreter import Evaluator

# --- Primitive wrapper tests ---

def test_string_prim_coerces_on_write():
    w = StringPrim("a")
    w.value = 12
    assert w.value == "12"
    w.value = True
    assert w.value == "true"
    w.value = None
    assert w.value == "none"
    w.value = 7.0
    assert w.value == "7"
    w.value = 0.75
    assert w.value == "0.75"


def test_number_prim_coerces_on_write():
    assert NumberPrim("3.5").value == 3.5
    assert NumberPrim(" 4 ").value == 4.0
    assert NumberPrim("").value == 0.0
    assert NumberPrim(True).value == 1.0
    assert isinstance(NumberPrim(3).value, float)
    assert math.isnan(NumberPrim("abc").value)
    assert math.isnan(NumberPrim(None).value)


def test_boolean_prim_coerces_on_write():
    assert BooleanPrim("").value is False
    assert BooleanPrim("x").value is True
    assert BooleanPrim(0).value is False
    assert BooleanPrim(None).value is False
    assert BooleanPrim(NumberPrim(math.nan)).value is False
    assert BooleanPrim(StringPrim("no")).value is True


def test_reads_recoerce_even_if_storage_is_tampered_with():
    w = StringPrim("a")
    w._value = 5  # bypass the setter
    assert w.value == "5"
    n = NumberPrim(1)
    n._value = "2"
    assert n.value == 2.0


@pytest.mark.parametrize("raw", [0, 1.5, 7.0, "x", "", True, False, None, NumberPrim(3), StringPrim("s")])
def test_coercion_is_idempotent(raw):
    assert coerce_string(coerce_string(raw)) == coerce_string(raw)
    assert coerce_boolean(coerce_boolean(raw)) == coerce_boolean(raw)
    once = coerce_number(raw)
    twice = coerce_number(once)
    if math.isnan(once):
        assert math.isnan(twice)
    else:
        assert twice == once


def test_wrapper_equality_and_hashing():
    assert NumberPrim(7) == 7
    assert NumberPrim(7) == NumberPrim(7.0)
    assert NumberPrim(1) != BooleanPrim(True)
    assert StringPrim("a") == "a"
    assert len({StringPrim("a"), StringPrim("a"), StringPrim("b")}) == 2
    assert str(NumberPrim(3)) == "3"
    assert str(BooleanPrim(False)) == "false"
    assert not NumberPrim(0)


def test_key_string_normalizes_numeric_keys():
    assert key_string(0) == "0"
    assert key_string(NumberPrim(2)) == "2"
    assert key_string(StringPrim("k")) == "k"

# --- Variable and Scope tests ---

def test_define_then_read():
    scope = Scope()
    scope.define("x", NumberPrim(1))
    assert scope.lookup("x").value == 1


def test_define_again_shadows_without_touching_the_old_cell():
    scope = Scope()
    first = scope.define("x", 1)
    alias = scope.snapshot()
    scope.define("x", 2)
    assert scope.lookup("x").value == 2
    assert alias.lookup("x").value == 1
    assert first.value == 1
    assert scope.lookup("x") is not first


def test_change_requires_an_existing_cell():
    scope = Scope()
    with pytest.raises(VariableNotFound) as ei:
        scope.change("y", 1)
    assert ei.value.name == "y"
    assert "y" in str(ei.value)


def test_change_is_visible_through_every_alias():
    scope = Scope()
    scope.define("y", 1)
    snap = scope.snapshot()
    scope.change("y", 5)
    assert snap.lookup("y").value == 5
    snap.change("y", 6)
    assert scope.lookup("y").value == 6


def test_snapshot_bindings_do_not_leak_back():
    scope = Scope()
    snap = scope.snapshot()
    snap.define("z", 1)
    assert "z" in snap
    assert "z" not in scope


def test_scope_mapping_interface():
    scope = Scope({"a": Variable(1)})
    scope.bind("b", Variable(2))
    assert sorted(scope) == ["a", "b"]
    assert len(scope) == 2
    assert scope["a"].value == 1
    assert scope.values_dict() == {"a": 1, "b": 2}
    with pytest.raises(VariableNotFound):
        scope.lookup("c")

# --- Param tests ---

def test_param_coerce_accepts_several_shapes():
    assert Param.coerce("a") == Param("a", "normal")
    assert Param.coerce({"name": "b", "type": "unevaluated"}) == Param("b", "unevaluated")
    assert Param.coerce({"name": "c", "mode": "normal"}) == Param("c")
    assert Param.coerce(["d", "unevaluated"]).lazy
    p = Param("e")
    assert Param.coerce(p) is p


def test_param_rejects_unknown_modes():
    with pytest.raises(ValueError):
        Param("a", "sometimes")
    with pytest.raises(ValueError):
        Param.coerce(42)

# --- Object model tests ---

def test_get_own_data_and_silent_miss():
    obj = PlumeObject({"a": NumberPrim(1)})
    assert get_property(obj, "a") == 1
    assert get_property(obj, StringPrim("a")) == 1
    assert get_property(obj, "missing") is None


def test_set_stringifies_keys():
    obj = PlumeObject()
    set_property(obj, NumberPrim(0), StringPrim("zero"))
    set_property(obj, 1, StringPrim("one"))
    assert obj.data == {"0": "zero", "1": "one"}
    assert has_property(obj, 0)
    assert has_property(obj, "1")


def test_has_ignores_inherited_methods():
    arr = PlumeArray()
    assert has_property(arr, "length")
    assert not has_property(arr, "push")
    assert isinstance(get_property(arr, "push"), BoundMethod)


def test_own_data_shadows_prototype():
    arr = PlumeArray()
    set_property(arr, "push", NumberPrim(1))
    assert get_property(arr, "push") == 1
    # The prototype itself is untouched
    assert isinstance(ARRAY.prototype["push"], PlumeFunction)


def test_nearest_prototype_wins_and_methods_are_bound():
    base = register_constructor("TestBase", {
        "greet": PlumeFunction(lambda self: "base"),
        "only": PlumeFunction(lambda self: "only-base"),
    })
    child = register_constructor("TestChild", {
        "greet": PlumeFunction(lambda self: "child"),
    }, parent=base)
    obj = PlumeObject(constructor=child)

    greet = get_property(obj, "greet")
    assert isinstance(greet, BoundMethod)
    assert greet.target is child.prototype["greet"]
    assert greet.receiver is obj

    ev = Evaluator()
    assert ev.call_values(greet, []) == "child"
    assert ev.call_values(get_property(obj, "only"), []) == "only-base"
    # A fresh function object is synthesized on every lookup
    assert get_property(obj, "greet") is not greet


def test_prototype_non_function_values_are_returned_as_is():
    ctor = register_constructor("WithConstant", {"answer": NumberPrim(42)})
    obj = PlumeObject(constructor=ctor)
    assert get_property(obj, "answer") == 42
    assert not has_property(obj, "answer")


def test_constructor_chain_is_nearest_first():
    assert [c.name for c in ARRAY.chain()] == ["Array", "Object"]
    assert FUNCTION.parent is OBJECT
    assert OBJECT.lookup("nothing") is None


def test_array_push_and_pop_through_the_protocol():
    arr = PlumeArray()
    ev = Evaluator()
    assert ev.call_values(get_property(arr, "push"), [StringPrim("a")]) == 1
    ev.call_values(get_property(arr, "push"), [StringPrim("b")])
    assert arr.length == 2
    assert get_property(arr, 0) == "a"
    assert get_property(arr, "length") == 2

    assert ev.call_values(get_property(arr, "pop"), []) == "b"
    assert arr.items() == ["a"]
    arr.pop()
    assert arr.pop() is None
    assert arr.length == 0


def test_property_access_on_primitives_is_a_type_error():
    with pytest.raises(TypeError):
        get_property(NumberPrim(1), "x")
    with pytest.raises(TypeError):
        set_property(None, "x", 1)


def test_generic_objects_are_not_callable():
    with pytest.raises(TypeError, match="not callable"):
        Evaluator().call(PlumeObject(), [], Scope())


def test_function_debug_writes_to_stderr(capsys):
    fn = PlumeFunction(body=[], params=[Param("a")])
    text = Evaluator().call_values(get_property(fn, "debug"), [])
    assert text == "fn(a) {0 nodes}"
    err = capsys.readouterr().err
    assert "** DEBUG **" in err
    assert "fn(a) {0 nodes}" in err


def test_custom_values_implement_the_capability_interface():
    class Fixed(PlumeValue):
        def get(self, key):
            return StringPrim(f"got {key}")

        def set(self, key, value):
            return value

    fixed = Fixed()
    assert get_property(fixed, "k") == "got k"
    assert set_property(fixed, "k", 1) == 1
    assert has_property(fixed, "k") is False


def test_integers_beyond_the_double_range_saturate():
    assert coerce_number(10**400) == math.inf
    assert coerce_number(-10**400) == -math.inf
    assert NumberPrim(10**400).value == math.inf
    assert coerce_string(10**400) == "Infinity"
    assert StringPrim(-10**400).value == "-Infinity"


@pytest.mark.parametrize("text", ["1_000", "inf", "-inf", "nan", "NaN", "infinity", "1e3_0"])
def test_non_numeric_spellings_parse_as_nan(text):
    assert math.isnan(coerce_number(text))


def test_infinity_spelling_parses():
    assert coerce_number("Infinity") == math.inf
    assert coerce_number("-Infinity") == -math.inf
    assert coerce_number(coerce_string(-math.inf)) == -math.inf


def test_wrappers_hash_like_the_raw_values_they_equal():
    assert hash(StringPrim("a")) == hash("a")
    assert hash(NumberPrim(2)) == hash(2)
    assert {"a": 1}[StringPrim("a")] == 1
    assert StringPrim("b") in {"b"}
    assert NumberPrim(3) in {3: "three"}


def test_parent_constructor_by_registered_name():
    base = register_constructor("NamedBase", {"kind": NumberPrim(1)})
    child = register_constructor("NamedChild", parent="NamedBase")
    assert child.parent is base
    assert find_constructor("NamedChild") is child
    assert get_property(PlumeObject(constructor=child), "kind") == 1
    assert find_constructor("Array") is ARRAY
    with pytest.raises(LookupError):
        register_constructor("Orphan", parent="NoSuchConstructor")
