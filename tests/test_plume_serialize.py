import pytest

from plume.plume_serialize import detect_format, deserialize, serialize, load_ast
from plume.plume_convert import to_plume
from plume.plume_datatypes import PlumeObject, PlumeFunction, NumberPrim


@pytest.mark.parametrize("filename, hint, expected", [
    ("prog.json", None, "json"),
    ("PROG.YML", None, "yaml"),
    ("prog.yaml", "[1]", "yaml"),
    (None, "  [1, 2]", "json"),
    (None, '{"a": 1}', "json"),
    (None, "a: 1", "yaml"),
    (None, "   ", None),
    (None, None, None),
])
def test_detect_format(filename, hint, expected):
    assert detect_format(filename, hint) == expected


def test_deserialize_json_and_yaml():
    assert deserialize('{"a": 1}') == {"a": 1}
    assert deserialize("a: 1\nb: [x, y]\n", filename="data.yaml") == {"a": 1, "b": ["x", "y"]}
    assert deserialize(b"[1, 2]") == [1, 2]


def test_declared_json_falls_back_to_yaml():
    assert deserialize("[a, b]", fmt="json") == ["a", "b"]


def test_deserialize_rejects_unknown_formats():
    with pytest.raises(ValueError):
        deserialize("a = 1", fmt="toml")


def test_serialize_plume_values():
    value = to_plume({"a": [1, "x"], "ok": True})
    assert serialize(value, fmt="json", pretty=False) == '{"a": [1, "x"], "ok": true}'
    assert serialize(PlumeObject({"a": NumberPrim(1)}), fmt="yaml") == "a: 1\n"


def test_serialize_pretty_json_is_indented():
    assert serialize({"a": 1}, fmt="json") == '{\n  "a": 1\n}'


def test_functions_serialize_as_text():
    assert serialize(PlumeFunction(len), fmt="json") == '"<Function native len>"'


def test_serialize_rejects_unknown_formats():
    with pytest.raises(ValueError):
        serialize(1, fmt="xml")


def test_load_ast_shapes():
    assert load_ast("") == []
    assert load_ast("[]") == []
    assert load_ast('["number", 1]') == [["number", 1]]
    assert load_ast('[["number", 1], ["string", "a"]]') == [["number", 1], ["string", "a"]]
    assert load_ast("- [read, x]\n", filename="prog.yml") == [["read", "x"]]


def test_load_ast_rejects_non_lists():
    with pytest.raises(ValueError):
        load_ast('{"a": 1}')
    with pytest.raises(ValueError):
        load_ast("just text")
