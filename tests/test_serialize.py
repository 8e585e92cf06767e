import pytest
from mix.mix_serialize import serialize, deserialize, detect_format, load_text, to_builtin, from_builtin
from mix.mix_datatypes import (
    Integer, Float, String, Char, Boolean, Array, List, Tuple, Map, Set, Range, Struct,
    ObjectInstance, Error, NIL
)


def test_json_roundtrip():
    value = {"a": 1, "b": [1, 2, "x"], "c": {"d": True}}
    s = serialize(value, fmt="json")
    out = deserialize(s)  # JSON is sniffed from leading "{"
    assert isinstance(out, Map)
    assert to_builtin(out) == value


def test_yaml_roundtrip_content_type():
    value = {"a": 1, "b": ["x", "y"], "c": {"d": 2.5}}
    s = serialize(value, fmt="yaml")
    out = deserialize(s, content_type="application/x-yaml")
    assert to_builtin(out) == value


def test_yaml_with_json_content_type_fallback():
    # YAML payload mislabeled as JSON should still load via fallback to YAML
    yaml_text = "a: 1\nb: [x, y]\n"
    out = deserialize(yaml_text, content_type="application/json")
    assert to_builtin(out) == {"a": 1, "b": ["x", "y"]}


def test_serialize_mix_values():
    m = Map()
    m.put(String("xs"), Array([Integer(1), Float(2.5), NIL]))
    m.put(Integer(3), Boolean(False))
    assert serialize(m) == '{"xs": [1, 2.5, null], "3": false}'
    assert serialize(Range(1, 3), fmt="yaml") == "- 1\n- 2\n- 3\n"


def test_pretty_json():
    assert serialize({"a": 1}, pretty=True) == '{\n  "a": 1\n}'


def test_unsupported_formats_raise():
    with pytest.raises(ValueError):
        serialize({"a": 1}, fmt="toml")
    with pytest.raises(ValueError):
        load_text("a = 1", fmt="toml")


def test_invalid_yaml_raises_value_error():
    with pytest.raises(ValueError):
        load_text("a: [1, 2", fmt="yaml")


@pytest.mark.parametrize("content_type,hint,expected", [
    ("application/json", None, "json"),
    ("text/yaml; charset=utf-8", None, "yaml"),
    (None, '  {"a": 1}', "json"),
    (None, "[1, 2]", "json"),
    (None, "---\na: 1", "yaml"),
    (None, "key: value\nother: 2", "yaml"),
    (None, "plain words", None),
    (None, None, None),
])
def test_detect_format(content_type, hint, expected):
    assert detect_format(content_type, hint) == expected


def test_bytes_input_is_decoded():
    out = deserialize(b'{"name": "caf\xc3\xa9"}')
    assert to_builtin(out) == {"name": "café"}


def test_to_builtin_covers_collections_and_objects():
    assert to_builtin(List([Integer(1)])) == [1]
    assert to_builtin(Tuple([String("a")])) == ["a"]
    assert to_builtin(Set([Integer(2), Integer(2)])) == [2]
    assert to_builtin(Char("z")) == "z"
    point = Struct("Point")
    point.class_fields["dims"] = Integer(2)
    instance = ObjectInstance(point)
    instance.fields["x"] = Integer(5)
    assert to_builtin(instance) == {"dims": 2, "x": 5}
    assert to_builtin(Error("bad", 1, 2)) == {"error": "[1:2] ERROR: bad"}
    assert to_builtin(point) == "struct(Point)"


def test_from_builtin():
    assert from_builtin(None) is NIL
    assert from_builtin(True) == Boolean(True)
    assert from_builtin(7) == Integer(7)
    assert from_builtin((1, "a")) == Array([Integer(1), String("a")])
    assert isinstance(from_builtin({1, 2}), Set)
    m = from_builtin({1: "one"})
    assert m.pairs == {"1": String("one")}
    with pytest.raises(TypeError):
        from_builtin(object())
