import pytest
from mix.mix_printer import Printer, pformat
from mix.mix_datatypes import (
    Nil, Boolean, Integer, Float, String, Char, Array, List, Tuple, Map, Set, Range,
    Function, Builtin, Package, Struct, ObjectInstance, Enum, Error, ReturnValue, BREAK, CONTINUE
)
from mix.mix_ast import Block


@pytest.fixture
def printer():
    return Printer(indent_width=2)


def _map(**pairs):
    m = Map()
    for k, v in pairs.items():
        m.put(String(k), v)
    return m


# Test cases: (id, object, expected_string)
FORMAT_TEST_CASES = [
    ("int", Integer(42), "<int(42)>"),
    ("negative_float", Float(-1.5), "<float(-1.500000)>"),
    ("string", String("hi"), "<string(hi)>"),
    ("char", Char("x"), "<char(x)>"),
    ("bool", Boolean(True), "<bool(true)>"),
    ("nil", Nil(), "<nil()>"),
    ("empty_array", Array(), "<array([])>"),
    ("nested_array", Array([Integer(1), Array([String("a")])]), "<array([<int(1)>, <array([<string(a)>])>])>"),
    ("list", List([Integer(1), Integer(2)]), "<list(<int(1)>, <int(2)>)>"),
    ("tuple", Tuple([Boolean(False)]), "<tuple(<bool(false)>)>"),
    ("empty_map", Map(), "<map{}>"),
    ("map", _map(a=Integer(1), b=String("x")), "<map{a: <int(1)>, b: <string(x)>}>"),
    ("empty_set", Set(), "<set{}>"),
    ("set", Set([Integer(1), Integer(2), Integer(1)]), "<set{1, 2}>"),
    ("range", Range(3, 1), "<range(3,1)>"),
    ("function", Function("add", ["a", "b"], Block(), None), "<func[add(a, b)]>"),
    ("anonymous_function", Function("", [], Block(), None), "<func[()]>"),
    ("builtin", Builtin("print", print), "<builtin(print)>"),
    ("package", Package("math", {"sqrt": None, "abs": None}), "<package(math: abs, sqrt)>"),
    ("enum", Enum("Color", {"RED": Integer(0)}), "<enum(Color)>"),
    ("error", Error("boom", 2, 4), "<error([2:4] ERROR: boom)>"),
    ("return_value", ReturnValue(Integer(7)), "<int(7)>"),
    ("break", BREAK, "<break>"),
    ("continue", CONTINUE, "<continue>"),
]


@pytest.mark.parametrize("case_id, obj, expected", FORMAT_TEST_CASES, ids=[c[0] for c in FORMAT_TEST_CASES])
def test_pformat(printer, case_id, obj, expected):
    assert printer.pformat(obj) == expected


def test_struct_is_multiline(printer):
    s = Struct("Point")
    s.methods["init"] = Function("init", ["x"], Block(), None)
    s.methods["norm"] = Function("norm", [], Block(), None)
    assert printer.pformat(s) == "struct(Point) {\n  init\n  norm}"


def test_struct_indent_width():
    s = Struct("P")
    s.methods["m"] = Function("m", [], Block(), None)
    assert Printer(indent_width=4).pformat(s) == "struct(P) {\n    m}"


def test_object_instance(printer):
    assert printer.pformat(ObjectInstance(Struct("Point"))) == "<object(Point)>"


def test_unknown_values_fall_back_to_repr(printer):
    assert printer.pformat(3) == "3"


def test_module_level_pformat():
    assert pformat(Array([Integer(1)])) == "<array([<int(1)>])>"


def test_debug_trace_formats_values(evaluator, monkeypatch, capsys):
    from mix_builders import prog, struct, fndecl, ret, ident, call
    monkeypatch.setenv("MIX_DEBUG", "1")
    evaluator.eval(prog(struct("Point"), fndecl("echo", ["x"], ret(ident("x"))), call("echo", 7)))
    err = capsys.readouterr().err
    assert "[DBG] STRUCT struct(Point) {" in err
    assert "[DBG] CALL echo <int(7)> depth 1" in err
