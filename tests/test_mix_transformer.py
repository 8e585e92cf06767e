import pytest

from mix.mix_transformer import MixTransformer, load_program
from mix.mix_ast import (
    Loc, Program, Block, IntegerLiteral, FloatLiteral, StringLiteral, CharLiteral,
    BooleanLiteral, NilLiteral, ArrayLiteral, MapLiteral, SetLiteral, RangeExpr,
    Identifier, Paren, Unary, Binary, Index, Slice, Member, Call, MethodCall,
    FunctionLiteral, New, Declaration, Assign, FunctionDecl, Return, BreakStmt,
    ContinueStmt, If, For, While, Foreach, Case, Switch, StructDecl, EnumMember,
    EnumDecl, Import
)

# --- Fixtures ---

@pytest.fixture(scope="module")
def transformer():
    """Returns a MixTransformer instance."""
    return MixTransformer()


def i(n):
    return {'tag': 'int', 'value': n}


def name(n):
    return {'tag': 'ident', 'name': n}


# --- Expressions ---

EXPRESSION_CASES = [
    ("int", i(3), IntegerLiteral(3)),
    ("float", {'tag': 'float', 'value': 1.5}, FloatLiteral(1.5)),
    ("string", {'tag': 'string', 'value': "hi"}, StringLiteral("hi")),
    ("char", {'tag': 'char', 'value': "c"}, CharLiteral("c")),
    ("bool", {'tag': 'bool', 'value': False}, BooleanLiteral(False)),
    ("nil", {'tag': 'nil'}, NilLiteral()),
    ("array", {'tag': 'array', 'elements': [i(1), i(2)]}, ArrayLiteral((IntegerLiteral(1), IntegerLiteral(2)))),
    ("empty_set", {'tag': 'set'}, SetLiteral(())),
    ("map", {'tag': 'map', 'pairs': [[{'tag': 'string', 'value': "k"}, i(1)]]},
     MapLiteral(((StringLiteral("k"), IntegerLiteral(1)),))),
    ("range", {'tag': 'range', 'start': i(1), 'end': i(5)}, RangeExpr(IntegerLiteral(1), IntegerLiteral(5))),
    ("paren", {'tag': 'paren', 'expr': name("x")}, Paren(Identifier("x"))),
    ("unary", {'tag': 'unary', 'op': '-', 'operand': i(1)}, Unary('-', IntegerLiteral(1))),
    ("binary", {'tag': 'binary', 'op': '+', 'left': i(1), 'right': name("y")},
     Binary('+', IntegerLiteral(1), Identifier("y"))),
    ("index", {'tag': 'index', 'target': name("a"), 'index': i(0)}, Index(Identifier("a"), IntegerLiteral(0))),
    ("open_slice", {'tag': 'slice', 'target': name("a"), 'end': i(2)}, Slice(Identifier("a"), None, IntegerLiteral(2))),
    ("member", {'tag': 'member', 'target': name("p"), 'name': "x"}, Member(Identifier("p"), "x")),
    ("call", {'tag': 'call', 'name': "f", 'args': [i(1)]}, Call("f", (IntegerLiteral(1),))),
    ("method_call", {'tag': 'method-call', 'target': name("o"), 'name': "m"}, MethodCall(Identifier("o"), "m", ())),
    ("func", {'tag': 'func', 'params': ["x"], 'body': [name("x")]},
     FunctionLiteral(("x",), Block((Identifier("x"),)))),
    ("new", {'tag': 'new', 'struct': "Point", 'args': [i(1), i(2)]}, New("Point", (IntegerLiteral(1), IntegerLiteral(2)))),
]


@pytest.mark.parametrize("case_id, tree, expected", EXPRESSION_CASES, ids=[c[0] for c in EXPRESSION_CASES])
def test_expressions(transformer, case_id, tree, expected):
    assert transformer.transform(tree) == expected


# --- Statements ---

STATEMENT_CASES = [
    ("var_without_value", {'tag': 'var', 'name': "a"}, Declaration('var', "a", None)),
    ("const", {'tag': 'const', 'name': "c", 'value': i(1)}, Declaration('const', "c", IntegerLiteral(1))),
    ("assign_default_op", {'tag': 'assign', 'target': name("a"), 'value': i(2)},
     Assign('=', Identifier("a"), IntegerLiteral(2))),
    ("compound_assign", {'tag': 'assign', 'op': '+=', 'target': name("a"), 'value': i(2)},
     Assign('+=', Identifier("a"), IntegerLiteral(2))),
    ("func_decl", {'tag': 'func-decl', 'name': "f", 'params': ["a"], 'body': [{'tag': 'return', 'value': name("a")}]},
     FunctionDecl("f", ("a",), Block((Return(Identifier("a")),)))),
    ("bare_return", {'tag': 'return'}, Return(None)),
    ("break", {'tag': 'break'}, BreakStmt()),
    ("continue", {'tag': 'continue'}, ContinueStmt()),
    ("foreach", {'tag': 'foreach', 'name': "v", 'iterable': name("xs"), 'body': []},
     Foreach("v", Identifier("xs"), Block())),
    ("import_alias", {'tag': 'import', 'name': "math", 'alias': "m"}, Import("math", "m")),
]


@pytest.mark.parametrize("case_id, tree, expected", STATEMENT_CASES, ids=[c[0] for c in STATEMENT_CASES])
def test_statements(transformer, case_id, tree, expected):
    assert transformer.transform(tree) == expected


def test_if_with_else_if_chain(transformer):
    tree = {
        'tag': 'if', 'condition': name("a"), 'then': [i(1)],
        'else': {'tag': 'if', 'condition': name("b"), 'then': [i(2)], 'else': [i(3)]},
    }
    expected = If(
        Identifier("a"), Block((IntegerLiteral(1),)),
        If(Identifier("b"), Block((IntegerLiteral(2),)), Block((IntegerLiteral(3),))),
    )
    assert transformer.transform(tree) == expected


def test_for_loop(transformer):
    tree = {
        'tag': 'for',
        'init': [{'tag': 'var', 'name': "i", 'value': i(0)}],
        'condition': {'tag': 'binary', 'op': '<', 'left': name("i"), 'right': i(3)},
        'update': [{'tag': 'assign', 'op': '+=', 'target': name("i"), 'value': i(1)}],
        'body': {'tag': 'block', 'body': [name("i")]},
    }
    result = transformer.transform(tree)
    assert isinstance(result, For)
    assert result.initializers == (Declaration('var', "i", IntegerLiteral(0)),)
    assert result.updates == (Assign('+=', Identifier("i"), IntegerLiteral(1)),)
    assert result.body == Block((Identifier("i"),))


def test_while_accepts_single_or_many_conditions(transformer):
    single = transformer.transform({'tag': 'while', 'condition': name("a"), 'body': []})
    many = transformer.transform({'tag': 'while', 'conditions': [name("a"), name("b")]})
    assert isinstance(single, While)
    assert single.conditions == (Identifier("a"),)
    assert many.conditions == (Identifier("a"), Identifier("b"))


def test_switch(transformer):
    tree = {
        'tag': 'switch', 'subject': name("x"),
        'cases': [{'value': i(1), 'body': [{'tag': 'break'}]}],
        'default': [i(0)],
    }
    expected = Switch(
        Identifier("x"),
        (Case(IntegerLiteral(1), Block((BreakStmt(),))),),
        Block((IntegerLiteral(0),)),
    )
    assert transformer.transform(tree) == expected


def test_struct_and_enum(transformer):
    tree = {
        'tag': 'struct', 'name': "P",
        'fields': [{'tag': 'var', 'name': "n", 'value': i(0)}],
        'methods': [{'tag': 'func-decl', 'name': "get", 'body': [{'tag': 'return', 'value': name("n")}]}],
    }
    expected = StructDecl(
        "P",
        (Declaration('var', "n", IntegerLiteral(0)),),
        (FunctionDecl("get", (), Block((Return(Identifier("n")),))),),
    )
    assert transformer.transform(tree) == expected

    enum = transformer.transform({'tag': 'enum', 'name': "E", 'members': ["A", {'name': "B", 'value': 10}]})
    assert enum == EnumDecl("E", (EnumMember("A"), EnumMember("B", 10)))


def test_locations_are_attached(transformer):
    node = transformer.transform({'tag': 'ident', 'name': "x", 'line': 3, 'col': 9})
    assert node.loc == Loc(3, 9)
    assert transformer.transform({'tag': 'ident', 'name': "x", 'line': 3}).loc is None


def test_program_and_lists(transformer):
    prog = transformer.transform({'tag': 'program', 'body': [i(1)]})
    assert prog == Program((IntegerLiteral(1),))
    assert transformer.transform([i(1), i(2)]) == [IntegerLiteral(1), IntegerLiteral(2)]


@pytest.mark.parametrize("tree, message", [
    ({'tag': 'wat'}, "unknown node tag"),
    ({'tag': 'ident'}, "'ident' node is missing 'name'"),
    ({'tag': 'char', 'value': "ab"}, "char literal must be one character"),
    (42, "expected a tagged node"),
])
def test_malformed_trees(transformer, tree, message):
    with pytest.raises(ValueError, match=message):
        transformer.transform(tree)


def test_load_program_from_json_and_yaml():
    from_json = load_program('[{"tag": "int", "value": 1}]')
    assert from_json == Program((IntegerLiteral(1),))
    from_yaml = load_program("tag: string\nvalue: hi\n")
    assert from_yaml == Program((StringLiteral("hi"),))
    wrapped = load_program('{"tag": "program", "body": []}')
    assert wrapped == Program(())
