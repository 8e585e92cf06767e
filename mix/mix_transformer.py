"""
Transforms a tagged-dict syntax tree into mix_ast nodes.

The tree is what an external parser emits (or what a host writes by hand
as JSON/YAML): every node is a dict with a ``tag`` plus named children and,
optionally, ``line``/``col``. Lists of statements become Blocks.
"""

from mix.mix_ast import (
    Loc, Program, Block, IntegerLiteral, FloatLiteral, StringLiteral, CharLiteral,
    BooleanLiteral, NilLiteral, ArrayLiteral, MapLiteral, SetLiteral, RangeExpr,
    Identifier, Paren, Unary, Binary, Index, Slice, Member, Call, MethodCall,
    FunctionLiteral, New, Declaration, Assign, FunctionDecl, Return, BreakStmt,
    ContinueStmt, If, For, While, Foreach, Case, Switch, StructDecl, EnumMember,
    EnumDecl, Import
)
from mix.mix_serialize import load_text


class MixTransformer:
    def _loc(self, node):
        line = node.get('line')
        col = node.get('col')
        if line is not None and col is not None:
            return Loc(line, col)
        return None

    def _many(self, nodes):
        return tuple(self.transform(n) for n in (nodes or []))

    def _optional(self, node):
        return None if node is None else self.transform(node)

    def _block(self, node):
        if isinstance(node, list):
            return Block(self._many(node))
        if isinstance(node, dict) and node.get('tag') == 'block':
            return self.transform(node)
        if node is None:
            return Block()
        return Block((self.transform(node),))

    def _field(self, node, key):
        if key not in node:
            raise ValueError(f"'{node.get('tag')}' node is missing '{key}'")
        return node[key]

    def transform(self, node: object) -> object:
        # Lists: transform each item
        if isinstance(node, list):
            return [self.transform(n) for n in node]
        if not isinstance(node, dict):
            raise ValueError(f"expected a tagged node, got {type(node).__name__}")

        tag = node.get('tag')
        loc = self._loc(node)
        f = lambda key: self._field(node, key)

        match tag:
            # Structure
            case 'program':
                return Program(self._many(node.get('body')), loc=loc)
            case 'block':
                return Block(self._many(node.get('body')), loc=loc)

            # Literals
            case 'int':
                return IntegerLiteral(int(f('value')), loc=loc)
            case 'float':
                return FloatLiteral(float(f('value')), loc=loc)
            case 'string':
                return StringLiteral(str(f('value')), loc=loc)
            case 'char':
                value = str(f('value'))
                if len(value) != 1:
                    raise ValueError(f"char literal must be one character, got {value!r}")
                return CharLiteral(value, loc=loc)
            case 'bool':
                return BooleanLiteral(bool(f('value')), loc=loc)
            case 'nil':
                return NilLiteral(loc=loc)
            case 'array':
                return ArrayLiteral(self._many(node.get('elements')), loc=loc)
            case 'set':
                return SetLiteral(self._many(node.get('elements')), loc=loc)
            case 'map':
                pairs = tuple((self.transform(k), self.transform(v)) for k, v in node.get('pairs') or [])
                return MapLiteral(pairs, loc=loc)
            case 'range':
                return RangeExpr(self.transform(f('start')), self.transform(f('end')), loc=loc)

            # Expressions
            case 'ident':
                return Identifier(f('name'), loc=loc)
            case 'paren':
                return Paren(self.transform(f('expr')), loc=loc)
            case 'unary':
                return Unary(f('op'), self.transform(f('operand')), loc=loc)
            case 'binary':
                return Binary(f('op'), self.transform(f('left')), self.transform(f('right')), loc=loc)
            case 'index':
                return Index(self.transform(f('target')), self.transform(f('index')), loc=loc)
            case 'slice':
                return Slice(self.transform(f('target')), self._optional(node.get('start')),
                             self._optional(node.get('end')), loc=loc)
            case 'member':
                return Member(self.transform(f('target')), f('name'), loc=loc)
            case 'call':
                return Call(f('name'), self._many(node.get('args')), loc=loc)
            case 'method-call':
                return MethodCall(self.transform(f('target')), f('name'), self._many(node.get('args')), loc=loc)
            case 'func':
                return FunctionLiteral(tuple(node.get('params') or ()), self._block(node.get('body')), loc=loc)
            case 'new':
                return New(f('struct'), self._many(node.get('args')), loc=loc)

            # Statements
            case 'var' | 'let' | 'const':
                return Declaration(tag, f('name'), self._optional(node.get('value')), loc=loc)
            case 'assign':
                return Assign(node.get('op', '='), self.transform(f('target')), self.transform(f('value')), loc=loc)
            case 'func-decl':
                return FunctionDecl(f('name'), tuple(node.get('params') or ()), self._block(node.get('body')), loc=loc)
            case 'return':
                return Return(self._optional(node.get('value')), loc=loc)
            case 'break':
                return BreakStmt(loc=loc)
            case 'continue':
                return ContinueStmt(loc=loc)
            case 'if':
                alternative = node.get('else')
                if isinstance(alternative, dict) and alternative.get('tag') == 'if':
                    alternative = self.transform(alternative)
                elif alternative is not None:
                    alternative = self._block(alternative)
                return If(self.transform(f('condition')), self._block(node.get('then')), alternative, loc=loc)
            case 'for':
                return For(self._many(node.get('init')), self._optional(node.get('condition')),
                           self._many(node.get('update')), self._block(node.get('body')), loc=loc)
            case 'while':
                conditions = node.get('conditions')
                if conditions is None:
                    conditions = [f('condition')]
                return While(self._many(conditions), self._block(node.get('body')), loc=loc)
            case 'foreach':
                return Foreach(f('name'), self.transform(f('iterable')), self._block(node.get('body')), loc=loc)
            case 'switch':
                cases = tuple(
                    Case(self.transform(self._field(c, 'value')), self._block(c.get('body')), loc=self._loc(c))
                    for c in node.get('cases') or []
                )
                default = node.get('default')
                return Switch(self.transform(f('subject')), cases,
                              None if default is None else self._block(default), loc=loc)
            case 'struct':
                return StructDecl(f('name'), self._many(node.get('fields')), self._many(node.get('methods')), loc=loc)
            case 'enum':
                members = []
                for m in node.get('members') or []:
                    if isinstance(m, str):
                        members.append(EnumMember(m))
                    else:
                        members.append(EnumMember(self._field(m, 'name'), m.get('value'), loc=self._loc(m)))
                return EnumDecl(f('name'), tuple(members), loc=loc)
            case 'import':
                return Import(f('name'), node.get('alias'), loc=loc)

        raise ValueError(f"unknown node tag: {tag!r}")


def load_program(text: str, fmt=None) -> Program:
    """Builds a Program from JSON or YAML text of a tagged tree."""
    tree = load_text(text, fmt=fmt)
    node = MixTransformer().transform(tree)
    if isinstance(node, list):
        return Program(tuple(node))
    if not isinstance(node, Program):
        return Program((node,))
    return node
