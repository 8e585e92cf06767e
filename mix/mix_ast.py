"""
Immutable syntax tree node kinds consumed by the Mix evaluator.

Nodes are frozen dataclasses so the evaluator can dispatch on them with
``match`` statements. Child sequences are tuples. Every node may carry a
source location (``loc``) used to position error messages; it takes no part
in node equality.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Loc:
    line: int
    col: int


@dataclass(frozen=True)
class Node:
    loc: Optional[Loc] = field(default=None, kw_only=True, compare=False, repr=False)


# --- Structure ---

@dataclass(frozen=True)
class Program(Node):
    statements: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class Block(Node):
    statements: Tuple[Node, ...] = ()


# --- Literals ---

@dataclass(frozen=True)
class IntegerLiteral(Node):
    value: int


@dataclass(frozen=True)
class FloatLiteral(Node):
    value: float


@dataclass(frozen=True)
class StringLiteral(Node):
    value: str


@dataclass(frozen=True)
class CharLiteral(Node):
    value: str


@dataclass(frozen=True)
class BooleanLiteral(Node):
    value: bool


@dataclass(frozen=True)
class NilLiteral(Node):
    pass


@dataclass(frozen=True)
class ArrayLiteral(Node):
    elements: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class MapLiteral(Node):
    pairs: Tuple[Tuple[Node, Node], ...] = ()


@dataclass(frozen=True)
class SetLiteral(Node):
    elements: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class RangeExpr(Node):
    start: Node
    end: Node


# --- Expressions ---

@dataclass(frozen=True)
class Identifier(Node):
    name: str


@dataclass(frozen=True)
class Paren(Node):
    expr: Node


@dataclass(frozen=True)
class Unary(Node):
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary(Node):
    """Arithmetic, bitwise, comparison and logical operators."""
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Index(Node):
    target: Node
    index: Node


@dataclass(frozen=True)
class Slice(Node):
    target: Node
    start: Optional[Node] = None
    end: Optional[Node] = None


@dataclass(frozen=True)
class Member(Node):
    target: Node
    name: str


@dataclass(frozen=True)
class Call(Node):
    """A call by name. ``pkg.fn`` and ``obj.method`` are dotted names."""
    name: str
    args: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class MethodCall(Node):
    target: Node
    name: str
    args: Tuple[Node, ...] = ()


@dataclass(frozen=True)
class FunctionLiteral(Node):
    params: Tuple[str, ...]
    body: Block


@dataclass(frozen=True)
class New(Node):
    struct_name: str
    args: Tuple[Node, ...] = ()


# --- Statements ---

@dataclass(frozen=True)
class Declaration(Node):
    kind: str  # 'var' | 'let' | 'const'
    name: str
    value: Optional[Node] = None


@dataclass(frozen=True)
class Assign(Node):
    op: str  # '=' or a compound operator such as '+='
    target: Node
    value: Node


@dataclass(frozen=True)
class FunctionDecl(Node):
    name: str
    params: Tuple[str, ...]
    body: Block


@dataclass(frozen=True)
class Return(Node):
    value: Optional[Node] = None


@dataclass(frozen=True)
class BreakStmt(Node):
    pass


@dataclass(frozen=True)
class ContinueStmt(Node):
    pass


@dataclass(frozen=True)
class If(Node):
    condition: Node
    consequence: Block
    alternative: Optional[Node] = None  # Block or a chained If


@dataclass(frozen=True)
class For(Node):
    initializers: Tuple[Node, ...]
    condition: Optional[Node]
    updates: Tuple[Node, ...]
    body: Block


@dataclass(frozen=True)
class While(Node):
    conditions: Tuple[Node, ...]
    body: Block


@dataclass(frozen=True)
class Foreach(Node):
    name: str
    iterable: Node
    body: Block


@dataclass(frozen=True)
class Case(Node):
    value: Node
    body: Block


@dataclass(frozen=True)
class Switch(Node):
    subject: Node
    cases: Tuple[Case, ...] = ()
    default: Optional[Block] = None


@dataclass(frozen=True)
class StructDecl(Node):
    name: str
    fields: Tuple[Declaration, ...] = ()
    methods: Tuple[FunctionDecl, ...] = ()


@dataclass(frozen=True)
class EnumMember(Node):
    name: str
    value: Optional[int] = None


@dataclass(frozen=True)
class EnumDecl(Node):
    name: str
    members: Tuple[EnumMember, ...] = ()


@dataclass(frozen=True)
class Import(Node):
    name: str
    alias: Optional[str] = None
