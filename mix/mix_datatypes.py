"""
Defines the runtime value types and the lexical Scope for the Mix language.

Every value the evaluator produces is an instance of a MixValue subclass.
Control flow (return/break/continue) and errors are values too, so they
travel through the same channel as ordinary data and every statement
sequencing point can test for them.
"""

from abc import ABC
from typing import Any, Callable, Dict, Iterator, List as PyList, Optional

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
_UINT64_MASK = (1 << 64) - 1


def wrap_int(value: int) -> int:
    """Wraps an arbitrary Python int into the signed 64-bit range."""
    return ((value - INT64_MIN) & _UINT64_MASK) + INT64_MIN


# =================================================================
# Base class
# =================================================================

class MixValue(ABC):
    """Abstract base class for all values the evaluator works with."""
    type_name = "value"

    def to_string(self) -> str:
        """Returns the canonical string form of the value."""
        raise NotImplementedError

    def __str__(self):
        return self.to_string()

    def __repr__(self):
        return f"<{self.type_name} {self.to_string()}>"


# =================================================================
# Scalars
# =================================================================

class Nil(MixValue):
    type_name = "nil"

    def to_string(self) -> str:
        return "nil"

    def __eq__(self, other):
        return isinstance(other, Nil)

    def __hash__(self):
        return hash(None)


class _Scalar(MixValue):
    """Common equality for values that wrap a single Python primitive."""
    def __init__(self, value: Any):
        self.value = value

    def __eq__(self, other):
        return type(other) is type(self) and other.value == self.value

    def __hash__(self):
        return hash((self.type_name, self.value))


class Boolean(_Scalar):
    type_name = "bool"

    def __init__(self, value: bool):
        super().__init__(bool(value))

    def to_string(self) -> str:
        return "true" if self.value else "false"


class Integer(_Scalar):
    type_name = "int"

    def __init__(self, value: int):
        super().__init__(wrap_int(int(value)))

    def to_string(self) -> str:
        return str(self.value)


class Float(_Scalar):
    type_name = "float"

    def __init__(self, value: float):
        super().__init__(float(value))

    def to_string(self) -> str:
        return f"{self.value:f}"


class String(_Scalar):
    type_name = "string"

    def __init__(self, value: str):
        super().__init__(str(value))

    def to_string(self) -> str:
        return self.value


class Char(_Scalar):
    """A single character. Converts to and from Integer by ordinal."""
    type_name = "char"

    def __init__(self, value: str):
        if len(value) != 1:
            raise ValueError(f"char literal must hold exactly one character, got {value!r}")
        super().__init__(value)

    def to_string(self) -> str:
        return self.value


# =================================================================
# Sequences and collections
# =================================================================

def _join(values) -> str:
    return ", ".join(v.to_string() for v in values)


class SequenceValue(MixValue):
    """Shared behaviour for Array, List and Tuple."""
    def __init__(self, elements=None):
        self.elements = list(elements or [])

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[MixValue]:
        return iter(self.elements)

    def __getitem__(self, index):
        return self.elements[index]

    def __eq__(self, other):
        return type(other) is type(self) and list(other.elements) == list(self.elements)

    __hash__ = None


class Array(SequenceValue):
    type_name = "array"

    def to_string(self) -> str:
        return f"[{_join(self.elements)}]"


class List(SequenceValue):
    """A deque-like sequence: supports push/pop/peek at both ends."""
    type_name = "list"

    def to_string(self) -> str:
        return f"list({_join(self.elements)})"


class Tuple(SequenceValue):
    type_name = "tuple"

    def __init__(self, elements=None):
        self.elements = tuple(elements or ())

    def to_string(self) -> str:
        return f"tuple({_join(self.elements)})"


class Map(MixValue):
    """Insertion-ordered mapping keyed by the canonical string of each key."""
    type_name = "map"

    def __init__(self, pairs: Optional[Dict[str, MixValue]] = None):
        self.pairs: Dict[str, MixValue] = dict(pairs or {})

    def get(self, key: MixValue) -> Optional[MixValue]:
        return self.pairs.get(key.to_string())

    def put(self, key: MixValue, value: MixValue):
        self.pairs[key.to_string()] = value

    def remove(self, key: MixValue) -> Optional[MixValue]:
        return self.pairs.pop(key.to_string(), None)

    def __contains__(self, key: MixValue) -> bool:
        return key.to_string() in self.pairs

    def __len__(self) -> int:
        return len(self.pairs)

    def __eq__(self, other):
        return isinstance(other, Map) and list(other.pairs.items()) == list(self.pairs.items())

    __hash__ = None

    def to_string(self) -> str:
        if not self.pairs:
            return "map{}"
        body = ", ".join(f"{k}: {v.to_string()}" for k, v in self.pairs.items())
        return f"map{{{body}}}"


class Set(MixValue):
    """Insertion-ordered collection; uniqueness is by canonical string."""
    type_name = "set"

    def __init__(self, values=None):
        self.members: Dict[str, MixValue] = {}
        for v in values or []:
            self.add(v)

    def add(self, value: MixValue) -> bool:
        key = value.to_string()
        if key in self.members:
            return False
        self.members[key] = value
        return True

    def discard(self, value: MixValue) -> bool:
        return self.members.pop(value.to_string(), None) is not None

    def __contains__(self, value: MixValue) -> bool:
        return value.to_string() in self.members

    def __iter__(self) -> Iterator[MixValue]:
        return iter(list(self.members.values()))

    def __len__(self) -> int:
        return len(self.members)

    def __eq__(self, other):
        return isinstance(other, Set) and list(other.members) == list(self.members)

    __hash__ = None

    def to_string(self) -> str:
        if not self.members:
            return "set{}"
        return f"set{{{_join(self.members.values())}}}"


class Range(MixValue):
    """An inclusive integer range; descending when start > end."""
    type_name = "range"

    def __init__(self, start: int, end: int):
        self.start = start
        self.end = end

    @property
    def step(self) -> int:
        return 1 if self.start <= self.end else -1

    def __len__(self) -> int:
        return abs(self.end - self.start) + 1

    def __iter__(self) -> Iterator[MixValue]:
        for n in range(self.start, self.end + self.step, self.step):
            yield Integer(n)

    def at(self, index: int) -> Integer:
        return Integer(self.start + index * self.step)

    def __eq__(self, other):
        return isinstance(other, Range) and (other.start, other.end) == (self.start, self.end)

    def __hash__(self):
        return hash(("range", self.start, self.end))

    def to_string(self) -> str:
        return f"range({self.start},{self.end})"


# =================================================================
# Callables, packages and the struct/object model
# =================================================================

class Function(MixValue):
    """A user function: parameters, body and the scope it captured.

    The captured scope is shared with its creator, never copied, so later
    assignments in that scope are visible to the function.
    """
    type_name = "func"

    def __init__(self, name: str, params, body, scope: Optional['Scope']):
        self.name = name
        self.params = list(params)
        self.body = body
        self.scope = scope

    def to_string(self) -> str:
        return f"func({self.name})"


class Builtin(MixValue):
    """A host callable: callback(evaluator, writer, *args) -> MixValue."""
    type_name = "builtin"

    def __init__(self, name: str, callback: Callable[..., MixValue]):
        self.name = name
        self.callback = callback

    def to_string(self) -> str:
        return f"builtin({self.name})"


class Package(MixValue):
    type_name = "package"

    def __init__(self, name: str, functions: Optional[Dict[str, Builtin]] = None):
        self.name = name
        self.functions: Dict[str, Builtin] = dict(functions or {})

    def to_string(self) -> str:
        return f"package({self.name})"


class Struct(MixValue):
    """A struct type. One shared object per declaration; holds static fields."""
    type_name = "struct"

    def __init__(self, name: str):
        self.name = name
        self.methods: Dict[str, Function] = {}
        self.class_fields: Dict[str, MixValue] = {}
        self.consts: set = set()
        self.lets: set = set()
        self.let_types: Dict[str, str] = {}

    def to_string(self) -> str:
        return f"struct({self.name})"


class ObjectInstance(MixValue):
    type_name = "object"

    def __init__(self, struct: Struct):
        self.struct = struct
        self.fields: Dict[str, MixValue] = {}

    def lookup(self, name: str) -> Optional[MixValue]:
        """Instance fields shadow the struct's static fields."""
        if name in self.fields:
            return self.fields[name]
        return self.struct.class_fields.get(name)

    def to_string(self) -> str:
        return f"object({self.struct.name})"


class Enum(MixValue):
    type_name = "enum"

    def __init__(self, name: str, members: Optional[Dict[str, MixValue]] = None):
        self.name = name
        self.members: Dict[str, MixValue] = dict(members or {})

    def to_string(self) -> str:
        return f"enum({self.name})"


# =================================================================
# Signals
# =================================================================

class Error(MixValue):
    type_name = "error"

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        self.message = message
        self.line = line
        self.col = col

    def to_string(self) -> str:
        if self.line is not None:
            return f"[{self.line}:{self.col}] ERROR: {self.message}"
        return f"ERROR: {self.message}"


class ReturnValue(MixValue):
    type_name = "return"

    def __init__(self, value: MixValue):
        self.value = value

    def to_string(self) -> str:
        return self.value.to_string()


class Break(MixValue):
    type_name = "break"

    def to_string(self) -> str:
        return "break"


class Continue(MixValue):
    type_name = "continue"

    def to_string(self) -> str:
        return "continue"


NIL = Nil()
TRUE = Boolean(True)
FALSE = Boolean(False)
BREAK = Break()
CONTINUE = Continue()


def is_error(value) -> bool:
    return isinstance(value, Error)


def is_signal(value) -> bool:
    """True for values that stop statement sequencing."""
    return isinstance(value, (Error, ReturnValue, Break, Continue))


def unwrap_return(value):
    return value.value if isinstance(value, ReturnValue) else value


def is_numeric(value) -> bool:
    return isinstance(value, (Integer, Float))


# =================================================================
# Scope
# =================================================================

class Scope:
    """A lexical environment with a parent link.

    Besides the name -> value table, a scope tracks which of its names are
    constants and which were declared with ``let`` (together with the type
    recorded at declaration). Scopes are shared by reference: the evaluator's
    cursor and any number of closures may hold the same one.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.variables: Dict[str, MixValue] = {}
        self.consts: set = set()
        self.let_vars: set = set()
        self.let_types: Dict[str, str] = {}
        self.parent = parent

    def find_owner(self, name: str) -> Optional['Scope']:
        """Finds the nearest scope in the chain that binds name."""
        scope = self
        while scope is not None:
            if name in scope.variables:
                return scope
            scope = scope.parent
        return None

    def lookup(self, name: str) -> Optional[MixValue]:
        owner = self.find_owner(name)
        if owner is None:
            return None
        return owner.variables[name]

    def __contains__(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def bind(self, name: str, value: MixValue) -> bool:
        """Binds name in this scope only. Returns False if it is already bound here."""
        if name in self.variables:
            return False
        self.variables[name] = value
        return True

    def assign(self, name: str, value: MixValue) -> Optional['Scope']:
        """Rebinds name in the scope that owns it; returns that scope."""
        owner = self.find_owner(name)
        if owner is not None:
            owner.variables[name] = value
        return owner

    def is_constant(self, name: str) -> bool:
        owner = self.find_owner(name)
        return owner is not None and name in owner.consts

    def is_let(self, name: str) -> bool:
        owner = self.find_owner(name)
        return owner is not None and name in owner.let_vars

    def let_type(self, name: str) -> Optional[str]:
        owner = self.find_owner(name)
        if owner is None:
            return None
        return owner.let_types.get(name)

    def copy(self) -> 'Scope':
        """Shallow copy: same parent, copied tables, shared values."""
        clone = Scope(parent=self.parent)
        clone.variables = dict(self.variables)
        clone.consts = set(self.consts)
        clone.let_vars = set(self.let_vars)
        clone.let_types = dict(self.let_types)
        return clone

    def keys(self) -> PyList[str]:
        return list(self.variables.keys())

    def __len__(self) -> int:
        return len(self.variables)

    def __repr__(self):
        return f"<Scope vars={list(self.variables)} parent={'yes' if self.parent else 'no'}>"
