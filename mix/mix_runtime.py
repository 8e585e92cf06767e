"""
Builtin functions, importable packages and the host-facing ScriptRunner.

Every builtin is a Python callable with the shape
``callback(evaluator, writer, *args) -> MixValue``. Library classes expose
their builtins as ``_name`` methods; ``collect_builtins`` turns those into
Builtin values the way the evaluator's registry expects them. Misuse is
reported by returning an Error value, never by raising.
"""
import inspect
import io
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List as PyList, Literal, Optional

from mix.mix_datatypes import (
    MixValue, Nil, Boolean, Integer, Float, String, Char, Array, List, Tuple, Map, Set,
    Range, Builtin, Package, Error, SequenceValue, NIL, FALSE,
    is_error, is_numeric
)
from mix.mix_interpreter import Evaluator
from mix.mix_ast import Node, Program
from mix.mix_transformer import MixTransformer, load_program


def collect_builtins(library, prefix: str = "") -> Dict[str, Builtin]:
    """Collects a library's ``_name`` methods as Builtin values keyed by name."""
    found = {}
    for name, member in inspect.getmembers(library):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            builtin_name = prefix + name[1:]
            found[builtin_name] = Builtin(builtin_name, member)
    return found


def _type_error(fn: str, value: MixValue) -> Error:
    return Error(f"{fn}() not supported for type ({value.type_name})")


_FORMAT_VERB = re.compile(r'%[-+ 0#]*\d*(?:\.\d+)?[a-zA-Z%]')


def format_values(template: str, args) -> MixValue:
    """Expands printf-style verbs (%d %f %s %v %t %c %q %%) against Mix values."""
    remaining = list(args)
    out = []
    pos = 0
    for m in _FORMAT_VERB.finditer(template):
        out.append(template[pos:m.start()])
        pos = m.end()
        spec = m.group(0)
        verb = spec[-1]
        if verb == '%':
            out.append('%')
            continue
        if not remaining:
            return Error(f"printf: missing argument for {spec}")
        value = remaining.pop(0)
        flags = spec[1:-1]
        match verb:
            case 'd':
                if not isinstance(value, Integer):
                    return Error(f"printf: {spec} expects (int), got ({value.type_name})")
                out.append(f"%{flags}d" % value.value)
            case 'f':
                if not is_numeric(value):
                    return Error(f"printf: {spec} expects a number, got ({value.type_name})")
                out.append(f"%{flags}f" % value.value)
            case 'x' | 'X' if isinstance(value, Integer):
                out.append(f"%{flags}{verb}" % value.value)
            case 'c':
                if isinstance(value, Integer) and 0 <= value.value <= 0x10FFFF:
                    out.append(chr(value.value))
                else:
                    out.append(value.to_string())
            case 'q':
                out.append('"' + value.to_string() + '"')
            case _:
                out.append(f"%{flags}s" % value.to_string())
    out.append(template[pos:])
    return String("".join(out))


class StdLib:
    """Python implementations of the core Mix builtins."""

    def __init__(self, evaluator: Optional[Evaluator] = None):
        self.evaluator = evaluator
        if evaluator is not None:
            for builtin in collect_builtins(self).values():
                evaluator.register_builtin(builtin)

    # --- Output ---

    def _print(self, rt, out, *args):
        out.write(" ".join(a.to_string() for a in args))
        return NIL

    def _println(self, rt, out, *args):
        out.write(" ".join(a.to_string() for a in args) + "\n")
        return NIL

    def _printf(self, rt, out, template, *args):
        if not isinstance(template, String):
            return Error(f"printf() expects a (string) format, got ({template.type_name})")
        text = format_values(template.value, args)
        if is_error(text):
            return text
        out.write(text.value)
        return NIL

    def _sprintf(self, rt, out, template, *args):
        if not isinstance(template, String):
            return Error(f"sprintf() expects a (string) format, got ({template.type_name})")
        return format_values(template.value, args)

    # --- Introspection and conversion ---

    def _typeof(self, rt, out, value):
        return String(value.type_name)

    def _length(self, rt, out, value):
        match value:
            case String():
                return Integer(len(value.value))
            case SequenceValue() | Map() | Set() | Range():
                return Integer(len(value))
        return _type_error("length", value)

    def _size(self, rt, out, value):
        return self._length(rt, out, value)

    def _to_string(self, rt, out, value):
        return String(value.to_string())

    def _to_int(self, rt, out, value):
        match value:
            case Integer():
                return value
            case Float():
                return Integer(math.trunc(value.value))
            case Boolean():
                return Integer(1 if value.value else 0)
            case Char():
                return Integer(ord(value.value))
            case String():
                try:
                    return Integer(int(value.value.strip()))
                except ValueError:
                    return Error(f"to_int(): cannot convert ({value.value}) to int")
        return _type_error("to_int", value)

    def _to_float(self, rt, out, value):
        match value:
            case Float():
                return value
            case Integer():
                return Float(value.value)
            case String():
                try:
                    return Float(float(value.value.strip()))
                except ValueError:
                    return Error(f"to_float(): cannot convert ({value.value}) to float")
        return _type_error("to_float", value)

    def _to_bool(self, rt, out, value):
        match value:
            case Boolean():
                return value
            case Integer() | Float():
                return Boolean(value.value != 0)
            case Nil():
                return FALSE
            case String():
                if value.value in ("true", "false"):
                    return Boolean(value.value == "true")
                return Error(f"to_bool(): cannot convert ({value.value}) to bool")
        return _type_error("to_bool", value)

    def _to_char(self, rt, out, value):
        match value:
            case Char():
                return value
            case Integer() if 0 <= value.value <= 0x10FFFF:
                return Char(chr(value.value))
            case String() if len(value.value) == 1:
                return Char(value.value)
        return _type_error("to_char", value)

    def _ord(self, rt, out, value):
        if isinstance(value, (Char, String)) and len(value.value) == 1:
            return Integer(ord(value.value))
        return _type_error("ord", value)

    def _chr(self, rt, out, value):
        if isinstance(value, Integer) and 0 <= value.value <= 0x10FFFF:
            return String(chr(value.value))
        return _type_error("chr", value)

    # --- Construction ---

    def _array(self, rt, out, *values):
        return Array(values)

    def _list(self, rt, out, *values):
        return List(values)

    def _tuple(self, rt, out, *values):
        return Tuple(values)

    def _range(self, rt, out, start, end):
        if isinstance(start, Integer) and isinstance(end, Integer):
            return Range(start.value, end.value)
        return Error(f"range() expects (int) bounds, got ({start.type_name}) and ({end.type_name})")

    def _to_array(self, rt, out, value):
        if isinstance(value, (SequenceValue, Set, Range)):
            return Array(list(value))
        return _type_error("to_array", value)

    def _to_list(self, rt, out, value):
        if isinstance(value, (SequenceValue, Set, Range)):
            return List(list(value))
        return _type_error("to_list", value)

    # --- Sequences ---

    def _push(self, rt, out, seq, value):
        if not isinstance(seq, (Array, List)):
            return _type_error("push", seq)
        seq.elements.append(value)
        return seq

    def _pop(self, rt, out, seq):
        if not isinstance(seq, (Array, List)):
            return _type_error("pop", seq)
        if not seq.elements:
            return Error(f"pop() on empty {seq.type_name}")
        return seq.elements.pop()

    def _shift(self, rt, out, seq):
        if not isinstance(seq, (Array, List)):
            return _type_error("shift", seq)
        if not seq.elements:
            return Error(f"shift() on empty {seq.type_name}")
        return seq.elements.pop(0)

    def _unshift(self, rt, out, seq, value):
        if not isinstance(seq, (Array, List)):
            return _type_error("unshift", seq)
        seq.elements.insert(0, value)
        return seq

    def _reverse(self, rt, out, value):
        match value:
            case String():
                return String(value.value[::-1])
            case SequenceValue():
                return type(value)(list(reversed(value.elements)))
        return _type_error("reverse", value)

    def _contains(self, rt, out, container, value):
        match container:
            case String():
                return Boolean(value.to_string() in container.value)
            case Map() | Set():
                return Boolean(value in container)
            case SequenceValue() | Range():
                key = value.to_string()
                return Boolean(any(item.to_string() == key for item in container))
        return _type_error("contains", container)

    # --- Maps and sets ---

    def _keys(self, rt, out, mapping):
        if not isinstance(mapping, Map):
            return _type_error("keys", mapping)
        return Array(String(k) for k in mapping.pairs)

    def _values(self, rt, out, container):
        match container:
            case Map():
                return Array(container.pairs.values())
            case Set():
                return Array(list(container))
        return _type_error("values", container)

    def _insert(self, rt, out, container, *args):
        match container, args:
            case Map(), (key, value):
                container.put(key, value)
                return container
            case Set(), (value,):
                return Boolean(container.add(value))
            case Array() | List(), (index, value) if isinstance(index, Integer):
                position = index.value + len(container) if index.value < 0 else index.value
                if not 0 <= position <= len(container):
                    return Error(f"index out of bounds: index {index.value}, length {len(container)}")
                container.elements.insert(position, value)
                return container
        return Error(f"insert() not supported for ({container.type_name}) with {len(args)} arguments")

    def _remove(self, rt, out, container, key):
        match container:
            case Map():
                removed = container.remove(key)
                return NIL if removed is None else removed
            case Set():
                return Boolean(container.discard(key))
            case Array() | List() if isinstance(key, Integer):
                position = key.value + len(container) if key.value < 0 else key.value
                if not 0 <= position < len(container):
                    return Error(f"index out of bounds: index {key.value}, length {len(container)}")
                return container.elements.pop(position)
        return _type_error("remove", container)

    # --- List (deque) helpers ---

    def _pushback_list(self, rt, out, lst, value):
        if not isinstance(lst, List):
            return _type_error("pushback_list", lst)
        lst.elements.append(value)
        return lst

    def _pushfront_list(self, rt, out, lst, value):
        if not isinstance(lst, List):
            return _type_error("pushfront_list", lst)
        lst.elements.insert(0, value)
        return lst

    def _popback_list(self, rt, out, lst):
        if not isinstance(lst, List):
            return _type_error("popback_list", lst)
        if not lst.elements:
            return Error("popback_list() on empty list")
        return lst.elements.pop()

    def _popfront_list(self, rt, out, lst):
        if not isinstance(lst, List):
            return _type_error("popfront_list", lst)
        if not lst.elements:
            return Error("popfront_list() on empty list")
        return lst.elements.pop(0)

    def _peekback_list(self, rt, out, lst):
        if not isinstance(lst, List):
            return _type_error("peekback_list", lst)
        return lst.elements[-1] if lst.elements else NIL

    def _peekfront_list(self, rt, out, lst):
        if not isinstance(lst, List):
            return _type_error("peekfront_list", lst)
        return lst.elements[0] if lst.elements else NIL

    # --- Higher order ---

    def _map(self, rt, out, seq, fn):
        if not isinstance(seq, (SequenceValue, Range)):
            return _type_error("map", seq)
        results = []
        for item in list(seq):
            value = rt.call_function(fn, [item])
            if is_error(value):
                return value
            results.append(value)
        return Array(results)

    def _filter(self, rt, out, seq, fn):
        if not isinstance(seq, (SequenceValue, Range)):
            return _type_error("filter", seq)
        kept = []
        for item in list(seq):
            verdict = rt.call_function(fn, [item])
            if is_error(verdict):
                return verdict
            if not isinstance(verdict, Boolean):
                return Error(f"filter() predicate must return (bool), got ({verdict.type_name})")
            if verdict.value:
                kept.append(item)
        return Array(kept)

    def _reduce(self, rt, out, seq, fn, initial):
        if not isinstance(seq, (SequenceValue, Range)):
            return _type_error("reduce", seq)
        acc = initial
        for item in list(seq):
            acc = rt.call_function(fn, [acc, item])
            if is_error(acc):
                return acc
        return acc


def _pick_numeric(name, values, chooser):
    for v in values:
        if not is_numeric(v):
            return _type_error(name, v)
    return chooser(values, key=lambda v: v.value)


class MathLib:
    """Numeric helpers importable as the ``math`` package."""

    def _abs(self, rt, out, value):
        if not is_numeric(value):
            return _type_error("abs", value)
        return type(value)(abs(value.value))

    def _min(self, rt, out, first, *rest):
        return _pick_numeric("min", (first,) + rest, min)

    def _max(self, rt, out, first, *rest):
        return _pick_numeric("max", (first,) + rest, max)

    def _pow(self, rt, out, base, exponent):
        if not (is_numeric(base) and is_numeric(exponent)):
            return Error(f"pow() expects numbers, got ({base.type_name}) and ({exponent.type_name})")
        if isinstance(base, Integer) and isinstance(exponent, Integer) and exponent.value >= 0:
            return Integer(pow(base.value, exponent.value, 1 << 64))
        return Float(math.pow(base.value, exponent.value))

    def _sqrt(self, rt, out, value):
        if not is_numeric(value):
            return _type_error("sqrt", value)
        if value.value < 0:
            return Error("sqrt() of a negative number")
        return Float(math.sqrt(value.value))

    def _floor(self, rt, out, value):
        if not is_numeric(value):
            return _type_error("floor", value)
        return Integer(math.floor(value.value))

    def _ceil(self, rt, out, value):
        if not is_numeric(value):
            return _type_error("ceil", value)
        return Integer(math.ceil(value.value))


_LIST_PACKAGE_NAMES = (
    "pushback", "pushfront", "popback", "popfront", "peekback", "peekfront",
)


def core_packages(stdlib: StdLib) -> PyList[Package]:
    """Builds the packages bundled with the runtime."""
    list_functions = {}
    for short in _LIST_PACKAGE_NAMES:
        callback = getattr(stdlib, f"_{short}_list")
        list_functions[short] = Builtin(short, callback)
    for short in ("insert", "remove", "contains", "size", "reverse"):
        list_functions[short] = Builtin(short, getattr(stdlib, f"_{short}"))
    return [
        Package("list", list_functions),
        Package("math", collect_builtins(MathLib())),
    ]


# ===================================================================
# Host runner
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of running a program."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: PyList[Dict] = field(default_factory=list)
    call_stack: PyList[str] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            col_info = f", col {col}" if col is not None else ""
            return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Runs Mix programs against one persistent evaluator.

    Programs may be given as AST nodes or as tagged-dict trees (or JSON/YAML
    text of one), which are converted by the transformer first. Output
    written by print builtins is captured into ``side_effects`` unless a
    writer is supplied.
    """

    def __init__(self, writer=None, packages: Optional[PyList[Package]] = None):
        self._buffer = io.StringIO() if writer is None else None
        self.evaluator = Evaluator(writer=self._buffer if writer is None else writer)
        self.stdlib = StdLib(self.evaluator)
        for package in core_packages(self.stdlib):
            self.evaluator.register_package(package)
        for package in packages or []:
            self.evaluator.register_package(package)

    def _load(self, program):
        if isinstance(program, str):
            return load_program(program)
        if isinstance(program, (dict, list)):
            program = MixTransformer().transform(program)
        if isinstance(program, list):
            return Program(tuple(program))
        if isinstance(program, Node) and not isinstance(program, Program):
            return Program((program,))
        return program

    def _drain_output(self) -> PyList[Dict]:
        if self._buffer is None:
            return []
        text = self._buffer.getvalue()
        self._buffer.seek(0)
        self._buffer.truncate()
        return [{'topics': ['stdout'], 'message': text}] if text else []

    def run(self, program) -> ExecutionResult:
        """Evaluates a program and packages the outcome."""
        try:
            node = self._load(program)
        except (ValueError, TypeError) as e:
            return ExecutionResult(status='error', error_message=f"LoadError: {e}")
        evaluator = self.evaluator
        evaluator.error_trace = []
        try:
            value = evaluator.eval(node)
        except RecursionError:
            evaluator.call_stack.clear()
            evaluator.scope = evaluator.root_scope
            return ExecutionResult(
                status='error',
                error_message="RecursionError: maximum recursion depth exceeded",
                side_effects=self._drain_output(),
                call_stack=evaluator.error_trace[-10:],
            )
        except Exception as e:
            evaluator._dbg("INTERNAL", type(e).__name__, e)
            frames = [f['name'] for f in evaluator.call_stack]
            evaluator.call_stack.clear()
            return ExecutionResult(
                status='error',
                error_message=f"InternalError: {type(e).__name__}: {e}",
                side_effects=self._drain_output(),
                call_stack=frames,
            )
        effects = self._drain_output()
        if isinstance(value, Error):
            token = {'line': value.line, 'col': value.col} if value.line is not None else None
            return ExecutionResult(
                status='error',
                value=value,
                error_message=value.message,
                error_token=token,
                side_effects=effects,
                call_stack=list(evaluator.error_trace),
            )
        return ExecutionResult(status='success', value=value, side_effects=effects)
