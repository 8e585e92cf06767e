"""
The core Mix interpreter: the Evaluator and its dispatch over AST nodes.

Evaluation is synchronous and recursive. The evaluator owns a cursor to the
current Scope and swaps it around nested evaluation (calls, loop passes,
constructor bodies), always restoring it on the way out. Errors and control
signals are values; nothing here raises to report a script-level problem.
"""
import inspect
import os
import sys
from contextlib import contextmanager
from typing import Any, Dict, List as PyList, Optional

from mix.mix_ast import (
    Node, Program, Block, IntegerLiteral, FloatLiteral, StringLiteral, CharLiteral,
    BooleanLiteral, NilLiteral, ArrayLiteral, MapLiteral, SetLiteral, RangeExpr,
    Identifier, Paren, Unary, Binary, Index, Slice, Member, Call, MethodCall,
    FunctionLiteral, New, Declaration, Assign, FunctionDecl, Return, BreakStmt,
    ContinueStmt, If, For, While, Foreach, Switch, StructDecl, EnumDecl, Import
)
from mix.mix_datatypes import (
    MixValue, Nil, Boolean, Integer, Float, String, Char, Array, List, Map, Set,
    Range, Function, Builtin, Package, Struct, ObjectInstance, Enum, Error, ReturnValue,
    Break, Continue, SequenceValue, Scope, NIL, TRUE, FALSE, BREAK, CONTINUE,
    is_error, is_signal, is_numeric, unwrap_return
)
from mix.mix_printer import pformat

COMPOUND_OPS = {
    '+=': '+', '-=': '-', '*=': '*', '/=': '/', '%=': '%',
    '&=': '&', '|=': '|', '^=': '^', '<<=': '<<', '>>=': '>>',
}
LOGICAL_OPS = ('&&', '||')
INTEGER_ONLY_OPS = ('%', '&', '|', '^', '<<', '>>')


class Evaluator:
    """The Mix execution engine.

    ``builtins`` maps bare names to Builtin values and ``packages`` maps
    importable names to Package values; both are consulted during call
    resolution. ``types`` records every struct declared while running and
    ``root_scope`` keeps the top-level bindings for inspection afterwards.
    """
    def __init__(self, writer=None, builtins: Optional[Dict[str, Builtin]] = None,
                 packages: Optional[Dict[str, Package]] = None):
        self.root_scope = Scope()
        self.scope = self.root_scope
        self.types: Dict[str, Struct] = {}
        self.writer = writer if writer is not None else sys.stdout
        self.builtins: Dict[str, Builtin] = dict(builtins or {})
        self.packages: Dict[str, Package] = dict(packages or {})
        self.call_stack: PyList[Dict[str, Any]] = []
        self.current_node: Optional[Node] = None
        # Frame names active when the most recent Error was produced.
        self.error_trace: PyList[str] = []

    # --- Registry ---

    def register_builtin(self, builtin: Builtin):
        self.builtins[builtin.name] = builtin

    def register_package(self, package: Package):
        self.packages[package.name] = package

    # --- Diagnostics ---

    def _push_frame(self, name, func, args, call_site_node):
        loc = getattr(call_site_node, 'loc', None)
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': loc,
        })
        self._dbg("CALL", name, *args, "depth", len(self.call_stack))

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("MIX_DEBUG"):
            print("[DBG]", *(pformat(p) if isinstance(p, MixValue) else p for p in parts), file=sys.stderr)

    def _error(self, node, message: str) -> Error:
        loc = getattr(node, 'loc', None) or getattr(self.current_node, 'loc', None)
        if loc is not None:
            err = Error(message, loc.line, loc.col)
        else:
            err = Error(message)
        self.error_trace = [f["name"] for f in self.call_stack]
        self._dbg("ERROR", err)
        return err

    @contextmanager
    def _scoped(self, scope: Scope):
        """Makes scope current for the duration of the block."""
        previous = self.scope
        self.scope = scope
        try:
            yield scope
        finally:
            self.scope = previous

    # --- Dispatch ---

    def eval(self, node) -> MixValue:
        """Evaluates a node in the current scope and returns its value."""
        self.current_node = node
        match node:
            case Program():
                return unwrap_return(self._eval_statements(node.statements))
            case Block():
                return self._eval_statements(node.statements)
            case IntegerLiteral():
                return Integer(node.value)
            case FloatLiteral():
                return Float(node.value)
            case StringLiteral():
                return String(node.value)
            case CharLiteral():
                return Char(node.value)
            case BooleanLiteral():
                return TRUE if node.value else FALSE
            case NilLiteral():
                return NIL
            case Identifier():
                return self._eval_identifier(node)
            case Paren():
                return self.eval(node.expr)
            case Unary():
                return self._eval_unary(node)
            case Binary():
                return self._eval_binary(node)
            case ArrayLiteral():
                return self._eval_sequence_literal(node.elements, Array)
            case SetLiteral():
                return self._eval_sequence_literal(node.elements, Set)
            case MapLiteral():
                return self._eval_map_literal(node)
            case RangeExpr():
                return self._eval_range(node)
            case Index():
                return self._eval_index(node)
            case Slice():
                return self._eval_slice(node)
            case Member():
                return self._eval_member(node)
            case Declaration():
                return self._eval_declaration(node)
            case Assign():
                return self._eval_assign(node)
            case FunctionLiteral():
                return Function("", node.params, node.body, self.scope)
            case FunctionDecl():
                return self._eval_function_decl(node)
            case Call():
                return self._eval_call(node)
            case MethodCall():
                return self._eval_method_call(node)
            case Return():
                return self._eval_return(node)
            case BreakStmt():
                return BREAK
            case ContinueStmt():
                return CONTINUE
            case If():
                return self._eval_if(node)
            case For():
                return self._eval_for(node)
            case While():
                return self._eval_while(node)
            case Foreach():
                return self._eval_foreach(node)
            case Switch():
                return self._eval_switch(node)
            case StructDecl():
                return self._eval_struct_decl(node)
            case New():
                return self._eval_new(node)
            case EnumDecl():
                return self._eval_enum_decl(node)
            case Import():
                return self._eval_import(node)
            case _:
                return NIL

    def _eval_statements(self, statements) -> MixValue:
        result = NIL
        for stmt in statements:
            result = self.eval(stmt)
            if is_signal(result):
                return result
        return result

    # --- Bindings ---

    def _eval_identifier(self, node: Identifier) -> MixValue:
        value = self.scope.lookup(node.name)
        if value is not None:
            return value
        builtin = self.builtins.get(node.name)
        if builtin is not None:
            return builtin
        return self._error(node, f"identifier not found: ({node.name})")

    def _bind_new(self, node, name: str, value: MixValue) -> Optional[Error]:
        if not self.scope.bind(name, value):
            return self._error(node, f"identifier redeclaration found: ({name})")
        return None

    def _eval_declaration(self, node: Declaration) -> MixValue:
        value = NIL if node.value is None else self.eval(node.value)
        if is_error(value):
            return value
        err = self._bind_new(node, node.name, value)
        if err:
            return err
        if node.kind == 'const':
            self.scope.consts.add(node.name)
        elif node.kind == 'let':
            self.scope.let_vars.add(node.name)
            self.scope.let_types[node.name] = value.type_name
        return value

    def _eval_function_decl(self, node: FunctionDecl) -> MixValue:
        fn = Function(node.name, node.params, node.body, self.scope)
        err = self._bind_new(node, node.name, fn)
        return err or fn

    # --- Operators ---

    def _eval_unary(self, node: Unary) -> MixValue:
        operand = self.eval(node.operand)
        if is_error(operand):
            return operand
        match node.op, operand:
            case '!', Boolean():
                return FALSE if operand.value else TRUE
            case '-', Integer():
                return Integer(-operand.value)
            case '-', Float():
                return Float(-operand.value)
            case '+', Integer() | Float():
                return operand
            case '~', Integer():
                return Integer(~operand.value)
        return self._error(node, f"operator ({node.op}) not implemented for ({operand.type_name})")

    def _eval_binary(self, node: Binary) -> MixValue:
        if node.op in LOGICAL_OPS:
            return self._eval_logical(node)
        left = self.eval(node.left)
        if is_error(left):
            return left
        right = self.eval(node.right)
        if is_error(right):
            return right
        return self.binary_op(node.op, left, right, node)

    def _eval_logical(self, node: Binary) -> MixValue:
        left = self.eval(node.left)
        if is_error(left):
            return left
        if not isinstance(left, Boolean):
            return self._error(node, f"left operand of '{node.op}' must be a boolean, got ({left.type_name})")
        if node.op == '&&' and not left.value:
            return FALSE
        if node.op == '||' and left.value:
            return TRUE
        right = self.eval(node.right)
        if is_error(right):
            return right
        if not isinstance(right, Boolean):
            return self._error(node, f"right operand of '{node.op}' must be a boolean, got ({right.type_name})")
        return right

    def binary_op(self, op: str, left: MixValue, right: MixValue, node=None) -> MixValue:
        """Applies a non-short-circuit binary operator to two evaluated values."""
        if op in ('==', '!='):
            same = left.to_string() == right.to_string()
            return Boolean(same if op == '==' else not same)
        if op in ('===', '!=='):
            same = strict_equal(left, right)
            return Boolean(same if op == '===' else not same)
        if op == '+' and (isinstance(left, String) or isinstance(right, String)):
            return String(left.to_string() + right.to_string())
        if not (is_numeric(left) and is_numeric(right)):
            return self._op_mismatch(node, op, left, right)
        if isinstance(left, Integer) and isinstance(right, Integer):
            return self._integer_op(op, left.value, right.value, node)
        if op in INTEGER_ONLY_OPS:
            return self._op_mismatch(node, op, left, right)
        return self._float_op(op, float(left.value), float(right.value), node)

    def _op_mismatch(self, node, op, left, right) -> Error:
        return self._error(node, f"operator ({op}) not implemented for ({left.type_name}) and ({right.type_name})")

    def _integer_op(self, op: str, a: int, b: int, node) -> MixValue:
        match op:
            case '+':
                return Integer(a + b)
            case '-':
                return Integer(a - b)
            case '*':
                return Integer(a * b)
            case '/' | '%' if b == 0:
                return self._error(node, "division by zero")
            case '/':
                quotient = abs(a) // abs(b)
                return Integer(-quotient if (a < 0) != (b < 0) else quotient)
            case '%':
                remainder = abs(a) % abs(b)
                return Integer(-remainder if a < 0 else remainder)
            case '&':
                return Integer(a & b)
            case '|':
                return Integer(a | b)
            case '^':
                return Integer(a ^ b)
            case '<<' | '>>' if b < 0:
                return self._error(node, f"negative shift count: {b}")
            case '<<':
                return Integer(a << b) if b < 64 else Integer(0)
            case '>>':
                return Integer(a >> min(b, 63))
            case '<':
                return Boolean(a < b)
            case '>':
                return Boolean(a > b)
            case '<=':
                return Boolean(a <= b)
            case '>=':
                return Boolean(a >= b)
        return self._error(node, f"unknown operator: int {op} int")

    def _float_op(self, op: str, a: float, b: float, node) -> MixValue:
        match op:
            case '+':
                return Float(a + b)
            case '-':
                return Float(a - b)
            case '*':
                return Float(a * b)
            case '/' if b == 0.0:
                return self._error(node, "division by zero")
            case '/':
                return Float(a / b)
            case '<':
                return Boolean(a < b)
            case '>':
                return Boolean(a > b)
            case '<=':
                return Boolean(a <= b)
            case '>=':
                return Boolean(a >= b)
        return self._error(node, f"unknown operator: float {op} float")

    # --- Collections ---

    def _eval_values(self, nodes):
        """Evaluates nodes left to right; returns the first Error or the list of values."""
        values = []
        for n in nodes:
            value = self.eval(n)
            if is_error(value):
                return value
            values.append(value)
        return values

    def _eval_sequence_literal(self, nodes, kind) -> MixValue:
        values = self._eval_values(nodes)
        if is_error(values):
            return values
        return kind(values)

    def _eval_map_literal(self, node: MapLiteral) -> MixValue:
        result = Map()
        for key_node, value_node in node.pairs:
            key = self.eval(key_node)
            if is_error(key):
                return key
            value = self.eval(value_node)
            if is_error(value):
                return value
            result.put(key, value)
        return result

    def _eval_range(self, node: RangeExpr) -> MixValue:
        start = self.eval(node.start)
        if is_error(start):
            return start
        end = self.eval(node.end)
        if is_error(end):
            return end
        if not (isinstance(start, Integer) and isinstance(end, Integer)):
            return self._error(node, f"range bounds must be (int), got ({start.type_name}) and ({end.type_name})")
        return Range(start.value, end.value)

    # --- Indexing, slicing, member access ---

    def _normalize_index(self, node, index: MixValue, length: int):
        if not isinstance(index, Integer):
            return self._error(node, f"index must be an integer, got ({index.type_name})")
        position = index.value + length if index.value < 0 else index.value
        if not 0 <= position < length:
            return self._error(node, f"index out of bounds: index {index.value}, length {length}")
        return position

    def _eval_index(self, node: Index) -> MixValue:
        container = self.eval(node.target)
        if is_error(container):
            return container
        index = self.eval(node.index)
        if is_error(index):
            return index
        return self._read_index(node, container, index)

    def _read_index(self, node, container: MixValue, index: MixValue) -> MixValue:
        match container:
            case Map():
                value = container.get(index)
                return NIL if value is None else value
            case SequenceValue() | Range():
                position = self._normalize_index(node, index, len(container))
                if is_error(position):
                    return position
                if isinstance(container, Range):
                    return container.at(position)
                return container.elements[position]
        return self._error(node, f"index operator not supported for type ({container.type_name})")

    def _slice_bound(self, node, bound_node, default: int, length: int):
        if bound_node is None:
            return default
        bound = self.eval(bound_node)
        if is_error(bound):
            return bound
        if not isinstance(bound, Integer):
            return self._error(node, f"slice bounds must be integers, got ({bound.type_name})")
        value = bound.value + length if bound.value < 0 else bound.value
        return max(0, min(value, length))

    def _eval_slice(self, node: Slice) -> MixValue:
        container = self.eval(node.target)
        if is_error(container):
            return container
        if not isinstance(container, (SequenceValue, Range)):
            return self._error(node, f"slice operator not supported for type ({container.type_name})")
        length = len(container)
        start = self._slice_bound(node, node.start, 0, length)
        if is_error(start):
            return start
        end = self._slice_bound(node, node.end, length, length)
        if is_error(end):
            return end
        if start >= end:
            return Array()
        if isinstance(container, Range):
            return Array(container.at(i) for i in range(start, end))
        return Array(container.elements[start:end])

    def _eval_member(self, node: Member) -> MixValue:
        target = self.eval(node.target)
        if is_error(target):
            return target
        name = node.name
        match target:
            case ObjectInstance():
                value = target.lookup(name)
                if value is not None:
                    return value
                return self._error(node, f"field ({name}) not found in struct instance ({target.struct.name})")
            case Struct():
                if name in target.class_fields:
                    return target.class_fields[name]
                return self._error(node, f"class field ({name}) not found in struct ({target.name})")
            case Package():
                if name in target.functions:
                    return target.functions[name]
                return self._error(node, f"function '{name}' not found in package '{target.name}'")
            case Enum():
                if name in target.members:
                    return target.members[name]
                return self._error(node, f"enum member '{name}' not found in enum '{target.name}'")
        return self._error(node, f"member access not supported for type ({target.type_name})")

    # --- Assignment ---

    def _eval_assign(self, node: Assign) -> MixValue:
        value = self.eval(node.value)
        if is_error(value):
            return value
        if node.op == '=':
            return self._write_target(node, node.target, value)
        op = COMPOUND_OPS.get(node.op)
        if op is None:
            return self._error(node, f"unknown assignment operator ({node.op})")
        # Container, index and receiver are evaluated once; the write goes
        # back to the slot that was read.
        target = node.target
        match target:
            case Identifier():
                current = self._eval_identifier(target)
                if is_error(current):
                    return current
                combined = self.binary_op(op, current, value, node)
                if is_error(combined):
                    return combined
                return self._assign_identifier(target, combined)
            case Index():
                container = self.eval(target.target)
                if is_error(container):
                    return container
                index = self.eval(target.index)
                if is_error(index):
                    return index
                current = self._read_index(target, container, index)
                if is_error(current):
                    return current
                combined = self.binary_op(op, current, value, node)
                if is_error(combined):
                    return combined
                return self._store_index(target, container, index, combined)
            case Member():
                owner = self.eval(target.target)
                if is_error(owner):
                    return owner
                return self._compound_member(node, target, owner, op, value)
        return self._error(node, "invalid assignment target")

    def _compound_member(self, node, target: Member, owner: MixValue, op: str, value: MixValue) -> MixValue:
        name = target.name
        match owner:
            case Struct():
                if name in owner.consts:
                    return self._error(target, f"can't assign to constant field ({name}) of struct ({owner.name})")
                fields = owner.class_fields
                missing = f"class field ({name}) not found in struct ({owner.name})"
                struct = owner
            case ObjectInstance():
                # Only the instance's own fields; static fields are not
                # shadowed by a compound write.
                fields = owner.fields
                missing = f"field ({name}) not found in struct instance ({owner.struct.name})"
                struct = owner.struct
            case _:
                return self._error(target, f"member assignment not supported for type ({owner.type_name})")
        current = fields.get(name)
        if current is None:
            return self._error(target, missing)
        combined = self.binary_op(op, current, value, node)
        if is_error(combined):
            return combined
        err = self._check_field_write(target, struct, name, combined)
        if err:
            return err
        fields[name] = combined
        return combined

    def _write_target(self, node, target, value: MixValue) -> MixValue:
        match target:
            case Identifier():
                return self._assign_identifier(target, value)
            case Index():
                return self._assign_index(target, value)
            case Member():
                return self._assign_member(target, value)
            case Paren():
                return self._write_target(node, target.expr, value)
        return self._error(node, "invalid assignment target")

    def _assign_identifier(self, target: Identifier, value: MixValue) -> MixValue:
        name = target.name
        if name not in self.scope:
            return self._error(target, f"identifier not found: ({name})")
        if self.scope.is_constant(name):
            return self._error(target, f"can't assign to constant ({name})")
        if self.scope.is_let(name):
            expected = self.scope.let_type(name)
            if value.type_name != expected:
                return self._error(
                    target, f"can't assign `{value.type_name}` to variable ({name}) of type `{expected}`")
        self.scope.assign(name, value)
        return value

    def _assign_index(self, target: Index, value: MixValue) -> MixValue:
        container = self.eval(target.target)
        if is_error(container):
            return container
        index = self.eval(target.index)
        if is_error(index):
            return index
        return self._store_index(target, container, index, value)

    def _store_index(self, target: Index, container: MixValue, index: MixValue, value: MixValue) -> MixValue:
        match container:
            case Array() | List():
                position = self._normalize_index(target, index, len(container))
                if is_error(position):
                    return position
                container.elements[position] = value
                return value
            case Map():
                container.put(index, value)
                return value
        return self._error(target, f"index assignment not supported for type ({container.type_name})")

    def _check_field_write(self, node, struct: Struct, name: str, value: MixValue) -> Optional[Error]:
        if name in struct.consts:
            return self._error(node, f"can't assign to constant field ({name}) of struct ({struct.name})")
        if name in struct.lets and value.type_name != struct.let_types.get(name):
            return self._error(
                node, f"can't assign `{value.type_name}` to field ({name}) of type `{struct.let_types.get(name)}`")
        return None

    def _assign_member(self, target: Member, value: MixValue) -> MixValue:
        owner = self.eval(target.target)
        if is_error(owner):
            return owner
        match owner:
            case Struct():
                err = self._check_field_write(target, owner, target.name, value)
                if err:
                    return err
                owner.class_fields[target.name] = value
                return value
            case ObjectInstance():
                err = self._check_field_write(target, owner.struct, target.name, value)
                if err:
                    return err
                owner.fields[target.name] = value
                return value
        return self._error(target, f"member assignment not supported for type ({owner.type_name})")

    # --- Calls ---

    def _eval_call(self, node: Call) -> MixValue:
        name = node.name
        if '.' in name:
            receiver_name, member = name.split('.', 1)
            receiver = self.scope.lookup(receiver_name)
            if receiver is None:
                return self._error(node, f"identifier not found: ({receiver_name})")
            return self._call_on(node, receiver, receiver_name, member)

        builtin = self.builtins.get(name)
        if builtin is not None:
            args = self._eval_values(node.args)
            if is_error(args):
                return args
            return self._invoke_builtin(builtin, args, node)

        fn = self.scope.lookup(name)
        if fn is None:
            return self._error(node, f"function not found: ({name})")
        if not isinstance(fn, (Function, Builtin)):
            return self._error(node, f"({name}) is not a function")
        args = self._eval_values(node.args)
        if is_error(args):
            return args
        return self.call_function(fn, args, node)

    def _eval_method_call(self, node: MethodCall) -> MixValue:
        receiver = self.eval(node.target)
        if is_error(receiver):
            return receiver
        return self._call_on(node, receiver, receiver.type_name, node.name)

    def _call_on(self, node, receiver: MixValue, label: str, member: str) -> MixValue:
        match receiver:
            case Package():
                fn = receiver.functions.get(member)
                if fn is None:
                    return self._error(node, f"function '{member}' not found in package '{receiver.name}'")
                args = self._eval_values(node.args)
                if is_error(args):
                    return args
                return self._invoke_builtin(fn, args, node)
            case ObjectInstance():
                args = self._eval_values(node.args)
                if is_error(args):
                    return args
                return self._call_method(receiver, member, args, node)
        return self._error(node, f"({label}) is not a struct instance or package")

    def call_function(self, fn: MixValue, args, node=None) -> MixValue:
        """Calls a Function or Builtin with already-evaluated arguments."""
        match fn:
            case Builtin():
                return self._invoke_builtin(fn, list(args), node)
            case Function():
                return self._call_user_function(fn, list(args), node)
        return self._error(node, f"({fn.type_name}) is not a function")

    def _invoke_builtin(self, builtin: Builtin, args, node) -> MixValue:
        try:
            inspect.signature(builtin.callback).bind(self, self.writer, *args)
        except TypeError:
            return self._error(node, f"wrong number of arguments for ({builtin.name}): got {len(args)}")
        self._push_frame(builtin.name, builtin, args, node)
        try:
            result = builtin.callback(self, self.writer, *args)
            if isinstance(result, Error):
                self.error_trace = [f["name"] for f in self.call_stack]
        finally:
            self._pop_frame()
        if result is None:
            return NIL
        if isinstance(result, Error) and result.line is None:
            loc = getattr(node, 'loc', None)
            if loc is not None:
                result.line, result.col = loc.line, loc.col
        return result

    def _call_user_function(self, fn: Function, args, node) -> MixValue:
        if len(args) != len(fn.params):
            return self._error(node, f"wrong number of arguments: expected {len(fn.params)}, got {len(args)}")
        call_scope = Scope(parent=fn.scope if fn.scope is not None else self.scope)
        for param, arg in zip(fn.params, args):
            call_scope.bind(param, arg)
        self._push_frame(fn.name or "<func>", fn, args, node)
        try:
            with self._scoped(call_scope):
                result = self.eval(fn.body)
        except RecursionError:
            # Keep the deepest trace seen while unwinding.
            if len(self.error_trace) < len(self.call_stack):
                self.error_trace = [f["name"] for f in self.call_stack]
            raise
        finally:
            self._pop_frame()
        if not isinstance(result, ReturnValue):
            return result
        returned = result.value
        # A returned function whose captured scope is smaller than this call's
        # scope is re-pointed at a snapshot of the call scope.
        if isinstance(returned, Function) and returned.scope is not None \
                and len(call_scope) > len(returned.scope):
            returned.scope = call_scope.copy()
        return returned

    def _call_method(self, instance: ObjectInstance, name: str, args, node) -> MixValue:
        struct = instance.struct
        method = struct.methods.get(name)
        if method is None:
            return self._error(node, f"method ({name}) not found in struct ({struct.name})")
        if len(args) != len(method.params):
            return self._error(node, f"wrong number of arguments: expected {len(method.params)}, got {len(args)}")
        method_scope = Scope(parent=self.scope)
        method_scope.bind("this", instance)
        method_scope.bind("self", struct)
        for param, arg in zip(method.params, args):
            method_scope.variables[param] = arg
        self._push_frame(f"{struct.name}.{name}", method, args, node)
        try:
            with self._scoped(method_scope):
                result = self.eval(method.body)
        finally:
            self._pop_frame()
        return unwrap_return(result)

    def _eval_return(self, node: Return) -> MixValue:
        value = NIL if node.value is None else self.eval(node.value)
        if is_error(value):
            return value
        return ReturnValue(value)

    # --- Control flow ---

    def _eval_if(self, node: If) -> MixValue:
        condition = self.eval(node.condition)
        if is_error(condition):
            return condition
        if not isinstance(condition, Boolean):
            return self._error(node, f"conditional expression must be (bool), got ({condition.type_name})")
        if condition.value:
            return self.eval(node.consequence)
        if node.alternative is not None:
            return self.eval(node.alternative)
        return NIL

    def _run_pass(self, loop_scope: Scope, body: Block, bindings=None) -> MixValue:
        """Runs one loop pass in a fresh iteration scope below loop_scope."""
        iteration_scope = Scope(parent=loop_scope)
        for name, value in (bindings or {}).items():
            iteration_scope.bind(name, value)
        with self._scoped(iteration_scope):
            return self.eval(body)

    def _loop_result(self, result: MixValue) -> MixValue:
        """Maps a pass result to the loop's running result; Break and Continue become nil."""
        if isinstance(result, (Break, Continue)):
            return NIL
        return result

    def _eval_for(self, node: For) -> MixValue:
        result = NIL
        with self._scoped(Scope(parent=self.scope)) as loop_scope:
            for init in node.initializers:
                init_result = self.eval(init)
                if is_error(init_result):
                    return init_result
            while True:
                if node.condition is not None:
                    condition = self.eval(node.condition)
                    if is_error(condition):
                        return condition
                    if not isinstance(condition, Boolean):
                        return self._error(node, f"for loop condition must be (bool), got ({condition.type_name})")
                    if not condition.value:
                        break
                passed = self._run_pass(loop_scope, node.body)
                if isinstance(passed, Break):
                    return NIL
                if isinstance(passed, (Error, ReturnValue)):
                    return passed
                result = self._loop_result(passed)
                # Only an Error from an update ends the loop.
                for update in node.updates:
                    update_result = self.eval(update)
                    if is_error(update_result):
                        return update_result
        return result

    def _while_holds(self, node: While):
        for cond_node in node.conditions:
            condition = self.eval(cond_node)
            if is_error(condition):
                return condition
            if not isinstance(condition, Boolean):
                return self._error(node, f"while loop condition must be (bool), got ({condition.type_name})")
            if not condition.value:
                return FALSE
        return TRUE

    def _eval_while(self, node: While) -> MixValue:
        result = NIL
        with self._scoped(Scope(parent=self.scope)) as loop_scope:
            while True:
                holds = self._while_holds(node)
                if is_error(holds):
                    return holds
                if not holds.value:
                    break
                passed = self._run_pass(loop_scope, node.body)
                if isinstance(passed, Break):
                    return NIL
                if isinstance(passed, (Error, ReturnValue)):
                    return passed
                result = self._loop_result(passed)
        return result

    def _eval_foreach(self, node: Foreach) -> MixValue:
        iterable = self.eval(node.iterable)
        if is_error(iterable):
            return iterable
        match iterable:
            case Range():
                items = iter(iterable)
            case SequenceValue():
                items = iter(list(iterable.elements))
            case _:
                return self._error(node, f"foreach requires an `iterable`, got `{iterable.type_name}`")
        result = NIL
        for item in items:
            passed = self._run_pass(self.scope, node.body, {node.name: item})
            if isinstance(passed, Break):
                return NIL
            if isinstance(passed, (Error, ReturnValue)):
                return passed
            result = self._loop_result(passed)
        return result

    def _eval_switch(self, node: Switch) -> MixValue:
        subject = self.eval(node.subject)
        if is_error(subject):
            return subject
        matched = False
        for case in node.cases:
            if not matched:
                candidate = self.eval(case.value)
                if is_error(candidate):
                    return candidate
                matched = switch_equal(subject, candidate)
            if matched:
                # Matched cases fall through until a break.
                result = self.eval(case.body)
                if isinstance(result, Break):
                    return NIL
                if is_signal(result):
                    return result
        if node.default is not None:
            result = self.eval(node.default)
            if isinstance(result, Break):
                return NIL
            if is_signal(result):
                return result
        # A switch is a statement; only Return, Error and Continue leave it.
        return NIL

    # --- Structs, enums, imports ---

    def _eval_struct_decl(self, node: StructDecl) -> MixValue:
        if node.name in self.scope.variables:
            return self._error(node, f"identifier redeclaration found: ({node.name})")
        struct = Struct(node.name)
        for field_decl in node.fields:
            value = NIL if field_decl.value is None else self.eval(field_decl.value)
            if is_error(value):
                return value
            struct.class_fields[field_decl.name] = value
            if field_decl.kind == 'const':
                struct.consts.add(field_decl.name)
            elif field_decl.kind == 'let':
                struct.lets.add(field_decl.name)
                struct.let_types[field_decl.name] = value.type_name
        for method in node.methods:
            if method.name in struct.methods:
                return self._error(method, f"duplicate method ({method.name}) in struct ({node.name})")
            struct.methods[method.name] = Function(method.name, method.params, method.body, self.scope)
        self.types[node.name] = struct
        self.scope.bind(node.name, struct)
        self._dbg("STRUCT", struct, "fields", list(struct.class_fields))
        return struct

    def _eval_new(self, node: New) -> MixValue:
        struct = self.types.get(node.struct_name)
        if struct is None:
            return self._error(node, f"struct type '{node.struct_name}' not defined")
        args = self._eval_values(node.args)
        if is_error(args):
            return args
        instance = ObjectInstance(struct)
        init = struct.methods.get("init")
        if init is None:
            return instance
        if len(args) != len(init.params):
            return self._error(
                node, f"constructor for struct '{struct.name}' expects {len(init.params)} arguments, got {len(args)}")
        ctor_scope = Scope(parent=self.scope)
        ctor_scope.bind("this", instance)
        ctor_scope.bind("self", struct)
        for param, arg in zip(init.params, args):
            ctor_scope.variables[param] = arg
        self._push_frame(f"{struct.name}.init", init, args, node)
        try:
            with self._scoped(ctor_scope):
                result = self.eval(init.body)
        finally:
            self._pop_frame()
        if is_error(result):
            return result
        return instance

    def _eval_enum_decl(self, node: EnumDecl) -> MixValue:
        members = {}
        next_value = 0
        for member in node.members:
            if member.value is not None:
                next_value = member.value
            members[member.name] = Integer(next_value)
            next_value += 1
        enum = Enum(node.name, members)
        err = self._bind_new(node, node.name, enum)
        return err or enum

    def _eval_import(self, node: Import) -> MixValue:
        package = self.packages.get(node.name)
        if package is None:
            return self._error(node, f"package '{node.name}' not found")
        binding = node.alias or node.name
        if self.scope.variables.get(binding) is package:
            return package
        err = self._bind_new(node, binding, package)
        return err or package


# =================================================================
# Equality helpers
# =================================================================

_SCALARS = (Integer, Float, Boolean, String, Char)


def strict_equal(left: MixValue, right: MixValue) -> bool:
    """Same type and value for scalars; identity for everything else."""
    if left.type_name != right.type_name:
        return False
    if isinstance(left, _SCALARS):
        return left.value == right.value
    if isinstance(left, Nil):
        return True
    return left is right


def switch_equal(left: MixValue, right: MixValue) -> bool:
    if isinstance(left, Nil) or isinstance(right, Nil):
        return isinstance(left, Nil) and isinstance(right, Nil)
    if left.type_name != right.type_name:
        if is_numeric(left) and is_numeric(right):
            return float(left.value) == float(right.value)
        return False
    if isinstance(left, _SCALARS):
        return left.value == right.value
    return left.to_string() == right.to_string()
