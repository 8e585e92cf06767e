"""
A debug printer for Mix values.

``to_string`` gives the canonical form used for equality and map keys;
the printer gives the tagged form (``<int(42)>``) used when inspecting
values from a REPL or test failure.
"""

from mix.mix_datatypes import (
    Nil, Boolean, Integer, Float, String, Char, Array, List, Tuple, Map, Set, Range,
    Function, Builtin, Package, Struct, ObjectInstance, Enum, Error, ReturnValue,
    Break, Continue
)


class Printer:
    """Formats Mix values into their tagged debug representation."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format a value."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj, level)

    def _create_handlers(self):
        return {
            Integer: self._pformat_scalar,
            Float: self._pformat_scalar,
            String: self._pformat_scalar,
            Char: self._pformat_scalar,
            Boolean: self._pformat_scalar,
            Nil: lambda o, l: "<nil()>",
            Array: self._pformat_array,
            List: self._pformat_sequence,
            Tuple: self._pformat_sequence,
            Map: self._pformat_map,
            Set: self._pformat_set,
            Range: lambda o, l: f"<range({o.start},{o.end})>",
            Function: self._pformat_function,
            Builtin: lambda o, l: f"<builtin({o.name})>",
            Package: self._pformat_package,
            Struct: self._pformat_struct,
            ObjectInstance: self._pformat_instance,
            Enum: lambda o, l: f"<enum({o.name})>",
            Error: lambda o, l: f"<error({o.to_string()})>",
            ReturnValue: lambda o, l: self.pformat(o.value, l),
            Break: lambda o, l: "<break>",
            Continue: lambda o, l: "<continue>",
        }

    def _items(self, values, level):
        return ", ".join(self.pformat(v, level + 1) for v in values)

    def _pformat_scalar(self, obj, level):
        return f"<{obj.type_name}({obj.to_string()})>"

    def _pformat_array(self, obj, level):
        return f"<array([{self._items(obj.elements, level)}])>"

    def _pformat_sequence(self, obj, level):
        return f"<{obj.type_name}({self._items(obj.elements, level)})>"

    def _pformat_map(self, obj, level):
        if not obj.pairs:
            return "<map{}>"
        body = ", ".join(f"{k}: {self.pformat(v, level + 1)}" for k, v in obj.pairs.items())
        return f"<map{{{body}}}>"

    def _pformat_set(self, obj, level):
        if not obj.members:
            return "<set{}>"
        return f"<set{{{', '.join(obj.members)}}}>"

    def _pformat_function(self, obj, level):
        return f"<func[{obj.name}({', '.join(obj.params)})]>"

    def _pformat_package(self, obj, level):
        return f"<package({obj.name}: {', '.join(sorted(obj.functions))})>"

    def _pformat_struct(self, obj, level):
        # Multi-line: one method name per line, indented under the header.
        indent = self._indent_char * (level + 1)
        methods = "".join(f"\n{indent}{name}" for name in obj.methods)
        return f"struct({obj.name}) {{{methods}}}"

    def _pformat_instance(self, obj, level):
        return f"<object({obj.struct.name})>"


_default_printer = Printer()


def pformat(obj) -> str:
    return _default_printer.pformat(obj)
