from __future__ import annotations

import json
from typing import Any, Optional
import collections.abc

import yaml

from mix.mix_datatypes import (
    MixValue, Nil, Boolean, Integer, Float, String, Char, Array, List, Tuple, Map, Set,
    Range, ObjectInstance, Error, NIL
)


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        return data.decode(encoding or 'utf-8', errors='replace')
    return str(data)


def detect_format(content_type: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns 'json' or 'yaml'. Uses Content-Type first; falls back to sniffing
    the data. Returns None when neither gives an answer.
    """
    ct = (content_type or "").lower()
    if 'json' in ct:
        return 'json'
    if 'yaml' in ct:
        return 'yaml'
    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
        if s.startswith('---') or ':' in s.split('\n', 1)[0]:
            return 'yaml'
    return None


def load_text(data: bytes | bytearray | str, fmt: Optional[str] = None,
              content_type: Optional[str] = None) -> Any:
    """Parses JSON or YAML text into plain Python data."""
    text = _norm_text(data)
    fmt = (fmt or detect_format(content_type, text) or 'yaml').lower()
    if fmt == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # YAML is a superset of JSON; mislabeled YAML still loads.
            pass
    elif fmt != 'yaml':
        raise ValueError(f"Unsupported format: {fmt}")
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid {fmt} document: {e}") from e


# --------------------------
# Mix <-> Python
# --------------------------

def to_builtin(value: MixValue) -> Any:
    """Converts a Mix value into plain Python data suitable for JSON/YAML."""
    match value:
        case Nil():
            return None
        case Boolean() | Integer() | Float() | String() | Char():
            return value.value
        case Array() | List() | Tuple() | Set() | Range():
            return [to_builtin(v) for v in value]
        case Map():
            return {k: to_builtin(v) for k, v in value.pairs.items()}
        case ObjectInstance():
            fields = dict(value.struct.class_fields)
            fields.update(value.fields)
            return {k: to_builtin(v) for k, v in fields.items()}
        case Error():
            return {'error': value.to_string()}
    return value.to_string()


def from_builtin(obj: Any) -> MixValue:
    """Converts plain Python data into Mix values."""
    if obj is None:
        return NIL
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, int):
        return Integer(obj)
    if isinstance(obj, float):
        return Float(obj)
    if isinstance(obj, str):
        return String(obj)
    if isinstance(obj, collections.abc.Mapping):
        result = Map()
        for k, v in obj.items():
            result.pairs[str(k)] = from_builtin(v)
        return result
    if isinstance(obj, (set, frozenset)):
        return Set(from_builtin(v) for v in obj)
    if isinstance(obj, (list, tuple)):
        return Array(from_builtin(v) for v in obj)
    raise TypeError(f"Cannot convert {type(obj).__name__} to a Mix value")


# --------------------------
# Public API
# --------------------------

def serialize(value: Any, fmt: str = 'json', *, pretty: bool = False) -> str:
    """Serializes a Mix value (or plain data) to JSON or YAML text."""
    data = to_builtin(value) if isinstance(value, MixValue) else value
    fmt = fmt.lower()
    if fmt == 'json':
        return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)
    if fmt == 'yaml':
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported format: {fmt}")


def deserialize(data: bytes | bytearray | str, fmt: Optional[str] = None,
                content_type: Optional[str] = None) -> MixValue:
    """Parses JSON or YAML text into Mix values."""
    return from_builtin(load_text(data, fmt=fmt, content_type=content_type))
