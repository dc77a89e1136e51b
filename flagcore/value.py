"""
This submodule defines :class:`Value`, an immutable JSON-like value.

Flag variations, clause values and context attributes arrive as JSON; ``Value``
gives them a single representation with typed accessors and an equality that
treats JSON types strictly (``true`` is never equal to ``1``).
"""

import json
import math
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union


class ValueType(Enum):
    NULL = 'null'
    BOOL = 'bool'
    NUMBER = 'number'
    STRING = 'string'
    ARRAY = 'array'
    OBJECT = 'object'


class InvalidValueError(ValueError):
    """
    Raised by :func:`Value.parse` when the input is not valid JSON.
    """

    def __init__(self, message: str, offset: int):
        super().__init__("%s (at byte offset %d)" % (message, offset))
        self.offset = offset


def type_of(raw: Any) -> Optional[ValueType]:
    """
    Returns the JSON type of a plain Python value, or None if it has no JSON equivalent.
    """
    if raw is None:
        return ValueType.NULL
    if isinstance(raw, bool):
        return ValueType.BOOL
    if isinstance(raw, (int, float)):
        return ValueType.NUMBER
    if isinstance(raw, str):
        return ValueType.STRING
    if isinstance(raw, (list, tuple)):
        return ValueType.ARRAY
    if isinstance(raw, Mapping):
        return ValueType.OBJECT
    if isinstance(raw, Value):
        return raw.type
    return None


def to_double(raw: Any) -> float:
    """
    Converts a JSON number to a double. Integers too large for a double become infinities.
    """
    try:
        return float(raw)
    except OverflowError:
        return math.inf if raw > 0 else -math.inf


def values_equal(a: Any, b: Any) -> bool:
    """
    Deep structural equality of two JSON-compatible Python values.

    Numbers compare as doubles; booleans are never equal to numbers; object key
    order is not significant.
    """
    if isinstance(a, Value):
        a = a._raw
    if isinstance(b, Value):
        b = b._raw
    ta = type_of(a)
    if ta is None or ta != type_of(b):
        return False
    if ta == ValueType.NUMBER:
        return to_double(a) == to_double(b)
    if ta == ValueType.ARRAY:
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if ta == ValueType.OBJECT:
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    return a == b


def _freeze(raw: Any) -> Any:
    t = type_of(raw)
    if t is None:
        raise TypeError("%s is not a JSON-compatible type" % type(raw).__name__)
    if isinstance(raw, Value):
        return raw._raw
    if t == ValueType.ARRAY:
        return tuple(_freeze(item) for item in raw)
    if t == ValueType.OBJECT:
        frozen = {}
        for k, v in raw.items():
            if not isinstance(k, str):
                raise TypeError("object keys must be strings, got %s" % type(k).__name__)
            frozen[k] = _freeze(v)
        return MappingProxyType(frozen)
    return raw


def _thaw(raw: Any) -> Any:
    if isinstance(raw, tuple):
        return [_thaw(item) for item in raw]
    if isinstance(raw, Mapping):
        return {k: _thaw(v) for k, v in raw.items()}
    return raw


def _hash(raw: Any) -> int:
    if isinstance(raw, tuple):
        return hash(tuple(_hash(item) for item in raw))
    if isinstance(raw, Mapping):
        return hash(frozenset((k, _hash(v)) for k, v in raw.items()))
    if isinstance(raw, bool):
        return hash(('bool', raw))
    if isinstance(raw, (int, float)):
        return hash(to_double(raw))
    return hash(raw)


class Value:
    """
    An immutable JSON value: null, boolean, number, string, array or object.

    Accessors never raise on a type mismatch; they return the zero value of
    the requested type instead (``False``, ``0``, ``''``, an empty list or
    dict). Use :func:`Value.of` to wrap plain Python data and
    :func:`to_python` to get a mutable copy back out.
    """

    __slots__ = ['_raw', '_type']

    def __init__(self, raw: Any):
        object.__setattr__(self, '_raw', _freeze(raw))
        object.__setattr__(self, '_type', type_of(raw))

    def __setattr__(self, name, value):
        raise AttributeError("Value is immutable")

    @classmethod
    def of(cls, raw: Any) -> 'Value':
        if isinstance(raw, Value):
            return raw
        return cls(raw)

    @classmethod
    def null(cls) -> 'Value':
        return _NULL

    @classmethod
    def boolean(cls, value: bool) -> 'Value':
        return _TRUE if value else _FALSE

    @classmethod
    def number(cls, value: Union[int, float]) -> 'Value':
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError("expected a number")
        return cls(value)

    @classmethod
    def string(cls, value: str) -> 'Value':
        if not isinstance(value, str):
            raise TypeError("expected a string")
        return cls(value)

    @classmethod
    def array(cls, items: Iterable[Any]) -> 'Value':
        return cls(list(items))

    @classmethod
    def object(cls, mapping: Mapping[str, Any]) -> 'Value':
        return cls(dict(mapping))

    @classmethod
    def parse(cls, text: Union[str, bytes]) -> 'Value':
        """
        Parses JSON text. Object key order is preserved.

        :raises InvalidValueError: if the text is not valid JSON; ``offset`` is the byte offset of the error
        """
        if isinstance(text, (bytes, bytearray)):
            try:
                text = bytes(text).decode('utf-8')
            except UnicodeDecodeError as e:
                raise InvalidValueError("invalid UTF-8", e.start)
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidValueError(e.msg, len(text[:e.pos].encode('utf-8')))
        return cls(raw)

    @property
    def type(self) -> ValueType:
        return self._type

    @property
    def is_null(self) -> bool:
        return self._type == ValueType.NULL

    @property
    def is_number(self) -> bool:
        return self._type == ValueType.NUMBER

    @property
    def is_int(self) -> bool:
        return self._type == ValueType.NUMBER and (isinstance(self._raw, int) or to_double(self._raw).is_integer())

    def as_bool(self) -> bool:
        return self._raw if self._type == ValueType.BOOL else False

    def as_number(self) -> float:
        return to_double(self._raw) if self._type == ValueType.NUMBER else 0.0

    def as_int(self) -> int:
        if self._type != ValueType.NUMBER or not (isinstance(self._raw, int) or math.isfinite(self._raw)):
            return 0
        return int(self._raw)

    def as_string(self) -> str:
        return self._raw if self._type == ValueType.STRING else ''

    def as_optional_string(self) -> Optional[str]:
        return self._raw if self._type == ValueType.STRING else None

    def as_list(self) -> List['Value']:
        if self._type != ValueType.ARRAY:
            return []
        return [Value(item) for item in self._raw]

    def as_dict(self) -> Dict[str, 'Value']:
        if self._type != ValueType.OBJECT:
            return {}
        return {k: Value(v) for k, v in self._raw.items()}

    def __len__(self) -> int:
        if self._type in (ValueType.ARRAY, ValueType.OBJECT):
            return len(self._raw)
        return 0

    def get(self, key_or_index: Union[str, int]) -> 'Value':
        """
        Returns an object property or array element, or null if absent or not applicable.
        """
        if self._type == ValueType.OBJECT and isinstance(key_or_index, str):
            if key_or_index in self._raw:
                return Value(self._raw[key_or_index])
        elif self._type == ValueType.ARRAY and isinstance(key_or_index, int) and not isinstance(key_or_index, bool):
            if 0 <= key_or_index < len(self._raw):
                return Value(self._raw[key_or_index])
        return _NULL

    def to_python(self) -> Any:
        return _thaw(self._raw)

    def to_json_string(self) -> str:
        return json.dumps(self.to_python(), separators=(',', ':'))

    def __eq__(self, other) -> bool:
        if isinstance(other, Value):
            return values_equal(self._raw, other._raw)
        return NotImplemented

    def __ne__(self, other) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self) -> int:
        return _hash(self._raw)

    def __repr__(self) -> str:
        return "Value(%s)" % self.to_json_string()


_NULL = Value(None)
_TRUE = Value(True)
_FALSE = Value(False)
