"""
Codec boundary

The dispatcher and the correlator never touch ``json`` directly: they call a
``Codec`` to turn envelopes into text and back, and to decode the opaque
params/result values into the shapes a method expects.
"""

import abc
import collections.abc
import dataclasses
import inspect
import json
import sys
import typing
from typing import Any

from google.protobuf.message import Message

from seam_jsonrpc.errors import CodecError
from seam_jsonrpc.utils.serialization import dict_to_protobuf, is_protobuf_type, protobuf_to_dict

if sys.version_info >= (3, 10):
    from types import UnionType
    _UNION_ORIGINS = (typing.Union, UnionType)
else:
    _UNION_ORIGINS = (typing.Union,)

_NONE_TYPE = type(None)


class Codec(abc.ABC):
    """Serialization capability consumed by the server and client"""

    @abc.abstractmethod
    def encode(self, value: Any) -> str:
        """Serialize a value to text

        Raises:
            CodecError: The value cannot be serialized
        """

    @abc.abstractmethod
    def decode(self, text: str, shape: Any = None) -> Any:
        """Deserialize text, optionally into an expected shape

        Args:
            text: Serialized payload
            shape: Expected type; None returns the generic JSON value

        Raises:
            CodecError: The text is malformed or does not fit ``shape``
        """

    def coerce(self, value: Any, shape: Any = None) -> Any:
        """Decode an already-parsed JSON value into ``shape``"""
        if shape is None:
            return value
        return self.decode(self.encode(value), shape)


class JsonCodec(Codec):
    """Default codec built on the standard ``json`` module

    Understands primitives, ``typing`` generics, dataclasses and Protobuf
    messages (mapped through their canonical JSON form).
    """

    def __init__(self, separators=(",", ":"), ensure_ascii: bool = True):
        self.separators = separators
        self.ensure_ascii = ensure_ascii

    def encode(self, value: Any) -> str:
        try:
            return json.dumps(
                value,
                default=self._default,
                separators=self.separators,
                ensure_ascii=self.ensure_ascii,
                allow_nan=False,
            )
        except (TypeError, ValueError, RecursionError) as e:
            raise CodecError(f"Cannot encode value: {e}") from e

    def decode(self, text: str, shape: Any = None) -> Any:
        try:
            value = json.loads(text)
        except (TypeError, ValueError, RecursionError) as e:
            raise CodecError(f"Malformed JSON: {e}") from e
        return self.coerce(value, shape)

    def coerce(self, value: Any, shape: Any = None) -> Any:
        if shape is None or shape is Any or shape is inspect.Parameter.empty:
            return value

        origin = typing.get_origin(shape)
        args = typing.get_args(shape)

        if origin in _UNION_ORIGINS:
            return self._coerce_union(value, args)
        if origin in (list, collections.abc.Sequence):
            item_shape = args[0] if args else None
            return [self.coerce(item, item_shape) for item in self._expect(value, list, shape)]
        if origin is tuple:
            return self._coerce_tuple(value, args, shape)
        if origin is dict:
            key_shape, value_shape = args if args else (None, None)
            items = self._expect(value, dict, shape)
            return {self.coerce(k, key_shape): self.coerce(v, value_shape) for k, v in items.items()}
        if origin is not None:
            raise CodecError(f"Unsupported type: {shape!r}")

        if shape is _NONE_TYPE:
            if value is not None:
                raise CodecError(f"Expected null, got {value!r}")
            return None
        if shape is bool:
            return self._expect(value, bool, shape)
        if shape is int:
            if isinstance(value, float) and value.is_integer():
                return int(value)
            if isinstance(value, bool) or not isinstance(value, int):
                raise CodecError(f"Expected int, got {value!r}")
            return value
        if shape is float:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise CodecError(f"Expected float, got {value!r}")
            return float(value)
        if shape in (str, list, dict):
            return self._expect(value, shape, shape)
        if shape is tuple:
            return tuple(self._expect(value, list, shape))
        if is_protobuf_type(shape):
            return dict_to_protobuf(value, shape)
        if dataclasses.is_dataclass(shape) and isinstance(shape, type):
            return self._coerce_dataclass(value, shape)
        if isinstance(shape, type) and isinstance(value, shape):
            return value

        raise CodecError(f"Cannot decode {value!r} as {getattr(shape, '__name__', shape)}")

    def _coerce_union(self, value, args):
        if value is None and _NONE_TYPE in args:
            return None
        for candidate in args:
            if candidate is _NONE_TYPE:
                continue
            try:
                return self.coerce(value, candidate)
            except CodecError:
                continue
        raise CodecError(f"{value!r} matches none of {args!r}")

    def _coerce_tuple(self, value, args, shape):
        items = self._expect(value, list, shape)
        if not args:
            return tuple(items)
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(self.coerce(item, args[0]) for item in items)
        if len(items) != len(args):
            raise CodecError(f"Expected {len(args)} items, got {len(items)}")
        return tuple(self.coerce(item, item_shape) for item, item_shape in zip(items, args))

    def _coerce_dataclass(self, value, shape):
        hints = typing.get_type_hints(shape)
        fields = [f for f in dataclasses.fields(shape) if f.init]
        if isinstance(value, list):
            if len(value) > len(fields):
                raise CodecError(f"Too many values for {shape.__name__}")
            value = {f.name: item for f, item in zip(fields, value)}
        value = self._expect(value, dict, shape)

        known = {f.name for f in fields}
        unknown = set(value) - known
        if unknown:
            raise CodecError(f"Unknown fields for {shape.__name__}: {sorted(unknown)}")

        kwargs = {name: self.coerce(item, hints.get(name)) for name, item in value.items()}
        try:
            return shape(**kwargs)
        except TypeError as e:
            raise CodecError(f"Cannot build {shape.__name__}: {e}") from e

    @staticmethod
    def _expect(value, expected_type, shape):
        if not isinstance(value, expected_type):
            name = getattr(shape, "__name__", repr(shape))
            raise CodecError(f"Expected {name}, got {type(value).__name__}")
        return value

    @staticmethod
    def _default(obj: Any) -> Any:
        if isinstance(obj, Message):
            return protobuf_to_dict(obj)
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
