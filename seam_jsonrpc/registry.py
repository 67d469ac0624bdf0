"""
Method registry

Maps method names to bound handlers. Handlers take positional parameters;
their expected types come either from an explicit ``param_types`` sequence or
from the handler's annotations, read once at bind time.
"""

import inspect
import logging
import threading
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from seam_jsonrpc.codec import Codec
from seam_jsonrpc.errors import CodecError, DuplicateMethodError, InvalidParamsError

logger = logging.getLogger(__name__)

_METHOD_NAME_ATTR = "__jsonrpc_method__"
_POSITIONAL_KINDS = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def rpc_method(name: Optional[str] = None) -> Callable:
    """Give a method an explicit wire name for ``bind_api``/``create_api``

    >>> class Api:
    ...     @rpc_method("math/add")
    ...     def add(self, a: int, b: int) -> int: ...
    """
    def decorator(func):
        setattr(func, _METHOD_NAME_ATTR, name or func.__name__)
        return func
    return decorator


def _type_hints(func: Callable) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except (AttributeError, NameError, TypeError):  # unresolvable forward refs, builtins, partials
        return {}


def _signature(func: Callable) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(func)
    except (TypeError, ValueError):
        return None


def returns_none(func: Callable) -> bool:
    """Whether a callable is annotated ``-> None`` (notification-style)"""
    hints = _type_hints(func)
    if "return" in hints:
        return hints["return"] is type(None)
    signature = _signature(func)
    return signature is not None and signature.return_annotation in (None, "None")


def return_type(func: Callable) -> Any:
    """Declared result type of a callable, unwrapping ``Awaitable``/``Coroutine``"""
    hint = _type_hints(func).get("return")
    origin = typing.get_origin(hint)
    if origin is not None and getattr(origin, "__name__", "") in ("Awaitable", "Coroutine"):
        args = typing.get_args(hint)
        hint = args[-1] if args else None
    if hint is type(None):
        return None
    return hint


def iter_api_methods(api: Any, prefix: str = "") -> Iterator[Tuple[str, str, Callable]]:
    """Yield ``(wire_name, attribute_name, callable)`` for public methods of an API

    Works on instances (bound methods) and on classes (plain functions).
    """
    for attr_name in sorted(dir(api)):
        if attr_name.startswith("_"):
            continue
        attr = getattr(api, attr_name, None)
        if not callable(attr) or isinstance(attr, type):
            continue
        wire_name = getattr(attr, _METHOD_NAME_ATTR, attr_name)
        yield f"{prefix}{wire_name}", attr_name, attr


@dataclass(frozen=True)
class MethodBinding:
    """A handler registered under a method name"""
    name: str
    handler: Callable
    param_types: Optional[Tuple[Any, ...]] = None
    is_notification: bool = False
    _positional: Tuple[Any, ...] = field(default=(), repr=False)
    _required: int = field(default=0, repr=False)
    _variadic: Any = field(default=None, repr=False)
    _has_variadic: bool = field(default=False, repr=False)
    _introspected: bool = field(default=False, repr=False)

    @classmethod
    def create(cls,
               name: str,
               handler: Callable,
               param_types: Optional[Sequence[Any]] = None,
               notification: bool = False) -> "MethodBinding":
        """Build a binding, reading the handler's signature up front"""
        if not isinstance(name, str) or not name:
            raise ValueError("method name must be a non-empty string")
        if not callable(handler):
            raise TypeError("handler must be callable")

        if param_types is not None:
            return cls(name, handler, tuple(param_types), notification)

        signature = _signature(handler)
        if signature is None:
            return cls(name, handler, None, notification)

        hints = _type_hints(handler)
        positional = []
        required = 0
        variadic = None
        has_variadic = False
        for parameter in signature.parameters.values():
            if parameter.kind in _POSITIONAL_KINDS:
                positional.append(hints.get(parameter.name))
                if parameter.default is inspect.Parameter.empty:
                    required += 1
            elif parameter.kind == inspect.Parameter.VAR_POSITIONAL:
                has_variadic = True
                variadic = hints.get(parameter.name)

        return cls(
            name, handler, None, notification,
            _positional=tuple(positional),
            _required=required,
            _variadic=variadic,
            _has_variadic=has_variadic,
            _introspected=True,
        )

    def _shapes_for(self, count: int) -> List[Any]:
        if self.param_types is not None:
            if count != len(self.param_types):
                raise InvalidParamsError(data=f"Expected {len(self.param_types)} params, got {count}")
            return list(self.param_types)

        if not self._introspected:
            return [None] * count

        if count < self._required or (count > len(self._positional) and not self._has_variadic):
            raise InvalidParamsError(data=f"Unexpected number of params: {count}")
        shapes = list(self._positional[:count])
        shapes.extend([self._variadic] * (count - len(shapes)))
        return shapes

    def decode_params(self, params: Any, codec: Codec) -> List[Any]:
        """Decode raw positional params into the handler's argument list

        Raises:
            InvalidParamsError: Params are not an array, have the wrong arity,
                or do not fit the declared types
        """
        if params is None:
            params = []
        if not isinstance(params, list):
            raise InvalidParamsError(data="Params must be an array")

        shapes = self._shapes_for(len(params))
        try:
            return [codec.coerce(value, shape) for value, shape in zip(params, shapes)]
        except CodecError as e:
            raise InvalidParamsError(data=str(e)) from e


class MethodRegistry:
    """Thread-safe mapping of method name to ``MethodBinding``

    Duplicate names are rejected with ``DuplicateMethodError``; use
    ``rebind`` to replace a binding on purpose.
    """

    def __init__(self):
        self._bindings: Dict[str, MethodBinding] = {}
        self._lock = threading.RLock()

    def bind(self,
             name: str,
             handler: Callable,
             param_types: Optional[Sequence[Any]] = None,
             notification: bool = False) -> MethodBinding:
        """Register a handler

        Args:
            name: Method name
            handler: Sync or async callable taking positional params
            param_types: Types of the positional params; inferred from
                annotations when omitted
            notification: Handler is fire-and-forget (result is ignored)

        Returns:
            MethodBinding: The new binding

        Raises:
            DuplicateMethodError: ``name`` is already bound
        """
        binding = MethodBinding.create(name, handler, param_types, notification)
        with self._lock:
            if name in self._bindings:
                raise DuplicateMethodError(name)
            self._bindings[name] = binding
        logger.debug(f"Bound RPC method: {name}")
        return binding

    def rebind(self,
               name: str,
               handler: Callable,
               param_types: Optional[Sequence[Any]] = None,
               notification: bool = False) -> MethodBinding:
        """Register a handler, replacing any existing binding for ``name``"""
        binding = MethodBinding.create(name, handler, param_types, notification)
        with self._lock:
            self._bindings[name] = binding
        logger.debug(f"Rebound RPC method: {name}")
        return binding

    def bind_api(self, api: Any, prefix: str = "") -> List[str]:
        """Bind every public method of ``api``

        Methods annotated ``-> None`` are bound as notification-style.

        Returns:
            List[str]: Wire names that were bound
        """
        bindings = [
            MethodBinding.create(wire_name, method, notification=returns_none(method))
            for wire_name, _, method in iter_api_methods(api, prefix)
        ]
        # All or nothing: no binding is inserted if any name is taken
        with self._lock:
            for binding in bindings:
                if binding.name in self._bindings:
                    raise DuplicateMethodError(binding.name)
            for binding in bindings:
                self._bindings[binding.name] = binding
        logger.debug(f"Bound {len(bindings)} RPC methods from {type(api).__name__}")
        return [binding.name for binding in bindings]

    def resolve(self, name: str) -> Optional[MethodBinding]:
        with self._lock:
            return self._bindings.get(name)

    def unbind(self, name: str) -> None:
        with self._lock:
            removed = self._bindings.pop(name, None)
        if removed is not None:
            logger.debug(f"Unbound RPC method: {name}")

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._bindings)

    def __contains__(self, name: str) -> bool:
        return self.resolve(name) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
