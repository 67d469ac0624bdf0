"""
Error taxonomy

Two families live here:

- ``JsonRpcError`` and its subclasses map one-to-one onto JSON-RPC error
  objects. Handlers raise them to signal structured errors, and the client
  raises them when a call is rejected by the remote peer.
- ``SeamRpcError`` covers failures of the library itself (registry misuse,
  codec and transport failures) that never travel over the wire.
"""

from typing import Any, Optional

from seam_jsonrpc.models import (
    ErrorObject,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)


class JsonRpcError(Exception):
    """A JSON-RPC error carrying ``code``, ``message`` and optional ``data``"""

    default_error: Optional[ErrorObject] = None

    def __init__(self, code: Optional[int] = None, message: Optional[str] = None, data: Any = None):
        default = self.default_error
        if code is None:
            if default is None:
                raise TypeError(f"{type(self).__name__} requires an error code")
            code = default.code
        if message is None:
            message = default.message if default is not None else ""
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __repr__(self):
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, data={self.data!r})"

    def to_error_object(self) -> ErrorObject:
        return ErrorObject(self.code, self.message, self.data)

    @classmethod
    def from_error_object(cls, error: ErrorObject) -> "JsonRpcError":
        """Build the most specific exception type for an error object

        Standard codes map onto their dedicated subclass, anything else
        becomes an ``ApplicationError``.
        """
        error_cls = _ERRORS_BY_CODE.get(error.code, ApplicationError)
        return error_cls(error.code, error.message, error.data)


class ParseError(JsonRpcError):
    default_error = PARSE_ERROR


class InvalidRequestError(JsonRpcError):
    default_error = INVALID_REQUEST


class MethodNotFoundError(JsonRpcError):
    default_error = METHOD_NOT_FOUND


class InvalidParamsError(JsonRpcError):
    default_error = INVALID_PARAMS


class InternalError(JsonRpcError):
    default_error = INTERNAL_ERROR


class ApplicationError(JsonRpcError):
    """Handler-signalled error with an application-defined code"""


_ERRORS_BY_CODE = {
    PARSE_ERROR.code: ParseError,
    INVALID_REQUEST.code: InvalidRequestError,
    METHOD_NOT_FOUND.code: MethodNotFoundError,
    INVALID_PARAMS.code: InvalidParamsError,
    INTERNAL_ERROR.code: InternalError,
}


class SeamRpcError(Exception):
    """Base class for library errors that are not JSON-RPC wire errors"""


class DuplicateMethodError(SeamRpcError):
    """A handler is already bound under the requested method name"""

    def __init__(self, name: str):
        super().__init__(f"Method already bound: {name}")
        self.name = name


class CodecError(SeamRpcError):
    """Serialization or deserialization failed"""


class TransportError(SeamRpcError):
    """The sender failed to deliver a request"""


class ResponseDecodeError(SeamRpcError):
    """A response result could not be decoded into the expected type"""
