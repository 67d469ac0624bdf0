"""
JSON-RPC 2.0 message model

Envelope types (request, notification, success/error response, error object),
the protocol version constant, the reserved error codes and the predicates used
to classify parsed payloads.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

JSONRPC_VERSION = "2.0"

Id = Union[str, int, float]

# Reserved error codes
PARSE_ERROR_CODE = -32700
INVALID_REQUEST_CODE = -32600
METHOD_NOT_FOUND_CODE = -32601
INVALID_PARAMS_CODE = -32602
INTERNAL_ERROR_CODE = -32603

SERVER_ERROR_RANGE = (-32768, -32000)


def is_valid_id(value: Any) -> bool:
    """Check whether a value can serve as a request identifier

    Args:
        value: Candidate id taken from a parsed payload

    Returns:
        bool: True for strings and (non-boolean) numbers
    """
    if isinstance(value, bool):
        return False
    return isinstance(value, (str, int, float))


def is_reserved_code(code: int) -> bool:
    """Whether an error code falls inside the range reserved by the protocol"""
    return SERVER_ERROR_RANGE[0] <= code <= SERVER_ERROR_RANGE[1]


def is_valid_error_object(error: Any) -> bool:
    """Whether a parsed "error" member has an integer code and a string message"""
    if not isinstance(error, dict):
        return False
    code = error.get("code")
    return isinstance(code, int) and not isinstance(code, bool) and isinstance(error.get("message"), str)


@dataclass(frozen=True)
class ErrorObject:
    """The "error" member of an error response"""
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error

    @classmethod
    def from_dict(cls, error: Dict[str, Any]) -> "ErrorObject":
        return cls(
            code=int(error.get("code", INTERNAL_ERROR_CODE)),
            message=str(error.get("message", "")),
            data=error.get("data"),
        )

    def with_data(self, data: Any) -> "ErrorObject":
        return ErrorObject(self.code, self.message, data)


PARSE_ERROR = ErrorObject(
    PARSE_ERROR_CODE,
    "Parse error",
    "Invalid JSON was received by the server. "
    "An error occurred on the server while parsing the JSON text.",
)
INVALID_REQUEST = ErrorObject(
    INVALID_REQUEST_CODE,
    "Invalid Request",
    "The JSON sent is not a valid Request object.",
)
METHOD_NOT_FOUND = ErrorObject(
    METHOD_NOT_FOUND_CODE,
    "Method not found",
    "The method does not exist / is not available.",
)
INVALID_PARAMS = ErrorObject(
    INVALID_PARAMS_CODE,
    "Invalid params",
    "Invalid method parameter(s).",
)
INTERNAL_ERROR = ErrorObject(
    INTERNAL_ERROR_CODE,
    "Internal error",
    "Internal JSON-RPC error.",
)


@dataclass(frozen=True)
class Request:
    id: Id
    method: str
    params: Any = field(default_factory=list)
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }


@dataclass(frozen=True)
class Notification:
    method: str
    params: Any = field(default_factory=list)
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "method": self.method,
            "params": self.params,
        }


@dataclass(frozen=True)
class SuccessResponse:
    id: Id
    result: Any = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {"jsonrpc": self.jsonrpc, "id": self.id, "result": self.result}


@dataclass(frozen=True)
class ErrorResponse:
    """Error response; ``id`` is None when the request id could not be determined"""
    error: ErrorObject
    id: Optional[Id] = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "error": self.error.to_dict(),
        }


# Predicates over parsed payloads. These only look at member presence;
# full validation is the dispatcher's job.

def is_request(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and "method" in payload
        and payload.get("id") is not None
    )


def is_notification(payload: Any) -> bool:
    return isinstance(payload, dict) and "method" in payload and "id" not in payload


def is_success_response(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and "id" in payload
        and "result" in payload
        and "method" not in payload
    )


def is_error_response(payload: Any) -> bool:
    return isinstance(payload, dict) and "error" in payload and "method" not in payload


def is_response(payload: Any) -> bool:
    return is_success_response(payload) or is_error_response(payload)
