"""
Seam JSON-RPC

Transport-agnostic JSON-RPC 2.0 for asyncio:

1. Message model: request, notification, success/error response envelopes
2. Server: method registry plus dispatcher turning request text into response text
3. Client: correlator matching responses to in-flight requests by id
4. Peer: server and client over one bidirectional channel

Payload text travels over whatever transport the host provides; the ZeroMQ
binding in ``seam_jsonrpc.adapters.zeromq`` is one such transport. Metrics and
trace context go through OpenTelemetry (``seam_jsonrpc.telemetry``).
"""

from seam_jsonrpc.client import JsonRpcClient, PendingCall
from seam_jsonrpc.codec import Codec, JsonCodec
from seam_jsonrpc.config import ClientConfig, ServerConfig, ZeroMQConfig
from seam_jsonrpc.errors import (
    ApplicationError,
    CodecError,
    DuplicateMethodError,
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    JsonRpcError,
    MethodNotFoundError,
    ParseError,
    ResponseDecodeError,
    SeamRpcError,
    TransportError,
)
from seam_jsonrpc.models import (
    JSONRPC_VERSION,
    ErrorObject,
    ErrorResponse,
    Notification,
    Request,
    SuccessResponse,
)
from seam_jsonrpc.peer import JsonRpcServerAndClient
from seam_jsonrpc.registry import MethodBinding, MethodRegistry, rpc_method
from seam_jsonrpc.server import JsonRpcServer

__version__ = "0.1.0"

__all__ = [
    "JSONRPC_VERSION",
    "ApplicationError",
    "ClientConfig",
    "Codec",
    "CodecError",
    "DuplicateMethodError",
    "ErrorObject",
    "ErrorResponse",
    "InternalError",
    "InvalidParamsError",
    "InvalidRequestError",
    "JsonCodec",
    "JsonRpcClient",
    "JsonRpcError",
    "JsonRpcServer",
    "JsonRpcServerAndClient",
    "MethodBinding",
    "MethodNotFoundError",
    "MethodRegistry",
    "Notification",
    "ParseError",
    "PendingCall",
    "Request",
    "ResponseDecodeError",
    "SeamRpcError",
    "ServerConfig",
    "SuccessResponse",
    "TransportError",
    "ZeroMQConfig",
    "rpc_method",
]
