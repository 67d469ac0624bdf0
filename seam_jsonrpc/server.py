"""
JSON-RPC 2.0 server dispatcher

Takes one incoming payload at a time, routes it to the bound handler and
produces the response text. Requests always get a response (success or
error); notifications never do, even when they fail.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, List, Optional, Sequence, Union

from opentelemetry.trace import SpanKind

from seam_jsonrpc.codec import Codec, JsonCodec
from seam_jsonrpc.config import ServerConfig
from seam_jsonrpc.errors import CodecError, InvalidParamsError, JsonRpcError
from seam_jsonrpc.models import (
    ErrorObject,
    ErrorResponse,
    Id,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SuccessResponse,
    is_notification,
    is_valid_id,
)
from seam_jsonrpc.registry import MethodBinding, MethodRegistry
from seam_jsonrpc.telemetry.metrics import increment_counter, record_latency
from seam_jsonrpc.telemetry.tracer import (
    TRACE_CONTEXT_MEMBER,
    create_span,
    extract_trace_context,
    with_trace_context,
)

logger = logging.getLogger(__name__)

Response = Union[SuccessResponse, ErrorResponse]


class JsonRpcServer:
    """
    Server side of the protocol: method registry plus dispatcher.

    Each ``receive`` call is independent; several may run concurrently on
    the same server. The only shared state is the registry.
    """

    def __init__(self,
                 codec: Optional[Codec] = None,
                 registry: Optional[MethodRegistry] = None,
                 config: Optional[ServerConfig] = None):
        """Initialize the server

        Args:
            codec: Codec for envelopes and params; JsonCodec by default
            registry: Method registry; a fresh one by default
            config: Server configuration
        """
        self.codec = codec if codec is not None else JsonCodec()
        self.registry = registry if registry is not None else MethodRegistry()
        self.config = config if config is not None else ServerConfig()
        self._background = set()  # running notification handlers

    def bind(self,
             name: str,
             handler: Callable,
             param_types: Optional[Sequence[Any]] = None,
             notification: bool = False) -> MethodBinding:
        return self.registry.bind(name, handler, param_types, notification)

    def rebind(self,
               name: str,
               handler: Callable,
               param_types: Optional[Sequence[Any]] = None,
               notification: bool = False) -> MethodBinding:
        return self.registry.rebind(name, handler, param_types, notification)

    def bind_api(self, api: Any, prefix: str = "") -> List[str]:
        return self.registry.bind_api(api, prefix)

    def unbind(self, name: str) -> None:
        self.registry.unbind(name)

    async def receive(self, payload: str) -> Optional[str]:
        """Handle one incoming payload

        Args:
            payload: Serialized request or notification

        Returns:
            Optional[str]: Serialized response, or None for notifications
        """
        if self.config.log_payloads:
            logger.debug(f"Received payload: {payload[:200]}...")

        try:
            message = self.codec.decode(payload)
        except CodecError as e:
            logger.warning(f"Parse error: {e}")
            increment_counter("rpc.server.errors", 1, {"code": str(PARSE_ERROR.code)})
            return self._encode_response(ErrorResponse(PARSE_ERROR))

        return await self.handle_message(message)

    async def handle_message(self, message: Any) -> Optional[str]:
        """Handle an already-parsed payload; see ``receive``"""
        start_time = time.time()
        response = await self._dispatch(message)
        if response is None:
            return None

        response_text = self._encode_response(response)

        latency_ms = (time.time() - start_time) * 1000
        record_latency("rpc.server.latency", latency_ms, {
            "method": message.get("method", "unknown") if isinstance(message, dict) else "unknown"
        })
        if self.config.log_payloads:
            logger.debug(f"Sending response ({latency_ms:.2f}ms): {response_text[:200]}...")

        return response_text

    async def _dispatch(self, message: Any) -> Optional[Response]:
        """Validate, resolve and invoke; returns None when nothing is to be sent"""
        if not isinstance(message, dict):
            return self._invalid_request(None, "Payload is not a JSON object")

        raw_id = message.get("id")
        response_id = raw_id if is_valid_id(raw_id) else None

        if message.get("jsonrpc") != JSONRPC_VERSION:
            return self._invalid_request(response_id, "Not a valid JSON-RPC 2.0 message")

        method_name = message.get("method")
        if not isinstance(method_name, str) or not method_name:
            return self._invalid_request(response_id, "Method not specified")

        if "id" in message and not is_valid_id(raw_id):
            return self._invalid_request(None, f"Invalid request id: {raw_id!r}")

        trace_context = extract_trace_context(message.get(TRACE_CONTEXT_MEMBER))
        params = message.get("params")

        if is_notification(message):
            with with_trace_context(trace_context):
                self._handle_notification(method_name, params)
            return None

        with with_trace_context(trace_context):
            with create_span(f"jsonrpc.server/{method_name}",
                             {"rpc.system": "jsonrpc", "rpc.method": method_name},
                             kind=SpanKind.SERVER):
                return await self._handle_request(response_id, method_name, params)

    def _handle_notification(self, method_name: str, params: Any) -> None:
        increment_counter("rpc.server.notifications", 1, {"method": method_name})

        binding = self.registry.resolve(method_name)
        if binding is None:
            logger.debug(f"Dropping notification for unknown method: {method_name}")
            return

        try:
            args = binding.decode_params(params, self.codec)
        except InvalidParamsError as e:
            logger.debug(f"Dropping notification {method_name} with invalid params: {e.data}")
            return

        try:
            outcome = binding.handler(*args)
        except Exception:
            logger.exception(f"Notification handler {method_name} failed")
            increment_counter("rpc.server.method.errors", 1, {"method": method_name})
            return

        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._background.add(task)
            task.add_done_callback(lambda t: self._notification_done(method_name, t))

    def _notification_done(self, method_name: str, task: asyncio.Future) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Notification handler {method_name} failed: {exc}", exc_info=exc)
            increment_counter("rpc.server.method.errors", 1, {"method": method_name})

    async def _handle_request(self, request_id: Id, method_name: str, params: Any) -> Response:
        increment_counter("rpc.server.requests", 1, {"method": method_name})

        binding = self.registry.resolve(method_name)
        if binding is None:
            return self._error(request_id, METHOD_NOT_FOUND)

        try:
            args = binding.decode_params(params, self.codec)
        except InvalidParamsError as e:
            logger.debug(f"Invalid params for {method_name}: {e.data}")
            return self._error(request_id, e.to_error_object())

        try:
            result = binding.handler(*args)
            if inspect.isawaitable(result):
                result = await result
        except JsonRpcError as e:
            return self._error(request_id, e.to_error_object())
        except Exception as e:
            logger.error(f"Error executing method {method_name}: {str(e)}", exc_info=True)
            increment_counter("rpc.server.method.errors", 1, {"method": method_name})
            return self._error(request_id, self._internal_error(e))

        if isinstance(result, ErrorObject):
            return self._error(request_id, result)
        if binding.is_notification:
            result = None

        return SuccessResponse(id=request_id, result=result)

    def _invalid_request(self, request_id: Optional[Id], reason: str) -> ErrorResponse:
        logger.debug(f"Invalid request: {reason}")
        return self._error(request_id, INVALID_REQUEST)

    def _error(self, request_id: Optional[Id], error: ErrorObject) -> ErrorResponse:
        increment_counter("rpc.server.errors", 1, {"code": str(error.code)})
        return ErrorResponse(error=error, id=request_id)

    def _internal_error(self, exc: BaseException) -> ErrorObject:
        if self.config.include_error_details:
            return INTERNAL_ERROR.with_data(f"{type(exc).__name__}: {exc}")
        return INTERNAL_ERROR

    def _encode_response(self, response: Response) -> str:
        """Serialize a response; unencodable results degrade to an internal error"""
        try:
            return self.codec.encode(response.to_dict())
        except CodecError as e:
            logger.error(f"Cannot encode response for id {response.id!r}: {e}")
            fallback = self._error(response.id, self._internal_error(e))
            return self.codec.encode(fallback.to_dict())
