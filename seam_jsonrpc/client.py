"""
JSON-RPC 2.0 client correlator

Allocates request ids, hands serialized requests to a sender and matches
responses back to the waiting caller by id.

The sender is any callable taking the request text. Its return value selects
the flow:

- a ``str`` (or an awaitable resolving to one) is the response itself and is
  fed straight back into ``receive`` (inline flow, e.g. HTTP);
- ``None`` means the response will arrive separately and the host must route
  it to ``receive`` (out-of-band flow, e.g. a duplex socket).
"""

import asyncio
import inspect
import itertools
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from opentelemetry.trace import SpanKind

from seam_jsonrpc.codec import Codec, JsonCodec
from seam_jsonrpc.config import ClientConfig
from seam_jsonrpc.errors import CodecError, JsonRpcError, ResponseDecodeError, TransportError
from seam_jsonrpc.models import (
    ErrorObject,
    Id,
    INTERNAL_ERROR,
    Notification,
    Request,
    is_error_response,
    is_success_response,
    is_valid_error_object,
    is_valid_id,
)
from seam_jsonrpc.registry import iter_api_methods, return_type, returns_none
from seam_jsonrpc.telemetry.metrics import increment_counter, record_latency
from seam_jsonrpc.telemetry.tracer import TRACE_CONTEXT_MEMBER, create_span, inject_trace_context

logger = logging.getLogger(__name__)

Sender = Callable[[str], Union[Optional[str], Awaitable[Optional[str]]]]


class PendingCall:
    """One in-flight request awaiting its response

    The future belongs to the event loop that created it; settling from
    another thread is marshalled onto that loop.
    """

    def __init__(self, request_id: Id, method: str, result_type: Any = None):
        self.id = request_id
        self.method = method
        self.result_type = result_type
        self.loop = asyncio.get_running_loop()
        self.future = self.loop.create_future()

    def _on_loop(self, callback: Callable, *args) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            callback(*args)
        else:
            self.loop.call_soon_threadsafe(callback, *args)

    def resolve(self, result: Any) -> None:
        self._on_loop(self._set_result, result)

    def reject(self, exc: BaseException) -> None:
        self._on_loop(self._set_exception, exc)

    def cancel(self) -> None:
        self._on_loop(self.future.cancel)

    def _set_result(self, result: Any) -> None:
        if not self.future.done():
            self.future.set_result(result)

    def _set_exception(self, exc: BaseException) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


class JsonRpcClient:
    """
    Client side of the protocol: tracks one ``PendingCall`` per request id.

    Every pending call ends in exactly one of resolved, rejected or
    cancelled, and leaves the tracking table at that moment. Responses for
    ids that are not pending (late, duplicate or unknown) are dropped.
    """

    def __init__(self,
                 sender: Sender,
                 codec: Optional[Codec] = None,
                 config: Optional[ClientConfig] = None):
        """Initialize the client

        Args:
            sender: Callable delivering request text to the server
            codec: Codec for envelopes and results; JsonCodec by default
            config: Client configuration
        """
        self.sender = sender
        self.codec = codec if codec is not None else JsonCodec()
        self.config = config if config is not None else ClientConfig()
        self._ids = itertools.count(1)
        self._pending: Dict[Id, PendingCall] = {}
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _next_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def _register(self, request_id: Id, method: str, result_type: Any) -> PendingCall:
        pending = PendingCall(request_id, method, result_type)
        with self._lock:
            self._pending[request_id] = pending
        # Covers cancellation by the awaiting caller (e.g. asyncio.wait_for)
        pending.future.add_done_callback(lambda _: self._discard(pending))
        return pending

    def _take(self, request_id: Id) -> Optional[PendingCall]:
        with self._lock:
            return self._pending.pop(request_id, None)

    def _discard(self, pending: PendingCall) -> None:
        with self._lock:
            if self._pending.get(pending.id) is pending:
                del self._pending[pending.id]

    async def send(self,
                   method: str,
                   params: Any = None,
                   *,
                   result_type: Any = None,
                   timeout: Optional[float] = None) -> Any:
        """Call a remote method and wait for its result

        Args:
            method: Method name
            params: Positional params (list/tuple); None sends ``[]``
            result_type: Type to decode the result into; raw JSON when None
            timeout: Seconds to wait; falls back to ``config.request_timeout``

        Returns:
            The decoded result

        Raises:
            JsonRpcError: The server answered with an error response
            TransportError: The sender failed
            ResponseDecodeError: The result does not fit ``result_type``
            asyncio.TimeoutError: No response within ``timeout``
        """
        if timeout is None:
            timeout = self.config.request_timeout

        with create_span(f"jsonrpc.client/{method}",
                         {"rpc.system": "jsonrpc", "rpc.method": method},
                         kind=SpanKind.CLIENT):
            request_id = self._next_id()
            request = self._build_message(Request(id=request_id, method=method, params=self._params(params)))
            request_text = self.codec.encode(request)

            pending = self._register(request_id, method, result_type)
            increment_counter("rpc.client.requests", 1, {"method": method})
            start_time = time.time()

            try:
                if timeout is None:
                    return await self._round_trip(pending, request_text)
                # The timeout also bounds an inline sender that never returns
                return await asyncio.wait_for(self._round_trip(pending, request_text), timeout)
            except asyncio.TimeoutError:
                logger.error(f"Request {request_id} ({method}) timed out after {timeout}s")
                increment_counter("rpc.client.errors", 1, {"type": "timeout", "method": method})
                self.cancel(request_id)
                raise
            finally:
                record_latency("rpc.client.latency", (time.time() - start_time) * 1000, {"method": method})

    async def _round_trip(self, pending: PendingCall, request_text: str) -> Any:
        await self._deliver(pending, request_text)
        return await pending.future

    async def _deliver(self, pending: PendingCall, request_text: str) -> None:
        logger.debug(f"Sending request: {request_text[:200]}...")
        try:
            reply = self.sender(request_text)
            if inspect.isawaitable(reply):
                reply = await reply
        except asyncio.CancelledError:
            self.cancel(pending.id)
            raise
        except Exception as e:
            logger.error(f"Sender failed for request {pending.id} ({pending.method}): {e}")
            increment_counter("rpc.client.errors", 1, {"type": "transport", "method": pending.method})
            if self._take(pending.id) is pending:
                pending.reject(TransportError(str(e)))
            return

        if reply:
            self.receive(reply)

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification; nothing is tracked and nothing comes back"""
        notification = self._build_message(Notification(method=method, params=self._params(params)))
        notification_text = self.codec.encode(notification)
        logger.debug(f"Sending notification: {notification_text[:200]}...")

        reply = self.sender(notification_text)
        if inspect.isawaitable(reply):
            await reply

    def receive(self, payload: str) -> None:
        """Feed a response payload received outside the sender's return path"""
        try:
            message = self.codec.decode(payload)
        except CodecError as e:
            logger.warning(f"Dropping unparseable response: {e}")
            increment_counter("rpc.client.errors", 1, {"type": "parse_error"})
            return

        self.handle_message(message)

    def handle_message(self, message: Any) -> None:
        """Match an already-parsed response; see ``receive``"""
        if not (is_success_response(message) or is_error_response(message)):
            logger.warning(f"Dropping payload that is not a response: {str(message)[:200]}")
            return

        response_id = message.get("id")
        if not is_valid_id(response_id):
            logger.warning(f"Dropping response without usable id: {str(message)[:200]}")
            return

        pending = self._take(response_id)
        if pending is None:
            logger.debug(f"Dropping response for unknown or completed request {response_id!r}")
            return

        if is_error_response(message):
            error = message.get("error")
            if is_valid_error_object(error):
                error = ErrorObject.from_dict(error)
            else:
                error = INTERNAL_ERROR.with_data(error)
            logger.debug(f"Request {response_id} ({pending.method}) rejected: {error.message} (code {error.code})")
            increment_counter("rpc.client.errors", 1, {
                "type": "rpc_error",
                "method": pending.method,
                "code": str(error.code),
            })
            pending.reject(JsonRpcError.from_error_object(error))
            return

        try:
            result = self.codec.coerce(message.get("result"), pending.result_type)
        except CodecError as e:
            increment_counter("rpc.client.errors", 1, {"type": "decode_error", "method": pending.method})
            pending.reject(ResponseDecodeError(str(e)))
            return

        increment_counter("rpc.client.success", 1, {"method": pending.method})
        pending.resolve(result)

    def cancel(self, request_id: Id) -> bool:
        """Cancel a pending call; a response arriving later is dropped

        Returns:
            bool: True if the call was still pending
        """
        pending = self._take(request_id)
        if pending is None:
            return False
        pending.cancel()
        return True

    def cancel_all(self, exc: Optional[BaseException] = None) -> int:
        """Settle every pending call, e.g. when the connection is lost

        Args:
            exc: Exception to reject with; calls are cancelled when None

        Returns:
            int: Number of calls settled
        """
        with self._lock:
            pending_calls = list(self._pending.values())
            self._pending.clear()

        for pending in pending_calls:
            if exc is None:
                pending.cancel()
            else:
                pending.reject(exc)

        if pending_calls:
            logger.info(f"Settled {len(pending_calls)} pending calls")
        return len(pending_calls)

    def create_api(self, api_cls: type) -> Any:
        """Build a proxy whose methods call the remote API

        Every public method of ``api_cls`` becomes a coroutine on the proxy.
        Methods annotated ``-> None`` send notifications, the others send
        requests and decode the result into their return annotation.
        """
        proxy = _ApiProxy(api_cls.__name__)
        for wire_name, attr_name, method in iter_api_methods(api_cls):
            if returns_none(method):
                setattr(proxy, attr_name, self._notifier(wire_name))
            else:
                setattr(proxy, attr_name, self._caller(wire_name, return_type(method)))
        return proxy

    def _caller(self, wire_name: str, result_type: Any):
        async def call(*args):
            return await self.send(wire_name, list(args), result_type=result_type)
        call.__name__ = wire_name
        return call

    def _notifier(self, wire_name: str):
        async def notify(*args):
            await self.notify(wire_name, list(args))
        notify.__name__ = wire_name
        return notify

    def _build_message(self, message: Union[Request, Notification]) -> Dict[str, Any]:
        data = message.to_dict()
        if self.config.propagate_trace_context:
            trace_context = inject_trace_context()
            if trace_context:
                data[TRACE_CONTEXT_MEMBER] = trace_context
        return data

    @staticmethod
    def _params(params: Any) -> Any:
        if params is None:
            return []
        if isinstance(params, tuple):
            return list(params)
        return params


class _ApiProxy:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return f"<{self._name} proxy>"
