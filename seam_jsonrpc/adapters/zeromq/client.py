"""
ZeroMQ client binding

An async sender for ``JsonRpcClient`` over a ZeroMQ REQ socket. Each call
performs one request/reply round-trip and returns the reply text, so the
client runs in the inline flow.
"""

import asyncio
import logging
from typing import Optional

import zmq
import zmq.asyncio

from seam_jsonrpc.config import ZeroMQConfig

logger = logging.getLogger(__name__)


class ZeroMQSender:
    """
    REQ-socket sender. Round-trips are serialized, since a REQ socket only
    allows one outstanding request.
    """

    def __init__(self,
                 server_address: Optional[str] = None,
                 timeout_ms: Optional[int] = None):
        """Initialize the sender

        Args:
            server_address: ZeroMQ server address
            timeout_ms: Reply timeout in milliseconds
        """
        defaults = ZeroMQConfig()
        self.server_address = server_address or defaults.server_address
        self.timeout_ms = timeout_ms if timeout_ms is not None else defaults.timeout_ms
        self.context = None
        self.socket = None
        self._lock = None

    @classmethod
    def from_config(cls, config: ZeroMQConfig) -> "ZeroMQSender":
        return cls(server_address=config.server_address, timeout_ms=config.timeout_ms)

    def _connect(self):
        if self.context is None:
            self.context = zmq.asyncio.Context()
        self.socket = self.context.socket(zmq.REQ)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.connect(self.server_address)
        logger.info(f"ZeroMQ client connected to {self.server_address}")

    def _reset(self):
        # A REQ socket that missed its reply cannot send again
        if self.socket is not None:
            self.socket.close(linger=0)
            self.socket = None

    async def __call__(self, payload: str) -> Optional[str]:
        """Send one payload and wait for the reply

        Returns:
            Optional[str]: Reply text, None for an empty reply (notifications)

        Raises:
            TimeoutError: No reply within ``timeout_ms``
            ConnectionError: ZeroMQ failure
        """
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if self.socket is None:
                self._connect()
            try:
                reply = await asyncio.wait_for(self._round_trip(payload), self.timeout_ms / 1000.0)
            except asyncio.TimeoutError:
                logger.error(f"Request timed out after {self.timeout_ms}ms")
                self._reset()
                raise TimeoutError(f"ZeroMQ request timed out ({self.timeout_ms}ms)")
            except zmq.error.ZMQError as e:
                logger.error(f"ZeroMQ error: {str(e)}")
                self._reset()
                raise ConnectionError(f"ZeroMQ connection error: {str(e)}") from e

        text = reply.decode("utf-8")
        return text or None

    async def _round_trip(self, payload: str) -> bytes:
        # send blocks until a peer is connected, so it shares the timeout
        await self.socket.send(payload.encode("utf-8"))
        return await self.socket.recv()

    def close(self):
        """Close the socket and the context"""
        self._reset()
        if self.context is not None:
            self.context.term()
            self.context = None
