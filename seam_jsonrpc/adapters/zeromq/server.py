"""
ZeroMQ server binding

Serves a ``JsonRpcServer`` on a ZeroMQ REP socket: every received frame is
handed to the dispatcher and its response is sent back. Notifications are
answered with an empty frame to keep the REQ/REP lockstep.
"""

import asyncio
import logging
from typing import Optional

import zmq
import zmq.asyncio

from seam_jsonrpc.config import ZeroMQConfig
from seam_jsonrpc.server import JsonRpcServer
from seam_jsonrpc.telemetry.metrics import increment_counter

logger = logging.getLogger(__name__)


class ZeroMQServer:
    """
    ZeroMQ transport for a JSON-RPC server.
    Requests are processed one at a time, in arrival order.
    """

    def __init__(self,
                 server: JsonRpcServer,
                 bind_address: Optional[str] = None):
        """Initialize the ZeroMQ server

        Args:
            server: Dispatcher that handles the payloads
            bind_address: Address of the REP socket; ZeroMQConfig default when None
        """
        self.server = server
        self.bind_address = bind_address or ZeroMQConfig().bind_address
        self.context = None
        self.socket = None
        self.running = False
        self._task = None

    def _create_socket(self):
        if self.socket is None:
            self.context = zmq.asyncio.Context()
            self.socket = self.context.socket(zmq.REP)
            self.socket.setsockopt(zmq.LINGER, 0)
        return self.socket

    def bind(self) -> str:
        """Bind the REP socket to ``bind_address``

        Returns:
            str: The endpoint actually bound
        """
        socket = self._create_socket()
        socket.bind(self.bind_address)
        endpoint = socket.getsockopt_string(zmq.LAST_ENDPOINT)
        logger.info(f"ZeroMQ server bound to {endpoint}")
        return endpoint

    def bind_to_random_port(self, address: str = "tcp://127.0.0.1") -> int:
        """Bind the REP socket to a free port on ``address``

        Returns:
            int: The chosen port
        """
        port = self._create_socket().bind_to_random_port(address)
        self.bind_address = f"{address}:{port}"
        logger.info(f"ZeroMQ server bound to {self.bind_address}")
        return port

    async def start(self):
        """Start serving in a background task on the running loop"""
        if self.socket is None:
            self.bind()
        self.running = True
        self._task = asyncio.ensure_future(self._run_server())
        logger.info("ZeroMQ server started")

    async def stop(self):
        """Stop serving and release the socket"""
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.socket is not None:
            self.socket.close(linger=0)
            self.socket = None
        if self.context is not None:
            self.context.term()
            self.context = None
        logger.info("ZeroMQ server stopped")

    async def _run_server(self):
        """Server main loop"""
        logger.info("ZeroMQ server accepting requests")

        while self.running:
            try:
                request_bytes = await self.socket.recv()
            except zmq.error.ZMQError as e:
                logger.error(f"ZeroMQ receive failed: {str(e)}")
                increment_counter("rpc.server.errors", 1, {"type": "transport"})
                break

            increment_counter("rpc.server.requests.received", 1)
            response = await self.server.receive(request_bytes.decode("utf-8", errors="replace"))

            try:
                await self.socket.send(response.encode("utf-8") if response is not None else b"")
            except zmq.error.ZMQError as e:
                logger.error(f"ZeroMQ send failed: {str(e)}")
                increment_counter("rpc.server.errors", 1, {"type": "transport"})
                break
