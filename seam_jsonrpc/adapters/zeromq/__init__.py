"""
ZeroMQ Adapter Package

Binds the JSON-RPC server and client to ZeroMQ REQ/REP sockets.
"""

from seam_jsonrpc.adapters.zeromq.client import ZeroMQSender
from seam_jsonrpc.adapters.zeromq.server import ZeroMQServer

__all__ = ["ZeroMQSender", "ZeroMQServer"]
