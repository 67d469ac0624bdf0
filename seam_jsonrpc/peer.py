"""
Duplex peer

Combines a server and a client over one bidirectional channel, where either
side may call the other. Incoming payloads are routed by shape: responses go
to the client correlator, everything else to the server dispatcher.
"""

import logging
from typing import Any, Callable, List, Optional, Sequence

from seam_jsonrpc.client import JsonRpcClient, Sender
from seam_jsonrpc.codec import Codec, JsonCodec
from seam_jsonrpc.config import ClientConfig, ServerConfig
from seam_jsonrpc.errors import CodecError
from seam_jsonrpc.models import is_response
from seam_jsonrpc.registry import MethodBinding
from seam_jsonrpc.server import JsonRpcServer

logger = logging.getLogger(__name__)


class JsonRpcServerAndClient:
    """Server and client sharing one sender and one codec

    ``receive`` returns the server's response text (if any); the host writes
    it back to the channel, usually through the same sender.
    """

    def __init__(self,
                 sender: Sender,
                 codec: Optional[Codec] = None,
                 server_config: Optional[ServerConfig] = None,
                 client_config: Optional[ClientConfig] = None):
        self.codec = codec if codec is not None else JsonCodec()
        self.server = JsonRpcServer(codec=self.codec, config=server_config)
        self.client = JsonRpcClient(sender, codec=self.codec, config=client_config)

    async def receive(self, payload: str) -> Optional[str]:
        """Route one incoming payload

        Returns:
            Optional[str]: Response text to send back, None if there is none
        """
        try:
            message = self.codec.decode(payload)
        except CodecError:
            # Let the server answer with a parse error
            return await self.server.receive(payload)

        if is_response(message):
            logger.debug(f"Routing response {message.get('id')!r} to client")
            self.client.handle_message(message)
            return None
        return await self.server.handle_message(message)

    def bind(self,
             name: str,
             handler: Callable,
             param_types: Optional[Sequence[Any]] = None,
             notification: bool = False) -> MethodBinding:
        return self.server.bind(name, handler, param_types, notification)

    def bind_api(self, api: Any, prefix: str = "") -> List[str]:
        return self.server.bind_api(api, prefix)

    def unbind(self, name: str) -> None:
        self.server.unbind(name)

    async def send(self, method: str, params: Any = None, **kwargs) -> Any:
        return await self.client.send(method, params, **kwargs)

    async def notify(self, method: str, params: Any = None) -> None:
        await self.client.notify(method, params)

    def create_api(self, api_cls: type) -> Any:
        return self.client.create_api(api_cls)
