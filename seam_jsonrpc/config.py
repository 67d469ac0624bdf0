"""
Configuration settings for the JSON-RPC server, client and transport adapters
"""
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ServerConfig:
    """Configuration for the server dispatcher"""
    include_error_details: bool = False  # Put handler exception text into error "data"
    log_payloads: bool = True  # Debug-log incoming and outgoing payloads

    def to_dict(self) -> Dict[str, Any]:
        return {
            "include_error_details": self.include_error_details,
            "log_payloads": self.log_payloads,
        }


@dataclass
class ClientConfig:
    """Configuration for the client correlator"""
    request_timeout: Optional[float] = None  # Seconds; None waits forever
    propagate_trace_context: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_timeout": self.request_timeout,
            "propagate_trace_context": self.propagate_trace_context,
        }


@dataclass
class ZeroMQConfig:
    """Configuration for the ZeroMQ transport binding"""
    server_address: str = "tcp://localhost:5555"
    bind_address: str = "tcp://*:5555"
    timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> "ZeroMQConfig":
        """Create config from environment variables"""
        defaults = cls()
        return cls(
            server_address=os.getenv("SEAM_ZMQ_SERVER_ADDRESS", defaults.server_address),
            bind_address=os.getenv("SEAM_ZMQ_BIND_ADDRESS", defaults.bind_address),
            timeout_ms=int(os.getenv("SEAM_ZMQ_TIMEOUT_MS", str(defaults.timeout_ms))),
        )
