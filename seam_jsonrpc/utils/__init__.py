"""
Utility helpers shared by the codec and the transport adapters.
"""

from .serialization import dict_to_protobuf, is_protobuf_type, protobuf_to_dict

__all__ = ["dict_to_protobuf", "is_protobuf_type", "protobuf_to_dict"]
