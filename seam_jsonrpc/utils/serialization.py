"""
Protobuf conversion helpers

Converts between Protobuf messages and the plain JSON values carried in
JSON-RPC params and results.
"""

from typing import Dict, Any, Type

from google.protobuf.json_format import MessageToDict, ParseDict, ParseError
from google.protobuf.message import Message

from seam_jsonrpc.errors import CodecError


def is_protobuf_type(shape: Any) -> bool:
    """Check whether a decode target is a Protobuf message class"""
    return isinstance(shape, type) and issubclass(shape, Message)


def protobuf_to_dict(message: Message) -> Dict[str, Any]:
    """Convert Protobuf message to dictionary

    Args:
        message: Protobuf message object

    Returns:
        Dict: Dictionary containing message fields
    """
    if message is None:
        return {}

    return MessageToDict(message, preserving_proto_field_name=True)


def dict_to_protobuf(data: Any, message_type: Type[Message]) -> Message:
    """Convert a JSON value to a Protobuf message

    Args:
        data: Parsed JSON value (usually a dictionary)
        message_type: Protobuf message type

    Returns:
        Message: Protobuf message object

    Raises:
        CodecError: The value does not fit the message type
    """
    message = message_type()
    if data is None:
        return message

    try:
        ParseDict(data, message)
    except (ParseError, TypeError, ValueError) as e:
        raise CodecError(f"Cannot decode {message_type.__name__}: {e}") from e
    return message
