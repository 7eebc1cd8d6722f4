"""Aim protocol messages and payload codecs."""

from .codec import PayloadError, decode_raster, encode_raster, split_data_url
from .messages import Message, MessageType, ProtocolError, encode_message, parse_message

__all__ = [
    "Message",
    "MessageType",
    "PayloadError",
    "ProtocolError",
    "decode_raster",
    "encode_message",
    "encode_raster",
    "parse_message",
    "split_data_url",
]
