"""Protocol module for kvwire."""

from .codec import ProtocolCodec
from .commands import Command, CommandType
from .replies import BulkValue, ErrorReply, MultiBulk, Reply, ReplyType, SimpleStatus, StatusText

__all__ = [
    "BulkValue",
    "Command",
    "CommandType",
    "ErrorReply",
    "MultiBulk",
    "ProtocolCodec",
    "Reply",
    "ReplyType",
    "SimpleStatus",
    "StatusText",
]
