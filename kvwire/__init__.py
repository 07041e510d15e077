"""
kvwire: Minimal Key-Value Wire Protocol Client

A blocking client for the text-based key-value protocol (PING, GET, SET,
MGET, MSET, KEYS, INFO) over a persistent TCP connection.
"""

from .client import KeyValueMap, KVClient
from .exceptions import (
    CommandFailure,
    ConnectError,
    KVWireError,
    NotConnectedError,
    ProtocolError,
    ReplyTimeoutError,
)
from .network.connection import Connection, ConnectionState, connect

__version__ = "1.0.0"

__all__ = [
    "CommandFailure",
    "ConnectError",
    "Connection",
    "ConnectionState",
    "KVClient",
    "KVWireError",
    "KeyValueMap",
    "NotConnectedError",
    "ProtocolError",
    "ReplyTimeoutError",
    "connect",
]
