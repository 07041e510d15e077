"""
Command Client Module

The user-facing operations of kvwire. Each operation encodes a command,
sends it over the connection, waits for the reply and decodes it into a
plain Python value.

Usage:
    with KVClient("127.0.0.1", 6379) as client:
        client.set("user:1", "alice")
        client.mget(["user:1", "user:2"])   # ['alice', None]
        client.map_keys("user:*")           # {'user:1': 'alice'}
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from .config.settings import settings
from .exceptions import NotConnectedError
from .network.connection import Connection, ConnectionState
from .protocol.codec import ProtocolCodec
from .protocol.commands import Command, CommandType

logger = logging.getLogger(__name__)

KeyValueMap = Dict[str, str]


class KVClient:
    """
    Typed operations over a single Connection.

    Every operation requires the connection to be OPEN and raises
    NotConnectedError otherwise; none of them opens or closes it.

    Attributes:
        connection: The underlying Connection
        codec: ProtocolCodec shared with the connection
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            timeout: float = None,
            encoding: str = None,
            connection: Connection = None,
    ):
        """
        Initialize the client. No socket is opened until connect().

        Args:
            host: Server address (default from settings)
            port: Server port (default from settings)
            timeout: Reply timeout in seconds (default from settings)
            encoding: Text encoding for keys and values (default from settings)
            connection: Use an existing Connection instead of creating one
        """
        self.encoding = encoding if encoding is not None else settings.ENCODING
        self.codec = ProtocolCodec(self.encoding)
        if connection is None:
            connection = Connection(host=host, port=port, timeout=timeout, codec=self.codec)
        self.connection = connection

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def connect(self, blocking: bool = True) -> "KVClient":
        """Open the connection. See Connection.open()."""
        self.connection.open(blocking=blocking)
        return self

    def disconnect(self) -> None:
        """Close the connection (idempotent)."""
        self.connection.disconnect()

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def _require_open(self) -> None:
        if not self.connection.is_open:
            raise NotConnectedError(f"Not connected (state: {self.state.value})")

    def _request(self, command: Command) -> bytes:
        data = self.codec.encode_command(command)
        logger.debug(f"{command.name} with {len(command.args)} argument(s)")
        return self.connection.send_and_await_reply(data)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the server answers PONG."""
        raw = self._request(Command(CommandType.PING))
        return self.codec.decode_status(raw).is_pong

    def get(self, key: str) -> Optional[str]:
        """Return the value stored at key, or None if the key is absent."""
        raw = self._request(Command(CommandType.GET, [key]))
        return self.codec.decode_bulk(raw).text(self.encoding)

    def set(self, key: str, value: str) -> bool:
        """Store value at key. Returns True if the server answered OK."""
        raw = self._request(Command(CommandType.SET, [key, value]))
        return self.codec.decode_status(raw).is_ok

    def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        """
        Fetch several keys at once.

        Returns:
            Values aligned with keys; None for each missing key
        """
        keys = list(keys)
        if not keys:
            self._require_open()
            return []
        raw = self._request(Command(CommandType.MGET, keys))
        return self.codec.decode_multi_bulk(raw).texts(self.encoding)

    def mset(self, mapping: Mapping[str, str]) -> bool:
        """Store every key/value pair of mapping. Returns True on OK."""
        if not mapping:
            self._require_open()
            return True
        args = []
        for key, value in mapping.items():
            args.extend([key, value])
        raw = self._request(Command(CommandType.MSET, args))
        return self.codec.decode_status(raw).is_ok

    def keys(self, pattern: str) -> List[str]:
        """
        Return the names of keys matching pattern, in server order.

        A key name can never be absent, so any `$-1` element the server
        sends is skipped rather than returned as None. The result is a list
        of names, not positions aligned with anything.
        """
        raw = self._request(Command(CommandType.KEYS, [pattern]))
        return [key for key in self.codec.decode_multi_bulk(raw).texts(self.encoding) if key is not None]

    def info(self) -> str:
        """Return the server's diagnostic text."""
        raw = self._request(Command(CommandType.INFO))
        return self.codec.decode_bulk(raw).text(self.encoding) or ""

    def map_keys(self, pattern: str) -> KeyValueMap:
        """
        Build a map of every key matching pattern to its value.

        Keys that vanish between KEYS and MGET are left out.
        """
        names = self.keys(pattern)
        values = self.mget(names)
        return {name: value for name, value in zip(names, values) if value is not None}
