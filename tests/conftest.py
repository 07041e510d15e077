"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import fnmatch
import socket
from collections import deque
from contextlib import closing
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio

from kvwire.client import KVClient
from kvwire.exceptions import NotConnectedError
from kvwire.network.connection import ConnectionState
from kvwire.protocol.codec import ProtocolCodec


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


def bulk(value: Optional[bytes]) -> bytes:
    """Encode a single bulk reply."""
    if value is None:
        return b"$-1\r\n"
    return b"$%d\r\n%s\r\n" % (len(value), value)


def multi_bulk(values: List[Optional[bytes]]) -> bytes:
    """Encode a multi-bulk reply."""
    return b"*%d\r\n" % len(values) + b"".join(bulk(v) for v in values)


# ============================================================================
# Codec Fixtures
# ============================================================================

@pytest.fixture
def codec() -> ProtocolCodec:
    """Create a ProtocolCodec with the default encoding."""
    return ProtocolCodec()


# ============================================================================
# Stub Server
# ============================================================================

class StubStoreServer:
    """
    In-memory server speaking the wire protocol subset, for tests.

    Besides executing PING/GET/SET/MGET/MSET/KEYS/INFO against a dict, it
    can be told to misbehave:
        script(*replies)  send these raw replies, in order, instead of
                          executing the next requests
        silent            swallow requests without replying (each one
                          stays owed a reply on the client side)
        chunk_size        write replies in pieces of this many bytes
        close_next        drop the connection on the next request
        delay_next        wait this many seconds before the next reply

    Attributes:
        store: Key/value data (bytes -> bytes), insertion ordered
        requests: Every request received, as a list of argument bytes
        bytes_received: Total request bytes read from all clients
    """

    def __init__(self, host: str = '127.0.0.1', port: int = 0):
        self.host = host
        self.port = port
        self.store = {}
        self.requests: List[List[bytes]] = []
        self.bytes_received = 0
        self.silent = False
        self.chunk_size: Optional[int] = None
        self.close_next = False
        self.delay_next = 0.0
        self._scripted = deque()
        self._server: Optional[asyncio.Server] = None

    def script(self, *replies: bytes) -> None:
        self._scripted.extend(replies)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self.handle_client, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        try:
            await self._server.wait_closed()
        finally:
            self._server = None

    async def read_request(self, reader: asyncio.StreamReader) -> Optional[List[bytes]]:
        line = await reader.readline()
        if not line:
            return None
        self.bytes_received += len(line)

        line = line.rstrip(b"\r\n")
        if not line.startswith(b"*"):
            return line.split()

        args = []
        for _ in range(int(line[1:])):
            header = await reader.readline()
            data = await reader.readexactly(int(header[1:].rstrip(b"\r\n")) + 2)
            self.bytes_received += len(header) + len(data)
            args.append(data[:-2])
        return args

    def execute(self, args: List[bytes]) -> bytes:
        name = args[0].upper() if args else b""
        params = args[1:]

        if name == b"PING":
            return b"+PONG\r\n"
        if name == b"GET" and len(params) == 1:
            return bulk(self.store.get(params[0]))
        if name == b"SET" and len(params) == 2:
            self.store[params[0]] = params[1]
            return b"+OK\r\n"
        if name == b"MGET" and params:
            return multi_bulk([self.store.get(key) for key in params])
        if name == b"MSET" and params and len(params) % 2 == 0:
            for key, value in zip(params[::2], params[1::2]):
                self.store[key] = value
            return b"+OK\r\n"
        if name == b"KEYS" and len(params) == 1:
            pattern = params[0].decode()
            return multi_bulk([k for k in self.store if fnmatch.fnmatchcase(k.decode(), pattern)])
        if name == b"INFO":
            return bulk(b"# Server\r\nstub_version:1.0\r\nkeys:%d\r\n" % len(self.store))
        return b"-ERR unknown command or wrong number of arguments\r\n"

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                args = await self.read_request(reader)
                if args is None:
                    break
                self.requests.append(args)

                if self.close_next:
                    self.close_next = False
                    break
                if self.silent:
                    continue

                reply = self._scripted.popleft() if self._scripted else self.execute(args)
                if self.delay_next:
                    delay, self.delay_next = self.delay_next, 0.0
                    await asyncio.sleep(delay)
                if self.chunk_size:
                    for i in range(0, len(reply), self.chunk_size):
                        writer.write(reply[i:i + self.chunk_size])
                        await writer.drain()
                        await asyncio.sleep(0.01)
                else:
                    writer.write(reply)
                    await writer.drain()
        except (ConnectionResetError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


@pytest_asyncio.fixture
async def server(server_port: int) -> AsyncGenerator[StubStoreServer, None]:
    """Start a StubStoreServer on a free port for the duration of a test."""
    srv = StubStoreServer(port=server_port)
    await srv.start()

    yield srv

    await srv.stop()


@pytest_asyncio.fixture
async def kv(server: StubStoreServer) -> AsyncGenerator[KVClient, None]:
    """
    A KVClient connected to the stub server.

    Client calls block, so tests drive them with asyncio.to_thread() to
    keep the event loop (and the server) running.
    """
    client = KVClient(host='127.0.0.1', port=server.port, timeout=2.0)
    await asyncio.to_thread(client.connect)

    yield client

    client.disconnect()


# ============================================================================
# Fake Connection
# ============================================================================

class FakeConnection:
    """
    Stand-in for Connection that replays canned replies without sockets.

    Attributes:
        replies: Raw replies handed out in order
        sent: Every request passed to send_and_await_reply
    """

    def __init__(self, *replies: bytes, is_open: bool = True):
        self.replies = deque(replies)
        self.sent: List[bytes] = []
        self.state = ConnectionState.OPEN if is_open else ConnectionState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def send_and_await_reply(self, data: bytes, timeout: float = None) -> bytes:
        if not self.is_open:
            raise NotConnectedError("fake connection closed")
        self.sent.append(data)
        return self.replies.popleft()


@pytest.fixture
def fake_client():
    """
    Factory for a KVClient backed by a FakeConnection.

    Usage:
        def test_something(fake_client):
            client, conn = fake_client(b"+OK\\r\\n")
    """
    def factory(*replies: bytes, is_open: bool = True):
        conn = FakeConnection(*replies, is_open=is_open)
        return KVClient(connection=conn), conn
    return factory


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
