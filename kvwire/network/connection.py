"""
Connection Module

This module owns the socket lifecycle for a single kvwire connection and
provides the blocking send-then-wait-for-reply primitive used by the
command client.

Connection states:
    CLOSED  -> OPENING   connect attempt started
    OPENING -> OPEN      handshake completed
    OPENING -> CLOSED    handshake failed
    OPEN    -> CLOSED    disconnect() or fatal socket error

Only one request may be outstanding on a connection at a time; a lock
around send_and_await_reply() enforces this.
"""

import errno
import logging
import selectors
import socket
import threading
import time
from enum import Enum
from typing import Callable, Optional

from ..config.settings import settings
from ..exceptions import ConnectError, NotConnectedError, ReplyTimeoutError
from ..protocol.codec import ProtocolCodec

logger = logging.getLogger(__name__)

_IN_PROGRESS = (0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY)


class ConnectionState(Enum):
    """Lifecycle state of a Connection."""
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"


class Connection:
    """
    A persistent TCP connection to a key-value server.

    Usage:
        conn = Connection("127.0.0.1", 6379).open()
        raw = conn.send_and_await_reply(b"PING\\r\\n")
        conn.disconnect()

    Attributes:
        host: Server address
        port: Server port
        timeout: Seconds to wait for a reply (and for the handshake)
        codec: ProtocolCodec used to detect complete reply frames
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            timeout: float = None,
            codec: ProtocolCodec = None,
            read_buffer_size: int = None,
    ):
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.timeout = timeout if timeout is not None else settings.RESPONSE_TIMEOUT
        self.codec = codec if codec is not None else ProtocolCodec()
        self.read_buffer_size = (
            read_buffer_size if read_buffer_size is not None else settings.READ_BUFFER_SIZE
        )

        self._sock: Optional[socket.socket] = None
        self._state = ConnectionState.CLOSED
        self._reply = b""
        self._pending = bytearray()
        self._owed_replies = 0
        self._request_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._opened = threading.Event()

    def __repr__(self) -> str:
        return f"Connection({self.host}:{self.port}, state={self._state.value})"

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def last_reply(self) -> bytes:
        """Raw bytes received by the most recent request."""
        return self._reply

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(
            self,
            blocking: bool = True,
            on_open: Optional[Callable[["Connection"], None]] = None,
    ) -> "Connection":
        """
        Open the socket.

        Args:
            blocking: Wait for the handshake before returning. When False
                the call returns in state OPENING and a watcher thread
                moves the connection to OPEN (or back to CLOSED).
            on_open: Called with this connection once a non-blocking
                handshake completes

        Returns:
            self, for chaining

        Raises:
            ConnectError: the socket could not be opened
        """
        with self._state_lock:
            if self._state is not ConnectionState.CLOSED:
                logger.debug(f"open() ignored, {self!r} already {self._state.value}")
                return self
            self._state = ConnectionState.OPENING
            self._opened.clear()

        if blocking:
            self._open_blocking()
        else:
            self._open_nonblocking(on_open)
        return self

    def _open_blocking(self) -> None:
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as exc:
            with self._state_lock:
                self._state = ConnectionState.CLOSED
            self._opened.set()
            raise ConnectError(f"Failed to connect to {self.host}:{self.port}: {exc}") from exc

        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        with self._state_lock:
            self._sock = sock
            self._state = ConnectionState.OPEN
        self._opened.set()
        logger.debug(f"Connected to {self.host}:{self.port}")

    def _open_nonblocking(self, on_open) -> None:
        try:
            family, socktype, proto, _, address = socket.getaddrinfo(
                self.host, self.port, 0, socket.SOCK_STREAM
            )[0]
        except OSError as exc:
            with self._state_lock:
                self._state = ConnectionState.CLOSED
            self._opened.set()
            raise ConnectError(f"Failed to resolve {self.host}:{self.port}: {exc}") from exc

        sock = socket.socket(family, socktype, proto)
        sock.setblocking(False)
        try:
            err = sock.connect_ex(address)
        except OSError as exc:
            err = exc.errno or errno.ECONNREFUSED

        if err not in _IN_PROGRESS:
            sock.close()
            with self._state_lock:
                self._state = ConnectionState.CLOSED
            self._opened.set()
            raise ConnectError(
                f"Failed to connect to {self.host}:{self.port}: {errno.errorcode.get(err, err)}"
            )

        with self._state_lock:
            self._sock = sock

        watcher = threading.Thread(
            target=self._await_handshake,
            args=(sock, on_open),
            name=f"kvwire-connect-{self.host}:{self.port}",
            daemon=True,
        )
        watcher.start()
        logger.debug(f"Connecting to {self.host}:{self.port} in background")

    def _await_handshake(self, sock: socket.socket, on_open) -> None:
        """Wait for a non-blocking connect to finish and publish the result."""
        error = None
        try:
            with selectors.DefaultSelector() as selector:
                selector.register(sock, selectors.EVENT_WRITE)
                if not selector.select(self.timeout):
                    error = "handshake timed out"
                else:
                    code = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                    if code:
                        error = errno.errorcode.get(code, str(code))
        except (OSError, ValueError) as exc:
            # ValueError: the socket was closed by disconnect() meanwhile
            error = str(exc)

        with self._state_lock:
            if self._sock is not sock or self._state is not ConnectionState.OPENING:
                return
            if error is None:
                sock.setblocking(True)
                self._state = ConnectionState.OPEN
            else:
                self._sock = None
                self._state = ConnectionState.CLOSED
                sock.close()
        self._opened.set()

        if error is not None:
            logger.warning(f"Failed to connect to {self.host}:{self.port}: {error}")
            return

        logger.debug(f"Connected to {self.host}:{self.port}")
        if on_open is not None:
            on_open(self)

    def wait_open(self, timeout: float = None) -> bool:
        """
        Block until a pending connect attempt settles.

        Returns:
            True if the connection ended up OPEN
        """
        self._opened.wait(timeout)
        return self.is_open

    def disconnect(self) -> None:
        """Close the socket. Calling it on a closed connection is a no-op."""
        with self._state_lock:
            sock, self._sock = self._sock, None
            was = self._state
            self._state = ConnectionState.CLOSED
            self._pending = bytearray()
            self._owed_replies = 0
        self._opened.set()

        if sock is not None:
            try:
                sock.close()
            except OSError as exc:
                logger.debug(f"Error closing socket to {self.host}:{self.port}: {exc}")
        if was is not ConnectionState.CLOSED:
            logger.debug(f"Disconnected from {self.host}:{self.port}")

    def _fail(self, reason: str) -> None:
        """Drop the connection after a fatal socket error."""
        logger.error(f"Connection to {self.host}:{self.port} lost: {reason}")
        self.disconnect()

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    # ------------------------------------------------------------------
    # Request/response
    # ------------------------------------------------------------------

    def send_and_await_reply(self, data: bytes, timeout: float = None) -> bytes:
        """
        Send one request and block until its reply arrives.

        Replies owed to earlier timed-out requests are read and discarded
        first, so a late reply is never handed to a later request.

        Args:
            data: Encoded request bytes
            timeout: Seconds to wait for the reply (default: self.timeout)

        Returns:
            The raw reply bytes, holding one complete frame

        Raises:
            NotConnectedError: connection is not OPEN; nothing is written
            ReplyTimeoutError: no complete reply in time; stays OPEN unless
                the request itself could not be fully written
            ConnectError: socket failed or peer closed; becomes CLOSED
        """
        if not self.is_open:
            raise NotConnectedError(f"Not connected to {self.host}:{self.port} (state: {self._state.value})")

        timeout = self.timeout if timeout is None else timeout

        with self._request_lock:
            sock = self._sock
            if sock is None or not self.is_open:
                raise NotConnectedError(f"Not connected to {self.host}:{self.port}")

            self._reply = b""
            deadline = time.monotonic() + timeout

            try:
                sock.settimeout(timeout)
                sock.sendall(data)
            except socket.timeout:
                # A half-written frame leaves the stream unusable
                self._fail("timed out while sending")
                raise ReplyTimeoutError(f"Timed out sending to {self.host}:{self.port}") from None
            except OSError as exc:
                self._fail(str(exc))
                raise ConnectError(f"Failed to send to {self.host}:{self.port}: {exc}") from exc
            logger.debug(f"Sent {len(data)} bytes to {self.host}:{self.port}")

            self._owed_replies += 1
            while True:
                reply = self._take_reply()
                if reply is not None:
                    self._reply = reply
                    logger.debug(f"Received {len(reply)} bytes from {self.host}:{self.port}")
                    return reply

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReplyTimeoutError(f"No reply from {self.host}:{self.port} within {timeout}s")
                try:
                    sock.settimeout(remaining)
                    chunk = sock.recv(self.read_buffer_size)
                except socket.timeout:
                    raise ReplyTimeoutError(
                        f"No reply from {self.host}:{self.port} within {timeout}s"
                    ) from None
                except OSError as exc:
                    self._fail(str(exc))
                    raise ConnectError(f"Failed to read from {self.host}:{self.port}: {exc}") from exc

                if not chunk:
                    self._fail("closed by server")
                    raise ConnectError(f"Connection closed by {self.host}:{self.port}")

                self._pending.extend(chunk)
                self._reply = bytes(self._pending)

    def _take_reply(self) -> Optional[bytes]:
        """
        Pop whole frames off the pending buffer.

        Frames owed to timed-out requests are dropped; the frame for the
        current request is returned once complete, else None.
        """
        while self._pending:
            length = self.codec.frame_length(bytes(self._pending))
            if length is None:
                return None
            frame = bytes(self._pending[:length])
            del self._pending[:length]
            self._owed_replies -= 1
            if self._owed_replies == 0:
                if self._pending:
                    logger.warning(f"Dropped {len(self._pending)} unsolicited bytes from {self.host}:{self.port}")
                    self._pending.clear()
                return frame
            logger.debug(f"Discarded late reply of {length} bytes from {self.host}:{self.port}")
        return None


def connect(
        host: str = None,
        port: int = None,
        blocking: bool = True,
        timeout: float = None,
        on_open: Optional[Callable[[Connection], None]] = None,
) -> Connection:
    """
    Convenience function to create and open a Connection.

    Usage:
        conn = connect("127.0.0.1", 6379)
    """
    return Connection(host=host, port=port, timeout=timeout).open(blocking=blocking, on_open=on_open)
