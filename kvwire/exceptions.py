"""
kvwire Exceptions

Every failure raised by the codec, the connection and the command client
derives from KVWireError, so callers can catch the whole family at once.
"""


class KVWireError(Exception):
    """Base exception for kvwire client errors."""


class ConnectError(KVWireError, ConnectionError):
    """Raised when the socket cannot be opened or fails during a request."""


class NotConnectedError(KVWireError):
    """Raised when an operation is attempted on a connection that is not open."""


class ReplyTimeoutError(KVWireError, TimeoutError):
    """Raised when no complete reply arrives within the response timeout."""


class ProtocolError(KVWireError):
    """Raised when reply bytes do not have the shape the decoder expects."""


class CommandFailure(KVWireError):
    """Raised when the server answers with an unexpected status or an error reply."""

    def __init__(self, message: str, reply: str = ""):
        super().__init__(message)
        self.reply = reply
