"""
Protocol Codec Module

This module translates between structured commands/replies and wire bytes.
It performs no I/O: the connection hands it complete reply buffers.

Wire format (CRLF terminated):
    Inline command:     PING\r\n
    Multi-bulk command: *<argc>\r\n$<len>\r\n<arg>\r\n ...
    Status reply:       +OK\r\n
    Error reply:        -ERR message\r\n
    Bulk reply:         $<len>\r\n<body>\r\n      ($-1\r\n = absent)
    Multi-bulk reply:   *<count>\r\n followed by <count> bulk replies
"""

from typing import Iterable, Optional, Tuple

from .commands import Argument, Command
from .replies import BulkValue, ErrorReply, MultiBulk, ReplyType, SimpleStatus, StatusText
from ..config.settings import settings
from ..exceptions import CommandFailure, ProtocolError

CRLF = b"\r\n"


class ProtocolCodec:
    """
    Encoder/decoder for the key-value wire protocol.

    Byte counts are always taken on encoded bytes, so multi-byte text and
    values containing whitespace or CRLF are framed safely.

    Usage:
        codec = ProtocolCodec()
        data = codec.encode_multi_bulk_command("GET", ["user:1"])
        value = codec.decode_bulk(b"$5\r\nalice\r\n")
    """

    def __init__(self, encoding: str = None):
        """
        Initialize the codec.

        Args:
            encoding: Text encoding for str arguments (default from settings)
        """
        self.encoding = encoding if encoding is not None else settings.ENCODING

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode_inline(self, command_text: str) -> bytes:
        """
        Encode an argument-free command as a single text line.

        Examples:
            >>> ProtocolCodec().encode_inline("PING")
            b'PING\\r\\n'
        """
        return command_text.encode(self.encoding) + CRLF

    def encode_multi_bulk_command(self, command_name: str, arguments: Iterable[Argument] = ()) -> bytes:
        """
        Encode a command and its arguments as a multi-bulk frame.

        The header counts the command name plus every argument.

        Examples:
            >>> ProtocolCodec().encode_multi_bulk_command("GET", ["k"])
            b'*2\\r\\n$3\\r\\nGET\\r\\n$1\\r\\nk\\r\\n'
        """
        parts = [self._to_bytes(command_name)]
        parts.extend(self._to_bytes(arg) for arg in arguments)

        chunks = [b"*%d\r\n" % len(parts)]
        for part in parts:
            chunks.append(b"$%d\r\n" % len(part))
            chunks.append(part + CRLF)
        return b"".join(chunks)

    def encode_command(self, command: Command) -> bytes:
        """Encode a Command, choosing inline or multi-bulk framing by type."""
        if not command.is_valid:
            raise ValueError(f"invalid arguments for {command.name}: {command.args!r}")
        if command.is_inline:
            return self.encode_inline(command.name)
        return self.encode_multi_bulk_command(command.name, command.args)

    def _to_bytes(self, value: Argument) -> bytes:
        if isinstance(value, bytes):
            return value
        return str(value).encode(self.encoding)

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode_status(self, raw: bytes) -> SimpleStatus:
        """
        Decode a status reply.

        Returns:
            SimpleStatus when the text is OK or PONG.

        Raises:
            CommandFailure: error reply, or any other status text
            ProtocolError: input is not a status reply
        """
        self._raise_on_error(raw)
        if not raw.startswith(ReplyType.STATUS.value.encode()):
            raise ProtocolError(f"expected status reply, got {raw[:32]!r}")

        text = self._first_line(raw)[1:].decode(self.encoding, errors="replace")
        if text not in (StatusText.OK.value, StatusText.PONG.value):
            raise CommandFailure(f"unexpected status: {text}", reply=text)
        return SimpleStatus(text)

    def decode_bulk(self, raw: bytes) -> BulkValue:
        """
        Decode a bulk reply.

        Examples:
            >>> codec = ProtocolCodec()
            >>> codec.decode_bulk(b"$-1\\r\\n").is_absent
            True
            >>> codec.decode_bulk(b"$0\\r\\n\\r\\n").value
            b''

        Raises:
            CommandFailure: error reply
            ProtocolError: missing `$`, non-numeric count or short body
        """
        if not raw:
            return BulkValue(None)
        self._raise_on_error(raw)

        value, _ = self._parse_bulk_at(raw, 0)
        return BulkValue(value)

    def decode_multi_bulk(self, raw: bytes) -> MultiBulk:
        """
        Decode a multi-bulk reply into its ordered elements.

        The `$N` header of each element is consumed, never emitted; a
        `$-1` element becomes None so positions stay aligned with the
        request.

        Raises:
            CommandFailure: error reply
            ProtocolError: missing `*`, bad counts, or missing elements
        """
        if not raw:
            return MultiBulk([])
        self._raise_on_error(raw)

        count, pos = self._parse_header(raw, 0, ReplyType.MULTI_BULK)
        if count <= 0:
            return MultiBulk([])

        items = []
        for index in range(count):
            if pos >= len(raw):
                raise ProtocolError(f"multi-bulk reply declared {count} elements, got {index}")
            value, pos = self._parse_bulk_at(raw, pos)
            items.append(value)
        return MultiBulk(items)

    def parse_error(self, raw: bytes) -> Optional[ErrorReply]:
        """Return the ErrorReply carried by raw, or None if it is not one."""
        if not raw.startswith(ReplyType.ERROR.value.encode()):
            return None
        message = self._first_line(raw)[1:].decode(self.encoding, errors="replace")
        return ErrorReply(message)

    def _raise_on_error(self, raw: bytes) -> None:
        error = self.parse_error(raw)
        if error is not None:
            raise CommandFailure(error.message, reply=error.message)

    def _parse_bulk_at(self, raw: bytes, pos: int) -> Tuple[Optional[bytes], int]:
        """Parse one `$N` element at pos; return (body or None, next position)."""
        length, pos = self._parse_header(raw, pos, ReplyType.BULK)
        if length < 0:
            return None, pos

        body = raw[pos:pos + length]
        if len(body) < length:
            raise ProtocolError(f"bulk reply declared {length} bytes, got {len(body)}")
        # Skip the terminator after the body
        return body, pos + length + len(CRLF)

    def _parse_header(self, raw: bytes, pos: int, expected: ReplyType) -> Tuple[int, int]:
        """Parse `<prefix><count>\\r\\n` at pos; return (count, body position)."""
        prefix = raw[pos:pos + 1]
        if prefix != expected.value.encode():
            raise ProtocolError(f"expected {expected.value!r} at offset {pos}, got {prefix!r}")

        end = raw.find(CRLF, pos)
        if end == -1:
            end = len(raw)
        try:
            count = int(raw[pos + 1:end])
        except ValueError:
            raise ProtocolError(f"invalid length {raw[pos + 1:end]!r} at offset {pos}") from None
        return count, end + len(CRLF)

    @staticmethod
    def _first_line(raw: bytes) -> bytes:
        end = raw.find(CRLF)
        return raw if end == -1 else raw[:end]

    # ------------------------------------------------------------------
    # Framing
    # ------------------------------------------------------------------

    def reply_complete(self, raw: bytes) -> bool:
        """
        Check whether raw holds at least one whole reply frame.

        Malformed data counts as complete so the decoder can report it
        instead of the reader waiting for bytes that will never come.
        """
        return self.frame_length(raw) is not None

    def frame_length(self, raw: bytes) -> Optional[int]:
        """
        Length of the first whole reply frame in raw.

        Returns:
            Byte count of the first frame, None if it is still incomplete,
            or len(raw) when the data is malformed

        Examples:
            >>> ProtocolCodec().frame_length(b"+OK\\r\\n$1\\r\\nx\\r\\n")
            5
        """
        try:
            return self._frame_end(raw, 0)
        except ValueError:
            return len(raw)

    def _frame_end(self, raw: bytes, pos: int) -> Optional[int]:
        """Return the offset just past the frame at pos, or None if incomplete."""
        end = raw.find(CRLF, pos)
        if end == -1:
            return None

        prefix = raw[pos:pos + 1]
        if prefix in (ReplyType.STATUS.value.encode(), ReplyType.ERROR.value.encode()):
            return end + len(CRLF)

        count = int(raw[pos + 1:end])
        pos = end + len(CRLF)
        if prefix == ReplyType.BULK.value.encode():
            if count < 0:
                return pos
            frame_end = pos + count + len(CRLF)
            return frame_end if len(raw) >= frame_end else None

        if prefix == ReplyType.MULTI_BULK.value.encode():
            for _ in range(max(count, 0)):
                pos = self._frame_end(raw, pos)
                if pos is None:
                    return None
            return pos

        raise ValueError(f"unknown reply prefix {prefix!r}")
