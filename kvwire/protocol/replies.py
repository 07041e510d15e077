"""
Protocol Reply Definitions

Replies are a tagged union: every decoded reply is one of the dataclasses
below, and `Reply.type` tells which shape it carries.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from ..exceptions import ProtocolError


class ReplyType(Enum):
    """Enumeration of reply shapes, keyed by their wire prefix."""
    STATUS = "+"
    ERROR = "-"
    BULK = "$"
    MULTI_BULK = "*"


class StatusText(Enum):
    """Status texts that signal success."""
    OK = "OK"
    PONG = "PONG"


@dataclass(frozen=True)
class SimpleStatus:
    """
    A single-line status reply such as `+OK`.

    Attributes:
        text: The status text without prefix or terminator
    """
    text: str
    type: ReplyType = field(default=ReplyType.STATUS, init=False)

    @property
    def is_ok(self) -> bool:
        return self.text == StatusText.OK.value

    @property
    def is_pong(self) -> bool:
        return self.text == StatusText.PONG.value


@dataclass(frozen=True)
class ErrorReply:
    """An error reply such as `-ERR unknown command`."""
    message: str
    type: ReplyType = field(default=ReplyType.ERROR, init=False)


@dataclass(frozen=True)
class BulkValue:
    """
    A length-prefixed value.

    Attributes:
        value: The body bytes, or None when the server sent a negative
            length (key not found). An empty body is b"", never None.
    """
    value: Optional[bytes]
    type: ReplyType = field(default=ReplyType.BULK, init=False)

    @property
    def is_absent(self) -> bool:
        return self.value is None

    def text(self, encoding: str = "utf-8") -> Optional[str]:
        """Decode the body, keeping absence as None."""
        return _decode(self.value, encoding)


@dataclass(frozen=True)
class MultiBulk:
    """
    An ordered array of optional values.

    Attributes:
        items: Element bodies in server order; None marks an absent element
    """
    items: List[Optional[bytes]] = field(default_factory=list)
    type: ReplyType = field(default=ReplyType.MULTI_BULK, init=False)

    def __len__(self) -> int:
        return len(self.items)

    def texts(self, encoding: str = "utf-8") -> List[Optional[str]]:
        """Decode every element, keeping absent elements as None."""
        return [_decode(item, encoding) for item in self.items]


def _decode(value: Optional[bytes], encoding: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return value.decode(encoding)
    except UnicodeDecodeError as exc:
        raise ProtocolError(f"value is not valid {encoding}: {value[:32]!r}") from exc


Reply = Union[SimpleStatus, ErrorReply, BulkValue, MultiBulk]
