"""
Protocol Command Definitions

This module defines the commands of the wire protocol subset spoken by
kvwire and the arity each of them accepts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Union

Argument = Union[str, bytes]


class CommandType(Enum):
    """Enumeration of supported command types."""
    PING = "PING"
    GET = "GET"
    SET = "SET"
    MGET = "MGET"
    MSET = "MSET"
    KEYS = "KEYS"
    INFO = "INFO"


# Commands sent as plain text lines rather than multi-bulk frames
INLINE_COMMANDS = frozenset({CommandType.PING, CommandType.INFO})


@dataclass
class Command:
    """
    Represents a command ready to be encoded.

    Attributes:
        type: The command being issued
        args: Arguments following the command name, in wire order
    """
    type: CommandType
    args: List[Argument] = field(default_factory=list)

    def __post_init__(self):
        """Normalize arguments to a list."""
        self.args = list(self.args)

    @property
    def name(self) -> str:
        return self.type.value

    @property
    def is_inline(self) -> bool:
        """Inline commands carry no arguments and skip multi-bulk framing."""
        return self.type in INLINE_COMMANDS

    @property
    def is_valid(self) -> bool:
        """Check if the argument count fits the command type."""
        count = len(self.args)
        if self.type in INLINE_COMMANDS:
            return count == 0
        if self.type in (CommandType.GET, CommandType.KEYS):
            return count == 1
        if self.type == CommandType.SET:
            return count == 2
        if self.type == CommandType.MGET:
            return count >= 1
        if self.type == CommandType.MSET:
            return count >= 2 and count % 2 == 0
        return False
