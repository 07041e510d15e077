"""Network module for kvwire."""

from .connection import Connection, ConnectionState, connect

__all__ = ["Connection", "ConnectionState", "connect"]
