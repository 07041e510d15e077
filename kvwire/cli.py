#!/usr/bin/env python3
"""
Interactive Client for kvwire

A small command-line shell over KVClient for poking at a server by hand.

Usage:
    kvwire                          # Connect to 127.0.0.1:6379
    kvwire --host 10.0.0.5          # Connect to specific host
    kvwire --port 7379 --debug      # Custom port, debug logging

Environment Variables:
    KVWIRE_HOST       - Default server address
    KVWIRE_PORT       - Default server port
    KVWIRE_TIMEOUT    - Default reply timeout in seconds
    KVWIRE_DEBUG      - Enable debug logging (true/false)
"""

import argparse
import logging
import shlex
import sys

from .client import KVClient
from .config.settings import settings
from .exceptions import ConnectError, KVWireError

# Enable command history with arrow keys (works on Unix systems)
try:
    import readline  # noqa: F401
except ImportError:
    pass  # readline not available on Windows by default

HELP = """
Commands:
---------
  ping                      Check the server is alive
  get <key>                 Retrieve the value for a key
  set <key> <value>         Store a value
  mget <key> [key ...]      Retrieve several values
  mset <key> <value> [...]  Store several key/value pairs
  keys <pattern>            List keys matching a glob pattern
  info                      Show server information
  dump <pattern>            Show every matching key with its value

Client Commands:
----------------
  help                      Show this help message
  status                    Show connection status
  reconnect                 Reconnect to the server
  exit                      Exit the client

Quote arguments that contain spaces: set greeting "hello world"
"""


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="kvwire: interactive key-value client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--host", type=str, default=settings.HOST, help="Server host")
    parser.add_argument("--port", type=int, default=settings.PORT, help="Server port")
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.RESPONSE_TIMEOUT,
        help="Reply timeout in seconds",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr),
        ]
    )


def format_value(value) -> str:
    if value is None:
        return "(nil)"
    return repr(value)


def execute(client: KVClient, name: str, args: list) -> str:
    """
    Run one shell command against the client and format the result.

    Raises:
        ValueError: wrong number of arguments
        KVWireError: any client failure
    """
    if name == "ping" and not args:
        return "PONG" if client.ping() else "no pong"
    if name == "get" and len(args) == 1:
        return format_value(client.get(args[0]))
    if name == "set" and len(args) == 2:
        return "OK" if client.set(args[0], args[1]) else "not stored"
    if name == "mget" and args:
        values = client.mget(args)
        return "\n".join(f"{i}) {format_value(v)}" for i, v in enumerate(values, 1))
    if name == "mset" and args and len(args) % 2 == 0:
        return "OK" if client.mset(dict(zip(args[::2], args[1::2]))) else "not stored"
    if name == "keys" and len(args) == 1:
        names = client.keys(args[0])
        return "\n".join(f"{i}) {k}" for i, k in enumerate(names, 1)) or "(empty)"
    if name == "info" and not args:
        return client.info()
    if name == "dump" and len(args) == 1:
        mapping = client.map_keys(args[0])
        return "\n".join(f"{k} = {format_value(v)}" for k, v in mapping.items()) or "(empty)"
    raise ValueError(f"bad command or arguments: {name} {' '.join(args)}".strip())


def main(argv=None) -> None:
    """Main entry point for the interactive client."""
    args = parse_args(argv)
    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    print(f"Connecting to {args.host}:{args.port}...")
    client = KVClient(host=args.host, port=args.port, timeout=args.timeout)

    try:
        client.connect()
    except ConnectError as e:
        logger.error(f"{e}")
        print("Failed to connect. Is the server running?")
        sys.exit(1)

    print("Connected! Type 'help' for commands.\n")

    try:
        while True:
            try:
                line = input(">>> ").strip()
            except EOFError:
                print("\nGoodbye!")
                break

            if not line:
                continue

            try:
                parts = shlex.split(line)
            except ValueError as e:
                print(f"ERROR: {e}")
                continue
            name, cmd_args = parts[0].lower(), parts[1:]

            if name == "help":
                print(HELP)
                continue

            if name in ("exit", "quit"):
                print("Goodbye!")
                break

            if name == "status":
                print(f"Status: {client.state.value}")
                print(f"Server: {args.host}:{args.port}")
                continue

            if name == "reconnect":
                client.disconnect()
                try:
                    client.connect()
                    print("Reconnected!")
                except ConnectError as e:
                    print(f"Reconnection failed: {e}")
                continue

            try:
                print(execute(client, name, cmd_args))
            except ValueError as e:
                print(f"ERROR: {e}")
            except KVWireError as e:
                print(f"ERROR: {type(e).__name__}: {e}")

    except KeyboardInterrupt:
        print("\n\nInterrupted. Goodbye!")
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
