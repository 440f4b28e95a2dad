#!/usr/bin/env python3
"""
Interactive text client.

Reads lines from the terminal and runs them through :class:`TextAdapter`.

Usage:
    redsock                          # Connect to localhost:6379
    redsock --host 1.2.3.4           # Connect to a specific host
    redsock --password secret        # Authenticate after connecting
    redsock --debug                  # Log every command and reply

Commands:
    get <key>             - Print the value of key
    set <key> <value>     - Store a value, prints True/False
    help                  - Show this help
    exit                  - Exit client
"""

import argparse
import logging
import sys
from typing import Callable, Optional, Sequence

from .adapter import TextAdapter
from .client import Redsock
from .config import Endpoint
from .exceptions import RedsockError

logger = logging.getLogger(__name__)

HELP = """
Commands:
---------
  get <key>             Print the value stored at key ("" if absent)
  set <key> <value>     Store value at key
  help                  Show this help message
  exit                  Exit the client
"""


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    defaults = Endpoint.from_env()
    parser = argparse.ArgumentParser(description="Interactive redsock client")
    parser.add_argument(
        "--host",
        type=str,
        default=defaults.host,
        help=f"Server host (default: {defaults.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=defaults.port,
        help=f"Server port (default: {defaults.port})",
    )
    parser.add_argument(
        "--password",
        type=str,
        default=defaults.password,
        help="Password sent with AUTH after connecting",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=defaults.send_timeout,
        help="Socket timeout in milliseconds (default: none)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


def run_repl(
    adapter: TextAdapter,
    read: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    """Feed lines to the adapter until exit or end of input."""
    while True:
        try:
            line = read(">>> ").strip()
        except EOFError:
            break

        if not line:
            continue
        if line.lower() == "help":
            write(HELP)
            continue
        if line.lower() in ("exit", "quit"):
            break

        try:
            write(adapter.execute(line))
        except RedsockError as e:
            logger.debug("Command failed", exc_info=True)
            write(f"ERROR: {e}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(debug=args.debug)

    endpoint = Endpoint(
        host=args.host,
        port=args.port,
        password=args.password,
        send_timeout=args.timeout,
    )
    with Redsock.from_endpoint(endpoint) as client:
        try:
            run_repl(TextAdapter(client))
        except KeyboardInterrupt:
            print("\nInterrupted.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
