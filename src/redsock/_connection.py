"""
Connection manager: one TCP socket plus its buffered reader.

The connection is either :class:`Disconnected` or :class:`Connected`. It
connects lazily on the first command, drops back to ``Disconnected`` on any
socket error, and never retries on its own; the next command makes one
fresh connection attempt.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import BinaryIO, Union

from ._protocol import ErrorReply, Reply, ReplyReader, StatusReply, encode_inline
from .config import Endpoint
from .exceptions import ConnectionFailure, ProtocolViolation, ServerError

logger = logging.getLogger(__name__)

READ_BUFFER_SIZE = 16 * 1024


@dataclass(frozen=True)
class Disconnected:
    """No socket is open."""


@dataclass(frozen=True)
class Connected:
    """A live socket and the buffered stream replies are read from."""

    sock: socket.socket
    stream: BinaryIO
    reader: ReplyReader


DISCONNECTED = Disconnected()

State = Union[Disconnected, Connected]


def _head_line(data: bytes) -> str:
    return data.split(b"\r\n", 1)[0].decode("utf-8", errors="replace")


def _teardown(state: Connected) -> None:
    try:
        state.stream.close()
    finally:
        state.sock.close()


class Connection:
    """Owns the socket for a single client instance. Not thread-safe."""

    def __init__(self, endpoint: Endpoint):
        self.endpoint = endpoint
        self._state: State = DISCONNECTED

    @property
    def state(self) -> State:
        return self._state

    @property
    def connected(self) -> bool:
        return isinstance(self._state, Connected)

    def ensure_connected(self) -> Connected:
        """Open the socket (and authenticate) if not already connected."""
        if isinstance(self._state, Connected):
            return self._state

        endpoint = self.endpoint
        timeout = endpoint.timeout_seconds
        try:
            sock = socket.create_connection((endpoint.host, endpoint.port), timeout=timeout)
        except OSError as e:
            logger.warning("Connect to %s:%d failed: %s", endpoint.host, endpoint.port, e)
            raise ConnectionFailure(
                f"Unable to connect to {endpoint.host}:{endpoint.port}: {e}"
            ) from e

        sock.settimeout(timeout)
        stream = sock.makefile("rb", buffering=READ_BUFFER_SIZE)
        state = Connected(sock=sock, stream=stream, reader=ReplyReader(stream))

        if endpoint.password is not None:
            self._authenticate(state, endpoint.password)

        self._state = state
        logger.info("Connected to %s:%d", endpoint.host, endpoint.port)
        return state

    def _authenticate(self, state: Connected, password: str) -> None:
        logger.debug("S: AUTH ****")
        try:
            state.sock.sendall(encode_inline("AUTH", password))
            reply = state.reader.read_reply()
        except (OSError, ProtocolViolation) as e:
            _teardown(state)
            raise ConnectionFailure(f"Authentication failed: {e}") from e

        if isinstance(reply, StatusReply):
            return
        _teardown(state)
        if isinstance(reply, ErrorReply):
            raise ConnectionFailure(f"Authentication failed: {reply.code}")
        raise ConnectionFailure(f"Authentication failed: unexpected reply {reply!r}")

    def send(self, data: bytes) -> None:
        """Transmit one encoded command, connecting first if needed."""
        state = self.ensure_connected()
        logger.debug("S: %s", _head_line(data))
        try:
            state.sock.sendall(data)
        except OSError as e:
            logger.warning("Send failed, dropping connection: %s", e)
            self.reset()
            raise ConnectionFailure(f"Unable to send command: {e}") from e

    def read_reply(self) -> Reply:
        """Block until one complete reply has been decoded."""
        state = self._require_connected()
        try:
            return state.reader.read_reply()
        except OSError as e:
            logger.warning("Read failed, dropping connection: %s", e)
            self.reset()
            raise ConnectionFailure(f"Unable to read reply: {e}") from e
        except (ProtocolViolation, ServerError):
            # The stream position is unknown after a partial reply.
            self.reset()
            raise

    def read_raw_line(self) -> str:
        """Read one uninterpreted line; ``""`` if the server hung up."""
        state = self._require_connected()
        try:
            return state.reader.read_raw_line()
        except OSError as e:
            self.reset()
            raise ConnectionFailure(f"Unable to read reply: {e}") from e

    def request(self, data: bytes) -> Reply:
        self.send(data)
        return self.read_reply()

    def _require_connected(self) -> Connected:
        if not isinstance(self._state, Connected):
            raise ConnectionFailure("Connection is closed")
        return self._state

    def reset(self) -> None:
        """Drop the socket without saying goodbye."""
        state = self._state
        self._state = DISCONNECTED
        if isinstance(state, Connected):
            try:
                _teardown(state)
            except OSError as e:
                logger.debug("Error closing socket: %s", e)
            logger.debug("Disconnected from %s:%d", self.endpoint.host, self.endpoint.port)

    def close(self) -> None:
        """Send QUIT (best effort) and close. A no-op when disconnected."""
        state = self._state
        if not isinstance(state, Connected):
            return
        logger.debug("S: QUIT")
        try:
            state.sock.sendall(encode_inline("QUIT"))
        except OSError as e:
            logger.debug("QUIT not delivered: %s", e)
        self.reset()
