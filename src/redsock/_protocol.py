"""
Wire codec for the inline/bulk command protocol.

Commands go out in one of two shapes:

    NAME arg1 ... argN\\r\\n                               (inline)
    NAME arg1 ... argN <len>\\r\\n<payload bytes>\\r\\n     (bulk)

Replies come back as one of five kinds, selected by the first byte of the
head line: ``+`` status, ``-`` error, ``:`` integer, ``$`` bulk and ``*``
multi-bulk. :class:`ReplyReader` decodes exactly one reply per call into
one of the reply dataclasses below.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Union

from .exceptions import InvalidArgument, ProtocolViolation, ServerError, ValueTooLarge

logger = logging.getLogger(__name__)

# 1 GiB, the largest value the server accepts.
MAX_VALUE_SIZE = 1073741824

CRLF = b"\r\n"

_INTEGER = re.compile(r"-?[0-9]+\Z")


# =========================================================================
# Replies
# =========================================================================


@dataclass(frozen=True)
class StatusReply:
    """One-line acknowledgement, e.g. ``+OK``."""

    text: str


@dataclass(frozen=True)
class ErrorReply:
    """One-line error with any leading ``ERR `` removed."""

    code: str


@dataclass(frozen=True)
class IntegerReply:
    """Signed integer, also used for 0/1 booleans."""

    value: int


@dataclass(frozen=True)
class BulkReply:
    """A single binary value; ``None`` when the key is absent."""

    value: Optional[bytes]


@dataclass(frozen=True)
class MultiBulkReply:
    """A sequence of bulk values; ``None`` for an absent array."""

    items: Optional[List[Optional[bytes]]]


Reply = Union[StatusReply, ErrorReply, IntegerReply, BulkReply, MultiBulkReply]


# =========================================================================
# Encoder
# =========================================================================


def _argument_text(name: str, position: int, arg) -> str:
    if arg is None:
        raise InvalidArgument(f"{name} argument {position} is None")
    if isinstance(arg, (bytes, bytearray, memoryview)):
        try:
            return bytes(arg).decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidArgument(f"{name} argument {position} is not valid UTF-8")
    return str(arg)


def _command_line(name: str, args) -> str:
    texts = [_argument_text(name, position, arg) for position, arg in enumerate(args, start=1)]
    return " ".join([name, *texts])


def check_value(value: Optional[bytes]) -> bytes:
    """Reject a missing or oversized payload before any I/O."""
    if value is None:
        raise InvalidArgument("value")
    if len(value) > MAX_VALUE_SIZE:
        raise ValueTooLarge(f"value exceeds 1G ({len(value)} bytes)")
    return value


def encode_inline(name: str, *args) -> bytes:
    """Render ``NAME arg1 ... argN\\r\\n``."""
    return _command_line(name, args).encode("utf-8") + CRLF


def encode_bulk(name: str, *args, payload: bytes) -> bytes:
    """
    Render a command followed by a length-prefixed payload.

    The length is the raw byte count of ``payload`` and is appended as the
    last argument of the command line.
    """
    payload = check_value(payload)
    line = _command_line(name, args)
    return f"{line} {len(payload)}".encode("utf-8") + CRLF + bytes(payload) + CRLF


def strip_error_prefix(text: str) -> str:
    """Drop a leading ``ERR `` token from an error message."""
    if text.startswith("ERR "):
        return text[4:]
    return text


# =========================================================================
# Decoder
# =========================================================================


class ReplyReader:
    """Reads replies off a buffered binary stream."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def read_line(self) -> str:
        """
        Read one line, bounded by ``\\n``.

        Every ``\\r`` in the line is discarded, so a missing ``\\r`` before
        the ``\\n`` is tolerated. End of stream before the ``\\n`` is a
        protocol violation.
        """
        raw = self._stream.readline()
        if not raw.endswith(b"\n"):
            raise ProtocolViolation("No more data")
        return raw.replace(b"\r", b"")[:-1].decode("utf-8", errors="replace")

    def read_raw_line(self) -> str:
        """Read one line without interpreting it; ``""`` at end of stream."""
        raw = self._stream.readline()
        line = raw.replace(b"\r", b"").rstrip(b"\n").decode("utf-8", errors="replace")
        logger.debug("R: %s", line)
        return line

    def read_reply(self) -> Reply:
        """Decode exactly one reply."""
        line = self.read_line()
        logger.debug("R: %s", line)
        if not line:
            raise ProtocolViolation("Zero length response")

        prefix, rest = line[0], line[1:]
        if prefix == "+":
            return StatusReply(rest)
        if prefix == "-":
            return ErrorReply(strip_error_prefix(rest))
        if prefix == ":":
            return IntegerReply(self._parse_int(rest, "Invalid integer"))
        if prefix == "$":
            return BulkReply(self._read_bulk_body(rest))
        if prefix == "*":
            return MultiBulkReply(self._read_multi_bulk_body(rest))
        raise ProtocolViolation(f"Unexpected reply: {line}")

    def _parse_int(self, text: str, message: str) -> int:
        if not _INTEGER.match(text):
            raise ProtocolViolation(f"{message}: {text!r}")
        return int(text)

    def _read_bulk_body(self, length_text: str) -> Optional[bytes]:
        length = self._parse_int(length_text, "Invalid length")
        if length == -1:
            return None
        if length < 0:
            raise ProtocolViolation(f"Invalid length: {length}")

        data = self._stream.read(length)
        if data is None or len(data) != length:
            raise ProtocolViolation("No more data")
        if self._stream.read(2) != CRLF:
            raise ProtocolViolation("Invalid termination")
        return data

    def _read_multi_bulk_body(self, count_text: str) -> Optional[List[Optional[bytes]]]:
        count = self._parse_int(count_text, "Invalid length")
        if count == -1:
            return None
        if count < 0:
            raise ProtocolViolation(f"Invalid length: {count}")
        return [self._read_bulk_element() for _ in range(count)]

    def _read_bulk_element(self) -> Optional[bytes]:
        line = self.read_line()
        logger.debug("R: %s", line)
        if not line:
            raise ProtocolViolation("Zero length response")
        if line[0] == "-":
            # Errors inside a multi-bulk abort the whole reply.
            raise ServerError(strip_error_prefix(line[1:]))
        if line[0] == "$":
            return self._read_bulk_body(line[1:])
        raise ProtocolViolation(f"Unexpected reply: {line}")
