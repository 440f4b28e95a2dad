"""
Error taxonomy for the redsock client.

Every exception carries a ``kind`` from :class:`ErrorKind` so callers can
branch on the failure as a value instead of on the exception class.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Category of a failed operation."""

    INVALID_ARGUMENT = "invalid_argument"
    VALUE_TOO_LARGE = "value_too_large"
    CONNECTION_FAILURE = "connection_failure"
    SERVER_ERROR = "server_error"
    PROTOCOL_VIOLATION = "protocol_violation"


class RedsockError(Exception):
    """Base class for all redsock errors."""

    kind: ErrorKind


class InvalidArgument(RedsockError, ValueError):
    """A required key or value argument is missing."""

    kind = ErrorKind.INVALID_ARGUMENT


class ValueTooLarge(RedsockError, ValueError):
    """A value payload exceeds the 1 GiB ceiling."""

    kind = ErrorKind.VALUE_TOO_LARGE


class ConnectionFailure(RedsockError, ConnectionError):
    """Connecting, authenticating or sending failed."""

    kind = ErrorKind.CONNECTION_FAILURE


class ServerError(RedsockError):
    """The server answered with an error line."""

    kind = ErrorKind.SERVER_ERROR

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class ProtocolViolation(RedsockError):
    """A reply did not have the shape the operation expects."""

    kind = ErrorKind.PROTOCOL_VIOLATION
