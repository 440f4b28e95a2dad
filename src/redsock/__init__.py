"""
Redsock - synchronous client for the inline/bulk key-value protocol.

One client owns one TCP connection, opened lazily on the first command:
    >>> db = Redsock("localhost", 6379)
    >>> db = Redsock.connect("redis://:secret@localhost:6379")

Typed commands, bytes in and out, with ``*_string`` variants for text:
    >>> db.set("key", "value")
    True
    >>> db.get("key")
    b'value'
    >>> db.get_string("missing") is None
    True

With context manager (the connection is released exactly once):
    >>> with Redsock("localhost", 6379) as db:
    ...     db.rpush("queue", "job1")
    ...     db.sadd("tags", "python")
    ...     db.lrange("queue", 0, -1)
"""

from .adapter import TextAdapter
from .client import KeyType, Redsock
from .config import Endpoint
from .exceptions import (
    ConnectionFailure,
    ErrorKind,
    InvalidArgument,
    ProtocolViolation,
    RedsockError,
    ServerError,
    ValueTooLarge,
)

__all__ = [
    "Redsock",
    "KeyType",
    "Endpoint",
    "TextAdapter",
    "RedsockError",
    "ErrorKind",
    "InvalidArgument",
    "ValueTooLarge",
    "ConnectionFailure",
    "ServerError",
    "ProtocolViolation",
]
__version__ = "0.1.0"
