"""
Redsock client - typed command API over a single blocking connection.

Every call encodes one command, sends it, blocks for exactly one reply and
converts that reply into the operation's return type. Getters come in a
bytes flavour and a ``*_string`` flavour that decodes UTF-8; setters take
either ``str`` or ``bytes``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ._connection import Connection
from ._protocol import (
    BulkReply,
    ErrorReply,
    IntegerReply,
    MultiBulkReply,
    Reply,
    StatusReply,
    encode_bulk,
    encode_inline,
)
from .config import DEFAULT_HOST, DEFAULT_PORT, Endpoint
from .exceptions import InvalidArgument, ProtocolViolation, ServerError

logger = logging.getLogger(__name__)

Value = Union[str, bytes]


class KeyType(Enum):
    """Kind of value stored at a key, as reported by TYPE."""

    NONE = "none"
    STRING = "string"
    LIST = "list"
    SET = "set"


def _decode(value: Optional[bytes]) -> Optional[str]:
    return value.decode("utf-8", errors="replace") if value is not None else None


def _decode_all(items: Optional[List[Optional[bytes]]]) -> List[Optional[str]]:
    if not items:
        return []
    return [_decode(item) for item in items]


def _require(name: str, value: Any) -> None:
    if value is None:
        raise InvalidArgument(name)


def _int_arg(name: str, value: Any) -> int:
    _require(name, value)
    if isinstance(value, bool):
        raise InvalidArgument(name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")


def _require_keys(keys) -> None:
    if not keys:
        raise InvalidArgument("keys")
    for key in keys:
        _require("key", key)


class Redsock:
    """
    Synchronous client for one server endpoint.

    The socket is opened on the first command and released by :meth:`close`,
    which the context manager calls exactly once:

        with Redsock("localhost", 6379) as db:
            db.set("key", "value")
            db.get("key")        # b'value'

    An instance must not be shared between threads.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        password: Optional[str] = None,
        send_timeout: Optional[int] = None,
        retry_count: int = 0,
        retry_timeout: int = 0,
    ):
        """
        Create a client. No connection is made until the first command.

        Args:
            host: Server host name
            port: Server port
            password: Sent with AUTH right after connecting, if given
            send_timeout: Socket timeout in milliseconds (None = block forever)
            retry_count: Accepted for compatibility, not used
            retry_timeout: Accepted for compatibility, not used
        """
        _require("host", host)
        self._init(
            Endpoint(
                host=host,
                port=port,
                password=password,
                send_timeout=send_timeout,
                retry_count=retry_count,
                retry_timeout=retry_timeout,
            )
        )

    def _init(self, endpoint: Endpoint) -> None:
        self._endpoint = endpoint
        self._conn = Connection(endpoint)
        self._db = 0
        if endpoint.retry_count or endpoint.retry_timeout:
            logger.debug("retry_count/retry_timeout are set but the client never retries")

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint) -> "Redsock":
        """Create a client for an already-built :class:`Endpoint`."""
        _require("endpoint", endpoint)
        client = cls.__new__(cls)
        client._init(endpoint)
        return client

    @classmethod
    def connect(cls, url: str, send_timeout: Optional[int] = None) -> "Redsock":
        """Create a client from ``redis://[:password@]host[:port]``."""
        return cls.from_endpoint(Endpoint.from_url(url, send_timeout=send_timeout))

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def connected(self) -> bool:
        """True while a socket is open."""
        return self._conn.connected

    def close(self) -> None:
        """Send QUIT and close the socket. Safe to call more than once."""
        self._conn.close()

    def __enter__(self) -> "Redsock":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __getitem__(self, key: str) -> Optional[str]:
        return self.get_string(key)

    def __setitem__(self, key: str, value: Value) -> None:
        self.set(key, value)

    # =========================================================================
    # Reply handling
    # =========================================================================

    def _encode_value(self, value: Value) -> bytes:
        """Encode a value to bytes."""
        if value is None:
            raise InvalidArgument("value")
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode("utf-8")
        return str(value).encode("utf-8")

    def _command(self, name: str, *args) -> Reply:
        return self._conn.request(encode_inline(name, *args))

    def _data_command(self, name: str, *args, payload: Value) -> Reply:
        return self._conn.request(encode_bulk(name, *args, payload=self._encode_value(payload)))

    def _unexpected(self, reply: Reply, request: str) -> ProtocolViolation:
        self._conn.reset()
        return ProtocolViolation(f"Unknown reply on {request} request: {reply!r}")

    def _expect_status(self, reply: Reply) -> str:
        if isinstance(reply, StatusReply):
            return reply.text
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.code)
        raise self._unexpected(reply, "status")

    def _expect_success(self, reply: Reply) -> None:
        # Older servers acknowledge writes with a status, newer ones with a count.
        if isinstance(reply, (StatusReply, IntegerReply)):
            return
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.code)
        raise self._unexpected(reply, "success")

    def _expect_int(self, reply: Reply) -> int:
        if isinstance(reply, IntegerReply):
            return reply.value
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.code)
        raise self._unexpected(reply, "integer")

    def _expect_bool(self, reply: Reply) -> bool:
        return self._expect_int(reply) == 1

    def _expect_bulk(self, reply: Reply) -> Optional[bytes]:
        if isinstance(reply, BulkReply):
            return reply.value
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.code)
        raise self._unexpected(reply, "bulk")

    def _expect_multi_bulk(self, reply: Reply) -> Optional[List[Optional[bytes]]]:
        if isinstance(reply, MultiBulkReply):
            return reply.items
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.code)
        raise self._unexpected(reply, "multi-bulk")

    def _soft_command(self, name: str) -> str:
        # Returns the raw reply line, error lines included.
        self._conn.send(encode_inline(name))
        return self._conn.read_raw_line()

    # =========================================================================
    # Connection Commands
    # =========================================================================

    def ping(self) -> str:
        """Ping the server, returning the status text."""
        return self._expect_status(self._command("PING"))

    def execute(self, command: str) -> Any:
        """
        Send a raw inline command line and return the decoded reply.

        Status replies come back as ``str``, integers as ``int``, bulk values
        as ``bytes`` or ``None`` and multi-bulk replies as lists.
        """
        _require("command", command)
        reply = self._conn.request(command.rstrip("\r\n").encode("utf-8") + b"\r\n")
        if isinstance(reply, ErrorReply):
            raise ServerError(reply.code)
        if isinstance(reply, StatusReply):
            return reply.text
        if isinstance(reply, IntegerReply):
            return reply.value
        if isinstance(reply, BulkReply):
            return reply.value
        return reply.items

    # =========================================================================
    # Key Commands
    # =========================================================================

    def exists(self, key: str) -> bool:
        """Test if a key exists."""
        _require("key", key)
        return self._expect_bool(self._command("EXISTS", key))

    def remove(self, key: str) -> bool:
        """Delete a single key, True if it existed."""
        _require("key", key)
        return self._expect_bool(self._command("DEL", key))

    def delete(self, *keys: str) -> int:
        """Delete one or more keys, returning how many were removed."""
        _require_keys(keys)
        return self._expect_int(self._command("DEL", *keys))

    def type(self, key: str) -> KeyType:
        """Return the type of the value stored at key."""
        _require("key", key)
        text = self._expect_status(self._command("TYPE", key))
        try:
            return KeyType(text)
        except ValueError:
            raise ProtocolViolation(f"Invalid value: {text!r}")

    def keys(self, pattern: str = "*") -> List[str]:
        """
        Return all keys matching pattern.

        The server answers with one space-separated bulk value, so a key
        whose name contains a space comes back split into several names.
        """
        _require("pattern", pattern)
        data = self._expect_bulk(self._command("KEYS", pattern))
        if not data:
            return []
        return data.decode("utf-8", errors="replace").split(" ")

    def randomkey(self) -> str:
        """Return a random key from the key space."""
        return self._expect_status(self._command("RANDOMKEY"))

    def rename(self, src: str, dst: str) -> bool:
        """Rename src to dst, replacing dst. False if the server refused."""
        _require("src", src)
        _require("dst", dst)
        reply = self._command("RENAME", src, dst)
        if isinstance(reply, (StatusReply, ErrorReply)):
            return isinstance(reply, StatusReply)
        raise self._unexpected(reply, "status")

    def renamenx(self, src: str, dst: str) -> bool:
        """Rename src to dst only if dst does not exist."""
        _require("src", src)
        _require("dst", dst)
        return self._expect_bool(self._command("RENAMENX", src, dst))

    def dbsize(self) -> int:
        """Return the number of keys in the selected database."""
        return self._expect_int(self._command("DBSIZE"))

    def expire(self, key: str, seconds: int) -> bool:
        """Set a time to live in seconds on key."""
        _require("key", key)
        return self._expect_bool(self._command("EXPIRE", key, _int_arg("seconds", seconds)))

    def expireat(self, key: str, when: Union[int, datetime]) -> bool:
        """Expire key at a Unix timestamp (seconds) or an aware datetime."""
        _require("key", key)
        if isinstance(when, datetime):
            when = when.timestamp()
        return self._expect_bool(self._command("EXPIREAT", key, _int_arg("when", when)))

    def ttl(self, key: str) -> int:
        """Return the time to live of key in seconds."""
        _require("key", key)
        return self._expect_int(self._command("TTL", key))

    def select(self, index: int) -> bool:
        """
        Select the database with the given zero-based index.

        The index is remembered for :attr:`db` but is not re-sent after a
        reconnect; a new connection starts on database 0.
        """
        index = _int_arg("index", index)
        self._expect_status(self._command("SELECT", index))
        self._db = index
        return True

    @property
    def db(self) -> int:
        """Last database index passed to :meth:`select`."""
        return self._db

    @db.setter
    def db(self, index: int) -> None:
        self.select(index)

    # =========================================================================
    # String Commands
    # =========================================================================

    def set(self, key: str, value: Value) -> bool:
        """Set key to value."""
        _require("key", key)
        self._expect_status(self._data_command("SET", key, payload=value))
        return True

    def setnx(self, key: str, value: Value) -> bool:
        """
        Set key to value if key does not exist.

        Returns True once the server has accepted the command, whether or
        not the key was actually written.
        """
        _require("key", key)
        self._expect_success(self._data_command("SETNX", key, payload=value))
        return True

    def get(self, key: str) -> Optional[bytes]:
        """Get the value of key, None if it does not exist."""
        _require("key", key)
        return self._expect_bulk(self._command("GET", key))

    def get_string(self, key: str) -> Optional[str]:
        """Get the value of key decoded as UTF-8."""
        return _decode(self.get(key))

    def getset(self, key: str, value: Value) -> Optional[bytes]:
        """Set key to value and return the old value."""
        _require("key", key)
        return self._expect_bulk(self._data_command("GETSET", key, payload=value))

    def getset_string(self, key: str, value: Value) -> Optional[str]:
        return _decode(self.getset(key, value))

    def mget(self, *keys: str) -> Optional[List[Optional[bytes]]]:
        """Get the values of several keys; missing keys map to None."""
        _require_keys(keys)
        return self._expect_multi_bulk(self._command("MGET", *keys))

    def mget_strings(self, *keys: str) -> List[Optional[str]]:
        return _decode_all(self.mget(*keys))

    def incr(self, key: str) -> int:
        """Increment the integer value of key by one."""
        _require("key", key)
        return self._expect_int(self._command("INCR", key))

    def incrby(self, key: str, amount: int) -> int:
        """Increment the integer value of key by amount."""
        _require("key", key)
        return self._expect_int(self._command("INCRBY", key, _int_arg("amount", amount)))

    def decr(self, key: str) -> int:
        """Decrement the integer value of key by one."""
        _require("key", key)
        return self._expect_int(self._command("DECR", key))

    def decrby(self, key: str, amount: int) -> int:
        """Decrement the integer value of key by amount."""
        _require("key", key)
        return self._expect_int(self._command("DECRBY", key, _int_arg("amount", amount)))

    def move(self, key: str, index: int) -> bool:
        """Move key from the selected database to database index."""
        _require("key", key)
        return self._expect_bool(self._command("MOVE", key, _int_arg("index", index)))

    # =========================================================================
    # List Commands
    # =========================================================================

    def push(self, key: str, value: Value, tail: bool = False) -> bool:
        """Add value to the head of the list at key, or the tail if tail is set."""
        _require("key", key)
        name = "RPUSH" if tail else "LPUSH"
        self._expect_success(self._data_command(name, key, payload=value))
        return True

    def lpush(self, key: str, value: Value) -> bool:
        return self.push(key, value, tail=False)

    def rpush(self, key: str, value: Value) -> bool:
        return self.push(key, value, tail=True)

    def lset(self, key: str, index: int, value: Value) -> bool:
        """Set the list element at index to value."""
        _require("key", key)
        self._expect_status(self._data_command("LSET", key, _int_arg("index", index), payload=value))
        return True

    def llen(self, key: str) -> int:
        """Return the length of the list at key."""
        _require("key", key)
        return self._expect_int(self._command("LLEN", key))

    def lrange(self, key: str, start: int, end: int) -> List[Optional[bytes]]:
        """Return elements start..end (inclusive) of the list at key."""
        _require("key", key)
        start, end = _int_arg("start", start), _int_arg("end", end)
        items = self._expect_multi_bulk(self._command("LRANGE", key, start, end))
        return items or []

    def lrange_strings(self, key: str, start: int, end: int) -> List[Optional[str]]:
        return _decode_all(self.lrange(key, start, end))

    def lindex(self, key: str, index: int) -> Optional[bytes]:
        """Return the list element at index, None if out of range."""
        _require("key", key)
        return self._expect_bulk(self._command("LINDEX", key, _int_arg("index", index)))

    def lindex_string(self, key: str, index: int) -> Optional[str]:
        return _decode(self.lindex(key, index))

    def pop(self, key: str, tail: bool = False) -> Optional[bytes]:
        """
        Remove and return an element of the list at key.

        Always pops from the tail: ``tail`` is accepted but RPOP is sent
        either way.
        """
        _require("key", key)
        name = "RPOP" if tail else "RPOP"
        return self._expect_bulk(self._command(name, key))

    def pop_string(self, key: str, tail: bool = False) -> Optional[str]:
        return _decode(self.pop(key, tail))

    def ltrim(self, key: str, start: int, end: int) -> bool:
        """Trim the list at key to elements start..end."""
        _require("key", key)
        start, end = _int_arg("start", start), _int_arg("end", end)
        self._expect_status(self._command("LTRIM", key, start, end))
        return True

    # =========================================================================
    # Set Commands
    # =========================================================================

    def sadd(self, key: str, member: Value) -> bool:
        """Add member to the set at key."""
        _require("key", key)
        self._expect_success(self._data_command("SADD", key, payload=member))
        return True

    def srem(self, key: str, member: Value) -> bool:
        """Remove member from the set at key, True if it was present."""
        _require("key", key)
        return self._expect_bool(self._data_command("SREM", key, payload=member))

    def scard(self, key: str) -> int:
        """Return the number of members of the set at key."""
        _require("key", key)
        return self._expect_int(self._command("SCARD", key))

    def sismember(self, key: str, member: Value) -> bool:
        """Test whether member belongs to the set at key."""
        _require("key", key)
        return self._expect_bool(self._data_command("SISMEMBER", key, payload=member))

    def sinter(self, *keys: str) -> Optional[List[Optional[bytes]]]:
        """Intersect the sets at keys."""
        _require_keys(keys)
        return self._expect_multi_bulk(self._command("SINTER", *keys))

    def sinter_strings(self, *keys: str) -> List[Optional[str]]:
        return _decode_all(self.sinter(*keys))

    def smembers(self, key: str) -> Optional[List[Optional[bytes]]]:
        """Return all members of the set at key."""
        _require("key", key)
        return self._expect_multi_bulk(self._command("SMEMBERS", key))

    def smembers_strings(self, key: str) -> List[Optional[str]]:
        return _decode_all(self.smembers(key))

    # =========================================================================
    # Sorting
    # =========================================================================

    def sort(self, key: str, query: str = "") -> Optional[List[Optional[bytes]]]:
        """
        Sort the list or set at key.

        ``query`` holds the raw SORT options, e.g. ``"LIMIT 0 10 ALPHA DESC"``.
        An empty result is ``[]``; an absent reply is ``None``.
        """
        _require("key", key)
        args = [key, query] if query else [key]
        return self._expect_multi_bulk(self._command("SORT", *args))

    def sort_strings(self, key: str, query: str = "") -> Optional[List[Optional[str]]]:
        """Like :meth:`sort`, but returns None for an empty or absent result."""
        items = self.sort(key, query)
        if not items:
            return None
        return _decode_all(items)

    # =========================================================================
    # Persistence and Server Commands
    # =========================================================================

    def save(self) -> str:
        """Synchronously save the dataset; returns the raw reply line."""
        return self._soft_command("SAVE")

    def bgsave(self) -> str:
        """Save the dataset in the background; returns the raw reply line."""
        return self._soft_command("BGSAVE")

    def shutdown(self) -> str:
        """
        Ask the server to save and exit; returns the raw reply line.

        The connection is dropped afterwards.
        """
        try:
            return self._soft_command("SHUTDOWN")
        finally:
            self._conn.reset()

    def lastsave(self) -> datetime:
        """Return the time of the last successful save (UTC)."""
        seconds = self._expect_int(self._command("LASTSAVE"))
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    def info(self) -> Dict[str, str]:
        """Return server information as a mapping of ``key:value`` lines."""
        data = self._expect_bulk(self._command("INFO")) or b""
        result = {}
        for line in data.decode("utf-8", errors="replace").split("\n"):
            name, sep, value = line.rstrip("\r").partition(":")
            if not sep:
                continue
            result[name] = value
        return result
