"""
In-process servers for exercising the client over real loopback sockets.

:class:`FakeServer` keeps an in-memory dataset and answers the commands the
client sends. :class:`ScriptedServer` ignores what it is asked and replays
canned replies, which is how malformed or unusual replies are produced in
tests.

    with FakeServer() as server:
        with server.client() as db:
            db.set("key", "value")
"""

from __future__ import annotations

import logging
import math
import random
import socket
import socketserver
import threading
import time
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .client import Redsock

logger = logging.getLogger(__name__)

# Commands whose last argument is the length of a payload that follows.
PAYLOAD_COMMANDS = frozenset(
    ["SET", "SETNX", "GETSET", "LPUSH", "RPUSH", "LSET", "SADD", "SREM", "SISMEMBER"]
)

DATABASES = 16

WRONG_TYPE = "Operation against a key holding the wrong kind of value"

Stored = Union[bytes, List[bytes], set]


class _ThreadingTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True


def status(text: str) -> bytes:
    return f"+{text}\r\n".encode("utf-8")


def error(text: str) -> bytes:
    return f"-ERR {text}\r\n".encode("utf-8")


def integer(value: int) -> bytes:
    return f":{value}\r\n".encode("utf-8")


def bulk(value: Optional[bytes]) -> bytes:
    if value is None:
        return b"$-1\r\n"
    return f"${len(value)}\r\n".encode("utf-8") + value + b"\r\n"


def multi_bulk(items: Optional[Sequence[Optional[bytes]]]) -> bytes:
    if items is None:
        return b"*-1\r\n"
    return f"*{len(items)}\r\n".encode("utf-8") + b"".join(bulk(item) for item in items)


def _list_range(items: List[bytes], start: int, end: int) -> Tuple[int, int]:
    """Translate an inclusive, possibly negative range into slice bounds."""
    n = len(items)
    if start < 0:
        start = max(n + start, 0)
    if end < 0:
        end = n + end
    end = min(end, n - 1)
    if start > end:
        return 0, 0
    return start, end + 1


class _Session:
    def __init__(self, authenticated: bool):
        self.db = 0
        self.authenticated = authenticated


class _BaseServer:
    """Threaded TCP server on an ephemeral localhost port."""

    def __init__(self, host: str = "127.0.0.1"):
        self.commands: List[str] = []
        self.connections = 0
        self._lock = threading.Lock()
        self._sockets: List[socket.socket] = []
        self._server = _ThreadingTCPServer((host, 0), self._build_handler())
        self._thread: Optional[threading.Thread] = None

    @property
    def host(self) -> str:
        return self._server.server_address[0]

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def client(self, **kwargs: Any) -> Redsock:
        """Create a client pointed at this server."""
        return Redsock(self.host, self.port, **kwargs)

    def start(self) -> "_BaseServer":
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.debug("%s listening on %s:%d", type(self).__name__, self.host, self.port)
        return self

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()
        with self._lock:
            sockets, self._sockets = self._sockets, []
        for sock in sockets:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def wait_closed(self, timeout: float = 2.0) -> bool:
        """Wait until every client connection has been handled to the end."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if not self._sockets:
                    return True
            time.sleep(0.01)
        return False

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def _build_handler(self) -> type:
        server = self

        class Handler(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                server._serve(self.request)

        return Handler

    def _serve(self, conn: socket.socket) -> None:
        with self._lock:
            self.connections += 1
            self._sockets.append(conn)
        rfile = conn.makefile("rb")
        session = self._open_session()
        try:
            while True:
                command = self._read_command(rfile)
                if command is None:
                    return
                line, payload = command
                response, close_after = self._respond(session, line, payload)
                if response:
                    conn.sendall(response)
                if close_after:
                    return
        except OSError:
            return
        finally:
            rfile.close()
            with self._lock:
                if conn in self._sockets:
                    self._sockets.remove(conn)

    def _read_command(self, rfile) -> Optional[Tuple[str, Optional[bytes]]]:
        raw = rfile.readline()
        if not raw:
            return None
        line = raw.rstrip(b"\r\n").decode("utf-8", errors="replace")
        payload = None
        parts = line.split()
        if parts and parts[0].upper() in PAYLOAD_COMMANDS and len(parts) > 1:
            try:
                length = int(parts[-1])
            except ValueError:
                length = -1
            if length >= 0:
                payload = rfile.read(length)
                rfile.read(2)
        with self._lock:
            self.commands.append(line)
        return line, payload

    def _open_session(self) -> Any:
        return None

    def _respond(self, session: Any, line: str, payload: Optional[bytes]) -> Tuple[bytes, bool]:
        raise NotImplementedError


class ScriptedServer(_BaseServer):
    """Answers the n-th command with the n-th canned reply, then hangs up."""

    def __init__(self, replies: Sequence[bytes], host: str = "127.0.0.1"):
        super().__init__(host)
        self._replies = list(replies)

    def _respond(self, session, line, payload):
        with self._lock:
            if not self._replies:
                return b"", True
            return self._replies.pop(0), False


class FakeServer(_BaseServer):
    """In-memory server for the inline/bulk protocol."""

    def __init__(self, password: Optional[str] = None, host: str = "127.0.0.1"):
        super().__init__(host)
        self.password = password
        self.databases: List[Dict[str, Stored]] = [{} for _ in range(DATABASES)]
        self.expires: List[Dict[str, float]] = [{} for _ in range(DATABASES)]
        self.last_save = int(time.time())
        self.shutdown_requested = False

    def _open_session(self) -> _Session:
        return _Session(authenticated=self.password is None)

    def _respond(self, session: _Session, line: str, payload: Optional[bytes]):
        parts = line.split()
        if not parts:
            return error("unknown command"), False
        name, args = parts[0].upper(), parts[1:]

        if name == "QUIT":
            return b"", True
        if name == "AUTH":
            session.authenticated = bool(args) and args[0] == self.password
            if session.authenticated:
                return status("OK"), False
            return error("invalid password"), False
        if not session.authenticated:
            return error("operation not permitted"), False
        if name == "SHUTDOWN":
            self.shutdown_requested = True
            return b"", True

        handler = getattr(self, f"_cmd_{name.lower()}", None)
        if handler is None:
            return error("unknown command"), False
        with self._lock:
            self._expire_keys(session.db)
            try:
                return handler(session, args, payload), False
            except (ValueError, IndexError):
                return error("syntax error"), False

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    def _expire_keys(self, db: int) -> None:
        now = time.time()
        for key, deadline in list(self.expires[db].items()):
            if deadline <= now:
                self.databases[db].pop(key, None)
                del self.expires[db][key]

    def _remove(self, db: int, key: str) -> bool:
        self.expires[db].pop(key, None)
        return self.databases[db].pop(key, None) is not None

    def _string(self, session: _Session, key: str) -> Optional[bytes]:
        value = self.databases[session.db].get(key)
        if value is not None and not isinstance(value, bytes):
            raise TypeError(key)
        return value

    def _typed(self, session: _Session, key: str, kind: type, create: bool = False):
        data = self.databases[session.db]
        value = data.get(key)
        if value is None:
            if not create:
                return None
            value = data[key] = kind()
        if not isinstance(value, kind):
            raise TypeError(key)
        return value

    # ---------------------------------------------------------------------
    # Generic commands
    # ---------------------------------------------------------------------

    def _cmd_ping(self, session, args, payload):
        return status("PONG")

    def _cmd_select(self, session, args, payload):
        index = int(args[0])
        if not 0 <= index < DATABASES:
            return error("invalid DB index")
        session.db = index
        return status("OK")

    def _cmd_exists(self, session, args, payload):
        return integer(int(args[0] in self.databases[session.db]))

    def _cmd_del(self, session, args, payload):
        return integer(sum(self._remove(session.db, key) for key in args))

    def _cmd_type(self, session, args, payload):
        value = self.databases[session.db].get(args[0])
        if value is None:
            return status("none")
        if isinstance(value, bytes):
            return status("string")
        if isinstance(value, list):
            return status("list")
        return status("set")

    def _cmd_keys(self, session, args, payload):
        names = sorted(k for k in self.databases[session.db] if fnmatchcase(k, args[0]))
        return bulk(" ".join(names).encode("utf-8"))

    def _cmd_randomkey(self, session, args, payload):
        data = self.databases[session.db]
        return status(random.choice(sorted(data)) if data else "")

    def _cmd_rename(self, session, args, payload):
        src, dst = args[0], args[1]
        data = self.databases[session.db]
        if src == dst:
            return error("source and destination objects are the same")
        if src not in data:
            return error("no such key")
        value = data[src]
        self._remove(session.db, src)
        self._remove(session.db, dst)
        data[dst] = value
        return status("OK")

    def _cmd_renamenx(self, session, args, payload):
        src, dst = args[0], args[1]
        data = self.databases[session.db]
        if src not in data:
            return error("no such key")
        if dst in data:
            return integer(0)
        value = data[src]
        self._remove(session.db, src)
        data[dst] = value
        return integer(1)

    def _cmd_dbsize(self, session, args, payload):
        return integer(len(self.databases[session.db]))

    def _cmd_expire(self, session, args, payload):
        return self._cmd_expireat(session, [args[0], time.time() + int(args[1])], payload)

    def _cmd_expireat(self, session, args, payload):
        key, when = args[0], float(args[1])
        if key not in self.databases[session.db]:
            return integer(0)
        if when <= time.time():
            self._remove(session.db, key)
        else:
            self.expires[session.db][key] = when
        return integer(1)

    def _cmd_ttl(self, session, args, payload):
        deadline = self.expires[session.db].get(args[0])
        if deadline is None:
            return integer(-1)
        return integer(math.ceil(deadline - time.time()))

    def _cmd_move(self, session, args, payload):
        key, index = args[0], int(args[1])
        if not 0 <= index < DATABASES:
            return error("index out of range")
        src, dst = self.databases[session.db], self.databases[index]
        if index == session.db:
            return error("source and destination objects are the same")
        if key not in src or key in dst:
            return integer(0)
        dst[key] = src[key]
        self._remove(session.db, key)
        return integer(1)

    # ---------------------------------------------------------------------
    # String commands
    # ---------------------------------------------------------------------

    def _cmd_set(self, session, args, payload):
        self._remove(session.db, args[0])
        self.databases[session.db][args[0]] = payload
        return status("OK")

    def _cmd_setnx(self, session, args, payload):
        if args[0] in self.databases[session.db]:
            return integer(0)
        self.databases[session.db][args[0]] = payload
        return integer(1)

    def _cmd_get(self, session, args, payload):
        try:
            return bulk(self._string(session, args[0]))
        except TypeError:
            return error(WRONG_TYPE)

    def _cmd_getset(self, session, args, payload):
        try:
            old = self._string(session, args[0])
        except TypeError:
            return error(WRONG_TYPE)
        self.databases[session.db][args[0]] = payload
        return bulk(old)

    def _cmd_mget(self, session, args, payload):
        data = self.databases[session.db]
        items = []
        for key in args:
            value = data.get(key)
            items.append(value if isinstance(value, bytes) else None)
        return multi_bulk(items)

    def _incr(self, session, key: str, amount: int) -> bytes:
        try:
            current = self._string(session, key)
        except TypeError:
            return error(WRONG_TYPE)
        try:
            value = int(current or b"0") + amount
        except ValueError:
            return error("value is not an integer or out of range")
        self.databases[session.db][key] = str(value).encode("utf-8")
        return integer(value)

    def _cmd_incr(self, session, args, payload):
        return self._incr(session, args[0], 1)

    def _cmd_incrby(self, session, args, payload):
        return self._incr(session, args[0], int(args[1]))

    def _cmd_decr(self, session, args, payload):
        return self._incr(session, args[0], -1)

    def _cmd_decrby(self, session, args, payload):
        return self._incr(session, args[0], -int(args[1]))

    # ---------------------------------------------------------------------
    # List commands
    # ---------------------------------------------------------------------

    def _push(self, session, key: str, value: bytes, tail: bool) -> bytes:
        try:
            items = self._typed(session, key, list, create=True)
        except TypeError:
            return error(WRONG_TYPE)
        if tail:
            items.append(value)
        else:
            items.insert(0, value)
        return status("OK")

    def _cmd_lpush(self, session, args, payload):
        return self._push(session, args[0], payload, tail=False)

    def _cmd_rpush(self, session, args, payload):
        return self._push(session, args[0], payload, tail=True)

    def _cmd_lset(self, session, args, payload):
        try:
            items = self._typed(session, args[0], list)
        except TypeError:
            return error(WRONG_TYPE)
        if items is None:
            return error("no such key")
        index = int(args[1])
        if not -len(items) <= index < len(items):
            return error("index out of range")
        items[index] = payload
        return status("OK")

    def _cmd_llen(self, session, args, payload):
        try:
            items = self._typed(session, args[0], list)
        except TypeError:
            return error(WRONG_TYPE)
        return integer(len(items or []))

    def _cmd_lrange(self, session, args, payload):
        try:
            items = self._typed(session, args[0], list) or []
        except TypeError:
            return error(WRONG_TYPE)
        start, stop = _list_range(items, int(args[1]), int(args[2]))
        return multi_bulk(items[start:stop])

    def _cmd_lindex(self, session, args, payload):
        try:
            items = self._typed(session, args[0], list) or []
        except TypeError:
            return error(WRONG_TYPE)
        index = int(args[1])
        if not -len(items) <= index < len(items):
            return bulk(None)
        return bulk(items[index])

    def _pop(self, session, key: str, tail: bool) -> bytes:
        try:
            items = self._typed(session, key, list)
        except TypeError:
            return error(WRONG_TYPE)
        if not items:
            return bulk(None)
        value = items.pop() if tail else items.pop(0)
        if not items:
            self._remove(session.db, key)
        return bulk(value)

    def _cmd_lpop(self, session, args, payload):
        return self._pop(session, args[0], tail=False)

    def _cmd_rpop(self, session, args, payload):
        return self._pop(session, args[0], tail=True)

    def _cmd_ltrim(self, session, args, payload):
        try:
            items = self._typed(session, args[0], list)
        except TypeError:
            return error(WRONG_TYPE)
        if items is not None:
            start, stop = _list_range(items, int(args[1]), int(args[2]))
            items[:] = items[start:stop]
        return status("OK")

    # ---------------------------------------------------------------------
    # Set commands
    # ---------------------------------------------------------------------

    def _cmd_sadd(self, session, args, payload):
        try:
            members = self._typed(session, args[0], set, create=True)
        except TypeError:
            return error(WRONG_TYPE)
        added = payload not in members
        members.add(payload)
        return integer(int(added))

    def _cmd_srem(self, session, args, payload):
        try:
            members = self._typed(session, args[0], set)
        except TypeError:
            return error(WRONG_TYPE)
        if not members or payload not in members:
            return integer(0)
        members.discard(payload)
        return integer(1)

    def _cmd_scard(self, session, args, payload):
        try:
            members = self._typed(session, args[0], set)
        except TypeError:
            return error(WRONG_TYPE)
        return integer(len(members or ()))

    def _cmd_sismember(self, session, args, payload):
        try:
            members = self._typed(session, args[0], set)
        except TypeError:
            return error(WRONG_TYPE)
        return integer(int(bool(members) and payload in members))

    def _cmd_sinter(self, session, args, payload):
        try:
            sets = [self._typed(session, key, set) for key in args]
        except TypeError:
            return error(WRONG_TYPE)
        if any(s is None for s in sets):
            return multi_bulk([])
        return multi_bulk(sorted(set.intersection(*sets)))

    def _cmd_smembers(self, session, args, payload):
        try:
            members = self._typed(session, args[0], set)
        except TypeError:
            return error(WRONG_TYPE)
        return multi_bulk(sorted(members or ()))

    # ---------------------------------------------------------------------
    # Sorting
    # ---------------------------------------------------------------------

    def _cmd_sort(self, session, args, payload):
        value = self.databases[session.db].get(args[0])
        if value is None:
            return multi_bulk([])
        if isinstance(value, bytes):
            return error(WRONG_TYPE)

        options = [a.upper() for a in args[1:]]
        items = list(value)
        if "ALPHA" in options:
            items.sort()
        else:
            try:
                items.sort(key=float)
            except ValueError:
                return error("One or more scores can't be converted into double")
        if "DESC" in options:
            items.reverse()
        if "LIMIT" in options:
            at = options.index("LIMIT")
            offset, count = int(options[at + 1]), int(options[at + 2])
            items = items[offset : offset + count]
        return multi_bulk(items)

    # ---------------------------------------------------------------------
    # Persistence and server commands
    # ---------------------------------------------------------------------

    def _cmd_save(self, session, args, payload):
        self.last_save = int(time.time())
        return status("OK")

    def _cmd_bgsave(self, session, args, payload):
        self.last_save = int(time.time())
        return status("Background saving started")

    def _cmd_lastsave(self, session, args, payload):
        return integer(self.last_save)

    def _cmd_info(self, session, args, payload):
        lines = [
            "redis_version:1.2.6",
            f"connected_clients:{len(self._sockets)}",
            f"total_connections_received:{self.connections}",
            f"total_commands_processed:{len(self.commands)}",
            f"last_save_time:{self.last_save}",
            "role:master",
        ]
        for index, data in enumerate(self.databases):
            if data:
                lines.append(f"db{index}:keys={len(data)},expires={len(self.expires[index])}")
        return bulk(("\r\n".join(lines) + "\r\n").encode("utf-8"))
