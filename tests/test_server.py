"""Persistence and server command tests."""

import time
from datetime import datetime, timezone

import pytest

from redsock import ProtocolViolation, ServerError


class TestPersistence:
    """SAVE, BGSAVE, SHUTDOWN and LASTSAVE."""

    def test_save(self, db):
        assert db.save() == "+OK"

    def test_bgsave(self, db):
        assert db.bgsave() == "+Background saving started"

    def test_soft_calls_do_not_raise(self, scripted):
        with scripted(b"-ERR background save in progress\r\n").client() as db:
            assert db.bgsave() == "-ERR background save in progress"

    def test_shutdown(self, server, db):
        db.ping()
        assert db.shutdown() == ""
        assert server.shutdown_requested
        assert not db.connected

    def test_shutdown_refused(self, scripted):
        with scripted(b"-ERR Errors trying to SHUTDOWN\r\n").client() as db:
            assert db.shutdown() == "-ERR Errors trying to SHUTDOWN"
            assert not db.connected

    def test_lastsave(self, server, db):
        server.last_save = 1_000_000_000
        assert db.lastsave() == datetime(2001, 9, 9, 1, 46, 40, tzinfo=timezone.utc)

    def test_lastsave_after_save(self, db):
        before = int(time.time())
        db.save()
        assert db.lastsave().timestamp() >= before


class TestInfo:
    """INFO."""

    def test_info(self, db):
        db.set("k", "v")
        info = db.info()
        assert info["redis_version"] == "1.2.6"
        assert info["role"] == "master"
        assert info["db0"] == "keys=1,expires=0"

    def test_info_skips_lines_without_colon(self, scripted):
        payload = b"# Server\r\nversion:1.0\r\n\r\nuptime:5\r\n"
        reply = b"$%d\r\n%s\r\n" % (len(payload), payload)
        with scripted(reply).client() as db:
            assert db.info() == {"version": "1.0", "uptime": "5"}

    def test_info_value_keeps_later_colons(self, scripted):
        payload = b"addr:127.0.0.1:6379\n"
        reply = b"$%d\r\n%s\r\n" % (len(payload), payload)
        with scripted(reply).client() as db:
            assert db.info() == {"addr": "127.0.0.1:6379"}

    def test_info_bad_utf8(self, scripted):
        payload = b"name:\xff\r\nrole:master\r\n"
        reply = b"$%d\r\n%s\r\n" % (len(payload), payload)
        with scripted(reply).client() as db:
            assert db.info() == {"name": "\ufffd", "role": "master"}


class TestPing:
    """PING and raw commands."""

    def test_ping(self, db):
        assert db.ping() == "PONG"

    def test_execute_values(self, db):
        db.set("k", "v")
        db.rpush("l", "a")
        assert db.execute("EXISTS k") == 1
        assert db.execute("GET k") == b"v"
        assert db.execute("GET missing") is None
        assert db.execute("LRANGE l 0 -1") == [b"a"]
        assert db.execute("PING") == "PONG"

    def test_execute_error(self, db):
        with pytest.raises(ServerError, match="unknown command"):
            db.execute("FLY away")


class TestReplyErrors:
    """Replies that do not fit the operation."""

    def test_error_prefix_stripped(self, scripted):
        with scripted(b"-ERR no such key\r\n").client() as db:
            with pytest.raises(ServerError) as excinfo:
                db.get("k")
            assert excinfo.value.code == "no such key"

    def test_other_error_kept_verbatim(self, scripted):
        with scripted(b"-WRONGTYPE bad op\r\n").client() as db:
            with pytest.raises(ServerError) as excinfo:
                db.get("k")
            assert excinfo.value.code == "WRONGTYPE bad op"

    def test_server_error_keeps_connection(self, scripted):
        server = scripted(b"-ERR nope\r\n", b"+PONG\r\n")
        with server.client() as db:
            with pytest.raises(ServerError):
                db.get("k")
            assert db.connected
            assert db.ping() == "PONG"
            assert server.connections == 1

    def test_wrong_reply_kind(self, scripted):
        with scripted(b":1\r\n").client() as db:
            with pytest.raises(ProtocolViolation):
                db.get("k")
            assert not db.connected

    def test_bad_terminator_closes(self, scripted):
        with scripted(b"$3\r\nabcXX").client() as db:
            with pytest.raises(ProtocolViolation):
                db.get("k")
            assert not db.connected

    def test_unknown_prefix(self, scripted):
        with scripted(b"!oops\r\n").client() as db:
            with pytest.raises(ProtocolViolation):
                db.ping()

    def test_server_hangs_up(self, scripted):
        with scripted().client() as db:
            with pytest.raises(ProtocolViolation):
                db.ping()
            assert not db.connected

    def test_error_inside_multi_bulk(self, scripted):
        with scripted(b"*2\r\n$1\r\na\r\n-ERR boom\r\n").client() as db:
            with pytest.raises(ServerError, match="boom"):
                db.smembers("s")
            assert not db.connected
