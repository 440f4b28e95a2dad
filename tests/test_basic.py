"""Basic tests for the redsock client."""

import pytest

from redsock import KeyType, Redsock, RedsockError, __version__


class TestBasic:
    """Basic functionality tests."""

    def test_version(self):
        assert "." in __version__

    def test_context_manager(self, server):
        with server.client() as db:
            db.set("key", "value")
            assert db.get("key") == b"value"
        assert not db.connected

    def test_defaults(self):
        db = Redsock()
        assert db.endpoint.host == "localhost"
        assert db.endpoint.port == 6379
        assert not db.connected

    def test_connect_url(self, server):
        with Redsock.connect(f"redis://{server.host}:{server.port}") as db:
            assert db.ping() == "PONG"

    def test_mapping_access(self, db):
        db["greeting"] = "hi"
        assert db["greeting"] == "hi"
        assert db["missing"] is None


class TestScenarios:
    """End-to-end request/response sequences."""

    def test_set_get(self, db):
        db.set("a", "hello")
        assert db.get("a") == b"hello"

    def test_delete_then_get(self, db):
        db.set("a", "hello")
        db.delete("a")
        assert db.get("a") is None

    def test_set_cardinality(self, db):
        db.sadd("s", "x")
        db.sadd("s", "y")
        assert db.scard("s") == 2

    def test_list_push_both_ends(self, db):
        db.lpush("l", "1")
        db.rpush("l", "2")
        assert db.lrange("l", 0, -1) == [b"1", b"2"]

    def test_type_after_writes(self, db):
        db.set("s", "v")
        db.rpush("l", "v")
        db.sadd("t", "v")
        assert db.type("s") is KeyType.STRING
        assert db.type("l") is KeyType.LIST
        assert db.type("t") is KeyType.SET
        assert db.type("nope") is KeyType.NONE


class TestRoundTrip:
    """Values survive the wire unchanged."""

    @pytest.mark.parametrize(
        "value",
        [
            b"",
            b"plain",
            b"\r\n",
            b"line1\r\nline2\n\rline3",
            b"\x00\x01\x02\xff",
            bytes(range(256)),
            b"x" * 100_000,
        ],
    )
    def test_bytes(self, db, value):
        db.set("key", value)
        assert db.get("key") == value

    def test_string_variant_matches_bytes(self, db):
        text = "héllo wörld ✓"
        db.set("key", text)
        assert db.get("key") == text.encode("utf-8")
        assert db.get_string("key") == text

    def test_errors_share_a_base(self):
        from redsock import exceptions

        for name in ("InvalidArgument", "ValueTooLarge", "ConnectionFailure",
                     "ServerError", "ProtocolViolation"):
            assert issubclass(getattr(exceptions, name), RedsockError)
