"""Endpoint configuration tests."""

import dataclasses

import pytest

from redsock import Endpoint, InvalidArgument, Redsock


class TestEndpoint:
    """Endpoint construction."""

    def test_defaults(self):
        endpoint = Endpoint()
        assert endpoint.host == "localhost"
        assert endpoint.port == 6379
        assert endpoint.password is None
        assert endpoint.send_timeout is None

    def test_immutable(self):
        endpoint = Endpoint("example.com", 7000)
        with pytest.raises(dataclasses.FrozenInstanceError):
            endpoint.host = "other"

    @pytest.mark.parametrize("host", [None, "", 42])
    def test_bad_host(self, host):
        with pytest.raises(InvalidArgument):
            Endpoint(host=host)

    @pytest.mark.parametrize("port", [0, 65536, "6379", True])
    def test_bad_port(self, port):
        with pytest.raises(InvalidArgument):
            Endpoint(port=port)

    @pytest.mark.parametrize(
        "send_timeout, seconds",
        [(None, None), (-1, None), (0, None), (1500, 1.5)],
    )
    def test_timeout_seconds(self, send_timeout, seconds):
        assert Endpoint(send_timeout=send_timeout).timeout_seconds == seconds

    def test_client_rejects_none_host(self):
        with pytest.raises(InvalidArgument):
            Redsock(None)


class TestFromEnv:
    """Environment variables."""

    def test_defaults(self, monkeypatch):
        for name in ("HOST", "PORT", "PASSWORD", "SEND_TIMEOUT", "RETRY_COUNT", "RETRY_TIMEOUT"):
            monkeypatch.delenv(f"REDSOCK_{name}", raising=False)
        assert Endpoint.from_env() == Endpoint()

    def test_all_variables(self, monkeypatch):
        monkeypatch.setenv("REDSOCK_HOST", "cache.local")
        monkeypatch.setenv("REDSOCK_PORT", "7000")
        monkeypatch.setenv("REDSOCK_PASSWORD", "pw")
        monkeypatch.setenv("REDSOCK_SEND_TIMEOUT", "250")
        monkeypatch.setenv("REDSOCK_RETRY_COUNT", "3")
        monkeypatch.setenv("REDSOCK_RETRY_TIMEOUT", "100")
        assert Endpoint.from_env() == Endpoint(
            host="cache.local",
            port=7000,
            password="pw",
            send_timeout=250,
            retry_count=3,
            retry_timeout=100,
        )

    @pytest.mark.parametrize(
        "name, raw",
        [("REDSOCK_PORT", "http"), ("REDSOCK_SEND_TIMEOUT", "2s"), ("REDSOCK_RETRY_COUNT", "x")],
    )
    def test_non_numeric_variable(self, monkeypatch, name, raw):
        monkeypatch.setenv(name, raw)
        with pytest.raises(InvalidArgument, match=name):
            Endpoint.from_env()


class TestFromUrl:
    """redis:// URLs."""

    def test_host_port(self):
        assert Endpoint.from_url("redis://example.com:7000") == Endpoint("example.com", 7000)

    def test_default_port(self):
        assert Endpoint.from_url("redis://example.com").port == 6379

    def test_password(self):
        endpoint = Endpoint.from_url("redis://:s%40cret@example.com:7000")
        assert endpoint.password == "s@cret"

    def test_bare_host_port(self):
        assert Endpoint.from_url("example.com:7000") == Endpoint("example.com", 7000)

    def test_timeout(self):
        assert Endpoint.from_url("redis://h:1", send_timeout=10).send_timeout == 10

    @pytest.mark.parametrize("url", ["rediss://h:1", "http://h:1", "redis://h:notaport"])
    def test_rejected(self, url):
        with pytest.raises(InvalidArgument):
            Endpoint.from_url(url)

    def test_client_from_endpoint(self):
        endpoint = Endpoint("example.com", 7000, password="pw")
        assert Redsock.from_endpoint(endpoint).endpoint is endpoint
