"""
Pytest configuration and shared fixtures.

Client tests run against :class:`FakeServer` over a real loopback socket;
tests that need odd replies use :class:`ScriptedServer`.
"""

import socket
from contextlib import closing

import pytest

from redsock import Redsock
from redsock.testing import FakeServer, ScriptedServer


def find_free_port() -> int:
    """Find a port nothing is listening on."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def server():
    """A running in-memory server."""
    with FakeServer() as srv:
        yield srv


@pytest.fixture
def db(server):
    """A client connected to the fake server."""
    with server.client() as client:
        yield client


@pytest.fixture
def scripted():
    """
    Factory for servers that replay canned replies.

    Usage:
        def test_something(scripted):
            with scripted([b"+OK\\r\\n"]).client() as db:
                ...
    """
    servers = []

    def factory(*replies: bytes) -> ScriptedServer:
        srv = ScriptedServer(replies).start()
        servers.append(srv)
        return srv

    yield factory

    for srv in servers:
        srv.stop()


@pytest.fixture
def dead_port() -> int:
    return find_free_port()
