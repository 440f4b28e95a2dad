"""
Endpoint configuration.

An :class:`Endpoint` is immutable once built. It can be constructed
directly, from ``REDSOCK_*`` environment variables, or from a
``redis://`` URL.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

from .exceptions import InvalidArgument

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6379


def _env_int(name: str, default: Optional[str] = None) -> Optional[int]:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Endpoint:
    """Where and how to connect."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    password: Optional[str] = None
    # Milliseconds; None, zero or negative means no timeout.
    send_timeout: Optional[int] = None
    # Accepted but never consulted by the client.
    retry_count: int = 0
    retry_timeout: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host:
            raise InvalidArgument("host")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise InvalidArgument("port")
        if not 0 < self.port < 65536:
            raise InvalidArgument(f"port out of range: {self.port}")

    @property
    def timeout_seconds(self) -> Optional[float]:
        """Socket timeout in seconds, or None for blocking forever."""
        if self.send_timeout is None or self.send_timeout <= 0:
            return None
        return self.send_timeout / 1000.0

    @classmethod
    def from_env(cls) -> "Endpoint":
        """
        Build an endpoint from environment variables.

        Recognized variables:
            REDSOCK_HOST, REDSOCK_PORT, REDSOCK_PASSWORD,
            REDSOCK_SEND_TIMEOUT, REDSOCK_RETRY_COUNT, REDSOCK_RETRY_TIMEOUT
        """
        timeout = os.environ.get("REDSOCK_SEND_TIMEOUT")
        return cls(
            host=os.environ.get("REDSOCK_HOST", DEFAULT_HOST),
            port=_env_int("REDSOCK_PORT", str(DEFAULT_PORT)),
            password=os.environ.get("REDSOCK_PASSWORD") or None,
            send_timeout=_env_int("REDSOCK_SEND_TIMEOUT") if timeout else None,
            retry_count=_env_int("REDSOCK_RETRY_COUNT", "0"),
            retry_timeout=_env_int("REDSOCK_RETRY_TIMEOUT", "0"),
        )

    @classmethod
    def from_url(cls, url: str, send_timeout: Optional[int] = None) -> "Endpoint":
        """
        Build an endpoint from ``redis://[:password@]host[:port]``.

        A bare ``host:port`` is accepted as well.
        """
        if url is None:
            raise InvalidArgument("url")
        if "://" not in url:
            url = f"redis://{url}"
        parts = urlsplit(url)
        if parts.scheme != "redis":
            raise InvalidArgument(f"unsupported scheme: {parts.scheme}")
        try:
            port = parts.port or DEFAULT_PORT
        except ValueError:
            raise InvalidArgument(f"invalid port in {url!r}")
        password = unquote(parts.password) if parts.password else None
        return cls(
            host=parts.hostname or DEFAULT_HOST,
            port=port,
            password=password,
            send_timeout=send_timeout,
        )
