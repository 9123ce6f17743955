"""Transport address resolution shared by producers and the collector."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from typing import Tuple, Union

URL_ENV_VAR = "OPTDOC_URL"
DEFAULT_URL = "127.0.0.1:41503"

_UNIX_PREFIX = "unix:"


class TransportError(RuntimeError):
    """Raised when a socket cannot be bound, connected as required, or written."""


@dataclass(frozen=True)
class Address:
    """A parsed transport address: either a TCP host/port or a local socket path."""

    family: int
    target: Union[Tuple[str, int], str]

    @property
    def is_local(self) -> bool:
        return self.family == getattr(socket, "AF_UNIX", None)

    def __str__(self) -> str:
        if self.is_local:
            return f"{_UNIX_PREFIX}{self.target}"
        host, port = self.target  # type: ignore[misc]
        return f"{host}:{port}"


def resolve_address(explicit: str | None = None) -> str:
    """Return the explicit address, else ``$OPTDOC_URL``, else the default."""
    if explicit:
        return explicit
    from_env = os.environ.get(URL_ENV_VAR, "").strip()
    return from_env or DEFAULT_URL


def parse_address(value: str) -> Address:
    """Parse ``host:port``, ``unix:/path`` or a bare socket path."""
    text = value.strip()
    if not text:
        raise TransportError("Transport address is empty")

    if text.startswith(_UNIX_PREFIX) or os.sep in text or "/" in text:
        if not hasattr(socket, "AF_UNIX"):
            raise TransportError(f"Local socket addresses are not supported on this platform: {value}")
        path = text[len(_UNIX_PREFIX):] if text.startswith(_UNIX_PREFIX) else text
        if not path:
            raise TransportError(f"Local socket address has no path: {value}")
        return Address(family=socket.AF_UNIX, target=path)

    host, sep, port_text = text.rpartition(":")
    if not sep or not host:
        raise TransportError(f"Expected host:port, got '{value}'")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise TransportError(f"Invalid port in address '{value}'") from exc
    if not 0 <= port <= 65535:
        raise TransportError(f"Port out of range in address '{value}'")
    host = host.strip("[]")
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    return Address(family=family, target=(host, port))


__all__ = [
    "Address",
    "DEFAULT_URL",
    "TransportError",
    "URL_ENV_VAR",
    "parse_address",
    "resolve_address",
]
