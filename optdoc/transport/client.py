"""Best-effort producer client used by build steps to report described types."""

from __future__ import annotations

import contextlib
import socket
from typing import Iterable, Optional

from ..logging import get_logger
from ..models import RecordDescriptor
from .address import Address, TransportError, parse_address, resolve_address
from .codec import encode_record

_LOGGER = get_logger("transport.client")


class ProducerClient:
    """Sends framed records to the collector when one is listening.

    Connection failures degrade to a disconnected client whose ``send`` is a
    no-op, so a build never fails because nobody is collecting.
    """

    DEFAULT_CONNECT_TIMEOUT = 0.5

    def __init__(self, sock: Optional[socket.socket], address: str) -> None:
        self._sock = sock
        self.address = address

    @classmethod
    def connect(
        cls,
        address: str | None = None,
        *,
        timeout: float | None = DEFAULT_CONNECT_TIMEOUT,
    ) -> "ProducerClient":
        """Try to reach the collector at ``address`` (or ``$OPTDOC_URL``)."""
        resolved = resolve_address(address)
        try:
            parsed = parse_address(resolved)
        except TransportError as exc:
            _LOGGER.warning("Failed to connect to collector at %s: %s", resolved, exc)
            return cls(None, resolved)

        sock = socket.socket(parsed.family, socket.SOCK_STREAM)
        sock.settimeout(timeout)
        try:
            sock.connect(parsed.target)
        except OSError as exc:
            sock.close()
            _LOGGER.warning("Failed to connect to collector at %s: %s", resolved, exc)
            return cls(None, resolved)
        sock.settimeout(None)
        _LOGGER.debug("Connected to collector at %s", resolved)
        return cls(sock, resolved)

    def is_connected(self) -> bool:
        return self._sock is not None

    def send(self, record: RecordDescriptor) -> None:
        """Frame and write ``record``; does nothing when disconnected.

        A write failure after a successful connect is not recovered and
        surfaces as :class:`TransportError`.
        """
        if self._sock is None:
            return
        try:
            self._sock.sendall(encode_record(record))
        except OSError as exc:
            raise TransportError(
                f"Failed to send record '{record.name}' to {self.address}: {exc}"
            ) from exc

    def send_many(self, records: Iterable[RecordDescriptor]) -> int:
        count = 0
        for record in records:
            self.send(record)
            count += 1
        return count

    def close(self) -> None:
        if self._sock is None:
            return
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_WR)
        self._sock.close()
        self._sock = None

    def __enter__(self) -> "ProducerClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def describe(record: RecordDescriptor, address: str | None = None) -> bool:
    """Send a single record and close; return whether a collector was reached."""
    with ProducerClient.connect(address) as client:
        client.send(record)
        return client.is_connected()


__all__ = ["ProducerClient", "describe"]
