"""Non-blocking collector that gathers framed records from many producers."""

from __future__ import annotations

import os
import selectors
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..logging import get_logger
from ..models import RecordDescriptor
from .address import Address, TransportError, parse_address, resolve_address
from .codec import FrameBuffer, ProtocolError, decode_frame

_LOGGER = get_logger("transport.server")


@dataclass
class FrameDiagnostic:
    """A problem observed on one connection that did not abort collection."""

    connection_id: int
    message: str
    preview: str = ""


@dataclass
class _Connection:
    id: int
    sock: socket.socket
    peer: str
    buffer: FrameBuffer = field(default_factory=FrameBuffer)


class CollectorServer:
    """Listening socket plus per-connection frame buffers.

    Nothing here blocks: ``try_accept`` and ``drain`` return immediately
    with whatever is available. ``poll`` optionally waits up to a timeout
    for readiness before doing both, which lets a driving loop sleep until
    data arrives instead of spinning.
    """

    READ_SIZE = 64 * 1024
    DEFAULT_MAX_READS_PER_TICK = 64

    def __init__(
        self,
        listener: socket.socket,
        address: Address,
        *,
        strict: bool = False,
        max_reads_per_tick: int = DEFAULT_MAX_READS_PER_TICK,
    ) -> None:
        self._listener = listener
        self._address = address
        self.strict = strict
        self.max_reads_per_tick = max(1, max_reads_per_tick)
        self._selector = selectors.DefaultSelector()
        self._selector.register(listener, selectors.EVENT_READ, data=None)
        self._connections: Dict[int, _Connection] = {}
        self._next_id = 0
        self._closed = False
        self.diagnostics: List[FrameDiagnostic] = []
        # True when the last poll accepted a connection or found one readable.
        self.last_poll_active = False
        self._ready_last_drain = 0

    @classmethod
    def bind(
        cls,
        address: str | None = None,
        *,
        strict: bool = False,
        max_reads_per_tick: int = DEFAULT_MAX_READS_PER_TICK,
        backlog: int = 128,
    ) -> "CollectorServer":
        """Create a non-blocking listener; raise :class:`TransportError` if that is impossible."""
        resolved = resolve_address(address)
        parsed = parse_address(resolved)
        if parsed.is_local and Path(str(parsed.target)).exists():
            raise TransportError(f"Local socket path is already in use: {parsed.target}")

        listener = socket.socket(parsed.family, socket.SOCK_STREAM)
        try:
            if not parsed.is_local and os.name == "posix":
                listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind(parsed.target)
            listener.listen(backlog)
            listener.setblocking(False)
        except OSError as exc:
            listener.close()
            raise TransportError(f"Failed to bind collector at {resolved}: {exc}") from exc

        bound = _bound_address(listener, parsed)
        _LOGGER.debug("Collector listening on %s", bound)
        return cls(listener, bound, strict=strict, max_reads_per_tick=max_reads_per_tick)

    @property
    def address(self) -> str:
        """The address producers should connect to (with the real port when bound to 0)."""
        return str(self._address)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def try_accept(self) -> Optional[int]:
        """Accept one pending connection, returning its id, or ``None`` when none is waiting."""
        try:
            sock, peer = self._listener.accept()
        except (BlockingIOError, InterruptedError):
            return None
        except ConnectionAbortedError as exc:
            _LOGGER.debug("Pending connection aborted before accept: %s", exc)
            return None
        except OSError as exc:
            raise TransportError(f"Incoming connection failed: {exc}") from exc

        sock.setblocking(False)
        conn_id = self._next_id
        self._next_id += 1
        connection = _Connection(id=conn_id, sock=sock, peer=_format_peer(peer))
        self._connections[conn_id] = connection
        self._selector.register(sock, selectors.EVENT_READ, data=conn_id)
        _LOGGER.debug("Accepted connection %d from %s", conn_id, connection.peer)
        return conn_id

    def accept_pending(self) -> List[int]:
        """Drain the accept backlog."""
        accepted: List[int] = []
        while True:
            conn_id = self.try_accept()
            if conn_id is None:
                return accepted
            accepted.append(conn_id)

    def drain(self) -> List[RecordDescriptor]:
        """Read what every ready connection has buffered and decode complete frames."""
        self._ready_last_drain = 0
        if not self._connections:
            return []
        ready = sorted(
            key.data
            for key, _ in self._selector.select(timeout=0)
            if key.data is not None
        )
        self._ready_last_drain = len(ready)
        records: List[RecordDescriptor] = []
        for conn_id in ready:
            connection = self._connections.get(conn_id)
            if connection is not None:
                records.extend(self._read_connection(connection))
        return records

    def poll(self, timeout: float = 0.0) -> List[RecordDescriptor]:
        """Wait up to ``timeout`` seconds for activity, then accept and drain."""
        if timeout > 0:
            self._selector.select(timeout=timeout)
        accepted = self.accept_pending()
        records = self.drain()
        self.last_poll_active = bool(accepted) or self._ready_last_drain > 0
        return records

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for connection in list(self._connections.values()):
            self._deregister(connection)
        self._selector.unregister(self._listener)
        self._selector.close()
        self._listener.close()
        if self._address.is_local:
            Path(str(self._address.target)).unlink(missing_ok=True)
        _LOGGER.debug("Collector on %s closed", self._address)

    def __enter__(self) -> "CollectorServer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Helpers

    def _read_connection(self, connection: _Connection) -> List[RecordDescriptor]:
        records: List[RecordDescriptor] = []
        end_of_stream = False
        for _ in range(self.max_reads_per_tick):
            try:
                chunk = connection.sock.recv(self.READ_SIZE)
            except (BlockingIOError, InterruptedError):
                break
            except ConnectionError as exc:
                _LOGGER.warning("Connection %d from %s reset: %s", connection.id, connection.peer, exc)
                end_of_stream = True
                break
            except OSError as exc:
                raise TransportError(f"Error reading from connection {connection.id}: {exc}") from exc
            if not chunk:
                end_of_stream = True
                break
            for frame in connection.buffer.feed(chunk):
                record = self._decode(connection, frame)
                if record is not None:
                    records.append(record)

        if end_of_stream:
            self._deregister(connection)
        return records

    def _decode(self, connection: _Connection, frame: bytes) -> Optional[RecordDescriptor]:
        try:
            return decode_frame(frame)
        except ProtocolError as exc:
            if self.strict:
                raise
            _LOGGER.warning(
                "Skipping malformed frame from connection %d: %s", connection.id, exc
            )
            self.diagnostics.append(
                FrameDiagnostic(connection_id=connection.id, message=str(exc), preview=exc.preview)
            )
            return None

    def _deregister(self, connection: _Connection) -> None:
        leftover = connection.buffer.clear()
        if leftover.strip():
            message = f"Connection closed with {len(leftover)} bytes of an incomplete frame"
            _LOGGER.warning("Connection %d from %s: %s", connection.id, connection.peer, message)
            self.diagnostics.append(
                FrameDiagnostic(
                    connection_id=connection.id,
                    message=message,
                    preview=leftover[:80].decode("utf-8", errors="replace"),
                )
            )
        self._selector.unregister(connection.sock)
        connection.sock.close()
        self._connections.pop(connection.id, None)
        _LOGGER.debug("Connection %d from %s closed", connection.id, connection.peer)


def _bound_address(listener: socket.socket, requested: Address) -> Address:
    if requested.is_local:
        return requested
    host, port = listener.getsockname()[:2]
    return Address(family=requested.family, target=(host, port))


def _format_peer(peer: object) -> str:
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    return str(peer) or "local"


__all__ = ["CollectorServer", "FrameDiagnostic"]
