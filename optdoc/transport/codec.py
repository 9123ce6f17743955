"""Wire framing for records sent from producers to the collector.

Each record travels as one JSON document followed by the ASCII EOT
control character. JSON never emits raw control characters, so the
sentinel cannot occur inside an encoded record.
"""

from __future__ import annotations

import json
from typing import List

from ..models import RecordDescriptor, record_from_dict, record_to_dict

SENTINEL = b"\x04"


class ProtocolError(ValueError):
    """Raised when a complete frame cannot be decoded into a record."""

    def __init__(self, message: str, frame: bytes = b"") -> None:
        super().__init__(message)
        self.frame = frame

    @property
    def preview(self) -> str:
        text = self.frame[:80].decode("utf-8", errors="replace")
        return text + ("..." if len(self.frame) > 80 else "")


def encode_record(record: RecordDescriptor) -> bytes:
    """Serialize and frame a record."""
    payload = json.dumps(record_to_dict(record), ensure_ascii=False)
    return payload.encode("utf-8") + b"\n" + SENTINEL


def decode_frame(frame: bytes) -> RecordDescriptor:
    """Decode one complete frame (sentinel already stripped)."""
    try:
        payload = json.loads(frame.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Frame is not valid JSON: {exc}", frame) from exc
    try:
        return record_from_dict(payload)
    except ValueError as exc:
        raise ProtocolError(f"Frame does not describe a record: {exc}", frame) from exc


class FrameBuffer:
    """Accumulates raw bytes for one connection and yields complete frames."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, data: bytes) -> List[bytes]:
        """Append ``data`` and return every complete, non-empty frame now available."""
        self._buffer.extend(data)
        if SENTINEL not in data:
            return []
        *complete, remainder = bytes(self._buffer).split(SENTINEL)
        self._buffer = bytearray(remainder)
        return [frame for frame in complete if frame.strip()]

    @property
    def pending(self) -> int:
        """Number of buffered bytes still waiting for a sentinel."""
        return len(self._buffer)

    def clear(self) -> bytes:
        leftover = bytes(self._buffer)
        self._buffer.clear()
        return leftover


__all__ = ["FrameBuffer", "ProtocolError", "SENTINEL", "decode_frame", "encode_record"]
