"""Socket transport between producer processes and the collector."""

from .address import DEFAULT_URL, URL_ENV_VAR, Address, TransportError, parse_address, resolve_address
from .client import ProducerClient, describe
from .codec import SENTINEL, FrameBuffer, ProtocolError, decode_frame, encode_record
from .server import CollectorServer, FrameDiagnostic

__all__ = [
    "Address",
    "CollectorServer",
    "DEFAULT_URL",
    "FrameBuffer",
    "FrameDiagnostic",
    "ProducerClient",
    "ProtocolError",
    "SENTINEL",
    "TransportError",
    "URL_ENV_VAR",
    "decode_frame",
    "describe",
    "encode_record",
    "parse_address",
    "resolve_address",
]
