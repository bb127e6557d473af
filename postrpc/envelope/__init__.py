"""Wire envelope and result models plus their JSON codec."""
from .models import Envelope, RPCResult, DEFAULT_HEADERS
from .codec import encode_envelope, decode_envelope, encode_data, decode_data

__all__ = [
    "Envelope",
    "RPCResult",
    "DEFAULT_HEADERS",
    "encode_envelope",
    "decode_envelope",
    "encode_data",
    "decode_data",
]
