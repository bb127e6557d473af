"""JSON encoding and decoding of envelopes and result payloads.

Pure functions, no I/O. Every failure is reported as ``ProtocolError``
carrying the underlying parser or serializer message.
"""
import json
from typing import Any

from pydantic import ValidationError

from .models import Envelope
from ..utils.errors import ProtocolError

EMPTY_BODY = b"{}"


def encode_envelope(method: str, data: Any = None) -> bytes:
    """Serialize a request envelope to UTF-8 JSON."""
    return encode_data({"method": method, "data": data})


def decode_envelope(body: bytes) -> Envelope:
    """Parse a request body into an Envelope.

    An empty body decodes as ``{}`` so that a body-less request reaches
    dispatch with ``method=None`` instead of failing to parse.
    """
    try:
        payload = json.loads(body or EMPTY_BODY)
    except ValueError as e:
        raise ProtocolError(str(e)) from e

    if not isinstance(payload, dict):
        raise ProtocolError("request body must be a JSON object")

    try:
        return Envelope.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ProtocolError(f"invalid envelope field '{field}': {first['msg']}") from e


def encode_data(data: Any) -> bytes:
    """Serialize an arbitrary JSON value."""
    try:
        return json.dumps(data).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise ProtocolError(str(e)) from e


def decode_data(body: bytes) -> Any:
    """Parse a response body. Unlike requests, an empty body is an error."""
    try:
        return json.loads(body)
    except ValueError as e:
        raise ProtocolError(str(e)) from e
