"""Shared utilities."""
from .errors import (
    RPCError,
    ConfigurationError,
    TransportError,
    ProtocolError,
    DispatchError,
    HandlerError,
)

__all__ = [
    "RPCError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "DispatchError",
    "HandlerError",
]
