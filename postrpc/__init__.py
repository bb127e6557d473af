"""Single-method-per-call JSON RPC over HTTP(S)."""
from .client import CallResult, RPCClient, create_client
from .config import ClientConfig, ServerConfig, TLSOptions, load_config
from .context import RequestContext
from .envelope import Envelope, RPCResult
from .registry import HandlerRegistry
from .server import ListeningHandle, RPCServer, create_server
from .utils.errors import (
    RPCError,
    ConfigurationError,
    TransportError,
    ProtocolError,
    DispatchError,
    HandlerError,
)

__version__ = "1.0.0"

__all__ = [
    "CallResult",
    "RPCClient",
    "create_client",
    "ClientConfig",
    "ServerConfig",
    "TLSOptions",
    "load_config",
    "RequestContext",
    "Envelope",
    "RPCResult",
    "HandlerRegistry",
    "ListeningHandle",
    "RPCServer",
    "create_server",
    "RPCError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "DispatchError",
    "HandlerError",
]
