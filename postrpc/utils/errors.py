"""Custom exception classes for post-rpc."""


class RPCError(Exception):
    """Base exception for post-rpc errors."""

    pass


class ConfigurationError(RPCError):
    """Setup-time errors (duplicate handlers, bad config files)."""

    pass


class TransportError(RPCError):
    """Socket or stream failure while exchanging a request."""

    pass


class ProtocolError(RPCError, ValueError):
    """Malformed JSON or an envelope of the wrong shape."""

    pass


class DispatchError(RPCError):
    """No handler registered for the requested method."""

    def __init__(self, method):
        super().__init__(f"unknown method {method}")
        self.method = method


class HandlerError(RPCError):
    """A handler raised, or the awaitable it returned failed."""

    pass
