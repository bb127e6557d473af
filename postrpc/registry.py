"""Method name to handler mapping owned by a single server."""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .context import RequestContext
from .envelope.models import RPCResult
from .utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

HandlerReturn = Union[RPCResult, Mapping[str, Any], None]
Handler = Callable[[RequestContext], Union[HandlerReturn, Awaitable[HandlerReturn]]]


class HandlerRegistry:
    """Write-once-per-name registry of RPC handlers."""

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}

    def register(self, name: str, handler: Handler) -> None:
        """Register a handler for a method name.

        Args:
            name: Method name clients send in the envelope
            handler: Callable taking a RequestContext, sync or async

        Raises:
            ConfigurationError: If the name is already registered
        """
        if name in self._handlers:
            raise ConfigurationError(f"handler {name} already registered")
        if not callable(handler):
            raise ConfigurationError(f"handler {name} is not callable")
        self._handlers[name] = handler
        logger.info(f"Registered RPC method: {name}")

    def get(self, name: Optional[str]) -> Optional[Handler]:
        if name is None:
            return None
        return self._handlers.get(name)

    def names(self) -> List[str]:
        return list(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
