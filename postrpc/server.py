"""FastAPI server exposing registered handlers over POST."""
import asyncio
import logging
import socket
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from .config import ServerConfig
from .pipeline import RequestPipeline
from .registry import Handler, HandlerRegistry
from .utils.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

ALL_INTERFACES = "0.0.0.0"


class ListeningHandle:
    """A running server bound to a socket."""

    def __init__(self, server: uvicorn.Server, task: asyncio.Task, sock: socket.socket, scheme: str):
        self._server = server
        self._task = task
        self.scheme = scheme
        self.host, self.port = sock.getsockname()[:2]

    @property
    def url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}/"

    @property
    def closed(self) -> bool:
        return self._task.done()

    async def close(self) -> None:
        """Stop accepting connections and wait for shutdown."""
        self._server.should_exit = True
        await self._task
        logger.info(f"Stopped RPC server on {self.url}")

    async def wait_closed(self) -> None:
        await asyncio.shield(self._task)

    async def __aenter__(self) -> "ListeningHandle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self.closed:
            await self.close()


class RPCServer:
    """Dispatches POSTed ``{method, data}`` envelopes to registered handlers.

    Example:
        >>> server = RPCServer(ServerConfig(port=8080))
        >>> server.handle("echo", lambda ctx: ctx.result(ctx.data()))
        >>> handle = await server.listen()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        if self.config.tls and not (self.config.tls_options and self.config.tls_options.certfile):
            raise ConfigurationError("tls is enabled but tls_options.certfile is not set")
        self.logger = self.config.logger
        self.registry = HandlerRegistry()
        self.app = self._create_app()

    def handle(self, name: str, handler: Handler) -> "RPCServer":
        """Register a handler; returns self so calls can be chained.

        Raises:
            ConfigurationError: If ``name`` is already registered
        """
        self.registry.register(name, handler)
        return self

    def method(self, name: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`handle`."""

        def decorator(handler: Handler) -> Handler:
            self.handle(name, handler)
            return handler

        return decorator

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="post-rpc server",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        @app.post("/{path:path}", include_in_schema=False)
        async def rpc_endpoint(request: Request, path: str) -> Response:
            return await RequestPipeline(request, self.registry, self.logger).run()

        return app

    def _ssl_options(self) -> Dict[str, Any]:
        if not self.config.tls:
            return {}
        options = self.config.tls_options
        return {
            "ssl_certfile": options.certfile,
            "ssl_keyfile": options.keyfile,
            "ssl_keyfile_password": options.password,
            "ssl_ca_certs": options.ca_certs,
        }

    def _bind(self, host: str) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, self.config.port))
        except OSError as e:
            sock.close()
            raise TransportError(f"Failed to bind {host}:{self.config.port}: {e}") from e
        sock.set_inheritable(True)
        return sock

    async def listen(self) -> ListeningHandle:
        """Bind the configured host/port and start serving in the background."""
        host = self.config.host or ALL_INTERFACES
        sock = self._bind(host)

        uvicorn_config = uvicorn.Config(
            self.app,
            host=host,
            port=self.config.port,
            log_level=self.config.log_level,
            **self._ssl_options(),
        )
        server = uvicorn.Server(uvicorn_config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if task.done():
                sock.close()
                error = task.exception()
                raise TransportError(
                    f"RPC server failed to start: {error or 'startup aborted'}"
                ) from error
            await asyncio.sleep(0.01)

        handle = ListeningHandle(server, task, sock, self.config.scheme)
        logger.info(f"RPC server listening on {handle.url} with {len(self.registry)} methods")
        return handle

    def serve(self) -> None:
        """Serve until interrupted."""

        async def serve_forever():
            handle = await self.listen()
            await handle.wait_closed()

        asyncio.run(serve_forever())


def create_server(config: Optional[ServerConfig] = None, **overrides: Any) -> RPCServer:
    """Build an RPCServer from a config, keyword settings, or both.

    Raises:
        ConfigurationError: If an override is not a valid setting
    """
    config = (config or ServerConfig()).with_overrides(**overrides)
    return RPCServer(config)
