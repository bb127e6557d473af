"""Client for calling a post-rpc server."""
import logging
import ssl
from typing import Any, Mapping, Optional, Union

import httpx

from .config import ClientConfig
from .envelope.codec import decode_data, encode_envelope

logger = logging.getLogger(__name__)


class CallResult:
    """Outcome of one call: status code, decoded body and response headers."""

    def __init__(self, code: int, data: Any, headers: Mapping[str, str]):
        self._code = code
        self._data = data
        self._headers = headers

    def code(self) -> int:
        return self._code

    def data(self) -> Any:
        return self._data

    def headers(self) -> Mapping[str, str]:
        return self._headers

    def __repr__(self) -> str:
        return f"CallResult(code={self._code!r}, data={self._data!r})"


class RPCClient:
    """Client that sends one POST per call.

    Non-2xx responses are returned as CallResult, not raised: a handler
    error arrives as ``code() == 500`` with ``data()["error"]`` set.
    """

    def __init__(self, config: Optional[ClientConfig] = None):
        """Initialize RPC client.

        Args:
            config: Host, port, TLS flag and options, timeout
        """
        self.config = config or ClientConfig()
        host = self.config.host
        if ":" in host:
            host = f"[{host}]"
        self.base_url = f"{self.config.scheme}://{host}:{self.config.port}/"
        self.client = httpx.AsyncClient(
            timeout=self.config.timeout,
            verify=self._verify(),
        )

    def _verify(self) -> Union[bool, ssl.SSLContext]:
        options = self.config.tls_options
        if not self.config.tls or options is None:
            return True
        if not options.verify:
            return False
        if options.ca_certs:
            return ssl.create_default_context(cafile=options.ca_certs)
        return True

    async def __aenter__(self) -> "RPCClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def call(self, method: str, data: Any = None) -> CallResult:
        """Call a remote method.

        Args:
            method: Registered method name on the server
            data: Any JSON-serializable payload

        Returns:
            CallResult with the response status, decoded body and headers

        Raises:
            ProtocolError: If ``data`` cannot be serialized (nothing is sent)
                or the response body is not valid JSON
            httpx.TransportError: On connection failures, unmodified
        """
        body = encode_envelope(method, data)

        try:
            response = await self.client.post(
                self.base_url,
                content=body,
                headers={"content-type": "application/json"},
            )
        except httpx.TransportError as e:
            logger.error(f"Transport error calling {method} on {self.base_url}: {e}")
            raise

        result = CallResult(
            code=response.status_code,
            data=decode_data(response.content),
            headers=response.headers,
        )
        logger.debug(f"Call {method} returned {result.code()}")
        return result


def create_client(config: Optional[ClientConfig] = None, **overrides: Any) -> RPCClient:
    """Build an RPCClient from a config, keyword settings, or both.

    Raises:
        ConfigurationError: If an override is not a valid setting
    """
    config = (config or ClientConfig()).with_overrides(**overrides)
    return RPCClient(config)
