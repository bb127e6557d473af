"""Per-request accessor and result builder handed to handlers."""
from typing import Any, Dict, Mapping, Optional, Union

from .envelope.models import DEFAULT_HEADERS, Envelope, HeaderValue, RPCResult


class RequestContext:
    """Accessors for one decoded request plus result/error builders.

    Created by the dispatch pipeline for a single request and never shared.
    """

    def __init__(self, envelope: Envelope, headers: Mapping[str, str]):
        self._envelope = envelope
        self._headers = headers

    def method(self) -> Optional[str]:
        """Decoded method name."""
        return self._envelope.method

    def data(self) -> Any:
        """Decoded ``data`` payload, ``None`` when the client sent none."""
        return self._envelope.data

    def headers(self) -> Mapping[str, str]:
        """Raw inbound request headers."""
        return self._headers

    def result(
        self,
        data: Any,
        code: int = 200,
        headers: Optional[Dict[str, HeaderValue]] = None,
    ) -> RPCResult:
        """Build a success result."""
        return RPCResult(
            code=code,
            data=data,
            headers=headers if headers is not None else dict(DEFAULT_HEADERS),
        )

    def error(
        self,
        err: Union[BaseException, str],
        code: int = 500,
        headers: Optional[Dict[str, HeaderValue]] = None,
    ) -> RPCResult:
        """Build a failure result whose data is ``{"error": <message>}``."""
        return RPCResult(
            code=code,
            data={"error": str(err)},
            headers=headers if headers is not None else dict(DEFAULT_HEADERS),
        )
