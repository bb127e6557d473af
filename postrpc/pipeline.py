"""Per-request dispatch pipeline.

Every inbound request gets its own RequestPipeline, which walks the states

    RECEIVING -> DECODING -> DISPATCHING -> RESPONDING -> DONE

Any failure in the first three states jumps straight to RESPONDING with a
500 ``{"error": <message>}`` result. RESPONDING always produces exactly one
Response.
"""
import inspect
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import Request
from fastapi.responses import Response
from pydantic import ValidationError
from starlette.requests import ClientDisconnect

from .context import RequestContext
from .envelope.codec import decode_envelope, encode_data
from .envelope.models import Envelope, RPCResult
from .registry import Handler, HandlerRegistry
from .utils.errors import (
    DispatchError,
    HandlerError,
    ProtocolError,
    TransportError,
)

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    RECEIVING = "receiving"
    DECODING = "decoding"
    DISPATCHING = "dispatching"
    RESPONDING = "responding"
    DONE = "done"


def failure(err: BaseException) -> RPCResult:
    """Result written for every server-side failure path."""
    return RPCResult(code=500, data={"error": str(err)})


def _coerce(outcome: Any) -> Optional[RPCResult]:
    if outcome is None or isinstance(outcome, RPCResult):
        return outcome
    if isinstance(outcome, Mapping):
        try:
            return RPCResult.model_validate(dict(outcome))
        except ValidationError as e:
            raise HandlerError(f"handler returned an invalid result: {e}") from e
    raise HandlerError(
        f"handler returned {type(outcome).__name__}, expected RPCResult, mapping or None"
    )


async def settle(handler: Handler, ctx: RequestContext) -> Optional[RPCResult]:
    """Run a handler and normalize its outcome.

    Plain return values and awaitables take the same path. A synchronous
    raise and a failed awaitable both surface as HandlerError.
    """
    try:
        outcome = handler(ctx)
        if inspect.isawaitable(outcome):
            outcome = await outcome
    except HandlerError:
        raise
    except Exception as e:
        raise HandlerError(str(e)) from e
    return _coerce(outcome)


# RFC 9110 token and field-value grammar, as enforced by h11 on send.
_HEADER_NAME = re.compile(rb"[-!#$%&'*+.^_`|~0-9a-zA-Z]+")
_HEADER_VALUE = re.compile(rb"(?:[\x21-\x7e\x80-\xff](?:[ \t\x21-\x7e\x80-\xff]*[\x21-\x7e\x80-\xff])?)?")

# Framing headers are computed from the body; result headers may not set them.
_FRAMING_HEADERS = frozenset({b"content-length", b"transfer-encoding"})

_NO_BODY_CODES = frozenset({204, 304})


def encode_head(code: int, headers: Dict[str, Any]) -> List[Tuple[bytes, bytes]]:
    """Validate a status code and header mapping and encode the headers.

    Raises:
        ProtocolError: If the code is outside 200-599 or a header name or
            value cannot appear on the wire
    """
    if not 200 <= code <= 599:
        raise ProtocolError(f"invalid response status code {code}")

    raw: List[Tuple[bytes, bytes]] = []
    for name, value in headers.items():
        try:
            encoded_name = name.lower().encode("latin-1")
            values = [item.encode("latin-1") for item in (value if isinstance(value, list) else [value])]
        except (AttributeError, UnicodeEncodeError) as e:
            raise ProtocolError(f"invalid response header {name!r}: {e}") from e
        if not _HEADER_NAME.fullmatch(encoded_name):
            raise ProtocolError(f"invalid response header name {name!r}")
        if encoded_name in _FRAMING_HEADERS:
            continue
        for item in values:
            if not _HEADER_VALUE.fullmatch(item):
                raise ProtocolError(f"invalid value for response header {name!r}")
            raw.append((encoded_name, item))
    return raw


class RequestPipeline:
    """State machine for a single request/response exchange."""

    _STEPS = {
        Stage.RECEIVING: "_receive",
        Stage.DECODING: "_decode",
        Stage.DISPATCHING: "_dispatch",
        Stage.RESPONDING: "_respond",
    }

    def __init__(
        self,
        request: Request,
        registry: HandlerRegistry,
        log: Optional[logging.Logger] = None,
    ):
        self.request = request
        self.registry = registry
        self.logger = log or logger
        self.stage = Stage.RECEIVING
        self._body = bytearray()
        self._envelope: Optional[Envelope] = None
        self._result: Optional[RPCResult] = None
        self._response: Optional[Response] = None

    async def run(self) -> Response:
        while self.stage is not Stage.DONE:
            step = getattr(self, self._STEPS[self.stage])
            self.stage = await step()
        return self._response

    def _fail(self, err: BaseException) -> Stage:
        self._result = failure(err)
        return Stage.RESPONDING

    async def _receive(self) -> Stage:
        try:
            async for chunk in self.request.stream():
                self._body.extend(chunk)
        except ClientDisconnect:
            err = TransportError("client disconnected before the request body was received")
            self.logger.warning(str(err))
            return self._fail(err)
        return Stage.DECODING

    async def _decode(self) -> Stage:
        try:
            self._envelope = decode_envelope(bytes(self._body))
        except ProtocolError as e:
            self.logger.warning(f"Malformed request body: {e}")
            return self._fail(e)
        return Stage.DISPATCHING

    async def _dispatch(self) -> Stage:
        method = self._envelope.method
        handler = self.registry.get(method)
        if handler is None:
            self.logger.warning(f"Unknown RPC method: {method}")
            return self._fail(DispatchError(method))

        ctx = RequestContext(self._envelope, self.request.headers)
        try:
            self._result = await settle(handler, ctx)
        except HandlerError as e:
            self.logger.error(f"Handler {method} failed: {e}", exc_info=True)
            return self._fail(e)
        return Stage.RESPONDING

    async def _respond(self) -> Stage:
        # No result means 200 with default headers and an empty body.
        result = self._result if self._result is not None else RPCResult()

        try:
            raw_headers = encode_head(result.code, result.headers)
        except ProtocolError as e:
            # Status line or headers cannot be sent: end with a bare 200.
            self.logger.error(f"Failed to write response head: {e}", exc_info=True)
            self._response = Response(status_code=200)
            return Stage.DONE

        body = b""
        if result.has_data and result.code not in _NO_BODY_CODES:
            try:
                body = encode_data(result.data)
            except ProtocolError as e:
                self.logger.error(f"Failed to encode response body: {e}", exc_info=True)

        response = Response(content=body, status_code=result.code)
        response.raw_headers.extend(raw_headers)
        self._response = response
        return Stage.DONE
