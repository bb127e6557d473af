"""Request envelope and result models."""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr

HeaderValue = Union[str, List[str]]

DEFAULT_HEADERS: Dict[str, HeaderValue] = {"content-type": "application/json"}


def _default_headers() -> Dict[str, HeaderValue]:
    return dict(DEFAULT_HEADERS)


class Envelope(BaseModel):
    """Request body sent by the client: ``{"method": ..., "data": ...}``."""

    model_config = ConfigDict(frozen=True)

    method: Optional[StrictStr] = None
    data: Any = None


class RPCResult(BaseModel):
    """Response produced by a handler or by an error path.

    ``data`` is optional: a result constructed without it is written with an
    empty body, while an explicit ``None`` is written as JSON ``null``.
    """

    model_config = ConfigDict(frozen=True)

    code: int = 200
    data: Any = None
    headers: Dict[str, HeaderValue] = Field(default_factory=_default_headers)

    @property
    def has_data(self) -> bool:
        return "data" in self.model_fields_set
