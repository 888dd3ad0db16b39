"""Typed success/failure values returned by upstream clients.

Clients never raise for expected upstream problems; they return ``Ok`` or
``Err`` and callers branch on ``result.ok``::

    result = await client.fetch_articles("Sudan")
    if result.ok:
        articles = result.value
    else:
        logger.warning("GDELT unavailable", error=result.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

import httpx

T = TypeVar("T")


class ErrorKind(str, Enum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"  # network, timeout, non-2xx
    MALFORMED_RESPONSE = "malformed_response"  # missing/unparseable fields
    NOT_FOUND = "not_found"
    NOT_CONFIGURED = "not_configured"  # e.g. missing API key


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    source: str = ""

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict:
        out = {"kind": self.kind.value, "message": self.message}
        if self.status_code is not None:
            out["statusCode"] = self.status_code
        return out


Result = Union[Ok[T], Err]


def err_from_http(exc: Exception, upstream: str) -> Err:
    """Classify an httpx failure into an ``Err``."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        kind = ErrorKind.NOT_FOUND if status == 404 else ErrorKind.UPSTREAM_UNAVAILABLE
        return Err(kind, f"{upstream} returned HTTP {status}", status_code=status)
    if isinstance(exc, httpx.TimeoutException):
        return Err(ErrorKind.UPSTREAM_UNAVAILABLE, f"{upstream} timed out")
    if isinstance(exc, ValueError):
        return Err(ErrorKind.MALFORMED_RESPONSE, f"{upstream} returned invalid JSON: {exc}")
    return Err(ErrorKind.UPSTREAM_UNAVAILABLE, f"{upstream} request failed: {exc}")
