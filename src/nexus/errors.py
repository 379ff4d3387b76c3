from __future__ import annotations

"""Error taxonomy shared by the stores, services and HTTP routers.

Every error carries a machine-readable code of the form ``<kind>:<surface>``
(for example ``forbidden:document``) plus a human message. Routers never build
HTTP errors by hand; they raise ``ChatError`` and the app-level handler turns
it into a structured JSON response.
"""

import logging
from typing import Any, Dict, Literal, Optional, get_args

from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)

ErrorKind = Literal[
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "quota_exceeded",
    "rate_limited",
    "offline",
    "invalid_data",
]

Surface = Literal[
    "api",
    "auth",
    "chat",
    "document",
    "history",
    "stream",
    "database",
]

ERROR_KINDS = frozenset(get_args(ErrorKind))
SURFACES = frozenset(get_args(Surface))

STATUS_BY_KIND: Dict[str, int] = {
    "bad_request": 400,
    "invalid_data": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "quota_exceeded": 429,
    "rate_limited": 429,
    "offline": 503,
}

# Surfaces whose details are logged server-side and never shown to callers
_LOG_ONLY_SURFACES = {"database"}


def _default_message(kind: str, surface: str) -> str:
    if kind == "bad_request":
        return "The request couldn't be processed. Please check your input and try again."
    if kind == "invalid_data":
        return "The request body failed validation."
    if kind == "unauthorized":
        return "You need to sign in before continuing."
    if kind == "forbidden":
        if surface == "document":
            return "This document belongs to another user."
        if surface == "chat":
            return "This chat belongs to another user."
        return "You don't have access to this resource."
    if kind == "not_found":
        if surface == "document":
            return "The requested document was not found."
        if surface == "chat":
            return "The requested chat was not found."
        return "The requested resource was not found."
    if kind == "quota_exceeded":
        return "You have exceeded your maximum number of messages for the day. Please try again later."
    if kind == "rate_limited":
        return "The assistant is receiving too many requests right now. Please try again later."
    if kind == "offline":
        return "The assistant is unavailable right now. Please check your connection and try again."
    return "Something went wrong. Please try again later."


class ChatError(Exception):
    """Structured error raised anywhere in the request path."""

    def __init__(self, code: str, message: Optional[str] = None, cause: Optional[str] = None) -> None:
        kind, _, surface = code.partition(":")
        if kind not in ERROR_KINDS:
            raise ValueError(f"Unknown error kind: {kind}")
        surface = surface or "api"
        if surface not in SURFACES:
            raise ValueError(f"Unknown error surface: {surface}")
        self.kind = kind
        self.surface = surface
        self.cause = cause
        self.message = message or _default_message(kind, surface)
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return f"{self.kind}:{self.surface}"

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_payload(self) -> Dict[str, Any]:
        if self.surface in _LOG_ONLY_SURFACES:
            logger.error("%s: %s (cause=%s)", self.code, self.message, self.cause)
            return {"code": "", "message": "Something went wrong. Please try again later."}
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.cause:
            payload["cause"] = self.cause
        return payload

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_payload())
