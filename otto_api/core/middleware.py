"""ASGI middleware for the Otto API.

Registered in order (outermost → innermost):
  1. CORSMiddleware: handled by FastAPI directly (not here)
  2. RequestIdMiddleware: injects / forwards X-Request-ID; stores in ContextVar
  3. SecurityHeadersMiddleware: adds security response headers

`_request_id_var` is the single source of truth for the current request ID.
The logging layer reads it so every log line carries the ID. The webhook
receiver additionally binds the GitHub delivery ID to `_delivery_id_var`.
"""

import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_delivery_id_var: ContextVar[str] = ContextVar("delivery_id", default="")


def get_request_id() -> str:
    """Return the current request's ID, or an empty string outside a request."""
    return _request_id_var.get()


def get_delivery_id() -> str:
    """Return the GitHub delivery ID of the webhook being processed, if any."""
    return _delivery_id_var.get()


def bind_delivery_id(delivery_id: str):
    """Bind a webhook delivery ID; returns the token for `reset_delivery_id`."""
    return _delivery_id_var.set(delivery_id)


def reset_delivery_id(token) -> None:
    _delivery_id_var.reset(token)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Read or generate X-Request-ID and make it available for the request lifetime.

    If the client sends X-Request-ID, that value is reused; otherwise a
    fresh UUID4 is generated. The ID is always echoed back in the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        token = _request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security-related headers to every outgoing response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-XSS-Protection"] = "0"
        return response
