"""Shared FastAPI middleware."""

from __future__ import annotations

from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import get_settings
from app.core.exceptions import envelope


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    """
    Reject requests with bodies larger than MAX_REQUEST_BODY_BYTES.

    Batch inserts and query actions accept arbitrary JSON, so the size cap is
    enforced before any handler parses it.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        limit = get_settings().MAX_REQUEST_BODY_BYTES

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > limit:
                    return envelope(413, "Payload too large.")
            except ValueError:
                return envelope(400, "Invalid Content-Length header.")

        # For chunked / missing content-length, read body and enforce size.
        # Starlette caches request.body() so downstream handlers still can read it.
        body = await request.body()
        if body and len(body) > limit:
            return envelope(413, "Payload too large.")

        return await call_next(request)
