"""Security headers and request-id middleware for the admin API."""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# The console is a separate SPA; the API itself only serves JSON, CSV and the
# Swagger UI, so the CSP just has to allow the docs assets.
SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https:; "
        "frame-ancestors 'none'"
    ),
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Tag every response with an ``X-Request-ID`` and, if enabled, the headers above.

    Usage:
        app.add_middleware(SecurityHeadersMiddleware, enabled=settings.enable_security_headers)
    """

    def __init__(self, app: Callable, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)

        if self.enabled:
            for name, value in SECURITY_HEADERS.items():
                response.headers.setdefault(name, value)
        response.headers["X-Request-ID"] = request_id
        return response


def parse_cors_origins(origins_string: str) -> list[str]:
    """Parse CORS origins from a comma-separated string.

    Example:
        >>> parse_cors_origins("https://app1.com, https://app2.com")
        ['https://app1.com', 'https://app2.com']
        >>> parse_cors_origins("*")
        ['*']
    """
    if origins_string.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in origins_string.split(",") if origin.strip()]
