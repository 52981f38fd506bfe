from __future__ import annotations

import time
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.logging import get_logger

if TYPE_CHECKING:
    from fastapi import Request
    from starlette.types import ASGIApp

logger = get_logger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class SecurityMiddleware(BaseHTTPMiddleware):
    """Add security headers and log authenticated or mutating API calls."""

    def __init__(self, app: ASGIApp, *, api_prefix: str = "/api/v1", image_host: str = "https://*.supabase.co"):
        super().__init__(app)
        self._auth_prefix = f"{api_prefix}/auth"
        self._items_prefix = f"{api_prefix}/items"
        # Item images are served straight from the storage host
        self._csp = (
            "default-src 'self'; "
            "script-src 'self'; "
            f"img-src 'self' data: {image_host}; "
            f"connect-src 'self' {image_host}; "
            "frame-ancestors 'none';"
        )

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = self._csp
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"

        path = request.url.path
        if path.startswith(self._auth_prefix):
            # Responses carry per-user data
            response.headers["Cache-Control"] = "no-store"

        if path.startswith(self._auth_prefix) or (
            path.startswith(self._items_prefix) and request.method in MUTATING_METHODS
        ):
            logger.info(
                "API call",
                extra={
                    "path": path,
                    "method": request.method,
                    "status": response.status_code,
                    "ip": request.client.host if request.client else "unknown",
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                },
            )

        return response
