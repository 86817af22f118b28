"""
Request timing middleware.

Adds an X-Response-Time header and logs requests slower than a threshold,
tagged with the tenant the request addresses. Uploads return before
ingestion runs, so slow requests here point at validation, blob storage or
search rather than embedding.
"""

import logging
import re
import time
from typing import Callable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS = ["/api/v1/health", "/favicon.ico", "/docs", "/redoc", "/openapi.json"]

_TENANT_PATH = re.compile(r"/tenants/([^/]+)")


def tenant_from_path(path: str) -> Optional[str]:
    match = _TENANT_PATH.search(path)
    return match.group(1) if match else None


class PerformanceMiddleware(BaseHTTPMiddleware):
    """
    Args:
        app: ASGI application
        slow_request_threshold_ms: Requests slower than this are logged
        exclude_paths: Path prefixes that are not timed
    """

    def __init__(
        self,
        app: ASGIApp,
        slow_request_threshold_ms: float = 500.0,
        exclude_paths: Optional[List[str]] = None,
    ):
        super().__init__(app)
        self.threshold_ms = slow_request_threshold_ms
        self.exclude_paths = exclude_paths or DEFAULT_EXCLUDED_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self.exclude_paths):
            return await call_next(request)

        tenant = tenant_from_path(path) or "-"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[tenant {tenant}] {request.method} {path} failed: {e}")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"

        if elapsed_ms > self.threshold_ms:
            logger.warning(
                f"[tenant {tenant}] slow {request.method} {path} -> {response.status_code} "
                f"in {elapsed_ms:.2f}ms (threshold {self.threshold_ms}ms)"
            )
        else:
            logger.debug(f"[tenant {tenant}] {request.method} {path} {elapsed_ms:.2f}ms")

        return response
