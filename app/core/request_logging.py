"""
Request logging middleware.

Logs one line per request with method, path, status and duration. Public
query paths carry the access token in the URL, so the token segment is
masked before logging.
"""

import logging
import re
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.requests")

_PUBLIC_TOKEN_PATH = re.compile(r"(/queries/public/)[^/]+")


def mask_token(path: str) -> str:
    return _PUBLIC_TOKEN_PATH.sub(r"\1***", path)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {mask_token(request.url.path)} - {response.status_code} ({duration_ms:.1f}ms)",
            extra={
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 1),
            },
        )
        return response
