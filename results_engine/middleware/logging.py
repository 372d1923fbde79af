"""Request logging middleware."""

import logging
import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse an upstream id so log lines can be joined across services
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        user_id = request.headers.get("x-user-id")

        start_time = time.perf_counter()
        logger.info(
            f"{request.method} {request.url.path} started",
            extra={
                "request_id": request_id,
                "user_id": user_id,
                "client_ip": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.error(
                f"{request.method} {request.url.path} failed after {duration_ms}ms: {e}",
                extra={"request_id": request_id, "user_id": user_id},
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} in {duration_ms}ms",
            extra={"request_id": request_id, "user_id": user_id},
        )
        response.headers["X-Request-ID"] = request_id
        return response
