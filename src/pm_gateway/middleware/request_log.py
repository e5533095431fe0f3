"""Request logging middleware.

Logs every HTTP request with method, path, acting user, status code and
latency. The request_id is stored on request.state so handlers and the
AppError handler put the same id into the ApiResponse envelope.

Log format:
    INFO [POST] /api/v1/markets/0/buy user=alice → 200 (3ms) req_a1b2c3d4e5f6
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.pm_common.response import new_request_id

logger = logging.getLogger("pm.request")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = new_request_id()

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "[%s] %s user=%s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            request.headers.get("x-user-id", "-"),
            response.status_code,
            elapsed_ms,
            request.state.request_id,
        )
        return response
