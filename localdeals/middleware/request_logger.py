# localdeals/middleware/request_logger.py
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)

        # Only log state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            logger.info(
                "%s %s -> %s (user=%s, %.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                getattr(request.state, "user_id", None),
                (time.perf_counter() - started) * 1000,
            )

        return response
