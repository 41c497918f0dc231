"""
FastAPI middleware for request timing.

Adds an ``X-Request-Duration-Ms`` header to every response and logs one line
per request. Budget rejections (429) are counted per endpoint so operators
can see which callers hit the daily limit.
"""

import logging
import time
from typing import Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Usage:
        app = FastAPI()
        app.add_middleware(RequestTimingMiddleware)
    """

    def __init__(self, app, enable_logging: bool = True):
        super().__init__(app)
        self.enable_logging = enable_logging
        self.rate_limited: Dict[str, int] = {}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            if self.enable_logging:
                logger.exception("Error processing %s %s", request.method, path)
            raise

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        response.headers["X-Request-Duration-Ms"] = str(latency_ms)

        if response.status_code == 429:
            self.rate_limited[path] = self.rate_limited.get(path, 0) + 1

        if self.enable_logging:
            logger.info("%s %s %s - %sms", request.method, path, response.status_code, latency_ms)

        return response

    def get_metrics(self) -> Dict[str, Dict[str, int]]:
        """Budget rejections seen so far, per path."""
        return {"rate_limited": dict(self.rate_limited)}
