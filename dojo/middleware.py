import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

TIMING_HEADER = "X-Response-Time-Ms"


class HTTPLogMiddleware(BaseHTTPMiddleware):
    """Debug logging of each request, plus a response timing header."""

    def __init__(self, app, logger_name: str = "dojo.http"):
        super().__init__(app)
        self._logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        method, path = request.method, request.url.path
        client = request.client.host if request.client else "-"
        self._logger.debug("http.request start method=%s path=%s client=%s", method, path, client)
        try:
            response: Response = await call_next(request)
        except Exception as e:
            self._logger.warning("http.request error method=%s path=%s dur_ms=%s err=%r",
                                 method, path, _since(start), e)
            raise
        dur_ms = _since(start)
        response.headers[TIMING_HEADER] = str(dur_ms)
        self._logger.debug("http.request end method=%s path=%s status=%s dur_ms=%s",
                           method, path, response.status_code, dur_ms)
        return response


def _since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
