"""
common.middleware
~~~~~~~~~~~~~~~~~
Request-scoped structlog context and one ``http_request`` event per request.
"""
import time
import uuid

import structlog

logger = structlog.get_logger(__name__)


class StructuredLoggingMiddleware:
    """
    Binds a ``request_id`` for every log line emitted while the request is
    handled, then logs the outcome.

    The id is taken from an incoming ``X-Request-ID`` header when present and
    echoed back on the response.

    Log record fields:
        event       – "http_request"
        request_id  – correlation id
        method      – HTTP verb
        path        – URL path including the query string
        status      – response status code
        duration_ms – round-trip time in milliseconds (2 dp)
    """

    header = "X-Request-ID"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get(self.header) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.monotonic()
        try:
            response = self.get_response(request)
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            logger.info(
                "http_request",
                method=request.method,
                path=request.get_full_path(),
                status=response.status_code,
                duration_ms=duration_ms,
            )
            response[self.header] = request_id
            return response
        finally:
            structlog.contextvars.clear_contextvars()
