from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Sequence
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
INCOMING_HEADERS = ("X-Request-Id", "X-Correlation-Id")
QUIET_PATHS = ("/api/health", "/api/status")

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


def get_request_id() -> str:
    return request_id_var.get()


class RequestIdLogFilter(logging.Filter):
    """Stamps every record with the current request id (``-`` outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagates a per-request id into logs and echoes it back to the caller.

    Assistant turns are logged with method, path, status and latency so a
    confirmation can be traced from the dashboard's request id.
    """

    def __init__(self, app, quiet_paths: Sequence[str] = QUIET_PATHS) -> None:
        super().__init__(app)
        self.quiet_paths = tuple(quiet_paths)

    async def dispatch(self, request: Request, call_next) -> Response:
        # header lookup is case-insensitive
        request_id = next((request.headers[name] for name in INCOMING_HEADERS if request.headers.get(name)), None)
        request_id = request_id or uuid4().hex

        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            if request.url.path not in self.quiet_paths:
                logger.info(
                    "%s %s status=%s ms=%s",
                    request.method,
                    request.url.path,
                    response.status_code,
                    int((time.perf_counter() - started) * 1000),
                )
        finally:
            request_id_var.reset(token)

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response
