from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

HEADER = "X-Request-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        supplied = request.headers.get(HEADER)
        # Only a client-supplied id is echoed; replayed responses stay identical.
        token = correlation_id_ctx.set(supplied or uuid.uuid4().hex)
        try:
            response = await call_next(request)
            if supplied:
                response.headers[HEADER] = supplied
            return response
        finally:
            correlation_id_ctx.reset(token)


class CorrelationIdLogFilter(logging.Filter):
    """Stamps log records with the current request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx.get() or "-"
        return True
