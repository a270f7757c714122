"""Correlation id + structured access log.

Every request gets an `X-Correlation-Id` (incoming header or a fresh uuid4)
attached to `request.state` and echoed on the response, and one JSON log line:
{request_id, path, method, status_code, latency_ms}. A request that dies with
an unhandled exception is still logged, as a 500.
"""
from __future__ import annotations

import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("structured_access")

CORRELATION_HEADER = "X-Correlation-Id"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        incoming = request.headers.get(CORRELATION_HEADER)
        cid = incoming.strip() if incoming and incoming.strip() else str(uuid.uuid4())
        request.state.correlation_id = cid

        started = time.perf_counter()
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
            response.headers[CORRELATION_HEADER] = cid
            return response
        finally:
            latency_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.info(
                json.dumps(
                    {
                        "request_id": cid,
                        "path": request.url.path,
                        "method": request.method,
                        "status_code": status_code,
                        "latency_ms": latency_ms,
                    }
                )
            )
