from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tapechart.errors import AppError, error_response
from tapechart.middleware.request_logging import CORRELATION_HEADER

logger = logging.getLogger("exception_handlers")


def _with_correlation(request: Request, details: Any) -> Any:
    cid = getattr(request.state, "correlation_id", None)
    if cid and isinstance(details, dict) and "correlation_id" not in details:
        details["correlation_id"] = cid
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:  # type: ignore[override]
        body = exc.to_dict()
        details = dict(body["error"].get("details") or {})
        details.setdefault("kind", exc.kind)
        body["error"]["details"] = _with_correlation(request, details)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        details: Any = {"errors": errors, "kind": "ValidationError"}
        return JSONResponse(
            status_code=422,
            content=error_response(
                "validation_error",
                "Request validation failed",
                _with_correlation(request, details),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore[override]
        code = "not_found" if exc.status_code == 404 else "http_error"
        detail: Any = exc.detail
        if isinstance(detail, str):
            message = detail
            details: Any = {}
        elif isinstance(detail, dict):
            message = detail.get("message", "HTTP error")
            details = dict(detail)
        else:
            message = "HTTP error"
            details = {}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message, _with_correlation(request, details)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        cid = getattr(request.state, "correlation_id", None)
        return JSONResponse(
            status_code=500,
            content=error_response("internal_error", "Unexpected server error", _with_correlation(request, {})),
            headers={CORRELATION_HEADER: cid} if cid else None,
        )
