"""Map :class:`ClaimEngineError` and request-validation errors to JSON responses.

Every error body has the shape::

    {"error": {"code": ..., "message": ..., "details": {...}}, "correlation_id": ...}
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from claim_engine.api.middleware import get_correlation_id
from claim_engine.core.errors import ClaimEngineError


def error_response(
    request: Request, status_code: int, code: str, message: str, details: dict[str, Any]
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message, "details": details},
            "correlation_id": get_correlation_id(request),
        },
    )


async def claim_engine_error_handler(request: Request, exc: ClaimEngineError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "{method} {path} failed with {code}: {msg}",
        method=request.method,
        path=request.url.path,
        code=exc.code,
        msg=exc.message,
    )
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "$",
            "message": err.get("msg", "invalid"),
        }
        for err in exc.errors()
    ]
    logger.warning("Request body rejected on {path}: {n} field(s)", path=request.url.path, n=len(fields))
    return error_response(request, 400, "VALIDATION_ERROR", "Request failed validation", {"fields": fields})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClaimEngineError, claim_engine_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
