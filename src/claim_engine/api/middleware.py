"""Custom ASGI middleware for correlation ids, request logging and exception handling."""

from __future__ import annotations

import time
import traceback
import uuid

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

CORRELATION_HEADER = "X-Correlation-Id"


def get_correlation_id(request: Request) -> str:
    """Correlation id assigned to *request* by :class:`CorrelationIdMiddleware`."""
    return getattr(request.state, "correlation_id", None) or request.headers.get(
        CORRELATION_HEADER, "-"
    )


# ---------------------------------------------------------------------------
# Correlation id
# ---------------------------------------------------------------------------


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Accept or mint ``X-Correlation-Id`` and bind it to every log line of the request."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or f"corr_{uuid.uuid4().hex}"
        request.state.correlation_id = correlation_id

        with logger.contextualize(correlation_id=correlation_id):
            response = await call_next(request)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.time()
        method = request.method
        path = request.url.path

        response = await call_next(request)

        elapsed_ms = (time.time() - start) * 1000
        logger.info(
            "{method} {path} → {status} ({ms:.0f}ms)",
            method=method,
            path=path,
            status=response.status_code,
            ms=elapsed_ms,
        )
        return response


# ---------------------------------------------------------------------------
# Exception handler
# ---------------------------------------------------------------------------


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return a structured 500 response."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled exception on {method} {path}: {err}\n{tb}",
                method=request.method,
                path=request.url.path,
                err=exc,
                tb=traceback.format_exc(),
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": "INTERNAL_ERROR",
                        "message": "Internal server error",
                        "details": {},
                    },
                    "correlation_id": get_correlation_id(request),
                },
            )
