"""FastAPI application factory.

``create_app`` builds a fully configured ``FastAPI`` instance with:

* CORS middleware
* Correlation-id / request-logging / exception-handling middleware
* Typed error handlers for :class:`~claim_engine.core.errors.ClaimEngineError`
* Claim, salvage, provenance, inbound-event and health routes
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from claim_engine.api.errors import register_exception_handlers
from claim_engine.api.middleware import (
    CorrelationIdMiddleware,
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
)
from claim_engine.api.routes.claims import router as claims_router
from claim_engine.api.routes.events import router as events_router
from claim_engine.api.routes.health import router as health_router
from claim_engine.api.routes.provenance import router as provenance_router
from claim_engine.api.routes.salvage import router as salvage_router
from claim_engine.factory import create_services
from claim_engine.logging.setup import setup_logging

if TYPE_CHECKING:
    from omegaconf import DictConfig

    from claim_engine.factory import Services


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle for the FastAPI application."""
    services: Services = app.state.services
    logger.info(
        "Application startup complete (ledger adapter: {adapter})",
        adapter=type(services.ledger_port).__name__,
    )
    yield
    logger.info(
        "Application shutting down ({n} bus events published)",
        n=len(services.bus.published),
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_app(cfg: DictConfig, services: Services | None = None) -> FastAPI:
    """Build and return a fully configured :class:`FastAPI` application.

    Parameters
    ----------
    cfg:
        The merged Hydra configuration.
    services:
        Pre-built component graph. Built from *cfg* when omitted.

    Returns
    -------
    FastAPI
        Ready-to-run application instance.
    """
    # ── Logging ──────────────────────────────────────────────────────────
    setup_logging(cfg.logging)

    # ── App ──────────────────────────────────────────────────────────────
    app = FastAPI(
        title="Claim Engine",
        description="Ledger-verified insurance claim adjudication",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.cfg = cfg

    # ── Services ─────────────────────────────────────────────────────────
    app.state.services = services or create_services(cfg)

    # ── CORS ─────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.server.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    # ── Custom middleware (last added = outermost) ───────────────────────
    app.add_middleware(ExceptionHandlerMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    # ── Errors ───────────────────────────────────────────────────────────
    register_exception_handlers(app)

    # ── Routes ───────────────────────────────────────────────────────────
    for router in (claims_router, salvage_router, provenance_router, events_router, health_router):
        app.include_router(router, prefix="/api/v1")

    return app
