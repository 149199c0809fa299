from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get(
    "/health",
    summary="Health check",
    description="Returns service health status and the active ledger adapter.",
)
async def health(request: Request) -> dict:
    """Return a lightweight health-check response."""
    cfg = request.app.state.cfg
    return {
        "status": "healthy",
        "ledger_adapter": cfg.ledger.adapter,
        "ledger_dry_run": bool(cfg.ledger.get("dry_run", False)),
    }
