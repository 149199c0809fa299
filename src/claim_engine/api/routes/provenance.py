"""Pre-loss provenance lookup."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool

from claim_engine.schemas.provenance import PreLossProvenance

router = APIRouter()


@router.get(
    "/items/{item_id}/preloss-provenance",
    response_model=PreLossProvenance,
    summary="Pre-loss provenance for an item",
    description=(
        "Provenance score, evidence package, claim-readiness tier and fraud flags. "
        "Scored by the core service when reachable, otherwise by local heuristics."
    ),
)
async def preloss_provenance(item_id: str, request: Request) -> PreLossProvenance:
    provenance = request.app.state.services.provenance
    return await run_in_threadpool(provenance.get_preloss_provenance, item_id)
