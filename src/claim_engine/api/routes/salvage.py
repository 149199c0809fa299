"""Salvage manifest routes."""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.concurrency import run_in_threadpool

from claim_engine.api.middleware import get_correlation_id
from claim_engine.core.validation import normalize_claim_id
from claim_engine.schemas.salvage import (
    CreateSalvageRequest,
    ListOnBidsRequest,
    ListOnBidsResponse,
    SalvageManifest,
)

router = APIRouter()


@router.post(
    "/claims/{claim_id}/salvage",
    response_model=SalvageManifest,
    status_code=status.HTTP_201_CREATED,
    summary="Open a salvage manifest for a paid claim",
)
async def create_manifest(
    claim_id: str, body: CreateSalvageRequest, request: Request
) -> SalvageManifest:
    salvage = request.app.state.services.salvage
    return salvage.create_manifest(
        normalize_claim_id(claim_id), body, correlation_id=get_correlation_id(request)
    )


@router.get(
    "/claims/{claim_id}/salvage",
    response_model=list[SalvageManifest],
    summary="Salvage manifests opened for a claim",
)
async def manifests_for_claim(claim_id: str, request: Request) -> list[SalvageManifest]:
    return request.app.state.services.salvage.manifests_for_claim(normalize_claim_id(claim_id))


@router.get("/salvage/{manifest_id}", response_model=SalvageManifest)
async def get_manifest(manifest_id: str, request: Request) -> SalvageManifest:
    return request.app.state.services.salvage.get_manifest(manifest_id)


@router.post("/salvage/{manifest_id}/pickup", response_model=SalvageManifest)
async def mark_pending_pickup(manifest_id: str, request: Request) -> SalvageManifest:
    return request.app.state.services.salvage.mark_pending_pickup(manifest_id)


@router.post("/salvage/{manifest_id}/cancel", response_model=SalvageManifest)
async def cancel_manifest(manifest_id: str, request: Request) -> SalvageManifest:
    return request.app.state.services.salvage.cancel(manifest_id)


@router.post(
    "/salvage/{manifest_id}/list-on-bids",
    response_model=ListOnBidsResponse,
    summary="List every manifest asset on the Bids auction platform",
)
async def list_on_bids(
    manifest_id: str, body: ListOnBidsRequest, request: Request
) -> ListOnBidsResponse:
    # Listing calls the auction platform once per asset.
    salvage = request.app.state.services.salvage
    return await run_in_threadpool(
        salvage.list_on_bids, manifest_id, body, correlation_id=get_correlation_id(request)
    )
