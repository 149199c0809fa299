"""Claim adjudication routes.

Endpoints
---------
POST /api/v1/claims
    Validate, verify, decide and seal one claim.

GET  /api/v1/claims/{claim_id}/status
    Return the sealed audit entry and whether its seal still verifies.

POST /api/v1/claims/{claim_id}/events
    Record a lifecycle event reported by an external system.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from claim_engine.api.middleware import get_correlation_id
from claim_engine.audit.service import AuditService
from claim_engine.core.errors import FieldError, ValidationFailure
from claim_engine.core.validation import normalize_claim_id
from claim_engine.orchestrator.controller import SubmissionOutcome
from claim_engine.schemas.decision import AuditEntry
from claim_engine.schemas.events import ClaimEventReceipt, ClaimEventRequest, ClaimEventStatus

router = APIRouter()


class ClaimStatusResponse(AuditEntry):
    seal_valid: bool


# ---------------------------------------------------------------------------
# POST /claims
# ---------------------------------------------------------------------------

@router.post(
    "/claims",
    response_model=SubmissionOutcome,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a claim",
    description="Run a claim through intake, ledger verification, risk scoring and audit sealing.",
)
async def submit_claim(request: Request) -> SubmissionOutcome:
    """Adjudicate a raw claim payload.

    The body is read as untrusted JSON and handed to the intake gate, so every
    failing field is reported in one 400 response.
    """
    correlation_id = get_correlation_id(request)
    try:
        raw = await request.json()
    except ValueError as exc:
        # JSONDecodeError and UnicodeDecodeError
        raise ValidationFailure(
            [FieldError(field="$", message=f"Body is not valid JSON: {exc}")]
        ) from exc

    controller = request.app.state.services.controller
    outcome: SubmissionOutcome = await run_in_threadpool(controller.submit, raw, correlation_id)
    logger.info(
        "API: claim {claim} -> {decision}",
        claim=outcome.claim_id,
        decision=outcome.decision.decision.value,
    )
    return outcome


# ---------------------------------------------------------------------------
# GET /claims/{claim_id}/status
# ---------------------------------------------------------------------------

@router.get(
    "/claims/{claim_id}/status",
    response_model=ClaimStatusResponse,
    summary="Sealed decision for a claim",
)
async def claim_status(claim_id: str, request: Request) -> ClaimStatusResponse:
    entry = request.app.state.services.audit.get_record(normalize_claim_id(claim_id))
    return ClaimStatusResponse(
        record=entry.record,
        seal=entry.seal,
        sealed_at=entry.sealed_at,
        seal_valid=AuditService.verify_seal(entry),
    )


# ---------------------------------------------------------------------------
# POST /claims/{claim_id}/events
# ---------------------------------------------------------------------------

@router.post(
    "/claims/{claim_id}/events",
    response_model=ClaimEventReceipt,
    status_code=status.HTTP_201_CREATED,
    summary="Record a claim lifecycle event",
    description="201 when recorded; 200 with ALREADY_PROCESSED when the idempotency key was seen before.",
)
async def record_claim_event(
    claim_id: str, body: ClaimEventRequest, request: Request, response: Response
) -> ClaimEventReceipt:
    recorder = request.app.state.services.lifecycle
    receipt: ClaimEventReceipt = await run_in_threadpool(
        recorder.record,
        normalize_claim_id(claim_id),
        body,
        correlation_id=get_correlation_id(request),
    )
    if receipt.status is ClaimEventStatus.ALREADY_PROCESSED:
        response.status_code = status.HTTP_200_OK
    return receipt
