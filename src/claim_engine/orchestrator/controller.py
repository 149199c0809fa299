"""Claims controller: sequences one submission through the adjudication pipeline.

Stages::

    INTAKE ──► VERIFYING ──► DECIDED ──► SEALED
       │           │            │
       └───────────┴────────────┴──► REJECTED

Per-step failure handling is defined in
:mod:`claim_engine.orchestrator.policy`.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger
from pydantic import BaseModel

from claim_engine.core.errors import ClaimEngineError, ConflictError, ValidationFailure
from claim_engine.core.validation import ingest
from claim_engine.engine.decision import build_decision_record
from claim_engine.events import bus as topics
from claim_engine.logging.setup import SECURITY_LEVEL
from claim_engine.orchestrator.policy import Step, run_required_step, run_step
from claim_engine.schemas.decision import Decision, DecisionRecord
from claim_engine.schemas.warranty import DualDipResult

if TYPE_CHECKING:
    from claim_engine.audit.service import AuditService
    from claim_engine.engine.risk import RiskEngine
    from claim_engine.events.bus import EventBus
    from claim_engine.ledger.client import LedgerClient
    from claim_engine.ledger.port import LedgerPort
    from claim_engine.warranty.service import WarrantyIndex


class Stage(str, Enum):
    INTAKE = "INTAKE"
    VERIFYING = "VERIFYING"
    DECIDED = "DECIDED"
    SEALED = "SEALED"
    REJECTED = "REJECTED"


class SubmissionOutcome(BaseModel):
    """What ``POST /claims`` returns on success."""

    claim_id: str
    stage: Stage
    score: int
    decision: DecisionRecord
    seal: str
    dual_dip: Optional[DualDipResult] = None
    correlation_id: str


class ClaimsController:
    """Runs validate → record → verify → decide → seal → settle for one claim.

    All collaborators are injected; the controller holds no per-claim state.
    """

    def __init__(
        self,
        ledger_port: LedgerPort,
        ledger: LedgerClient,
        bus: EventBus,
        risk: RiskEngine,
        audit: AuditService,
        warranty: WarrantyIndex,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger_port = ledger_port
        self.ledger = ledger
        self.bus = bus
        self.risk = risk
        self.audit = audit
        self.warranty = warranty
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def submit(self, raw: Any, correlation_id: str) -> SubmissionOutcome:
        """Adjudicate one raw submission.

        Raises
        ------
        ValidationFailure
            The payload failed the intake gate (nothing else ran).
        ConflictError
            The claim already has a sealed decision.
        LedgerWriteError, VerificationError
            The ledger could not record or verify the claim (fail closed).
        """
        start = time.time()
        stage = Stage.INTAKE

        # ── 1. Intake gate ──────────────────────────────────────────────
        intake = ingest(raw)
        claim = intake.claim
        if claim is None:
            logger.info("Submission {stage} at intake", stage=Stage.REJECTED.value)
            raise ValidationFailure(intake.errors)
        claim_id = str(claim.id)

        with logger.contextualize(claim_id=claim_id):
            try:
                if self.audit.has_record(claim_id):
                    logger.log(SECURITY_LEVEL, "Resubmission of sealed claim {claim} refused", claim=claim_id)
                    raise ConflictError(
                        "Claim has already been decided", details={"claim_id": claim_id}
                    )

                # ── 2. Record claim existence ───────────────────────────
                run_step(
                    Step.PUBLISH_CLAIM_CREATED,
                    self.bus.publish,
                    topics.CLAIM_CREATED,
                    {
                        "claim_id": claim_id,
                        "asset_id": claim.asset_id,
                        "incident_type": claim.incident_vector.type.value,
                        "claim_amount": intake.claim_amount,
                        "status": claim.status.value,
                    },
                    correlation_id=correlation_id,
                    claim_id=claim_id,
                    item_id=claim.asset_id,
                )
                run_required_step(
                    Step.LEDGER_CLAIM_CREATED,
                    self.ledger.write_claim_created,
                    claim_id,
                    claim.claimant_id,
                    claim.asset_id,
                    claim.incident_vector.type.value,
                    intake.claim_amount,
                    correlation_id=correlation_id,
                )

                # ── 3. Advisory dual-dip check ──────────────────────────
                dual_dip = run_step(
                    Step.DUAL_DIP_CHECK,
                    self.warranty.detect_dual_dip,
                    claim_id,
                    claim.asset_id,
                    claim.intake_timestamp.date(),
                    intake.narrative or "",
                    intake.claim_amount,
                )

                # ── 4. Verify against the ledger ────────────────────────
                stage = Stage.VERIFYING
                verification = run_required_step(
                    Step.VERIFY_ASSET, self.ledger_port.verify_asset, claim.asset_id, claim.claimant_id
                )

                # ── 5. Decide ───────────────────────────────────────────
                assessment = self.risk.evaluate(claim, verification)
                record = build_decision_record(claim, assessment, self._clock)
                stage = Stage.DECIDED
                logger.info(
                    "Claim {claim} decided {decision} (score={score})",
                    claim=claim_id,
                    decision=assessment.decision.value,
                    score=assessment.score,
                )

                # ── 6. Seal ─────────────────────────────────────────────
                seal = run_required_step(Step.AUDIT_COMMIT, self.audit.commit, record)
                stage = Stage.SEALED
            except ClaimEngineError as exc:
                logger.warning(
                    "Claim {claim} {rejected} during {stage}: {err}",
                    claim=claim_id,
                    rejected=Stage.REJECTED.value,
                    stage=stage.value,
                    err=exc.message,
                )
                raise

            # ── 7. Settlement notifications (best effort) ───────────────
            settlement_amount = intake.claim_amount if record.decision is Decision.PAY else 0.0
            run_step(
                Step.PUBLISH_CLAIM_SETTLED,
                self.bus.publish,
                topics.CLAIM_SETTLED,
                {
                    "claim_id": claim_id,
                    "asset_id": claim.asset_id,
                    "decision": record.decision.value,
                    "settlement_amount": settlement_amount,
                },
                correlation_id=correlation_id,
                claim_id=claim_id,
                item_id=claim.asset_id,
            )
            run_step(
                Step.LEDGER_CLAIM_SETTLED,
                self.ledger.write_claim_settled,
                claim_id,
                claim.asset_id,
                record.decision.value,
                seal,
                correlation_id=correlation_id,
                settlement_amount=settlement_amount,
            )

            logger.info(
                "Claim {claim} sealed in {t:.2f}s: {decision}",
                claim=claim_id,
                t=time.time() - start,
                decision=record.decision.value,
            )
            return SubmissionOutcome(
                claim_id=claim_id,
                stage=stage,
                score=assessment.score,
                decision=record,
                seal=seal,
                dual_dip=dual_dip,
                correlation_id=correlation_id,
            )
