"""Turn a risk assessment into the binding decision record."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from claim_engine.schemas.claim import Claim
from claim_engine.schemas.decision import DecisionRecord, RiskAssessment

RATIONALE_SEPARATOR = " | "


def build_decision_record(
    claim: Claim,
    assessment: RiskAssessment,
    clock: Callable[[], datetime] | None = None,
) -> DecisionRecord:
    """Construct the :class:`DecisionRecord` for *claim*.

    ``confidence_score`` is the 0–100 score normalised to 0.0–1.0. The
    evidence chain is reserved for Merkle proof hashes and is empty for now.
    """
    now = (clock or (lambda: datetime.now(timezone.utc)))()
    return DecisionRecord(
        claim_id=str(claim.id),
        decision=assessment.decision,
        confidence_score=assessment.score / 100,
        rationale=RATIONALE_SEPARATOR.join(assessment.rationale),
        evidence_chain=[],
        finalized_at=now,
    )
