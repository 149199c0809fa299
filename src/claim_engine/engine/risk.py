"""Deterministic risk scoring: f(claim, verification) -> assessment."""

from __future__ import annotations

from claim_engine.engine import rules
from claim_engine.engine.regions import PolicyRegionCheck
from claim_engine.schemas.claim import Claim
from claim_engine.schemas.decision import Decision, RiskAssessment, VerificationResult


class RiskEngine:
    """Scores a claim against its ledger verification.

    The only configuration is the policy-region table; for a given table the
    engine is a pure function of its inputs.
    """

    def __init__(self, region_check: PolicyRegionCheck | None = None) -> None:
        self.region_check = region_check or PolicyRegionCheck()

    def evaluate(self, claim: Claim, verification: VerificationResult) -> RiskAssessment:
        # ── 1. Hard gate: the ledger disagrees with the claim ───────────
        if not verification.asset_match or not verification.ownership_match:
            return RiskAssessment(
                score=rules.MIN_SCORE,
                decision=Decision.DENY,
                rationale=(rules.LEDGER_MISMATCH_RATIONALE,),
            )

        # ── 2. Soft penalties, fixed order ──────────────────────────────
        score = rules.BASE_SCORE
        rationale: list[str] = []

        if verification.provenance_gap:
            score -= rules.OWNERSHIP_GAP_PENALTY
            rationale.append(rules.OWNERSHIP_GAP_RATIONALE)

        location = claim.incident_vector.location
        if not self.region_check.in_region(claim.policy_snapshot_id, location):
            score -= rules.LOCATION_MISMATCH_PENALTY
            rationale.append(rules.LOCATION_MISMATCH_RATIONALE)

        score = max(rules.MIN_SCORE, score)

        return RiskAssessment(
            score=score,
            decision=decision_for_score(score),
            rationale=tuple(rationale),
        )


def decision_for_score(score: int) -> Decision:
    """Map a score to PAY (>= 90), FLAG (>= 70) or DENY."""
    if score >= rules.AUTO_APPROVE_THRESHOLD:
        return Decision.PAY
    if score >= rules.MANUAL_REVIEW_THRESHOLD:
        return Decision.FLAG
    return Decision.DENY
