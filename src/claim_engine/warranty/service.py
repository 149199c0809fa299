"""Warranty cross-reference: dual-dip fraud detection and subrogation leads.

The index is populated from ``warranty.registered`` / ``warranty.claimed``
ecosystem events and is read-only from the adjudication pipeline's point of
view.  Detection results are advisory; they are surfaced next to the decision
and never change it.
"""

from __future__ import annotations

import re
import threading
from datetime import date, timedelta

from loguru import logger

from claim_engine.core.store import InMemoryKeyedStore, KeyedStore
from claim_engine.schemas.warranty import (
    DualDipFinding,
    DualDipResult,
    DualDipRiskLevel,
    FindingSeverity,
    FindingType,
    Recommendation,
    SubrogationOpportunity,
    SubrogationSource,
    WarrantyClaimRecord,
    WarrantyRecord,
    WarrantyResolution,
    WarrantyStatus,
    WarrantyType,
)

DUAL_DIP_WINDOW = timedelta(days=90)
ISSUE_SIMILARITY_THRESHOLD = 0.30
PAID_RESOLUTIONS = frozenset(
    {
        WarrantyResolution.APPROVED,
        WarrantyResolution.REPAIR_COMPLETED,
        WarrantyResolution.REPLACEMENT_ISSUED,
    }
)
DEFECT_KEYWORDS = (
    "defect",
    "malfunction",
    "failure",
    "broke",
    "stopped working",
    "electrical",
    "fire",
)
MANUFACTURER_RECOVERY_RATE = 0.7
EXTENDED_RECOVERY_RATE = 0.5

_RECOMMENDATIONS = {
    DualDipRiskLevel.CRITICAL: Recommendation.REFER_SIU,
    DualDipRiskLevel.HIGH: Recommendation.DENY,
    DualDipRiskLevel.MEDIUM: Recommendation.INVESTIGATE,
    DualDipRiskLevel.LOW: Recommendation.INVESTIGATE,
    DualDipRiskLevel.NONE: Recommendation.PROCEED,
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class WarrantyIndex:
    """Per-asset index of warranties and their historical claims."""

    def __init__(self, store: KeyedStore[str, list[WarrantyRecord]] | None = None) -> None:
        self._store: KeyedStore[str, list[WarrantyRecord]] = store or InMemoryKeyedStore()
        self._lock = threading.Lock()

    # -----------------------------------------------------------------
    # Index maintenance
    # -----------------------------------------------------------------

    def index_warranty(self, warranty: WarrantyRecord) -> None:
        with self._lock:
            existing = [w for w in self._store.get(warranty.asset_id) or [] if w.id != warranty.id]
            self._store.put(warranty.asset_id, [*existing, warranty])
        logger.info(
            "Indexed warranty {wid} ({type}) for asset {asset}",
            wid=warranty.id,
            type=warranty.type.value,
            asset=warranty.asset_id,
        )

    def record_warranty_claim(
        self, asset_id: str, warranty_id: str, claim: WarrantyClaimRecord
    ) -> bool:
        """Attach *claim* to a known warranty. Returns ``False`` if it is unknown."""
        with self._lock:
            warranties = self._store.get(asset_id) or []
            updated: list[WarrantyRecord] = []
            found = False
            for warranty in warranties:
                if warranty.id == warranty_id:
                    warranty = warranty.model_copy(update={"claims": [*warranty.claims, claim]})
                    found = True
                updated.append(warranty)
            if found:
                self._store.put(asset_id, updated)

        if not found:
            logger.warning(
                "Warranty claim {cid} references unknown warranty {wid} on asset {asset}",
                cid=claim.id,
                wid=warranty_id,
                asset=asset_id,
            )
            return False
        logger.info("Recorded warranty claim {cid} on warranty {wid}", cid=claim.id, wid=warranty_id)
        return True

    def get_warranties(self, asset_id: str) -> list[WarrantyRecord]:
        return list(self._store.get(asset_id) or [])

    # -----------------------------------------------------------------
    # Detection
    # -----------------------------------------------------------------

    def detect_dual_dip(
        self,
        claim_id: str,
        asset_id: str,
        incident_date: date,
        incident_description: str,
        claim_amount: float,
    ) -> DualDipResult:
        """Cross-reference an insurance claim against the asset's warranty history.

        Every warranty claim filed within 90 days of *incident_date* is
        examined for a similar issue description, an existing payout, and a
        filing date after the incident.
        """
        warranties = self.get_warranties(asset_id)
        findings: list[DualDipFinding] = []
        relevant: list[WarrantyClaimRecord] = []

        for warranty in warranties:
            for w_claim in warranty.claims:
                gap = abs(incident_date - w_claim.claim_date)
                if gap >= DUAL_DIP_WINDOW:
                    continue
                relevant.append(w_claim)

                if issue_similarity(incident_description, w_claim.issue_description) > ISSUE_SIMILARITY_THRESHOLD:
                    findings.append(
                        DualDipFinding(
                            type=FindingType.DUPLICATE_ISSUE,
                            description=f"Warranty claim for a similar issue filed {gap.days} days apart",
                            evidence=[
                                f'Insurance claim: "{incident_description}"',
                                f'Warranty claim: "{w_claim.issue_description}"',
                                f"Warranty provider: {warranty.provider_name}",
                            ],
                            severity=FindingSeverity.HIGH,
                        )
                    )

                if w_claim.resolution in PAID_RESOLUTIONS:
                    findings.append(
                        DualDipFinding(
                            type=FindingType.WARRANTY_CLAIM_OVERLAP,
                            description=f"Warranty already resolved this issue ({w_claim.resolution.value})",
                            evidence=[
                                f"Warranty claim ID: {w_claim.id}",
                                f"Resolution: {w_claim.resolution.value}",
                                f"Amount paid: ${w_claim.amount_paid or 0:.2f}",
                            ],
                            severity=FindingSeverity.HIGH,
                        )
                    )

                if w_claim.claim_date > incident_date:
                    findings.append(
                        DualDipFinding(
                            type=FindingType.TIMING_SUSPICIOUS,
                            description="Warranty claim filed after the incident date",
                            evidence=[
                                f"Incident date: {incident_date.isoformat()}",
                                f"Warranty claim date: {w_claim.claim_date.isoformat()}",
                            ],
                            severity=FindingSeverity.MEDIUM,
                        )
                    )

        risk_level = risk_level_for(findings)
        result = DualDipResult(
            claim_id=claim_id,
            asset_id=asset_id,
            risk_level=risk_level,
            findings=findings,
            recommendation=_RECOMMENDATIONS[risk_level],
            warranty_claims=relevant,
            subrogation=identify_subrogation(warranties, incident_description, claim_amount),
        )
        logger.info(
            "Dual-dip check for claim {claim}: {risk} risk, {n} finding(s)",
            claim=claim_id,
            risk=risk_level.value,
            n=len(findings),
        )
        return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _tokens(text: str) -> set[str]:
    return {t for t in _NON_ALNUM.sub(" ", text.lower()).split() if t}


def issue_similarity(a: str, b: str) -> float:
    """Shared-token ratio ``|A ∩ B| / max(|A|, |B|)`` over normalized word sets."""
    words_a, words_b = _tokens(a), _tokens(b)
    denominator = max(len(words_a), len(words_b))
    if denominator == 0:
        return 0.0
    return len(words_a & words_b) / denominator


def risk_level_for(findings: list[DualDipFinding]) -> DualDipRiskLevel:
    if not findings:
        return DualDipRiskLevel.NONE
    high = sum(1 for f in findings if f.severity is FindingSeverity.HIGH)
    medium = sum(1 for f in findings if f.severity is FindingSeverity.MEDIUM)
    if high >= 2:
        return DualDipRiskLevel.CRITICAL
    if high >= 1:
        return DualDipRiskLevel.HIGH
    if medium >= 2:
        return DualDipRiskLevel.MEDIUM
    return DualDipRiskLevel.LOW


def identify_subrogation(
    warranties: list[WarrantyRecord], incident_description: str, claim_amount: float
) -> SubrogationOpportunity | None:
    """Suggest a recovery target when the loss looks like a product defect."""
    text = incident_description.lower()
    if not any(keyword in text for keyword in DEFECT_KEYWORDS):
        return None

    manufacturer = next(
        (
            w
            for w in warranties
            if w.type is WarrantyType.MANUFACTURER and w.status is not WarrantyStatus.EXPIRED
        ),
        None,
    )
    if manufacturer is not None:
        return SubrogationOpportunity(
            source=SubrogationSource.MANUFACTURER,
            target_name=manufacturer.provider_name,
            estimated_recovery=round(claim_amount * MANUFACTURER_RECOVERY_RATE, 2),
            confidence=FindingSeverity.MEDIUM,
            reason=(
                "Product defect may be covered under the manufacturer warranty "
                f"from {manufacturer.provider_name}."
            ),
        )

    extended = next(
        (
            w
            for w in warranties
            if w.type is WarrantyType.EXTENDED and w.status is WarrantyStatus.ACTIVE
        ),
        None,
    )
    if extended is not None:
        return SubrogationOpportunity(
            source=SubrogationSource.WARRANTY_PROVIDER,
            target_name=extended.provider_name,
            estimated_recovery=round(claim_amount * EXTENDED_RECOVERY_RATE, 2),
            confidence=FindingSeverity.LOW,
            reason=f"Extended warranty may cover this loss; coordinate with {extended.provider_name}.",
        )

    return None
