"""Pydantic schemas for the claims adjudication service."""

from claim_engine.schemas.claim import (
    Claim,
    ClaimStatus,
    ClaimSubmission,
    GeoPoint,
    IncidentType,
    IncidentVector,
)
from claim_engine.schemas.decision import (
    AuditEntry,
    Decision,
    DecisionRecord,
    RiskAssessment,
    VerificationResult,
)

__all__ = [
    "AuditEntry",
    "Claim",
    "ClaimStatus",
    "ClaimSubmission",
    "Decision",
    "DecisionRecord",
    "GeoPoint",
    "IncidentType",
    "IncidentVector",
    "RiskAssessment",
    "VerificationResult",
]
