"""Pydantic models for verification results, decisions and sealed audit entries."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Decision(str, Enum):
    PAY = "PAY"
    DENY = "DENY"
    FLAG = "FLAG"


class VerificationResult(BaseModel):
    """Ledger truth for one (asset, claimant) pair at one instant."""

    model_config = ConfigDict(frozen=True)

    asset_match: bool = Field(..., description="Asset exists on the ledger")
    ownership_match: bool = Field(..., description="Latest custodian equals the claimant")
    provenance_gap: bool = Field(..., description="Custody history is discontinuous")
    condition_delta: float = Field(default=0.0, ge=0.0, le=1.0)
    verified_at: datetime


class RiskAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    decision: Decision
    rationale: tuple[str, ...] = ()


class DecisionRecord(BaseModel):
    """The binding outcome for a claim. Created once, never modified."""

    model_config = ConfigDict(frozen=True)

    claim_id: str
    decision: Decision
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    rationale: str = Field(default="", description="Machine-generated rationale")
    evidence_chain: list[str] = Field(
        default_factory=list, description="Ordered proof hashes (reserved for Merkle proofs)"
    )
    finalized_at: datetime


class AuditEntry(BaseModel):
    """A decision record together with the seal computed when it was committed."""

    model_config = ConfigDict(frozen=True)

    record: DecisionRecord
    seal: str = Field(..., min_length=64, max_length=64, description="SHA-256 hex seal")
    sealed_at: datetime
