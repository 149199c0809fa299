"""Pydantic models for pre-loss provenance lookups."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import AwareDatetime, BaseModel, Field


class ClaimReadiness(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ItemProvenanceRecord(BaseModel):
    """Indexed documentation state of an insured item."""

    item_id: str
    owner_id: str
    provenance_score: int = Field(..., ge=0, le=100)
    documented_value: float = Field(default=0.0, ge=0)
    photo_count: int = Field(default=0, ge=0)
    receipt_count: int = Field(default=0, ge=0)
    warranty_count: int = Field(default=0, ge=0)
    genome_verified: bool = False
    condition_score: float = Field(default=0.0, ge=0)
    ownership_transfers: int = Field(default=0, ge=0)
    fraud_flagged: bool = False
    last_verified_at: AwareDatetime
    updated_at: AwareDatetime


class EvidencePackage(BaseModel):
    photos: int
    receipts: int
    genome_verified: bool
    last_condition_score: float
    warranties: int


class PreLossProvenance(BaseModel):
    item_id: str
    provenance_score: int
    documented_value: float
    evidence_package: EvidencePackage
    claim_readiness: ClaimReadiness
    ownership_history: int
    last_verified: datetime
    fraud_flags: list[str] = Field(default_factory=list)
    scored_by: str = Field(..., description="'core' or 'local-fallback'")
