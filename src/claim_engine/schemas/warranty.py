"""Pydantic models for the warranty cross-reference index and dual-dip results."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class WarrantyType(str, Enum):
    MANUFACTURER = "MANUFACTURER"
    EXTENDED = "EXTENDED"
    RETAILER = "RETAILER"
    CREDIT_CARD = "CREDIT_CARD"
    HOME_WARRANTY = "HOME_WARRANTY"
    APPLIANCE_SERVICE = "APPLIANCE_SERVICE"


class WarrantyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CLAIMED = "CLAIMED"
    VOIDED = "VOIDED"
    TRANSFERRED = "TRANSFERRED"


class WarrantyResolution(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    REPAIR_COMPLETED = "REPAIR_COMPLETED"
    REPLACEMENT_ISSUED = "REPLACEMENT_ISSUED"


class FindingType(str, Enum):
    WARRANTY_CLAIM_OVERLAP = "WARRANTY_CLAIM_OVERLAP"
    TIMING_SUSPICIOUS = "TIMING_SUSPICIOUS"
    DUPLICATE_ISSUE = "DUPLICATE_ISSUE"


class FindingSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class DualDipRiskLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Recommendation(str, Enum):
    PROCEED = "PROCEED"
    INVESTIGATE = "INVESTIGATE"
    DENY = "DENY"
    REFER_SIU = "REFER_SIU"


class WarrantyClaimRecord(BaseModel):
    id: str
    claim_date: date
    issue_description: str
    resolution: WarrantyResolution = WarrantyResolution.PENDING
    amount_paid: Optional[float] = Field(default=None, ge=0)


class WarrantyRecord(BaseModel):
    id: str
    asset_id: str
    type: WarrantyType
    status: WarrantyStatus
    provider_name: str
    expiration_date: date
    claims: list[WarrantyClaimRecord] = Field(default_factory=list)


class DualDipFinding(BaseModel):
    type: FindingType
    description: str
    evidence: list[str] = Field(default_factory=list)
    severity: FindingSeverity


class SubrogationSource(str, Enum):
    MANUFACTURER = "MANUFACTURER"
    WARRANTY_PROVIDER = "WARRANTY_PROVIDER"


class SubrogationOpportunity(BaseModel):
    """Advisory recovery lead. Never changes the adjudication outcome."""

    source: SubrogationSource
    target_name: str
    estimated_recovery: float = Field(..., ge=0)
    confidence: FindingSeverity
    reason: str


class DualDipResult(BaseModel):
    claim_id: str
    asset_id: str
    risk_level: DualDipRiskLevel
    findings: list[DualDipFinding] = Field(default_factory=list)
    recommendation: Recommendation
    warranty_claims: list[WarrantyClaimRecord] = Field(default_factory=list)
    subrogation: Optional[SubrogationOpportunity] = None
