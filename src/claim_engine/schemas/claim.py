"""Pydantic models for validated insurance claims."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


class IncidentType(str, Enum):
    THEFT = "THEFT"
    DAMAGE = "DAMAGE"


class ClaimStatus(str, Enum):
    INTAKE = "INTAKE"
    VERIFYING = "VERIFYING"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


Severity = Annotated[int, Field(strict=True, ge=1, le=10)]


class GeoPoint(BaseModel):
    """GeoJSON point. Coordinates are ``[longitude, latitude]``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]

    @field_validator("coordinates")
    @classmethod
    def _coordinates_in_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        lon, lat = value
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"longitude {lon} outside [-180, 180]")
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude {lat} outside [-90, 90]")
        return value

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]


class IncidentVector(BaseModel):
    """What happened, where, and how badly. The narrative is only ever a hash."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: IncidentType
    location: GeoPoint
    severity: Severity
    description_hash: str = Field(..., min_length=1, description="Hash of the free-text narrative")


class Claim(BaseModel):
    """Trusted claim record. Only the intake gate constructs these from raw input."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "examples": [
                {
                    "id": "550e8400-e29b-41d4-a716-446655440000",
                    "intake_timestamp": "2026-02-15T10:00:00Z",
                    "policy_snapshot_id": "pol_premium_2026",
                    "claimant_id": "did:example:user:jane",
                    "asset_id": "asset_valid_watch_001",
                    "incident_vector": {
                        "type": "THEFT",
                        "location": {"type": "Point", "coordinates": [-74.006, 40.7128]},
                        "severity": 8,
                        "description_hash": "9f86d081884c7d659a2feaa0c55ad015",
                    },
                    "status": "INTAKE",
                }
            ]
        },
    )

    id: UUID = Field(..., description="Claim identifier (UUID)")
    intake_timestamp: AwareDatetime = Field(..., description="ISO-8601 intake instant")
    policy_snapshot_id: str = Field(..., min_length=1, description="Policy state at incident time")
    claimant_id: str = Field(..., min_length=1, description="Identifier of the claimant")
    asset_id: str = Field(..., min_length=1, description="Ledger asset identifier")
    incident_vector: IncidentVector
    status: ClaimStatus


class ClaimSubmission(Claim):
    """Claim payload plus the intake-only fields that never land on the Claim."""

    narrative: Optional[str] = Field(
        default=None, description="Raw incident narrative; hashed, never persisted"
    )
    claim_amount: float = Field(default=0.0, ge=0, description="Amount claimed in USD")

    def to_claim(self) -> Claim:
        return Claim.model_validate(self.model_dump(exclude={"narrative", "claim_amount"}))
