"""Pydantic models for post-settlement salvage manifests."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SalvageStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_PICKUP = "PENDING_PICKUP"
    LISTED = "LISTED"
    SOLD = "SOLD"
    CANCELLED = "CANCELLED"


class SalvageType(str, Enum):
    AUCTION = "AUCTION"
    DIRECT_SALE = "DIRECT_SALE"
    SCRAP = "SCRAP"
    DONATE = "DONATE"


class AuctionType(str, Enum):
    TIMED = "TIMED"
    LIVE = "LIVE"
    BUY_NOW = "BUY_NOW"


class AssetCondition(str, Enum):
    DAMAGED = "DAMAGED"
    REPAIRABLE = "REPAIRABLE"
    FUNCTIONAL = "FUNCTIONAL"


class SalvageAsset(BaseModel):
    asset_id: str
    name: str
    category: str = "General"
    claimed_value: float = Field(..., ge=0)
    estimated_recovery: float = Field(..., ge=0)
    condition: AssetCondition = AssetCondition.REPAIRABLE
    image_urls: list[str] = Field(default_factory=list)


class SalvageManifest(BaseModel):
    id: str
    claim_id: str
    insurer_id: str
    assets: list[SalvageAsset]
    salvage_type: SalvageType
    pickup_location: str
    total_estimated_recovery: float
    actual_recovery: Optional[float] = None
    status: SalvageStatus = SalvageStatus.DRAFT
    listing_ids: list[str] = Field(default_factory=list)
    settled_listing_ids: list[str] = Field(default_factory=list)
    ledger_event_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class CreateSalvageRequest(BaseModel):
    """Body of ``POST /claims/{claim_id}/salvage``."""

    assets: list[str] = Field(..., min_length=1, description="Asset IDs to recover")
    salvage_type: SalvageType = SalvageType.AUCTION
    pickup_location: str = Field(..., min_length=1)
    estimated_recovery: float = Field(..., ge=0)
    insurer_id: str = Field(default="insurer", min_length=1)


class ListOnBidsRequest(BaseModel):
    """Body of ``POST /salvage/{manifest_id}/list-on-bids``."""

    auction_type: AuctionType
    duration_days: int = Field(..., ge=1, le=30)
    reserve_price: float = Field(..., gt=0)
    buy_now_price: Optional[float] = Field(default=None, gt=0)


class ListOnBidsResponse(BaseModel):
    manifest_id: str
    listing_ids: list[str]
    status: SalvageStatus
    auction_start: datetime
    auction_end: datetime
