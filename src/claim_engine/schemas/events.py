"""Pydantic models for ledger envelopes, bus events and lifecycle events."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

SCHEMA_VERSION = "1.0.0"


class LedgerEventType(str, Enum):
    """Canonical ledger event types. Ledger wire names are UPPER_SNAKE."""

    CLAIM_CREATED = "CLAIM_CREATED"
    CLAIM_SETTLED = "CLAIM_SETTLED"
    CLAIM_LIFECYCLE_RECORDED = "CLAIM_LIFECYCLE_RECORDED"
    CLAIM_OPENED = "CLAIM_OPENED"
    CLAIM_DECISION_RECORDED = "CLAIM_DECISION_RECORDED"
    CLAIM_PAYOUT_AUTHORIZED = "CLAIM_PAYOUT_AUTHORIZED"
    CUSTODY_CHANGED = "CUSTODY_CHANGED"
    SALVAGE_CREATED = "SALVAGE_CREATED"
    SALVAGE_LISTED = "SALVAGE_LISTED"
    SALVAGE_RECOVERED = "SALVAGE_RECOVERED"


class LedgerEnvelope(BaseModel):
    """Canonical event envelope written to the ledger."""

    model_config = ConfigDict(frozen=True)

    schema_version: str = SCHEMA_VERSION
    event_type: str
    occurred_at: datetime
    correlation_id: str
    idempotency_key: str = Field(..., min_length=10)
    producer: str
    subject: str
    payload: dict[str, Any] = Field(default_factory=dict)
    canonical_hash_hex: str = ""


class LedgerEventRecord(BaseModel):
    """An event as read back from the ledger."""

    event_id: str
    event_type: str
    subject: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)


class LedgerWriteResult(BaseModel):
    event_id: str
    sequence_number: Optional[int] = None
    entry_hash: Optional[str] = None
    created_at: Optional[str] = None


class BusEvent(BaseModel):
    """Notification published on the in-process event bus."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    event_type: str
    occurred_at: datetime
    correlation_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    claim_id: Optional[str] = None
    item_id: Optional[str] = None
    source: str = "claim-engine"


class InboundEvent(BaseModel):
    """Ecosystem event delivered to ``POST /events/inbound``."""

    event_id: str
    event_type: str
    occurred_at: Optional[AwareDatetime] = None
    item_id: Optional[str] = None
    claim_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)


class ClaimLifecycleEventType(str, Enum):
    INTAKE = "INTAKE"
    VERIFICATION_STARTED = "VERIFICATION_STARTED"
    VERIFICATION_COMPLETE = "VERIFICATION_COMPLETE"
    DECISION_PENDING = "DECISION_PENDING"
    DECISION_MADE = "DECISION_MADE"
    PAYMENT_INITIATED = "PAYMENT_INITIATED"
    PAYMENT_COMPLETE = "PAYMENT_COMPLETE"
    SALVAGE_INITIATED = "SALVAGE_INITIATED"
    CLOSED = "CLOSED"
    REOPENED = "REOPENED"
    FRAUD_FLAGGED = "FRAUD_FLAGGED"


class ClaimEventRequest(BaseModel):
    """Body of ``POST /claims/{claim_id}/events``."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(..., alias="eventType")
    payload: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")


class ClaimEventStatus(str, Enum):
    RECORDED = "RECORDED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"


class ClaimEventReceipt(BaseModel):
    event_id: str
    claim_id: str
    event_type: ClaimLifecycleEventType
    status: ClaimEventStatus
    processed_at: str
    correlation_id: str
