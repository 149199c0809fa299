"""Records claim lifecycle events reported by external systems."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from loguru import logger

from claim_engine.core.errors import FieldError, InternalError, ValidationFailure
from claim_engine.core.store import InMemoryKeyedStore, KeyedStore
from claim_engine.events import bus as topics
from claim_engine.ledger.client import idempotency_key
from claim_engine.schemas.events import (
    ClaimEventReceipt,
    ClaimEventRequest,
    ClaimEventStatus,
    ClaimLifecycleEventType,
    LedgerEventType,
)

if TYPE_CHECKING:
    from claim_engine.events.bus import EventBus
    from claim_engine.ledger.client import LedgerClient

# Lifecycle events that are also announced on the bus, and under which topic.
SIGNIFICANT_EVENTS: dict[ClaimLifecycleEventType, str] = {
    ClaimLifecycleEventType.DECISION_MADE: topics.CLAIM_CREATED,
    ClaimLifecycleEventType.PAYMENT_COMPLETE: topics.CLAIM_CREATED,
    ClaimLifecycleEventType.FRAUD_FLAGGED: topics.CLAIM_CREATED,
    ClaimLifecycleEventType.CLOSED: topics.CLAIM_SETTLED,
}


class LifecycleEventRecorder:
    """Writes ``CLAIM_LIFECYCLE_RECORDED`` ledger events.

    A request carrying an ``idempotencyKey`` that was already recorded for the
    same claim is answered from the receipt store with ``ALREADY_PROCESSED``
    and causes no further side effects.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        bus: EventBus,
        store: KeyedStore[str, ClaimEventReceipt] | None = None,
    ) -> None:
        self.ledger = ledger
        self.bus = bus
        self._receipts: KeyedStore[str, ClaimEventReceipt] = store or InMemoryKeyedStore()

    def record(
        self, claim_id: str, request: ClaimEventRequest, *, correlation_id: str
    ) -> ClaimEventReceipt:
        """Record one lifecycle event.

        Raises
        ------
        ValidationFailure
            ``eventType`` is not a known lifecycle event.
        LedgerWriteError
            The ledger rejected the write; nothing is remembered, so the
            caller may retry with the same key.
        """
        event_type = _parse_event_type(request.event_type)

        replay_key = f"{claim_id}:{request.idempotency_key}" if request.idempotency_key else None
        if replay_key is not None:
            existing = self._receipts.get(replay_key)
            if existing is not None:
                logger.info("Idempotent replay for key {key}", key=request.idempotency_key)
                return _replayed(existing, correlation_id)

        ledger_key = idempotency_key(
            LedgerEventType.CLAIM_LIFECYCLE_RECORDED.value,
            replay_key or f"{claim_id}:{event_type.value}:{uuid.uuid4().hex}",
        )
        result = self.ledger.write_event(
            LedgerEventType.CLAIM_LIFECYCLE_RECORDED,
            claim_id,
            {**request.payload, "claim_id": claim_id, "claim_event_type": event_type.value},
            correlation_id=correlation_id,
            idem_key=ledger_key,
        )
        receipt = ClaimEventReceipt(
            event_id=result.event_id,
            claim_id=claim_id,
            event_type=event_type,
            status=ClaimEventStatus.RECORDED,
            processed_at=result.created_at or datetime.now(timezone.utc).isoformat(),
            correlation_id=correlation_id,
        )

        if replay_key is not None and not self._receipts.put_if_absent(replay_key, receipt):
            # A concurrent request with the same key won; the ledger deduplicated the write.
            existing = self._receipts.get(replay_key)
            if existing is None:
                raise InternalError("Receipt store lost a stored key", details={"key": replay_key})
            return _replayed(existing, correlation_id)

        topic = SIGNIFICANT_EVENTS.get(event_type)
        if topic is not None:
            try:
                self.bus.publish(
                    topic,
                    {**request.payload, "claim_id": claim_id, "event_type": event_type.value},
                    correlation_id=correlation_id,
                    claim_id=claim_id,
                )
            except Exception as exc:
                logger.warning("Publishing {topic} failed: {err}", topic=topic, err=exc)

        logger.info("Recorded {type} for claim {claim}", type=event_type.value, claim=claim_id)
        return receipt


def _parse_event_type(raw: str) -> ClaimLifecycleEventType:
    try:
        return ClaimLifecycleEventType(raw)
    except ValueError:
        raise ValidationFailure(
            [FieldError(field="eventType", message=f"unknown lifecycle event type '{raw}'")],
            message="eventType is not allowed",
        ) from None


def _replayed(receipt: ClaimEventReceipt, correlation_id: str) -> ClaimEventReceipt:
    return receipt.model_copy(
        update={"status": ClaimEventStatus.ALREADY_PROCESSED, "correlation_id": correlation_id}
    )
