"""Routes inbound ecosystem events to the components that index them.

Subscribed event types:

* ``warranty.registered`` / ``warranty.claimed`` : warranty cross-reference index
* ``item.registered`` / ``score.updated`` / ``genome.verified`` / ``vehicle.documented`` /
  ``fraud.flagged`` : pre-loss provenance index
* ``auction.settled`` : salvage manifest recovery
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import ValidationError

from claim_engine.core.errors import FieldError, ValidationFailure
from claim_engine.schemas.events import InboundEvent
from claim_engine.schemas.provenance import ItemProvenanceRecord
from claim_engine.schemas.warranty import WarrantyClaimRecord, WarrantyRecord

if TYPE_CHECKING:
    from claim_engine.provenance.service import ProvenanceService
    from claim_engine.salvage.service import SalvageService
    from claim_engine.warranty.service import WarrantyIndex


class EventConsumer:
    def __init__(
        self,
        warranty: WarrantyIndex,
        provenance: ProvenanceService,
        salvage: SalvageService,
    ) -> None:
        self.warranty = warranty
        self.provenance = provenance
        self.salvage = salvage
        self._handlers: dict[str, Callable[[InboundEvent], bool]] = {
            "warranty.registered": self._warranty_registered,
            "warranty.claimed": self._warranty_claimed,
            "item.registered": self._item_registered,
            "score.updated": self._score_updated,
            "genome.verified": self._genome_verified,
            "vehicle.documented": self._vehicle_documented,
            "fraud.flagged": self._fraud_flagged,
            "auction.settled": self._auction_settled,
        }

    @property
    def subscribed_types(self) -> list[str]:
        return sorted(self._handlers)

    def handle(self, event: InboundEvent) -> bool:
        """Dispatch *event*. Returns ``True`` when it changed indexed state.

        Raises
        ------
        ValidationFailure
            The event payload does not match its declared type.
        """
        handler = self._handlers.get(event.event_type)
        if handler is None:
            logger.info("Ignoring unsubscribed event {type}", type=event.event_type)
            return False

        logger.info("Consuming {type} ({id})", type=event.event_type, id=event.event_id)
        try:
            return handler(event)
        except ValidationError as exc:
            raise ValidationFailure(
                [
                    FieldError(field="payload." + ".".join(str(p) for p in e["loc"]), message=e["msg"])
                    for e in exc.errors()
                ],
                message=f"Malformed {event.event_type} payload",
            ) from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationFailure(
                [FieldError(field="payload", message=f"missing or invalid field: {exc}")],
                message=f"Malformed {event.event_type} payload",
            ) from exc

    # -----------------------------------------------------------------
    # Warranty
    # -----------------------------------------------------------------

    def _warranty_registered(self, event: InboundEvent) -> bool:
        self.warranty.index_warranty(WarrantyRecord.model_validate({"claims": [], **event.payload}))
        return True

    def _warranty_claimed(self, event: InboundEvent) -> bool:
        payload = event.payload
        record = WarrantyClaimRecord.model_validate(
            {
                "id": payload.get("id") or f"wc_{event.event_id}",
                "claim_date": payload.get("claim_date"),
                "issue_description": payload.get("issue_description"),
                "resolution": payload.get("resolution", "PENDING"),
                "amount_paid": payload.get("amount_paid"),
            }
        )
        return self.warranty.record_warranty_claim(
            str(payload.get("asset_id", "")), str(payload.get("warranty_id", "")), record
        )

    # -----------------------------------------------------------------
    # Provenance
    # -----------------------------------------------------------------

    def _item_registered(self, event: InboundEvent) -> bool:
        now = event.occurred_at or datetime.now(timezone.utc)
        record = ItemProvenanceRecord.model_validate(
            {
                "last_verified_at": now,
                "updated_at": now,
                **event.payload,
                "item_id": event.item_id or event.payload.get("item_id"),
            }
        )
        self.provenance.index_item(record)
        return True

    def _score_updated(self, event: InboundEvent) -> bool:
        if not event.item_id:
            return False
        score = int(event.payload["score"])
        if not 0 <= score <= 100:
            raise ValueError(f"score {score} outside [0, 100]")
        return self.provenance.update_item(event.item_id, provenance_score=score)

    def _genome_verified(self, event: InboundEvent) -> bool:
        if not event.item_id:
            return False
        return self.provenance.update_item(
            event.item_id,
            genome_verified=True,
            last_verified_at=event.occurred_at or datetime.now(timezone.utc),
        )

    def _vehicle_documented(self, event: InboundEvent) -> bool:
        if not event.item_id:
            return False
        return self.provenance.update_item(
            event.item_id, photo_count=int(event.payload.get("photo_count", 0))
        )

    def _fraud_flagged(self, event: InboundEvent) -> bool:
        if not event.item_id:
            return False
        logger.warning(
            "Fraud flagged for item {item}: {kind}",
            item=event.item_id,
            kind=event.payload.get("fraud_type", "unspecified"),
        )
        return self.provenance.update_item(event.item_id, fraud_flagged=True)

    # -----------------------------------------------------------------
    # Salvage
    # -----------------------------------------------------------------

    def _auction_settled(self, event: InboundEvent) -> bool:
        payload: dict[str, Any] = event.payload
        listing_id = str(payload.get("listing_id", ""))
        manifest = self.salvage.find_by_listing(listing_id)
        if manifest is None:
            logger.warning("auction.settled for unknown listing {lid}", lid=listing_id)
            return False
        self.salvage.handle_auction_settled(
            manifest.id,
            listing_id,
            float(payload["sale_price"]),
            str(payload.get("buyer_id", "unknown")),
            correlation_id=event.event_id,
        )
        return True
