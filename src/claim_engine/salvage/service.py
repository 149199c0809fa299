"""Salvage manifests for settled claims.

Status machine::

    DRAFT ──► PENDING_PICKUP ──► LISTED ──► SOLD
      │             │              │
      └─────────────┴──────────────┴──► CANCELLED

A manifest can only be opened for a claim whose sealed decision is PAY.
Each listing settles once; a SOLD manifest keeps accepting sales of its
remaining listings.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from loguru import logger

from claim_engine.core.errors import InvalidTransitionError, LedgerWriteError, NotFoundError
from claim_engine.core.store import InMemoryKeyedStore, KeyedStore
from claim_engine.events import bus as topics
from claim_engine.ledger.client import idempotency_key
from claim_engine.schemas.decision import Decision
from claim_engine.schemas.events import LedgerEventType
from claim_engine.schemas.salvage import (
    CreateSalvageRequest,
    ListOnBidsRequest,
    ListOnBidsResponse,
    SalvageAsset,
    SalvageManifest,
    SalvageStatus,
)

if TYPE_CHECKING:
    from claim_engine.audit.service import AuditService
    from claim_engine.events.bus import EventBus
    from claim_engine.ledger.client import LedgerClient
    from claim_engine.salvage.bids import BidsClient

ALLOWED_TRANSITIONS: dict[SalvageStatus, frozenset[SalvageStatus]] = {
    SalvageStatus.DRAFT: frozenset({SalvageStatus.PENDING_PICKUP, SalvageStatus.LISTED, SalvageStatus.CANCELLED}),
    SalvageStatus.PENDING_PICKUP: frozenset({SalvageStatus.LISTED, SalvageStatus.CANCELLED}),
    SalvageStatus.LISTED: frozenset({SalvageStatus.SOLD, SalvageStatus.CANCELLED}),
    SalvageStatus.SOLD: frozenset(),
    SalvageStatus.CANCELLED: frozenset(),
}

STARTING_PRICE_RATIO = 0.5


class SalvageService:
    def __init__(
        self,
        audit: AuditService,
        bids: BidsClient,
        ledger: LedgerClient,
        bus: EventBus,
        store: KeyedStore[str, SalvageManifest] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.audit = audit
        self.bids = bids
        self.ledger = ledger
        self.bus = bus
        self._store: KeyedStore[str, SalvageManifest] = store or InMemoryKeyedStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    # -----------------------------------------------------------------
    # Creation (PAY-gated)
    # -----------------------------------------------------------------

    def create_manifest(
        self, claim_id: str, request: CreateSalvageRequest, *, correlation_id: str
    ) -> SalvageManifest:
        entry = self.audit.get_record(claim_id)
        if entry.record.decision is not Decision.PAY:
            raise InvalidTransitionError(
                "Salvage is only available for paid claims",
                details={"claim_id": claim_id, "decision": entry.record.decision.value},
            )

        per_asset = request.estimated_recovery / len(request.assets)
        assets = [
            SalvageAsset(
                asset_id=asset_id,
                name=f"Salvage item {index + 1}",
                claimed_value=per_asset * 2,
                estimated_recovery=per_asset,
            )
            for index, asset_id in enumerate(request.assets)
        ]
        now = self._clock()
        manifest = SalvageManifest(
            id=f"manifest_{uuid.uuid4().hex[:8]}",
            claim_id=claim_id,
            insurer_id=request.insurer_id,
            assets=assets,
            salvage_type=request.salvage_type,
            pickup_location=request.pickup_location,
            total_estimated_recovery=sum(a.estimated_recovery for a in assets),
            created_at=now,
            updated_at=now,
        )
        self._store.put(manifest.id, manifest)
        logger.info("Salvage manifest {mid} created for claim {claim}", mid=manifest.id, claim=claim_id)

        self._notify(
            topics.SALVAGE_CREATED,
            {
                "manifest_id": manifest.id,
                "claim_id": claim_id,
                "asset_ids": request.assets,
                "estimated_recovery": manifest.total_estimated_recovery,
            },
            claim_id=claim_id,
            correlation_id=correlation_id,
        )
        return manifest

    # -----------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------

    def mark_pending_pickup(self, manifest_id: str) -> SalvageManifest:
        return self._transition(manifest_id, SalvageStatus.PENDING_PICKUP)

    def cancel(self, manifest_id: str) -> SalvageManifest:
        return self._transition(manifest_id, SalvageStatus.CANCELLED)

    def list_on_bids(
        self, manifest_id: str, request: ListOnBidsRequest, *, correlation_id: str
    ) -> ListOnBidsResponse:
        manifest = self.get_manifest(manifest_id)
        _check_transition(manifest, SalvageStatus.LISTED)

        count = len(manifest.assets)
        listing_ids: list[str] = []
        for asset in manifest.assets:
            payload = {
                "item_id": asset.asset_id,
                "title": f"Salvage: {asset.name}",
                "description": (
                    f"Insurance salvage from claim {manifest.claim_id}. "
                    f"Condition: {asset.condition.value}"
                ),
                "category": asset.category,
                "starting_price": int(asset.estimated_recovery * STARTING_PRICE_RATIO),
                "reserve_price": request.reserve_price / count,
                "buy_now_price": request.buy_now_price / count if request.buy_now_price else None,
                "auction_type": request.auction_type.value,
                "duration_days": request.duration_days,
                "images": asset.image_urls,
                "provenance": {
                    "claim_id": manifest.claim_id,
                    "original_value": asset.claimed_value,
                    "salvage_reason": "Insurance claim settlement",
                },
            }
            listing_ids.append(self.bids.create_listing(payload, correlation_id))

        start = self._clock()
        self._transition(manifest_id, SalvageStatus.LISTED, listing_ids=listing_ids)
        logger.info("Manifest {mid} listed: {ids}", mid=manifest_id, ids=", ".join(listing_ids))

        self._notify(
            topics.SALVAGE_LISTED,
            {"manifest_id": manifest_id, "claim_id": manifest.claim_id, "listing_ids": listing_ids},
            claim_id=manifest.claim_id,
            correlation_id=correlation_id,
        )
        return ListOnBidsResponse(
            manifest_id=manifest_id,
            listing_ids=listing_ids,
            status=SalvageStatus.LISTED,
            auction_start=start,
            auction_end=start + timedelta(days=request.duration_days),
        )

    def handle_auction_settled(
        self,
        manifest_id: str,
        listing_id: str,
        sale_price: float,
        buyer_id: str,
        *,
        correlation_id: str,
    ) -> SalvageManifest:
        """Record the sale of one listing and write the recovery to the ledger.

        The first sale moves the manifest to SOLD. Sales of its other listings
        keep adding to ``actual_recovery``. Each listing settles once.
        """
        with self._lock:
            manifest = self.get_manifest(manifest_id)
            if manifest.status is not SalvageStatus.SOLD:
                _check_transition(manifest, SalvageStatus.SOLD)
            if listing_id not in manifest.listing_ids or listing_id in manifest.settled_listing_ids:
                raise InvalidTransitionError(
                    f"Listing {listing_id} is not open on manifest {manifest_id}",
                    details={"manifest_id": manifest_id, "listing_id": listing_id},
                )
            recovery = (manifest.actual_recovery or 0.0) + sale_price
            updated = manifest.model_copy(
                update={
                    "status": SalvageStatus.SOLD,
                    "actual_recovery": recovery,
                    "settled_listing_ids": [*manifest.settled_listing_ids, listing_id],
                    "updated_at": self._clock(),
                }
            )
            self._store.put(manifest_id, updated)
        logger.info(
            "Manifest {mid}: listing {lid} sold for {price}, recovery now {total}",
            mid=manifest_id,
            lid=listing_id,
            price=sale_price,
            total=recovery,
        )

        try:
            result = self.ledger.write_event(
                LedgerEventType.SALVAGE_RECOVERED,
                manifest_id,
                {
                    "manifest_id": manifest_id,
                    "claim_id": manifest.claim_id,
                    "listing_id": listing_id,
                    "sale_price": sale_price,
                    "buyer_id": buyer_id,
                    "total_recovery": recovery,
                },
                correlation_id=correlation_id,
                idem_key=idempotency_key(
                    LedgerEventType.SALVAGE_RECOVERED.value, f"{manifest_id}:{listing_id}"
                ),
            )
        except LedgerWriteError as exc:
            logger.warning("Salvage recovery for {mid} not written to ledger: {err}", mid=manifest_id, err=exc)
        else:
            with self._lock:
                current = self.get_manifest(manifest_id)
                updated = current.model_copy(
                    update={"ledger_event_ids": [*current.ledger_event_ids, result.event_id]}
                )
                self._store.put(manifest_id, updated)

        self._notify(
            topics.SALVAGE_RECOVERED,
            {
                "manifest_id": manifest_id,
                "claim_id": manifest.claim_id,
                "sale_price": sale_price,
                "buyer_id": buyer_id,
            },
            claim_id=manifest.claim_id,
            correlation_id=correlation_id,
        )
        return updated

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def get_manifest(self, manifest_id: str) -> SalvageManifest:
        manifest = self._store.get(manifest_id)
        if manifest is None:
            raise NotFoundError("Manifest not found", details={"manifest_id": manifest_id})
        return manifest

    def find_by_listing(self, listing_id: str) -> SalvageManifest | None:
        return next((m for m in self._store.values() if listing_id in m.listing_ids), None)

    def manifests_for_claim(self, claim_id: str) -> list[SalvageManifest]:
        return [m for m in self._store.values() if m.claim_id == claim_id]

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _transition(self, manifest_id: str, target: SalvageStatus, **changes: object) -> SalvageManifest:
        with self._lock:
            manifest = self.get_manifest(manifest_id)
            _check_transition(manifest, target)
            updated = manifest.model_copy(
                update={**changes, "status": target, "updated_at": self._clock()}
            )
            self._store.put(manifest_id, updated)
        logger.info(
            "Manifest {mid}: {old} → {new}",
            mid=manifest_id,
            old=manifest.status.value,
            new=target.value,
        )
        return updated

    def _notify(self, event_type: str, payload: dict, *, claim_id: str, correlation_id: str) -> None:
        try:
            self.bus.publish(event_type, payload, claim_id=claim_id, correlation_id=correlation_id)
        except Exception as exc:
            logger.warning("Publishing {type} failed: {err}", type=event_type, err=exc)


def _check_transition(manifest: SalvageManifest, target: SalvageStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[manifest.status]:
        raise InvalidTransitionError(
            f"Cannot move manifest from {manifest.status.value} to {target.value}",
            details={"manifest_id": manifest.id, "status": manifest.status.value},
        )
