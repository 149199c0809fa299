"""Pre-loss provenance lookups for insured items.

Scores are delegated to the external scoring service.  When it cannot be
reached the service falls back to a local heuristic so claims handlers still
get an answer; the ``scored_by`` field tells them which one they got.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import requests
from loguru import logger

from claim_engine.core.errors import NotFoundError
from claim_engine.core.store import InMemoryKeyedStore, KeyedStore
from claim_engine.schemas.provenance import (
    ClaimReadiness,
    EvidencePackage,
    ItemProvenanceRecord,
    PreLossProvenance,
)

STALE_VERIFICATION_AGE = timedelta(days=365)
MAX_OWNERSHIP_TRANSFERS = 3
LOW_PROVENANCE_SCORE = 50
HIGH_VALUE_THRESHOLD = 5000.0


class ProvenanceService:
    def __init__(
        self,
        core_url: str | None = None,
        timeout: float = 3.0,
        store: KeyedStore[str, ItemProvenanceRecord] | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.core_url = core_url.rstrip("/") if core_url else None
        self.timeout = timeout
        self.session = session or requests.Session()
        self._store: KeyedStore[str, ItemProvenanceRecord] = store or InMemoryKeyedStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    # -----------------------------------------------------------------
    # Index maintenance
    # -----------------------------------------------------------------

    def index_item(self, record: ItemProvenanceRecord) -> None:
        self._store.put(record.item_id, record)
        logger.info(
            "Indexed provenance for item {item} (score={score})",
            item=record.item_id,
            score=record.provenance_score,
        )

    def update_item(self, item_id: str, **updates: Any) -> bool:
        """Apply partial updates to an indexed item. Unknown items are ignored.

        Raises ``pydantic.ValidationError`` when the updated record is invalid.
        """
        with self._lock:
            existing = self._store.get(item_id)
            if existing is None:
                logger.debug("Provenance update for unindexed item {item} ignored", item=item_id)
                return False
            updated = ItemProvenanceRecord.model_validate(
                {**existing.model_dump(), **updates, "updated_at": self._clock()}
            )
            self._store.put(item_id, updated)
        return True

    def get_item(self, item_id: str) -> ItemProvenanceRecord | None:
        return self._store.get(item_id)

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    def get_preloss_provenance(self, item_id: str) -> PreLossProvenance:
        record = self._store.get(item_id)
        if record is None:
            raise NotFoundError("Item has no indexed provenance", details={"item_id": item_id})

        scored = self._score_remotely(record)
        if scored is not None:
            return scored
        return self.calculate_local(record)

    def calculate_local(self, record: ItemProvenanceRecord) -> PreLossProvenance:
        """Heuristic readiness tier and fraud flags computed from the indexed record."""
        return _build(
            record,
            score=record.provenance_score,
            readiness=claim_readiness(record),
            flags=fraud_flags(record, self._clock()),
            scored_by="local-fallback",
        )

    def _score_remotely(self, record: ItemProvenanceRecord) -> PreLossProvenance | None:
        if not self.core_url:
            return None
        body = {
            "photo_count": record.photo_count,
            "receipt_count": record.receipt_count,
            "warranty_count": record.warranty_count,
            "genome_verified": record.genome_verified,
            "ownership_transfers": record.ownership_transfers,
            "last_verified_at": record.last_verified_at.isoformat(),
            "documented_value": record.documented_value,
        }
        try:
            resp = self.session.post(
                f"{self.core_url}/api/v1/provenance/score", json=body, timeout=self.timeout
            )
            resp.raise_for_status()
            data = resp.json()["data"]
            return _build(
                record,
                score=int(data["score"]),
                readiness=ClaimReadiness(data["claim_readiness"]),
                flags=list(data.get("fraud_flags") or []),
                scored_by="core",
            )
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Provenance scoring unavailable for {item}, using local heuristic: {err}",
                item=record.item_id,
                err=exc,
            )
            return None


# ---------------------------------------------------------------------------
# Local heuristics
# ---------------------------------------------------------------------------


def claim_readiness(record: ItemProvenanceRecord) -> ClaimReadiness:
    points = 0
    if record.photo_count >= 4:
        points += 30
    elif record.photo_count >= 2:
        points += 15
    if record.receipt_count >= 1:
        points += 25
    if record.genome_verified:
        points += 25
    if record.provenance_score >= 80:
        points += 20
    elif record.provenance_score >= 60:
        points += 10

    if points >= 80:
        return ClaimReadiness.HIGH
    if points >= 50:
        return ClaimReadiness.MEDIUM
    return ClaimReadiness.LOW


def fraud_flags(record: ItemProvenanceRecord, now: datetime) -> list[str]:
    flags: list[str] = []
    if now - record.last_verified_at > STALE_VERIFICATION_AGE:
        flags.append("STALE_VERIFICATION")
    if record.ownership_transfers > MAX_OWNERSHIP_TRANSFERS:
        flags.append("HIGH_OWNERSHIP_VOLATILITY")
    if record.provenance_score < LOW_PROVENANCE_SCORE:
        flags.append("LOW_PROVENANCE_SCORE")
    if not record.genome_verified and record.documented_value > HIGH_VALUE_THRESHOLD:
        flags.append("HIGH_VALUE_UNVERIFIED")
    if record.fraud_flagged:
        flags.append("EXTERNAL_FRAUD_FLAG")
    return flags


def _build(
    record: ItemProvenanceRecord,
    *,
    score: int,
    readiness: ClaimReadiness,
    flags: list[str],
    scored_by: str,
) -> PreLossProvenance:
    return PreLossProvenance(
        item_id=record.item_id,
        provenance_score=score,
        documented_value=record.documented_value,
        evidence_package=EvidencePackage(
            photos=record.photo_count,
            receipts=record.receipt_count,
            genome_verified=record.genome_verified,
            last_condition_score=record.condition_score,
            warranties=record.warranty_count,
        ),
        claim_readiness=readiness,
        ownership_history=record.ownership_transfers,
        last_verified=record.last_verified_at,
        fraud_flags=flags,
        scored_by=scored_by,
    )
