"""Append-only, tamper-evident store of sealed decision records.

This is the single source of truth for "has this claim already been decided".
The orchestrator, the ledger-listener worker and the salvage gate all consult
it rather than deriving that state themselves.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger

from claim_engine.core.canonical import sha256_hex
from claim_engine.core.errors import ConflictError, NotFoundError
from claim_engine.core.store import InMemoryKeyedStore, KeyedStore
from claim_engine.logging.setup import SECURITY_LEVEL
from claim_engine.schemas.decision import AuditEntry, DecisionRecord


def compute_seal(record: DecisionRecord) -> str:
    """SHA-256 over the canonical JSON serialization of *record*."""
    return sha256_hex(record)


class AuditService:
    def __init__(
        self,
        store: KeyedStore[str, AuditEntry] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store: KeyedStore[str, AuditEntry] = store or InMemoryKeyedStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def commit(self, record: DecisionRecord) -> str:
        """Seal and persist *record*, returning the seal.

        Raises
        ------
        ConflictError
            An entry already exists for ``record.claim_id``. The existing
            entry is left untouched and the attempt is logged as a security
            event.
        """
        seal = compute_seal(record)
        entry = AuditEntry(record=record, seal=seal, sealed_at=self._clock())

        if not self._store.put_if_absent(record.claim_id, entry):
            logger.log(
                SECURITY_LEVEL,
                "Tamper attempt: audit record already exists for claim {claim}",
                claim=record.claim_id,
                attempted_decision=record.decision.value,
            )
            raise ConflictError(
                "Audit record already exists for this claim",
                details={"claim_id": record.claim_id},
            )

        logger.info(
            "Audit sealed claim {claim} :: {decision} :: {seal}…",
            claim=record.claim_id,
            decision=record.decision.value,
            seal=seal[:8],
        )
        return seal

    def get_record(self, claim_id: str) -> AuditEntry:
        entry = self._store.get(claim_id)
        if entry is None:
            raise NotFoundError("Claim not found in audit log", details={"claim_id": claim_id})
        return entry

    def has_record(self, claim_id: str) -> bool:
        return self._store.get(claim_id) is not None

    @staticmethod
    def verify_seal(entry: AuditEntry) -> bool:
        """Recompute the seal of a stored entry and compare."""
        return compute_seal(entry.record) == entry.seal
