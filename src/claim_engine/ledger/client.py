"""Ledger client: writes canonical event envelopes and reads event history.

The ledger is append-only and deduplicates by ``idempotency_key``, so writes
may be repeated safely as long as the key is derived deterministically.

Wire contract::

    POST /api/v1/events                      body: LedgerEnvelope
    GET  /api/v1/events?after=<id>&types=<T> → {"events": [...], "next_cursor": ...}
    GET  /api/v1/events/by-subject/<subject> → {"events": [...]}
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import requests
from loguru import logger

from claim_engine.core.canonical import sha256_hex
from claim_engine.core.errors import LedgerWriteError, VerificationError
from claim_engine.schemas.events import (
    LedgerEnvelope,
    LedgerEventRecord,
    LedgerEventType,
    LedgerWriteResult,
)


def idempotency_key(event_type: str, subject_id: str) -> str:
    """Deterministic key ``idem:<EVENT_TYPE>:<subject_id>``."""
    return f"idem:{event_type}:{subject_id}"


def build_envelope(
    event_type: str,
    subject: str,
    payload: dict[str, Any],
    *,
    correlation_id: str,
    idem_key: str,
    producer: str,
    occurred_at: datetime,
) -> LedgerEnvelope:
    """Build an envelope whose ``canonical_hash_hex`` covers every other field."""
    unsealed = LedgerEnvelope(
        event_type=event_type,
        occurred_at=occurred_at,
        correlation_id=correlation_id,
        idempotency_key=idem_key,
        producer=producer,
        subject=subject,
        payload=payload,
    )
    digest = sha256_hex(unsealed.model_dump(mode="json", exclude={"canonical_hash_hex"}))
    return unsealed.model_copy(update={"canonical_hash_hex": digest})


class LedgerClient:
    """Thin ``requests`` wrapper around the ledger event API.

    Parameters
    ----------
    base_url:
        Root URL of the ledger.
    api_key:
        Sent as ``x-api-key``. Required when ``require_https`` is set.
    producer:
        Value of the envelope ``producer`` field.
    timeout:
        Request timeout in seconds.
    require_https:
        Production guard: refuse plain-HTTP ledgers and missing keys.
    dry_run:
        Build and record envelopes without sending them. Reads are answered
        from the recorded envelopes. Used with the static ledger profile.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        producer: str = "claim-engine",
        timeout: float = 5.0,
        require_https: bool = False,
        dry_run: bool = False,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if require_https:
            if not api_key:
                raise ValueError("ledger.api_key is required when ledger.require_https is set")
            if not base_url.startswith("https://"):
                raise ValueError("ledger.base_url must use https when ledger.require_https is set")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.producer = producer
        self.timeout = timeout
        self.dry_run = dry_run
        self.session = session or requests.Session()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._written: list[LedgerEnvelope] = []

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    def write_event(
        self,
        event_type: LedgerEventType | str,
        subject: str,
        payload: dict[str, Any],
        *,
        correlation_id: str,
        idem_key: str | None = None,
    ) -> LedgerWriteResult:
        """Append one event. Raises :class:`LedgerWriteError` on any failure."""
        type_name = event_type.value if isinstance(event_type, LedgerEventType) else event_type
        envelope = build_envelope(
            type_name,
            subject,
            payload,
            correlation_id=correlation_id,
            idem_key=idem_key or idempotency_key(type_name, subject),
            producer=self.producer,
            occurred_at=self._clock(),
        )

        if self.dry_run:
            logger.debug("Dry-run ledger write {type} | {key}", type=type_name, key=envelope.idempotency_key)
            return self._record_locally(envelope)

        url = f"{self.base_url}/api/v1/events"
        logger.debug("POST {url} | {type} | {key}", url=url, type=type_name, key=envelope.idempotency_key)
        try:
            resp = self.session.post(
                url,
                json=envelope.model_dump(mode="json"),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Ledger write {type} failed: {err}", type=type_name, err=exc)
            raise LedgerWriteError(
                f"Ledger write {type_name} failed", details={"reason": str(exc)}
            ) from exc

        if not 200 <= resp.status_code < 300:
            logger.error(
                "Ledger write {type} rejected: HTTP {status}",
                type=type_name,
                status=resp.status_code,
            )
            raise LedgerWriteError(
                f"Ledger write {type_name} rejected with HTTP {resp.status_code}",
                details={"status": resp.status_code},
            )

        try:
            body = resp.json()
        except ValueError:
            body = {}
        return LedgerWriteResult(
            event_id=str(body.get("event_id") or envelope.canonical_hash_hex[:16]),
            sequence_number=body.get("sequence_number"),
            entry_hash=body.get("entry_hash"),
            created_at=body.get("created_at"),
        )

    def write_claim_created(
        self,
        claim_id: str,
        claimant_id: str,
        asset_id: str,
        incident_type: str,
        claim_amount: float,
        *,
        correlation_id: str,
    ) -> LedgerWriteResult:
        return self.write_event(
            LedgerEventType.CLAIM_CREATED,
            claim_id,
            {
                "claim_id": claim_id,
                "claimant_id": claimant_id,
                "asset_id": asset_id,
                "incident_type": incident_type,
                "claim_amount": claim_amount,
                "status": "INTAKE",
            },
            correlation_id=correlation_id,
        )

    def write_claim_settled(
        self,
        claim_id: str,
        asset_id: str,
        decision: str,
        seal: str,
        *,
        correlation_id: str,
        settlement_amount: float | None = None,
    ) -> LedgerWriteResult:
        return self.write_event(
            LedgerEventType.CLAIM_SETTLED,
            claim_id,
            {
                "claim_id": claim_id,
                "asset_id": asset_id,
                "decision": decision,
                "seal": seal,
                "settlement_amount": settlement_amount,
            },
            correlation_id=correlation_id,
        )

    def write_custody_changed(
        self,
        item_id: str,
        from_state: str,
        to_state: str,
        reason: str,
        *,
        correlation_id: str,
    ) -> LedgerWriteResult:
        return self.write_event(
            LedgerEventType.CUSTODY_CHANGED,
            item_id,
            {"item_id": item_id, "from_state": from_state, "to_state": to_state, "reason": reason},
            correlation_id=correlation_id,
            idem_key=idempotency_key(
                LedgerEventType.CUSTODY_CHANGED.value, f"{item_id}:{from_state}:{to_state}"
            ),
        )

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def list_events(
        self, *, after: str | None = None, types: list[str] | None = None
    ) -> list[LedgerEventRecord]:
        """Return events newer than *after*, optionally filtered by type."""
        if self.dry_run:
            return []
        params: dict[str, str] = {}
        if after:
            params["after"] = after
        if types:
            params["types"] = ",".join(types)
        return self._read(f"{self.base_url}/api/v1/events", params)

    def events_by_subject(self, subject: str) -> list[LedgerEventRecord]:
        if self.dry_run:
            return [
                LedgerEventRecord(
                    event_id=e.canonical_hash_hex[:16],
                    event_type=e.event_type,
                    subject=e.subject,
                    payload=e.payload,
                )
                for e in self.written_events
                if e.subject == subject
            ]
        return self._read(f"{self.base_url}/api/v1/events/by-subject/{quote(subject, safe='')}", {})

    @property
    def written_events(self) -> list[LedgerEnvelope]:
        """Envelopes recorded in dry-run mode. Always empty when writes go to the ledger."""
        return list(self._written)

    # -----------------------------------------------------------------
    # Internal request helpers
    # -----------------------------------------------------------------

    def _read(self, url: str, params: dict[str, str]) -> list[LedgerEventRecord]:
        try:
            resp = self.session.get(
                url, params=params, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise VerificationError("Ledger read failed", details={"reason": str(exc)}) from exc

        if resp.status_code == 404:
            return []
        if not 200 <= resp.status_code < 300:
            raise VerificationError(
                f"Ledger read returned HTTP {resp.status_code}",
                details={"status": resp.status_code},
            )
        try:
            events = resp.json().get("events") or []
            return [LedgerEventRecord.model_validate(e) for e in events]
        except (ValueError, AttributeError) as exc:
            raise VerificationError("Ledger returned an unreadable event page") from exc

    def _record_locally(self, envelope: LedgerEnvelope) -> LedgerWriteResult:
        # Same idempotency key, same result: the ledger's dedup rule.
        for existing in self._written:
            if existing.idempotency_key == envelope.idempotency_key:
                return LedgerWriteResult(event_id=existing.canonical_hash_hex[:16])
        self._written.append(envelope)
        return LedgerWriteResult(
            event_id=envelope.canonical_hash_hex[:16],
            sequence_number=len(self._written),
            created_at=envelope.occurred_at.isoformat(),
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers
