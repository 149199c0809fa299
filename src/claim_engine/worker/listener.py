"""Ledger-listener worker: turns ledger trigger events into claims, exactly once.

For every trigger the worker derives ``claim_<trigger_id>`` and writes, in
order, ``CLAIM_OPENED``, ``CLAIM_DECISION_RECORDED`` and (PAY only)
``CLAIM_PAYOUT_AUTHORIZED``. Each write carries the claim id as correlation id
and the key ``idem:<EVENT_TYPE>:<claim_id>``, so re-applying a partially
written sequence is safe. A trigger is only marked processed, and the poll
cursor only moves past it, once the whole sequence has been accepted.
A decision already recorded on the ledger is final: a restarted worker
completes the sequence from it and never re-runs the policy.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import ValidationError

from claim_engine.core.errors import ConflictError, LedgerWriteError, VerificationError
from claim_engine.ledger.client import idempotency_key
from claim_engine.schemas.decision import Decision, DecisionRecord
from claim_engine.schemas.events import LedgerEventRecord, LedgerEventType
from claim_engine.worker.policy import DEFAULT_TRIGGER_TYPE, PolicyDecision, TriggerDecision

if TYPE_CHECKING:
    from claim_engine.audit.service import AuditService
    from claim_engine.ledger.client import LedgerClient
    from claim_engine.worker.policy import TriggerPolicy

AUTHORIZED_BY = "internal_policy_engine"


def claim_id_for(trigger_id: str) -> str:
    """Deterministic claim id for a trigger event."""
    return f"claim_{trigger_id}"


class LedgerListener:
    def __init__(
        self,
        client: LedgerClient,
        policy: TriggerPolicy,
        audit: AuditService | None = None,
        trigger_type: str = DEFAULT_TRIGGER_TYPE,
        poll_interval: float = 2.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.policy = policy
        self.audit = audit
        self.trigger_type = trigger_type
        self.poll_interval = poll_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._processed: set[str] = set()
        self._cursor: str | None = None
        self._stop = threading.Event()

    @property
    def cursor(self) -> str | None:
        """Id of the last ledger event fully handled."""
        return self._cursor

    # -----------------------------------------------------------------
    # Polling
    # -----------------------------------------------------------------

    def poll_once(self) -> int:
        """Fetch triggers after the cursor and process them in ledger order.

        Returns the number of triggers that produced a new claim. A trigger
        that fails stops the cycle; it and everything after it are retried on
        the next poll.

        Raises
        ------
        VerificationError
            The trigger page itself could not be read.
        """
        events = self.client.list_events(after=self._cursor, types=[self.trigger_type])
        created = 0
        for event in events:
            if event.event_type == self.trigger_type:
                logger.info("Detected trigger {id}", id=event.event_id)
                try:
                    if self.process_trigger(event.event_id, event.event_type, event.payload):
                        created += 1
                except (LedgerWriteError, VerificationError) as exc:
                    logger.warning(
                        "Trigger {id} left unprocessed, retrying next poll: {err}",
                        id=event.event_id,
                        err=exc.message,
                    )
                    break
            self._cursor = event.event_id
        return created

    def process_trigger(self, trigger_id: str, trigger_type: str, payload: dict[str, Any]) -> bool:
        """Open, decide and (if PAY) authorize the claim for one trigger.

        Returns ``True`` when the sequence was written, ``False`` when the
        trigger was skipped (already processed, or no ``asset_id``).

        Raises
        ------
        LedgerWriteError
            A write in the sequence failed. The trigger is not marked processed.
        VerificationError
            The remote duplicate check could not be performed.
        """
        claim_id = claim_id_for(trigger_id)
        with logger.contextualize(correlation_id=claim_id):
            # ── 1. Duplicate checks: local, audit, remote ───────────────
            if claim_id in self._processed:
                logger.debug("Claim {claim} already processed locally", claim=claim_id)
                return False

            asset_id = payload.get("asset_id")
            if not asset_id:
                logger.warning("Trigger {id} has no asset_id; skipping", id=trigger_id)
                return False

            if self.audit is not None and self.audit.has_record(claim_id):
                logger.info("Claim {claim} already sealed; skipping", claim=claim_id)
                self._processed.add(claim_id)
                return False

            history = self.client.events_by_subject(claim_id)
            decision = _recorded_decision(claim_id, history)
            if decision is None:
                decision = self.policy.evaluate(trigger_type, str(asset_id))
            else:
                logger.info(
                    "Claim {claim} already decided on the ledger: {decision}",
                    claim=claim_id,
                    decision=decision.decision.value,
                )
            recorded = {e.event_type for e in history}
            if _sequence_for(decision) <= recorded:
                logger.info("Claim {claim} already on the ledger; skipping", claim=claim_id)
                self._processed.add(claim_id)
                return False
            if LedgerEventType.CLAIM_OPENED.value in recorded:
                logger.warning("Claim {claim} has a partial event sequence; re-applying", claim=claim_id)

            # ── 2. Ordered canonical writes ─────────────────────────────
            self._write(
                LedgerEventType.CLAIM_OPENED,
                claim_id,
                {
                    "claim_id": claim_id,
                    "asset_id": str(asset_id),
                    "trigger_event_id": trigger_id,
                    "trigger_event_type": trigger_type,
                },
            )
            self._write(
                LedgerEventType.CLAIM_DECISION_RECORDED,
                claim_id,
                {
                    "claim_id": claim_id,
                    "decision": decision.decision.value,
                    "amount_micros": decision.amount_micros,
                    "currency": decision.currency,
                    "reason": decision.reason,
                },
            )
            if decision.decision is TriggerDecision.PAY:
                self._write(
                    LedgerEventType.CLAIM_PAYOUT_AUTHORIZED,
                    claim_id,
                    {
                        "claim_id": claim_id,
                        "amount_micros": decision.amount_micros,
                        "currency": decision.currency,
                        "authorized_by_event_id": AUTHORIZED_BY,
                    },
                )

            # ── 3. Seal and remember ────────────────────────────────────
            self._seal(claim_id, decision)
            self._processed.add(claim_id)
            logger.info(
                "Claim {claim} opened from trigger {id}: {decision}",
                claim=claim_id,
                id=trigger_id,
                decision=decision.decision.value,
            )
            return True

    # -----------------------------------------------------------------
    # Loop control
    # -----------------------------------------------------------------

    def run(self) -> None:
        """Poll until :meth:`stop` is called. The in-flight poll always completes."""
        logger.info(
            "Ledger listener started (trigger={type}, interval={s}s)",
            type=self.trigger_type,
            s=self.poll_interval,
        )
        while not self._stop.is_set():
            try:
                self.poll_once()
            except VerificationError as exc:
                logger.warning("Ledger poll failed: {err}", err=exc.message)
            except Exception:
                logger.exception("Unexpected error during ledger poll")
            self._stop.wait(self.poll_interval)
        logger.info("Ledger listener stopped (cursor={cursor})", cursor=self._cursor)

    def stop(self) -> None:
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Stop gracefully on SIGINT / SIGTERM."""

        def _handle(signum: int, _frame: object) -> None:
            logger.info("Received {sig}; finishing current poll", sig=signal.Signals(signum).name)
            self.stop()

        signal.signal(signal.SIGINT, _handle)
        signal.signal(signal.SIGTERM, _handle)

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _write(self, event_type: LedgerEventType, claim_id: str, payload: dict[str, Any]) -> None:
        logger.info("Writing {type}", type=event_type.value)
        self.client.write_event(
            event_type,
            claim_id,
            payload,
            correlation_id=claim_id,
            idem_key=idempotency_key(event_type.value, claim_id),
        )

    def _seal(self, claim_id: str, decision: PolicyDecision) -> None:
        if self.audit is None:
            return
        record = DecisionRecord(
            claim_id=claim_id,
            decision=Decision.PAY if decision.decision is TriggerDecision.PAY else Decision.FLAG,
            confidence_score=1.0,
            rationale=decision.reason,
            evidence_chain=[],
            finalized_at=self._clock(),
        )
        try:
            self.audit.commit(record)
        except ConflictError:
            logger.warning("Claim {claim} was sealed concurrently; keeping existing entry", claim=claim_id)


def _recorded_decision(claim_id: str, history: list[LedgerEventRecord]) -> PolicyDecision | None:
    """The decision already written for ``claim_id``, if any.

    A recorded decision is final: a restarted worker completes the sequence
    from it instead of re-running the policy.
    """
    for event in history:
        if event.event_type != LedgerEventType.CLAIM_DECISION_RECORDED.value:
            continue
        data = {"reason": "Decision replayed from the ledger", **event.payload}
        try:
            return PolicyDecision.model_validate(
                {k: data.get(k) for k in ("decision", "amount_micros", "currency", "reason")}
            )
        except ValidationError as exc:
            raise VerificationError(
                f"Recorded decision for {claim_id} is unreadable",
                details={"event_id": event.event_id, "reason": str(exc)},
            ) from exc
    return None


def _sequence_for(decision: PolicyDecision) -> set[str]:
    types = {LedgerEventType.CLAIM_OPENED.value, LedgerEventType.CLAIM_DECISION_RECORDED.value}
    if decision.decision is TriggerDecision.PAY:
        types.add(LedgerEventType.CLAIM_PAYOUT_AUTHORIZED.value)
    return types
