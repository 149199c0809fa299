"""Ledger verification adapter backed by the ledger's HTTP custody API."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import requests
from loguru import logger
from pydantic import BaseModel, ValidationError

from claim_engine.core.errors import VerificationError
from claim_engine.ledger.port import LedgerPort
from claim_engine.schemas.decision import VerificationResult


class CustodyEvent(BaseModel):
    """One entry of an asset's custody history as served by the ledger."""

    actor: Optional[str] = None
    previous_actor: Optional[str] = None
    occurred_at: Optional[datetime] = None
    condition_score: Optional[float] = None


class HttpLedgerAdapter(LedgerPort):
    """Verify custody via ``GET {base_url}/api/v1/assets/{asset_id}/custody``.

    Parameters
    ----------
    base_url:
        Root URL of the ledger service.
    api_key:
        Sent as ``x-api-key``.
    timeout:
        Per-request timeout in seconds. There is no retry here; the caller
        decides what to do with a :class:`VerificationError`.
    recent_transfer_days:
        A custody transfer newer than this is treated as a provenance gap.
    session:
        Optional ``requests.Session`` (injected by tests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 5.0,
        recent_transfer_days: int = 30,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.recent_transfer = timedelta(days=recent_transfer_days)
        self.session = session or requests.Session()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -----------------------------------------------------------------
    # LedgerPort
    # -----------------------------------------------------------------

    def verify_asset(self, asset_id: str, claimant_id: str) -> VerificationResult:
        history = self._fetch_custody(asset_id)
        verified_at = self._clock()

        # ── 1. Unknown asset: maximally suspicious ──────────────────────
        if history is None:
            logger.warning("Asset {asset} not found on ledger", asset=asset_id)
            return VerificationResult(
                asset_match=False,
                ownership_match=False,
                provenance_gap=True,
                condition_delta=0.0,
                verified_at=verified_at,
            )

        if not history:
            logger.warning("Asset {asset} has no custody events", asset=asset_id)
            return VerificationResult(
                asset_match=True,
                ownership_match=False,
                provenance_gap=True,
                condition_delta=0.0,
                verified_at=verified_at,
            )

        # ── 2. Latest custodian must be the claimant ────────────────────
        latest = history[-1]
        ownership_match = latest.actor == claimant_id

        result = VerificationResult(
            asset_match=True,
            ownership_match=ownership_match,
            provenance_gap=self._has_gap(history, verified_at),
            condition_delta=_condition_delta(history),
            verified_at=verified_at,
        )
        logger.info(
            "Ledger verified {asset}: ownership={own} gap={gap}",
            asset=asset_id,
            own=result.ownership_match,
            gap=result.provenance_gap,
        )
        return result

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _fetch_custody(self, asset_id: str) -> list[CustodyEvent] | None:
        """Return the custody history oldest→newest, ``None`` if the asset is unknown."""
        url = f"{self.base_url}/api/v1/assets/{quote(asset_id, safe='')}/custody"
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Ledger lookup for {asset} failed: {err}", asset=asset_id, err=exc)
            raise VerificationError(
                "Ledger unreachable", details={"asset_id": asset_id, "reason": str(exc)}
            ) from exc

        if resp.status_code == 404:
            return None
        if not 200 <= resp.status_code < 300:
            logger.error(
                "Ledger lookup for {asset} returned HTTP {status}",
                asset=asset_id,
                status=resp.status_code,
            )
            raise VerificationError(
                f"Ledger returned HTTP {resp.status_code}",
                details={"asset_id": asset_id, "status": resp.status_code},
            )

        try:
            body = resp.json()
            events = body["events"]
        except (ValueError, KeyError, TypeError) as exc:
            raise VerificationError(
                "Ledger returned an unreadable custody history", details={"asset_id": asset_id}
            ) from exc
        if not isinstance(events, list):
            raise VerificationError(
                "Ledger returned an unreadable custody history", details={"asset_id": asset_id}
            )
        try:
            return [CustodyEvent.model_validate(e) for e in events]
        except ValidationError as exc:
            logger.error("Malformed custody event for {asset}: {err}", asset=asset_id, err=exc)
            raise VerificationError(
                "Ledger returned an unreadable custody history",
                details={"asset_id": asset_id, "reason": str(exc)},
            ) from exc

    def _has_gap(self, history: list[CustodyEvent], now: datetime) -> bool:
        for prev, curr in zip(history, history[1:]):
            if curr.previous_actor != prev.actor:
                return True

        latest = history[-1]
        if len(history) > 1 and latest.occurred_at is not None:
            transferred_at = latest.occurred_at
            if transferred_at.tzinfo is None:
                transferred_at = transferred_at.replace(tzinfo=timezone.utc)
            if now - transferred_at < self.recent_transfer:
                return True
        return False


def _condition_delta(history: list[CustodyEvent]) -> float:
    """Degradation between the first and last recorded condition score, in [0, 1]."""
    scores = [e.condition_score for e in history if e.condition_score is not None]
    if len(scores) < 2:
        return 0.0
    return min(1.0, max(0.0, scores[0] - scores[-1]))
