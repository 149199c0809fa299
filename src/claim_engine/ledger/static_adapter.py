"""Deterministic ledger adapter driven by asset-id prefixes.

Used by the test suite and for local demos (``ledger=static``).  It encodes
scenarios in the asset identifier instead of consulting a real ledger:

* ``asset_ghost_*``   : asset unknown to the ledger
* ``asset_stolen_*``  : asset exists but is held by someone else
* ``asset_offline_*`` : ledger unreachable
* ``*_gap_*``         : custody history has a discontinuity
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger

from claim_engine.core.errors import VerificationError
from claim_engine.ledger.port import LedgerPort
from claim_engine.schemas.decision import VerificationResult

GHOST_PREFIX = "asset_ghost_"
STOLEN_PREFIX = "asset_stolen_"
OFFLINE_PREFIX = "asset_offline_"
GAP_MARKER = "_gap_"


class StaticLedgerAdapter(LedgerPort):
    def __init__(
        self,
        condition_delta: float = 0.05,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.condition_delta = condition_delta
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def verify_asset(self, asset_id: str, claimant_id: str) -> VerificationResult:
        if asset_id.startswith(OFFLINE_PREFIX):
            logger.error("Static ledger simulating outage for {asset}", asset=asset_id)
            raise VerificationError("Ledger unreachable", details={"asset_id": asset_id})

        verified_at = self._clock()

        if asset_id.startswith(GHOST_PREFIX):
            return VerificationResult(
                asset_match=False,
                ownership_match=False,
                provenance_gap=True,
                condition_delta=0.0,
                verified_at=verified_at,
            )

        return VerificationResult(
            asset_match=True,
            ownership_match=not asset_id.startswith(STOLEN_PREFIX),
            provenance_gap=GAP_MARKER in asset_id,
            condition_delta=self.condition_delta,
            verified_at=verified_at,
        )
