"""Abstract port for verifying asset custody against the ledger."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from claim_engine.schemas.decision import VerificationResult


class LedgerPort(ABC):
    """Contract for ledger truth verification.

    Implementations must be idempotent and side-effect free, and must fail
    closed: when the ledger cannot be consulted they raise
    :class:`~claim_engine.core.errors.VerificationError` instead of returning
    a degraded result.
    """

    @abstractmethod
    def verify_asset(self, asset_id: str, claimant_id: str) -> VerificationResult:
        """Verify that *asset_id* exists and is currently held by *claimant_id*.

        Parameters
        ----------
        asset_id:
            Ledger asset identifier taken from the claim.
        claimant_id:
            Identifier of the party filing the claim.

        Returns
        -------
        VerificationResult
            A fresh result. Unknown assets yield ``asset_match=False``,
            ``ownership_match=False`` and ``provenance_gap=True``.
        """
        ...
