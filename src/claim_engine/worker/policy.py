"""Deterministic adjudication rule for ledger-triggered claims."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TRIGGER_TYPE = "ANCHOR_SEAL_BROKEN"
DEFAULT_PAYOUT_MICROS = "5000000000"  # 5,000.00 in micro-units
DEFAULT_CURRENCY = "USD"


class TriggerDecision(str, Enum):
    PAY = "PAY"
    REVIEW = "REVIEW"


class PolicyDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    decision: TriggerDecision
    amount_micros: str = Field(..., pattern=r"^-?\d+$")
    currency: str = Field(..., min_length=3, max_length=3)
    reason: str


class TriggerPolicy:
    """Two-outcome rule: PAY a configured trigger on a protected asset, otherwise REVIEW.

    Parameters
    ----------
    trigger_type:
        The only ledger event type that can be auto-approved.
    protection_active:
        Whether protection coverage is in force.
    payout_micros:
        Payout for an approved trigger, as an integer string of micro-units.
    currency:
        ISO-4217 code attached to every decision.
    """

    def __init__(
        self,
        trigger_type: str = DEFAULT_TRIGGER_TYPE,
        protection_active: bool = False,
        payout_micros: str = DEFAULT_PAYOUT_MICROS,
        currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self.trigger_type = trigger_type
        self.protection_active = protection_active
        self.payout_micros = str(payout_micros)
        self.currency = currency

    def evaluate(self, trigger_type: str, asset_id: str) -> PolicyDecision:
        if trigger_type != self.trigger_type:
            return PolicyDecision(
                decision=TriggerDecision.REVIEW,
                amount_micros="0",
                currency=self.currency,
                reason=f"Manual review required: trigger {trigger_type} is not auto-adjudicated",
            )
        if not self.protection_active:
            return PolicyDecision(
                decision=TriggerDecision.REVIEW,
                amount_micros="0",
                currency=self.currency,
                reason=f"Flagged for review: {trigger_type} on {asset_id} but protection inactive",
            )
        return PolicyDecision(
            decision=TriggerDecision.PAY,
            amount_micros=self.payout_micros,
            currency=self.currency,
            reason=f"Automated approval: {trigger_type} on protected asset {asset_id}",
        )
