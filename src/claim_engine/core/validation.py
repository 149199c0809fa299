"""Intake gate: the single point where untrusted payloads become trusted claims."""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Mapping
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from claim_engine.core.errors import FieldError
from claim_engine.schemas.claim import Claim, ClaimSubmission


class IntakeResult(BaseModel):
    """Outcome of :func:`ingest`: either a claim or the list of failing fields."""

    claim: Optional[Claim] = None
    narrative: Optional[str] = None
    claim_amount: float = 0.0
    errors: list[FieldError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.claim is not None


def hash_narrative(text: str) -> str:
    """Return the SHA-256 hex digest stored in ``incident_vector.description_hash``."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_claim_id(claim_id: str) -> str:
    """Canonical form of a claim id as used for audit keys.

    UUIDs are sealed in lowercase hyphenated form. Other ids pass through.
    """
    try:
        return str(uuid.UUID(claim_id))
    except ValueError:
        return claim_id


def ingest(raw: Any) -> IntakeResult:
    """Validate a raw submission and return a trusted :class:`Claim`.

    Checks performed (all of them, so every failing field is reported):

    1. ``id`` is a UUID and ``intake_timestamp`` a timezone-aware ISO-8601 instant.
    2. ``incident_vector.severity`` is an integer in ``[1, 10]``.
    3. ``incident_vector.type`` and ``status`` belong to their enumerations.
    4. ``incident_vector.location`` is a GeoJSON point with in-range coordinates.
    5. When a raw ``narrative`` is supplied, its hash equals ``description_hash``.

    Malformed input never raises; it produces an :class:`IntakeResult` whose
    ``errors`` enumerate every failing field.
    """
    if not isinstance(raw, Mapping):
        logger.warning("Intake rejected non-object payload of type {t}", t=type(raw).__name__)
        return IntakeResult(
            errors=[FieldError(field="$", message="Claim payload must be a JSON object")]
        )

    try:
        submission = ClaimSubmission.model_validate(dict(raw))
    except ValidationError as exc:
        errors = [_to_field_error(err) for err in exc.errors()]
        logger.warning(
            "Intake rejected claim {id}: {n} failing field(s)",
            id=raw.get("id", "<missing>"),
            n=len(errors),
        )
        return IntakeResult(errors=errors)

    # ── Narrative integrity ─────────────────────────────────────────────
    if submission.narrative is not None:
        expected = submission.incident_vector.description_hash
        if hash_narrative(submission.narrative) != expected:
            logger.warning("Intake rejected claim {id}: narrative hash mismatch", id=submission.id)
            return IntakeResult(
                errors=[
                    FieldError(
                        field="narrative",
                        message="SHA-256 of narrative does not match incident_vector.description_hash",
                    )
                ]
            )

    claim = submission.to_claim()
    logger.info("Claim {id} passed intake", id=claim.id)
    return IntakeResult(
        claim=claim,
        narrative=submission.narrative,
        claim_amount=submission.claim_amount,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_field_error(err: Mapping[str, Any]) -> FieldError:
    """Flatten a pydantic error entry into a dotted-path :class:`FieldError`."""
    path = ".".join(str(part) for part in err.get("loc", ())) or "$"
    return FieldError(field=path, message=str(err.get("msg", "invalid value")))
