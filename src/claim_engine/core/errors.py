"""Error taxonomy shared by every component and mapped to HTTP by the API layer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """A single failing field reported by the intake gate."""

    field: str = Field(..., description="Dotted path of the failing field")
    message: str = Field(..., description="Human-readable reason")


class ClaimEngineError(Exception):
    """Base class for errors that carry an HTTP status and a stable code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailure(ClaimEngineError):
    """Client-fixable input error. Carries one entry per failing field."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[FieldError], message: str = "Claim failed validation") -> None:
        super().__init__(message, details={"fields": [e.model_dump() for e in errors]})
        self.errors = errors


class VerificationError(ClaimEngineError):
    """The ledger could not be consulted. Never interpreted as a pass."""

    status_code = 502
    code = "LEDGER_UNREACHABLE"


class LedgerWriteError(ClaimEngineError):
    """A canonical ledger write was rejected or could not be delivered."""

    status_code = 502
    code = "LEDGER_WRITE_FAILED"


class ConflictError(ClaimEngineError):
    """Duplicate or tamper attempt against an already-sealed record."""

    status_code = 409
    code = "CONFLICT"


class NotFoundError(ClaimEngineError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransitionError(ClaimEngineError):
    """A state machine rejected the requested transition."""

    status_code = 400
    code = "INVALID_TRANSITION"


class InternalError(ClaimEngineError):
    status_code = 500
    code = "INTERNAL_ERROR"
