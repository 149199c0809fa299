"""Scoring constants for the deterministic risk engine.

These values are business and regulatory policy. Change them only with a
matching change to the audit documentation; the engine never inlines them.
"""

BASE_SCORE = 100
MIN_SCORE = 0

# Soft penalties
OWNERSHIP_GAP_PENALTY = 50  # discontinuous or very recent custody
LOCATION_MISMATCH_PENALTY = 20  # incident outside the policy's covered region

# Decision thresholds (inclusive lower bounds)
AUTO_APPROVE_THRESHOLD = 90
MANUAL_REVIEW_THRESHOLD = 70

# Rationale strings
LEDGER_MISMATCH_RATIONALE = "Ledger Mismatch"
OWNERSHIP_GAP_RATIONALE = f"Provenance gap in custody history (-{OWNERSHIP_GAP_PENALTY})"
LOCATION_MISMATCH_RATIONALE = (
    f"Incident location outside policy region (-{LOCATION_MISMATCH_PENALTY})"
)
