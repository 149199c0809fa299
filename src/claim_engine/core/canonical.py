"""Canonical JSON serialization used for audit seals and ledger envelope hashes.

Keys are sorted, separators are compact and non-ASCII text is kept literal, so
the same record always produces the same bytes regardless of insertion order.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel


def canonical_json(value: Any) -> str:
    """Return the canonical JSON text for *value* (a model or plain data)."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(value: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of *value*."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()
