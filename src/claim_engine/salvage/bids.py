"""Client for the Bids auction platform used to list salvage."""

from __future__ import annotations

import hashlib
from typing import Any

import requests
from loguru import logger


def fallback_listing_id(item_id: str, correlation_id: str) -> str:
    """Deterministic listing id used when the auction platform is unavailable."""
    digest = hashlib.sha256(f"{item_id}{correlation_id}".encode("utf-8")).hexdigest()
    return f"listing_{digest[:8]}"


class BidsClient:
    """Creates auction listings via ``POST {base_url}/v1/bids/listings``.

    Listing never blocks settlement: on any transport or HTTP error the client
    logs a warning and returns a deterministic placeholder id, so a retry with
    the same correlation id yields the same listing reference.
    """

    def __init__(
        self,
        base_url: str | None,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.session = session or requests.Session()

    def create_listing(self, payload: dict[str, Any], correlation_id: str) -> str:
        item_id = str(payload["item_id"])
        if not self.base_url:
            return fallback_listing_id(item_id, correlation_id)

        try:
            resp = self.session.post(
                f"{self.base_url}/v1/bids/listings",
                json=payload,
                headers={"X-Source-App": "claim-engine", "X-Correlation-Id": correlation_id},
                timeout=self.timeout,
            )
            if resp.ok:
                data = resp.json()
                listing_id = data.get("listing_id") or data.get("id")
                if listing_id:
                    return str(listing_id)
            logger.warning(
                "Bids API returned HTTP {status} for {item}; using fallback listing id",
                status=resp.status_code,
                item=item_id,
            )
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Bids API unavailable for {item}: {err}", item=item_id, err=exc)

        return fallback_listing_id(item_id, correlation_id)
