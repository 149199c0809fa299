"""Shared fixtures for the claim engine test suite."""

from __future__ import annotations

import csv
import hashlib
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from omegaconf import OmegaConf

from claim_engine.audit.service import AuditService
from claim_engine.factory import Services, create_services
from claim_engine.ledger.client import LedgerClient
from claim_engine.ledger.static_adapter import StaticLedgerAdapter

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
CLAIM_ID = "550e8400-e29b-41d4-a716-446655440000"
CLAIMANT_ID = "did:example:user:jane"
NARRATIVE = "Watch stolen from locker at the gym"


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    """A frozen clock so seals and timestamps are reproducible."""
    return lambda: FIXED_NOW


# ---------------------------------------------------------------------------
# Raw claim payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_payload() -> Callable[..., dict[str, Any]]:
    """Factory for raw ``POST /claims`` payloads; keyword overrides replace top-level keys."""

    def _make(asset_id: str = "asset_valid_watch_001", **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": CLAIM_ID,
            "intake_timestamp": "2026-02-15T10:00:00Z",
            "policy_snapshot_id": "POL-NYC-2024",
            "claimant_id": CLAIMANT_ID,
            "asset_id": asset_id,
            "incident_vector": {
                "type": "THEFT",
                "location": {"type": "Point", "coordinates": [-74.006, 40.7128]},
                "severity": 8,
                "description_hash": hashlib.sha256(NARRATIVE.encode("utf-8")).hexdigest(),
            },
            "status": "INTAKE",
            "narrative": NARRATIVE,
            "claim_amount": 1200.0,
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture()
def valid_payload(make_payload: Callable[..., dict[str, Any]]) -> dict[str, Any]:
    """Golden-path payload: valid asset, claimant owns it, incident inside the policy region."""
    return make_payload()


# ---------------------------------------------------------------------------
# Mock HTTP collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_response() -> Callable[..., MagicMock]:
    """Factory for ``requests.Response`` stand-ins."""

    def _make(status_code: int = 200, body: Any = None) -> MagicMock:
        resp = MagicMock()
        resp.status_code = status_code
        resp.ok = 200 <= status_code < 300
        resp.json.return_value = {} if body is None else body
        return resp

    return _make


@pytest.fixture()
def ledger_session(make_response: Callable[..., MagicMock]) -> MagicMock:
    """A ``requests.Session`` mock: every write is accepted, every read is empty."""
    session = MagicMock()
    session.post.return_value = make_response(201, {"event_id": "evt_001", "sequence_number": 1})
    session.get.return_value = make_response(200, {"events": []})
    return session


@pytest.fixture()
def ledger_client(ledger_session: MagicMock, clock: Callable[[], datetime]) -> LedgerClient:
    return LedgerClient(
        "http://ledger.test",
        api_key="test-key",
        session=ledger_session,
        clock=clock,
    )


@pytest.fixture()
def static_ledger(clock: Callable[[], datetime]) -> StaticLedgerAdapter:
    return StaticLedgerAdapter(clock=clock)


@pytest.fixture()
def audit(clock: Callable[[], datetime]) -> AuditService:
    return AuditService(clock=clock)


# ---------------------------------------------------------------------------
# Policy regions CSV
# ---------------------------------------------------------------------------


@pytest.fixture()
def regions_csv(tmp_path: Path) -> str:
    """Write a small policy-region CSV and return its path."""
    csv_file = tmp_path / "policy_regions.csv"
    rows = [
        ["policy_snapshot_id", "min_lat", "max_lat", "min_lon", "max_lon"],
        ["POL-NYC-2024", "40.40", "41.00", "-74.30", "-73.60"],
        ["POL-SF-2024", "37.60", "37.90", "-122.55", "-122.30"],
    ]
    with csv_file.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerows(rows)
    return str(csv_file)


# ---------------------------------------------------------------------------
# Hydra config fixture (test overrides)
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_cfg(regions_csv: str) -> Any:
    """Return a minimal OmegaConf DictConfig with test overrides."""
    cfg_dict = {
        "ledger": {
            "adapter": "static",
            "base_url": "http://ledger.test",
            "api_key": "test-key",
            "producer": "claim-engine",
            "timeout": 1.0,
            "recent_transfer_days": 30,
            "require_https": False,
            "dry_run": False,
            "condition_delta": 0.05,
        },
        "risk": {"policy_regions_csv": regions_csv},
        "event_bus": {"topic_prefix": "claims."},
        "provenance": {"core_url": "", "timeout": 1.0},
        "salvage": {"bids_url": "", "timeout": 1.0},
        "worker": {
            "trigger_type": "ANCHOR_SEAL_BROKEN",
            "poll_interval_seconds": 0.01,
            "protection_active": True,
            "payout_micros": "5000000000",
            "currency": "USD",
        },
        "logging": {
            "level": "WARNING",
            "colored": False,
            "format": "pretty",
        },
        "server": {
            "host": "127.0.0.1",
            "port": 8000,
            "debug": False,
            "cors_origins": ["http://localhost:3000"],
        },
    }
    return OmegaConf.create(cfg_dict)


# ---------------------------------------------------------------------------
# Wired services
# ---------------------------------------------------------------------------


@pytest.fixture()
def services(
    test_cfg: Any, ledger_session: MagicMock, clock: Callable[[], datetime]
) -> Services:
    """Full component graph: static verification, mocked ledger writes."""
    return create_services(test_cfg, session=ledger_session, clock=clock)
