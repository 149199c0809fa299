"""Integration tests for the FastAPI application.

Uses ``httpx.AsyncClient`` (via ``pytest-asyncio``) against the real app with
the static ledger adapter and a mocked ledger session, so no network calls are
made.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from omegaconf import DictConfig

from claim_engine.api.app import create_app
from claim_engine.factory import Services
from tests.conftest import CLAIM_ID

# ---------------------------------------------------------------------------
# App fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(test_cfg: DictConfig, services: Services) -> FastAPI:
    return create_app(test_cfg, services)


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _submit(client: AsyncClient, payload: dict[str, Any]) -> Any:
    return await client.post("/api/v1/claims", json=payload)


# ═══════════════════════════════════════════════════════════════════════
# Tests
# ═══════════════════════════════════════════════════════════════════════


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["ledger_adapter"] == "static"
        assert body["ledger_dry_run"] is False


class TestCorrelationId:
    @pytest.mark.asyncio
    async def test_header_is_echoed(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health", headers={"X-Correlation-Id": "corr-abc"})
        assert resp.headers["X-Correlation-Id"] == "corr-abc"

    @pytest.mark.asyncio
    async def test_header_is_minted(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.headers["X-Correlation-Id"].startswith("corr_")


class TestSubmitClaim:
    @pytest.mark.asyncio
    async def test_golden_path_returns_201(
        self, client: AsyncClient, valid_payload: dict[str, Any]
    ) -> None:
        resp = await client.post(
            "/api/v1/claims", json=valid_payload, headers={"X-Correlation-Id": "corr-1"}
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["claim_id"] == CLAIM_ID
        assert body["stage"] == "SEALED"
        assert body["score"] == 100
        assert body["decision"]["decision"] == "PAY"
        assert len(body["seal"]) == 64
        assert body["correlation_id"] == "corr-1"

    @pytest.mark.asyncio
    async def test_invalid_fields_return_400(
        self, client: AsyncClient, valid_payload: dict[str, Any]
    ) -> None:
        valid_payload["id"] = "not-a-uuid"
        valid_payload["incident_vector"]["severity"] = 0
        resp = await _submit(client, valid_payload)
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        fields = {f["field"] for f in body["error"]["details"]["fields"]}
        assert {"id", "incident_vector.severity"} <= fields
        assert body["correlation_id"] == resp.headers["X-Correlation-Id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"{not json", b'{"id": "\xff\xfe"}'])
    async def test_malformed_json_returns_400(self, client: AsyncClient, body: bytes) -> None:
        resp = await client.post(
            "/api/v1/claims", content=body, headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"]["fields"][0]["field"] == "$"

    @pytest.mark.asyncio
    async def test_duplicate_returns_409(
        self, client: AsyncClient, valid_payload: dict[str, Any]
    ) -> None:
        assert (await _submit(client, valid_payload)).status_code == 201
        resp = await _submit(client, valid_payload)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_ledger_outage_returns_502(
        self, client: AsyncClient, make_payload: Callable[..., dict[str, Any]]
    ) -> None:
        resp = await _submit(client, make_payload(asset_id="asset_offline_001"))
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "LEDGER_UNREACHABLE"

    @pytest.mark.asyncio
    async def test_ledger_write_failure_returns_502(
        self,
        client: AsyncClient,
        valid_payload: dict[str, Any],
        ledger_session: MagicMock,
        make_response: Callable[..., MagicMock],
    ) -> None:
        ledger_session.post.return_value = make_response(500)
        resp = await _submit(client, valid_payload)
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "LEDGER_WRITE_FAILED"


class TestClaimStatus:
    @pytest.mark.asyncio
    async def test_unknown_claim_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/claims/missing/status")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_sealed_claim(self, client: AsyncClient, valid_payload: dict[str, Any]) -> None:
        seal = (await _submit(client, valid_payload)).json()["seal"]
        resp = await client.get(f"/api/v1/claims/{CLAIM_ID}/status")
        assert resp.status_code == 200
        body = resp.json()
        assert body["seal"] == seal
        assert body["seal_valid"] is True
        assert body["record"]["decision"] == "PAY"

    @pytest.mark.asyncio
    async def test_uppercase_uuid_finds_sealed_claim(
        self, client: AsyncClient, valid_payload: dict[str, Any]
    ) -> None:
        await _submit(client, valid_payload)
        resp = await client.get(f"/api/v1/claims/{CLAIM_ID.upper()}/status")
        assert resp.status_code == 200
        assert resp.json()["record"]["claim_id"] == CLAIM_ID


class TestClaimEvents:
    @pytest.mark.asyncio
    async def test_record_then_replay(self, client: AsyncClient) -> None:
        body = {"eventType": "PAYMENT_COMPLETE", "payload": {}, "idempotencyKey": "k-1"}
        first = await client.post("/api/v1/claims/claim-1/events", json=body)
        second = await client.post("/api/v1/claims/claim-1/events", json=body)
        assert first.status_code == 201
        assert first.json()["status"] == "RECORDED"
        assert second.status_code == 200
        assert second.json()["status"] == "ALREADY_PROCESSED"
        assert second.json()["event_id"] == first.json()["event_id"]

    @pytest.mark.asyncio
    async def test_unknown_type_400(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/claims/claim-1/events", json={"eventType": "NOPE"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_type_400(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/claims/claim-1/events", json={"payload": {}})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


class TestSalvage:
    @pytest.mark.asyncio
    async def test_full_salvage_flow(
        self, client: AsyncClient, valid_payload: dict[str, Any]
    ) -> None:
        await _submit(client, valid_payload)

        created = await client.post(
            f"/api/v1/claims/{CLAIM_ID}/salvage",
            json={"assets": ["asset_valid_watch_001"], "pickup_location": "Depot", "estimated_recovery": 400},
        )
        assert created.status_code == 201
        manifest_id = created.json()["id"]
        assert created.json()["status"] == "DRAFT"

        listed = (await client.get(f"/api/v1/claims/{CLAIM_ID}/salvage")).json()
        assert [m["id"] for m in listed] == [manifest_id]

        pickup = await client.post(f"/api/v1/salvage/{manifest_id}/pickup")
        assert pickup.json()["status"] == "PENDING_PICKUP"

        listing = await client.post(
            f"/api/v1/salvage/{manifest_id}/list-on-bids",
            json={"auction_type": "TIMED", "duration_days": 5, "reserve_price": 200},
        )
        assert listing.status_code == 200
        assert listing.json()["status"] == "LISTED"
        assert len(listing.json()["listing_ids"]) == 1

        again = await client.post(f"/api/v1/salvage/{manifest_id}/pickup")
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_denied_claim_has_no_salvage(
        self, client: AsyncClient, make_payload: Callable[..., dict[str, Any]]
    ) -> None:
        await _submit(client, make_payload(asset_id="asset_ghost_001"))
        resp = await client.post(
            f"/api/v1/claims/{CLAIM_ID}/salvage",
            json={"assets": ["a"], "pickup_location": "Depot", "estimated_recovery": 1},
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_manifest_404(self, client: AsyncClient) -> None:
        assert (await client.get("/api/v1/salvage/manifest_x")).status_code == 404


class TestProvenanceAndInbound:
    @pytest.mark.asyncio
    async def test_unindexed_item_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/items/item-1/preloss-provenance")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_registered_item_is_scored(self, client: AsyncClient) -> None:
        ack = await client.post(
            "/api/v1/events/inbound",
            json={
                "event_id": "e-1",
                "event_type": "item.registered",
                "item_id": "item-1",
                "occurred_at": "2026-02-01T00:00:00Z",
                "payload": {"owner_id": "o-1", "provenance_score": 88, "photo_count": 5, "receipt_count": 1},
            },
        )
        assert ack.status_code == 200
        assert ack.json() == {"event_id": "e-1", "event_type": "item.registered", "handled": True}

        resp = await client.get("/api/v1/items/item-1/preloss-provenance")
        assert resp.status_code == 200
        body = resp.json()
        assert body["provenance_score"] == 88
        assert body["scored_by"] == "local-fallback"

    @pytest.mark.asyncio
    async def test_naive_event_timestamp_rejected(self, client: AsyncClient) -> None:
        await client.post(
            "/api/v1/events/inbound",
            json={
                "event_id": "e-1",
                "event_type": "item.registered",
                "item_id": "item-1",
                "occurred_at": "2026-02-01T00:00:00Z",
                "payload": {"owner_id": "o-1", "provenance_score": 88},
            },
        )
        resp = await client.post(
            "/api/v1/events/inbound",
            json={
                "event_id": "e-2",
                "event_type": "genome.verified",
                "item_id": "item-1",
                "occurred_at": "2026-02-15T10:00:00",
            },
        )
        assert resp.status_code == 400
        assert (await client.get("/api/v1/items/item-1/preloss-provenance")).status_code == 200

    @pytest.mark.asyncio
    async def test_unsubscribed_event_acknowledged(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/events/inbound", json={"event_id": "e-2", "event_type": "weather.changed"}
        )
        assert resp.status_code == 200
        assert resp.json()["handled"] is False

    @pytest.mark.asyncio
    async def test_malformed_event_payload_400(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/events/inbound",
            json={"event_id": "e-3", "event_type": "warranty.registered", "payload": {"id": "w"}},
        )
        assert resp.status_code == 400
