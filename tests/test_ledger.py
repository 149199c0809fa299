"""Tests for the ledger verification adapters and the canonical event client."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
import requests

from claim_engine.core.canonical import sha256_hex
from claim_engine.core.errors import LedgerWriteError, VerificationError
from claim_engine.ledger.client import LedgerClient, build_envelope, idempotency_key
from claim_engine.ledger.http_adapter import HttpLedgerAdapter
from claim_engine.ledger.static_adapter import StaticLedgerAdapter
from claim_engine.schemas.events import LedgerEventType
from tests.conftest import CLAIMANT_ID, FIXED_NOW

# ═══════════════════════════════════════════════════════════════════════
# Static adapter
# ═══════════════════════════════════════════════════════════════════════


class TestStaticLedgerAdapter:
    def test_valid_asset(self, static_ledger: StaticLedgerAdapter) -> None:
        result = static_ledger.verify_asset("asset_valid_001", CLAIMANT_ID)
        assert result.asset_match and result.ownership_match
        assert not result.provenance_gap
        assert result.verified_at == FIXED_NOW

    def test_ghost_asset_is_maximally_suspicious(self, static_ledger: StaticLedgerAdapter) -> None:
        result = static_ledger.verify_asset("asset_ghost_001", CLAIMANT_ID)
        assert (result.asset_match, result.ownership_match, result.provenance_gap) == (
            False,
            False,
            True,
        )

    def test_stolen_asset(self, static_ledger: StaticLedgerAdapter) -> None:
        result = static_ledger.verify_asset("asset_stolen_001", CLAIMANT_ID)
        assert result.asset_match
        assert not result.ownership_match

    def test_gap_marker(self, static_ledger: StaticLedgerAdapter) -> None:
        assert static_ledger.verify_asset("asset_valid_gap_001", CLAIMANT_ID).provenance_gap

    def test_offline_fails_closed(self, static_ledger: StaticLedgerAdapter) -> None:
        with pytest.raises(VerificationError):
            static_ledger.verify_asset("asset_offline_001", CLAIMANT_ID)


# ═══════════════════════════════════════════════════════════════════════
# HTTP adapter
# ═══════════════════════════════════════════════════════════════════════


def _custody(*actors: str, last_at: datetime | None = None, scores: tuple[float, ...] = ()) -> dict:
    events = []
    previous = None
    for i, actor in enumerate(actors):
        event = {"actor": actor, "previous_actor": previous, "occurred_at": "2024-01-01T00:00:00+00:00"}
        if i < len(scores):
            event["condition_score"] = scores[i]
        events.append(event)
        previous = actor
    if last_at is not None and events:
        events[-1]["occurred_at"] = last_at.isoformat()
    return {"events": events}


@pytest.fixture()
def http_session() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def http_adapter(http_session: MagicMock, clock: Callable[[], datetime]) -> HttpLedgerAdapter:
    return HttpLedgerAdapter(
        "http://ledger.test/", api_key="k", session=http_session, clock=clock
    )


class TestHttpLedgerAdapter:
    def test_owned_asset_with_clean_history(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        http_session.get.return_value = make_response(
            200, _custody("dealer", CLAIMANT_ID, scores=(1.0, 0.8))
        )
        result = http_adapter.verify_asset("asset-1", CLAIMANT_ID)
        assert result.asset_match and result.ownership_match
        assert not result.provenance_gap
        assert result.condition_delta == pytest.approx(0.2)

        url = http_session.get.call_args.args[0]
        assert url == "http://ledger.test/api/v1/assets/asset-1/custody"
        assert http_session.get.call_args.kwargs["headers"] == {"x-api-key": "k"}
        assert http_session.get.call_args.kwargs["timeout"] == 5.0

    def test_unknown_asset(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        http_session.get.return_value = make_response(404)
        result = http_adapter.verify_asset("asset-1", CLAIMANT_ID)
        assert (result.asset_match, result.ownership_match, result.provenance_gap) == (
            False,
            False,
            True,
        )

    def test_other_custodian(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        http_session.get.return_value = make_response(200, _custody(CLAIMANT_ID, "someone-else"))
        assert not http_adapter.verify_asset("asset-1", CLAIMANT_ID).ownership_match

    def test_broken_chain_is_a_gap(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        body = _custody("dealer", CLAIMANT_ID)
        body["events"][1]["previous_actor"] = "unknown-party"
        http_session.get.return_value = make_response(200, body)
        assert http_adapter.verify_asset("asset-1", CLAIMANT_ID).provenance_gap

    def test_recent_transfer_is_a_gap(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        http_session.get.return_value = make_response(
            200, _custody("dealer", CLAIMANT_ID, last_at=FIXED_NOW - timedelta(days=3))
        )
        assert http_adapter.verify_asset("asset-1", CLAIMANT_ID).provenance_gap

    @pytest.mark.parametrize("status", [500, 503, 401])
    def test_non_2xx_fails_closed(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response, status: int
    ) -> None:
        http_session.get.return_value = make_response(status)
        with pytest.raises(VerificationError):
            http_adapter.verify_asset("asset-1", CLAIMANT_ID)

    def test_transport_error_fails_closed(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock
    ) -> None:
        http_session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(VerificationError) as excinfo:
            http_adapter.verify_asset("asset-1", CLAIMANT_ID)
        assert excinfo.value.status_code == 502

    def test_unreadable_body_fails_closed(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        http_session.get.return_value = make_response(200, {"unexpected": True})
        with pytest.raises(VerificationError):
            http_adapter.verify_asset("asset-1", CLAIMANT_ID)

    @pytest.mark.parametrize(
        "events",
        [
            ["x", "y"],
            [{"actor": "dealer", "condition_score": "worn"}, {"actor": CLAIMANT_ID, "condition_score": 0.5}],
            [{"actor": CLAIMANT_ID, "occurred_at": "last tuesday"}],
        ],
    )
    def test_malformed_custody_events_fail_closed(
        self,
        http_adapter: HttpLedgerAdapter,
        http_session: MagicMock,
        make_response,
        events: list,
    ) -> None:
        http_session.get.return_value = make_response(200, {"events": events})
        with pytest.raises(VerificationError) as excinfo:
            http_adapter.verify_asset("asset-1", CLAIMANT_ID)
        assert excinfo.value.status_code == 502

    def test_asset_id_is_quoted_into_one_path_segment(
        self, http_adapter: HttpLedgerAdapter, http_session: MagicMock, make_response
    ) -> None:
        http_session.get.return_value = make_response(404)
        http_adapter.verify_asset("asset/1?x", CLAIMANT_ID)
        assert http_session.get.call_args.args[0].endswith("/api/v1/assets/asset%2F1%3Fx/custody")


# ═══════════════════════════════════════════════════════════════════════
# Ledger client
# ═══════════════════════════════════════════════════════════════════════


class TestEnvelope:
    def test_idempotency_key_format(self) -> None:
        assert idempotency_key("CLAIM_OPENED", "claim_x") == "idem:CLAIM_OPENED:claim_x"

    def test_hash_covers_every_other_field(self) -> None:
        envelope = build_envelope(
            "CLAIM_CREATED",
            "claim-1",
            {"b": 2, "a": 1},
            correlation_id="corr-1",
            idem_key="idem:CLAIM_CREATED:claim-1",
            producer="claim-engine",
            occurred_at=FIXED_NOW,
        )
        unsealed = envelope.model_dump(mode="json", exclude={"canonical_hash_hex"})
        assert envelope.canonical_hash_hex == sha256_hex(unsealed)
        assert envelope.schema_version == "1.0.0"

    def test_hash_independent_of_payload_key_order(self) -> None:
        kwargs = dict(
            correlation_id="c",
            idem_key="idem:T:subject-1",
            producer="p",
            occurred_at=FIXED_NOW,
        )
        a = build_envelope("T", "subject-1", {"x": 1, "y": 2}, **kwargs)
        b = build_envelope("T", "subject-1", {"y": 2, "x": 1}, **kwargs)
        assert a.canonical_hash_hex == b.canonical_hash_hex


class TestLedgerClient:
    def test_write_posts_canonical_envelope(
        self, ledger_client: LedgerClient, ledger_session: MagicMock
    ) -> None:
        result = ledger_client.write_claim_created(
            "claim-1", CLAIMANT_ID, "asset-1", "THEFT", 100.0, correlation_id="corr-1"
        )
        assert result.event_id == "evt_001"

        url = ledger_session.post.call_args.args[0]
        body = ledger_session.post.call_args.kwargs["json"]
        assert url == "http://ledger.test/api/v1/events"
        assert body["event_type"] == "CLAIM_CREATED"
        assert body["idempotency_key"] == "idem:CLAIM_CREATED:claim-1"
        assert body["subject"] == "claim-1"
        assert body["correlation_id"] == "corr-1"
        assert ledger_session.post.call_args.kwargs["headers"]["x-api-key"] == "test-key"
        assert ledger_client.written_events == []

    def test_rejected_write_raises(
        self, ledger_client: LedgerClient, ledger_session: MagicMock, make_response
    ) -> None:
        ledger_session.post.return_value = make_response(500)
        with pytest.raises(LedgerWriteError):
            ledger_client.write_event(LedgerEventType.CLAIM_SETTLED, "claim-1", {}, correlation_id="c")
        assert ledger_client.written_events == []

    def test_transport_failure_raises(
        self, ledger_client: LedgerClient, ledger_session: MagicMock
    ) -> None:
        ledger_session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(LedgerWriteError):
            ledger_client.write_event("CLAIM_SETTLED", "claim-1", {}, correlation_id="c")

    def test_event_id_falls_back_to_hash(
        self, ledger_client: LedgerClient, ledger_session: MagicMock, make_response
    ) -> None:
        ledger_session.post.return_value = make_response(202, {})
        result = ledger_client.write_event("CLAIM_SETTLED", "claim-1", {}, correlation_id="c")
        body = ledger_session.post.call_args.kwargs["json"]
        assert result.event_id == body["canonical_hash_hex"][:16]

    def test_list_events_passes_cursor_and_types(
        self, ledger_client: LedgerClient, ledger_session: MagicMock, make_response
    ) -> None:
        ledger_session.get.return_value = make_response(
            200, {"events": [{"event_id": "e1", "event_type": "ANCHOR_SEAL_BROKEN", "payload": {}}]}
        )
        events = ledger_client.list_events(after="e0", types=["ANCHOR_SEAL_BROKEN"])
        assert [e.event_id for e in events] == ["e1"]
        assert ledger_session.get.call_args.kwargs["params"] == {
            "after": "e0",
            "types": "ANCHOR_SEAL_BROKEN",
        }

    def test_unknown_subject_reads_empty(
        self, ledger_client: LedgerClient, ledger_session: MagicMock, make_response
    ) -> None:
        ledger_session.get.return_value = make_response(404)
        assert ledger_client.events_by_subject("claim_x") == []

    def test_subject_is_quoted_into_one_path_segment(
        self, ledger_client: LedgerClient, ledger_session: MagicMock
    ) -> None:
        ledger_client.events_by_subject("claim/1?x#y")
        url = ledger_session.get.call_args.args[0]
        assert url == "http://ledger.test/api/v1/events/by-subject/claim%2F1%3Fx%23y"

    def test_read_failure_raises_verification_error(
        self, ledger_client: LedgerClient, ledger_session: MagicMock, make_response
    ) -> None:
        ledger_session.get.return_value = make_response(503)
        with pytest.raises(VerificationError):
            ledger_client.events_by_subject("claim_x")

    def test_require_https_guard(self) -> None:
        with pytest.raises(ValueError):
            LedgerClient("http://ledger.test", api_key="k", require_https=True)
        with pytest.raises(ValueError):
            LedgerClient("https://ledger.test", require_https=True)


class TestDryRun:
    @pytest.fixture()
    def dry_client(self, clock: Callable[[], datetime]) -> LedgerClient:
        return LedgerClient(
            "http://ledger.invalid", dry_run=True, session=MagicMock(), clock=clock
        )

    def test_writes_stay_local(self, dry_client: LedgerClient) -> None:
        dry_client.write_event("CLAIM_OPENED", "claim_x", {"a": 1}, correlation_id="claim_x")
        dry_client.session.post.assert_not_called()
        assert [e.subject for e in dry_client.events_by_subject("claim_x")] == ["claim_x"]

    def test_same_key_deduplicated(self, dry_client: LedgerClient) -> None:
        first = dry_client.write_event("CLAIM_OPENED", "claim_x", {}, correlation_id="c")
        second = dry_client.write_event("CLAIM_OPENED", "claim_x", {}, correlation_id="c")
        assert first.event_id == second.event_id
        assert len(dry_client.written_events) == 1
        assert dry_client.list_events() == []
