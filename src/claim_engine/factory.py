"""Service factory: build the component graph once from Hydra config."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import requests
from loguru import logger

from claim_engine.audit.service import AuditService
from claim_engine.engine.regions import load_policy_regions
from claim_engine.engine.risk import RiskEngine
from claim_engine.events.bus import EventBus
from claim_engine.events.consumer import EventConsumer
from claim_engine.ledger.client import LedgerClient
from claim_engine.orchestrator.controller import ClaimsController
from claim_engine.orchestrator.lifecycle import LifecycleEventRecorder
from claim_engine.provenance.service import ProvenanceService
from claim_engine.salvage.bids import BidsClient
from claim_engine.salvage.service import SalvageService
from claim_engine.warranty.service import WarrantyIndex

if TYPE_CHECKING:
    from omegaconf import DictConfig

    from claim_engine.ledger.port import LedgerPort


@dataclass
class Services:
    """Every long-lived component, constructed once and shared by requests."""

    ledger_port: LedgerPort
    ledger: LedgerClient
    bus: EventBus
    risk: RiskEngine
    audit: AuditService
    warranty: WarrantyIndex
    provenance: ProvenanceService
    salvage: SalvageService
    consumer: EventConsumer
    controller: ClaimsController
    lifecycle: LifecycleEventRecorder


def create_ledger_port(
    cfg: DictConfig,
    session: requests.Session | None = None,
    clock: Callable[[], datetime] | None = None,
) -> LedgerPort:
    """Create the verification adapter named by ``cfg.ledger.adapter``.

    Uses lazy imports so only the selected adapter is loaded.

    Raises
    ------
    ValueError
        If the adapter name is not recognised.
    """
    adapter: str = cfg.ledger.adapter
    logger.info("Creating ledger adapter: {adapter}", adapter=adapter)

    if adapter == "http":
        from claim_engine.ledger.http_adapter import HttpLedgerAdapter

        return HttpLedgerAdapter(
            base_url=cfg.ledger.base_url,
            api_key=cfg.ledger.get("api_key") or None,
            timeout=float(cfg.ledger.timeout),
            recent_transfer_days=int(cfg.ledger.recent_transfer_days),
            session=session,
            clock=clock,
        )

    if adapter == "static":
        from claim_engine.ledger.static_adapter import StaticLedgerAdapter

        return StaticLedgerAdapter(
            condition_delta=float(cfg.ledger.get("condition_delta", 0.05)),
            clock=clock,
        )

    raise ValueError(f"Unknown ledger adapter '{adapter}'. Expected 'http' or 'static'.")


def create_ledger_client(
    cfg: DictConfig,
    session: requests.Session | None = None,
    clock: Callable[[], datetime] | None = None,
) -> LedgerClient:
    return LedgerClient(
        base_url=cfg.ledger.base_url,
        api_key=cfg.ledger.get("api_key") or None,
        producer=cfg.ledger.producer,
        timeout=float(cfg.ledger.timeout),
        require_https=bool(cfg.ledger.get("require_https", False)),
        dry_run=bool(cfg.ledger.get("dry_run", False)),
        session=session,
        clock=clock,
    )


def create_services(
    cfg: DictConfig,
    *,
    session: requests.Session | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Services:
    """Wire all components from the merged Hydra configuration.

    Parameters
    ----------
    cfg:
        The full Hydra configuration.
    session:
        Optional shared ``requests`` session for every outbound collaborator.
    clock:
        Optional time source, injected everywhere a timestamp is produced.
    """
    session = session or requests.Session()

    ledger_port = create_ledger_port(cfg, session=session, clock=clock)
    ledger = create_ledger_client(cfg, session=session, clock=clock)
    bus = EventBus(topic_prefix=cfg.event_bus.topic_prefix, clock=clock)
    risk = RiskEngine(load_policy_regions(cfg.risk.get("policy_regions_csv")))
    audit = AuditService(clock=clock)
    warranty = WarrantyIndex()
    provenance = ProvenanceService(
        core_url=cfg.provenance.get("core_url") or None,
        timeout=float(cfg.provenance.timeout),
        session=session,
        clock=clock,
    )
    bids = BidsClient(
        base_url=cfg.salvage.get("bids_url") or None,
        timeout=float(cfg.salvage.timeout),
        session=session,
    )
    salvage = SalvageService(audit, bids, ledger, bus, clock=clock)

    services = Services(
        ledger_port=ledger_port,
        ledger=ledger,
        bus=bus,
        risk=risk,
        audit=audit,
        warranty=warranty,
        provenance=provenance,
        salvage=salvage,
        consumer=EventConsumer(warranty, provenance, salvage),
        controller=ClaimsController(ledger_port, ledger, bus, risk, audit, warranty, clock=clock),
        lifecycle=LifecycleEventRecorder(ledger, bus),
    )
    logger.info(
        "Services ready (ledger={adapter}, dry_run={dry})",
        adapter=cfg.ledger.adapter,
        dry=ledger.dry_run,
    )
    return services
