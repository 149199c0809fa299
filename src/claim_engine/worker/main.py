"""Ledger-listener worker entry point.

Usage::

    python -m claim_engine.worker.main
    python -m claim_engine.worker.main worker.protection_active=true
"""

from __future__ import annotations

import os

import hydra
from dotenv import load_dotenv
from loguru import logger
from omegaconf import DictConfig

from claim_engine.audit.service import AuditService
from claim_engine.factory import create_ledger_client
from claim_engine.logging.setup import setup_logging
from claim_engine.worker.listener import LedgerListener
from claim_engine.worker.policy import TriggerPolicy

load_dotenv()


def build_listener(cfg: DictConfig) -> LedgerListener:
    worker = cfg.worker
    policy = TriggerPolicy(
        trigger_type=worker.trigger_type,
        protection_active=bool(worker.protection_active),
        payout_micros=str(worker.payout_micros),
        currency=worker.currency,
    )
    return LedgerListener(
        create_ledger_client(cfg),
        policy,
        audit=AuditService(),
        trigger_type=worker.trigger_type,
        poll_interval=float(worker.poll_interval_seconds),
    )


@hydra.main(version_base=None, config_path="../../../conf", config_name="config")
def main(cfg: DictConfig) -> None:
    """Run the ledger listener until SIGINT / SIGTERM."""
    os.chdir(hydra.utils.get_original_cwd())
    setup_logging(cfg.logging)

    listener = build_listener(cfg)
    listener.install_signal_handlers()
    logger.info("Worker polling {url}", url=cfg.ledger.base_url)
    listener.run()


if __name__ == "__main__":
    main()
