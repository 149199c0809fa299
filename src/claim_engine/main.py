"""Claim Engine server entry point.

Uses Hydra to load configuration and then starts the FastAPI application via
uvicorn.

Usage::

    python -m claim_engine.main                 # HTTP ledger (default)
    python -m claim_engine.main ledger=static   # prefix-driven mock ledger
"""

from __future__ import annotations

import os
from pathlib import Path

import hydra
import uvicorn
from dotenv import load_dotenv
from loguru import logger
from omegaconf import DictConfig, open_dict

from claim_engine.api.app import create_app

# Load .env BEFORE Hydra resolves ${oc.env:...} references
load_dotenv()


def resolve_data_paths(cfg: DictConfig) -> None:
    """Convert relative data paths to absolute using the original working dir.

    Hydra changes the CWD to ``outputs/<date>/<time>/``, so relative paths in
    ``cfg.risk`` are anchored to the project root.
    """
    original_cwd = Path(hydra.utils.get_original_cwd())

    with open_dict(cfg):
        raw = cfg.risk.get("policy_regions_csv")
        if raw and not Path(raw).is_absolute():
            cfg.risk.policy_regions_csv = str(original_cwd / raw)


@hydra.main(version_base=None, config_path="../../conf", config_name="config")
def main(cfg: DictConfig) -> None:
    """Bootstrap the application from Hydra config and run uvicorn."""
    resolve_data_paths(cfg)

    # Change back to project root so uvicorn / other libs behave normally
    os.chdir(hydra.utils.get_original_cwd())

    app = create_app(cfg)

    host: str = cfg.server.host
    port: int = cfg.server.port
    debug: bool = cfg.server.debug

    logger.info(
        "Starting server on {host}:{port} (debug={debug})",
        host=host,
        port=port,
        debug=debug,
    )

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if debug else "info",
    )


if __name__ == "__main__":
    main()
