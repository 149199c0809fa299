"""Policy-region lookup used by the risk engine's location check."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
from loguru import logger
from pydantic import BaseModel

from claim_engine.schemas.claim import GeoPoint

_REQUIRED_COLUMNS = ("policy_snapshot_id", "min_lat", "max_lat", "min_lon", "max_lon")


class BoundingBox(BaseModel):
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.min_lat <= point.latitude <= self.max_lat
            and self.min_lon <= point.longitude <= self.max_lon
        )


class PolicyRegionCheck:
    """Answers "is this incident inside the region the policy covers?".

    Policies without a configured region always pass; the check only
    penalises claims it has positive evidence against.
    """

    def __init__(self, regions: dict[str, list[BoundingBox]] | None = None) -> None:
        self._regions = regions or {}

    def in_region(self, policy_snapshot_id: str, location: GeoPoint) -> bool:
        boxes = self._regions.get(policy_snapshot_id)
        if not boxes:
            return True
        return any(box.contains(location) for box in boxes)

    def __len__(self) -> int:
        return len(self._regions)


def load_policy_regions(csv_path: str | None) -> PolicyRegionCheck:
    """Load policy regions from a CSV file.

    Columns: ``policy_snapshot_id, min_lat, max_lat, min_lon, max_lon``. A
    policy may appear on several rows (one box per row).  A missing path yields
    an empty check, so every claim passes the location test.
    """
    if not csv_path:
        return PolicyRegionCheck()

    csv_file = Path(csv_path)
    if not csv_file.exists():
        logger.warning("Policy region file not found: {path}; location check disabled", path=csv_path)
        return PolicyRegionCheck()

    df = pd.read_csv(csv_file)
    missing = [c for c in _REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Policy region file {csv_path} is missing columns: {missing}")

    regions: dict[str, list[BoundingBox]] = {}
    for row in df.itertuples(index=False):
        box = BoundingBox(
            min_lat=float(row.min_lat),
            max_lat=float(row.max_lat),
            min_lon=float(row.min_lon),
            max_lon=float(row.max_lon),
        )
        regions.setdefault(str(row.policy_snapshot_id).strip(), []).append(box)

    logger.debug("Loaded policy regions: {n} policies", n=len(regions))
    return PolicyRegionCheck(regions)
