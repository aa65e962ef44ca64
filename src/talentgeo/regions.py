from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from talentgeo.geo import Coordinate
from talentgeo.zipcode import normalize_zip, zip_prefix

LOG = logging.getLogger(__name__)

DEFAULT_REGIONS_PATH = Path(__file__).parent / "data" / "zip_regions.yaml"


@dataclass(frozen=True, slots=True)
class ApproximateRegion:
    start: int
    end: int
    coordinate: Coordinate
    label: str = ""

    def covers(self, prefix: int) -> bool:
        return self.start <= prefix <= self.end


class RegionTable:
    """Static 3-digit prefix ranges mapped to a representative centroid."""

    def __init__(self, regions: list[ApproximateRegion]) -> None:
        ordered = sorted(regions, key=lambda r: r.start)
        for region in ordered:
            if not 0 <= region.start <= region.end <= 999:
                raise ValueError(f"malformed prefix range {region.start:03d}-{region.end:03d}")
        for prev, cur in zip(ordered, ordered[1:]):
            if cur.start <= prev.end:
                raise ValueError(
                    f"overlapping prefix ranges {prev.start:03d}-{prev.end:03d} "
                    f"and {cur.start:03d}-{cur.end:03d}"
                )
        self._regions = ordered
        self._starts = [r.start for r in ordered]

    @classmethod
    def load(cls, path: str | Path | None = None) -> RegionTable:
        source = Path(path) if path is not None else DEFAULT_REGIONS_PATH
        payload = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
        regions = []
        for row in payload.get("regions", []):
            try:
                regions.append(
                    ApproximateRegion(
                        start=int(row["start"]),
                        end=int(row["end"]),
                        coordinate=Coordinate(float(row["latitude"]), float(row["longitude"])),
                        label=str(row.get("label", "")),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError(f"invalid region row in {source}: {row!r}") from exc
        LOG.debug("loaded %d approximate regions from %s", len(regions), source)
        return cls(regions)

    @property
    def regions(self) -> list[ApproximateRegion]:
        return list(self._regions)

    def __len__(self) -> int:
        return len(self._regions)

    def lookup(self, zip_code: str) -> ApproximateRegion | None:
        normalized = normalize_zip(zip_code)
        if normalized is None:
            return None
        prefix = zip_prefix(normalized)
        idx = bisect.bisect_right(self._starts, prefix) - 1
        if idx < 0:
            return None
        region = self._regions[idx]
        return region if region.covers(prefix) else None
