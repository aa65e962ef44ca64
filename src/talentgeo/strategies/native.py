from __future__ import annotations

import logging

from talentgeo.geo import Coordinate, covering_box, miles_to_meters
from talentgeo.models import RadiusQuery, SearchMatch
from talentgeo.records import RecordStore
from talentgeo.strategies.base import SpatialStrategy

LOG = logging.getLogger(__name__)


class NativeIndexStrategy(SpatialStrategy):
    """R*Tree window lookup, then the exact distance predicate."""

    name = "native"

    def is_available(self, store: RecordStore, target: str) -> bool:
        return store.has_spatial_index(target) and store.count_indexed(target) > 0

    def search(self, store: RecordStore, query: RadiusQuery, center: Coordinate) -> list[SearchMatch]:
        window = covering_box(center, query.radius_miles)
        LOG.debug(
            "native search target=%s radius_m=%.0f window=%s",
            query.target,
            miles_to_meters(query.radius_miles),
            window,
        )
        rows = store.query_spatial_index(query.target, center, window, query.radius_miles)
        return [SearchMatch(row.record_id, row.distance_miles) for row in rows]
