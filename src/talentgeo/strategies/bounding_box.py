from __future__ import annotations

import logging

from talentgeo.geo import Coordinate, bounding_box
from talentgeo.models import RadiusQuery, SearchMatch
from talentgeo.records import RecordStore
from talentgeo.strategies.base import SpatialStrategy

LOG = logging.getLogger(__name__)


class BoundingBoxStrategy(SpatialStrategy):
    """Rectangle on the plain lat/lon columns, exact distance on what survives."""

    name = "bounding_box"

    def is_available(self, store: RecordStore, target: str) -> bool:
        return store.count_with_points(target) > 0

    def search(self, store: RecordStore, query: RadiusQuery, center: Coordinate) -> list[SearchMatch]:
        box = bounding_box(center, query.radius_miles)
        LOG.debug("bounding box search target=%s box=%s", query.target, box)
        rows = store.query_bounding_box(query.target, center, box, query.radius_miles)
        return [SearchMatch(row.record_id, row.distance_miles) for row in rows]
