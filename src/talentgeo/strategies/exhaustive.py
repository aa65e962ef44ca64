from __future__ import annotations

import logging

from talentgeo.geo import Coordinate, distance_miles
from talentgeo.models import RadiusQuery, SearchMatch
from talentgeo.records import RecordStore
from talentgeo.resolver import ZipCoordinateResolver
from talentgeo.strategies.base import SpatialStrategy

LOG = logging.getLogger(__name__)


class ExhaustiveStrategy(SpatialStrategy):
    """Distance to every record, O(n).

    Records without a stored point are placed by their zip: the cached
    centroid when there is one, else the approximate region. Region centroids
    can be tens of miles off, so matches near the radius are fuzzy.
    """

    name = "exhaustive"

    def __init__(self, resolver: ZipCoordinateResolver) -> None:
        self.resolver = resolver

    def is_available(self, store: RecordStore, target: str) -> bool:
        return store.table_exists(target)

    def search(self, store: RecordStore, query: RadiusQuery, center: Coordinate) -> list[SearchMatch]:
        matches: list[SearchMatch] = []
        skipped = 0
        for record in store.iter_records(query.target):
            point = record.coordinate
            if point is None and record.zip_code:
                point = self.resolver.locate(record.zip_code)
            if point is None:
                skipped += 1
                continue
            distance = distance_miles(center, point)
            if distance <= query.radius_miles:
                matches.append(SearchMatch(record.record_id, distance))
        if skipped:
            LOG.debug("exhaustive search skipped %d records without a location", skipped)
        return matches
