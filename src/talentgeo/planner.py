from __future__ import annotations

import logging

from pydantic import ValidationError

from talentgeo.models import FailureReason, QueryFailure, RadiusQuery, SearchMatch, SearchResult
from talentgeo.records import RecordStore, SpatialQueryError
from talentgeo.resolver import ZipCoordinateResolver
from talentgeo.strategies import (
    BoundingBoxStrategy,
    ExhaustiveStrategy,
    NativeIndexStrategy,
    SpatialStrategy,
)

LOG = logging.getLogger(__name__)


def rank(matches: list[SearchMatch]) -> list[SearchMatch]:
    # sorted() is stable, equal distances keep store order.
    return sorted(matches, key=lambda m: m.distance_miles)


class RadiusQueryPlanner:
    """Resolve the center zip, pick a spatial strategy, return ranked matches.

    Strategies are tried in preference order (spatial index, bounding box,
    exhaustive scan) and the first one whose capability probe passes is used.
    Expected failures come back as ``QueryFailure``; a failing spatial query
    only moves on to the next strategy when the caller allows fallback.
    """

    def __init__(
        self,
        resolver: ZipCoordinateResolver,
        store: RecordStore,
        strategies: list[SpatialStrategy] | None = None,
        allow_approximate_center: bool = True,
        allow_fallback: bool = False,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.strategies = strategies or [
            NativeIndexStrategy(),
            BoundingBoxStrategy(),
            ExhaustiveStrategy(resolver),
        ]
        self.allow_approximate_center = allow_approximate_center
        self.allow_fallback = allow_fallback

    def strategy_names(self) -> list[str]:
        return [s.name for s in self.strategies]

    def available_strategies(self, target: str) -> list[SpatialStrategy]:
        return [s for s in self.strategies if s.is_available(self.store, target)]

    def choose_strategy(self, target: str) -> SpatialStrategy | None:
        available = self.available_strategies(target)
        return available[0] if available else None

    def find_within_radius(
        self,
        center_zip: str,
        radius_miles: float,
        target: str,
        strategy: str | None = None,
        allow_fallback: bool | None = None,
    ) -> SearchResult | QueryFailure:
        try:
            query = RadiusQuery(center_zip=center_zip, radius_miles=radius_miles, target=target)
        except ValidationError as exc:
            return QueryFailure(FailureReason.INVALID_QUERY, _first_error(exc))

        resolution = self.resolver.resolve_detailed(
            query.center_zip, allow_approximate=self.allow_approximate_center
        )
        if resolution.coordinate is None:
            LOG.info("center zip unresolvable zip=%s outcome=%s", center_zip, resolution.outcome.value)
            return QueryFailure(
                FailureReason.UNRESOLVABLE_CENTER,
                f"could not locate zip {center_zip!r} ({resolution.outcome.value})",
            )
        center = resolution.coordinate

        try:
            if not self.store.table_exists(query.target):
                return QueryFailure(FailureReason.SPATIAL_QUERY_FAILED, f"no such target {target!r}")
            candidates = self._candidates(query, strategy)
        except SpatialQueryError as exc:
            return QueryFailure(FailureReason.SPATIAL_QUERY_FAILED, str(exc))
        if not candidates:
            return QueryFailure(FailureReason.INVALID_QUERY, f"strategy {strategy!r} is not available")

        fallback = self.allow_fallback if allow_fallback is None else allow_fallback
        last_error: SpatialQueryError | None = None
        for chosen in candidates:
            try:
                matches = chosen.search(self.store, query, center)
            except SpatialQueryError as exc:
                last_error = exc
                if not fallback:
                    LOG.error("spatial query failed strategy=%s target=%s error=%s", chosen.name, target, exc)
                    break
                LOG.warning("spatial query failed strategy=%s error=%s, falling back", chosen.name, exc)
                continue

            ranked = rank(matches)
            LOG.info(
                "radius search zip=%s radius=%s target=%s strategy=%s center=%s matches=%d",
                query.center_zip,
                query.radius_miles,
                target,
                chosen.name,
                resolution.outcome.value,
                len(ranked),
            )
            return SearchResult(
                query=query,
                center=center,
                center_source=resolution.outcome,
                strategy=chosen.name,
                matches=ranked,
            )

        return QueryFailure(FailureReason.SPATIAL_QUERY_FAILED, str(last_error))

    def _candidates(self, query: RadiusQuery, strategy: str | None) -> list[SpatialStrategy]:
        available = self.available_strategies(query.target)
        if strategy is None:
            return available
        forced = [s for s in available if s.name == strategy]
        if not forced:
            return []
        # With fallback enabled a forced strategy can still hand over to the rest.
        return forced + [s for s in available if s is not forced[0]]


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {first.get('msg', 'invalid value')}"
