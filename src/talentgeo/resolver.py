from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from talentgeo.cache import NOT_PRESENT, GeoCache, GeoCacheEntry
from talentgeo.geo import Coordinate
from talentgeo.geocoder import GeocoderError, ZipGeocoder
from talentgeo.regions import RegionTable
from talentgeo.zipcode import normalize_zip

LOG = logging.getLogger(__name__)

PROGRESS_EVERY = 50


class ResolutionOutcome(str, Enum):
    CACHE = "cache"
    REMOTE = "remote"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    APPROXIMATE = "approximate"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class Resolution:
    zip: str | None
    outcome: ResolutionOutcome
    coordinate: Coordinate | None = None
    place: str | None = None
    region: str | None = None

    @property
    def resolved(self) -> bool:
        return self.coordinate is not None


@dataclass(slots=True)
class _Flight:
    # Dropped from the resolver once the last waiter leaves.
    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0


class ZipCoordinateResolver:
    """Zip -> centroid via the cache, then the remote geocoder.

    The approximate region table is only consulted when asked for, and only
    when the remote answer is unavailable (transient failure or offline mode).
    """

    def __init__(
        self,
        cache: GeoCache,
        geocoder: ZipGeocoder | None = None,
        regions: RegionTable | None = None,
        batch_delay_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cache = cache
        self.geocoder = geocoder
        self.regions = regions if regions is not None else RegionTable.load()
        self.batch_delay_seconds = batch_delay_seconds
        self._sleep = sleep
        self._locks: dict[str, _Flight] = {}
        self._locks_guard = threading.Lock()

    def resolve(self, zip_code: str) -> Coordinate | None:
        return self.resolve_detailed(zip_code).coordinate

    def resolve_detailed(self, zip_code: str, allow_approximate: bool = False) -> Resolution:
        normalized = normalize_zip(zip_code)
        if normalized is None:
            return Resolution(zip=None, outcome=ResolutionOutcome.INVALID)

        cached = self._from_cache(normalized)
        if cached is not None:
            return cached

        with self._single_flight(normalized):
            # Another thread may have fetched it while we waited.
            cached = self._from_cache(normalized)
            if cached is not None:
                return cached
            resolution = self._fetch(normalized)

        if resolution.outcome is ResolutionOutcome.TRANSIENT and allow_approximate:
            return self._approximate_resolution(normalized, resolution)
        return resolution

    def approximate(self, zip_code: str) -> Coordinate | None:
        region = self.regions.lookup(zip_code)
        return region.coordinate if region is not None else None

    def locate(self, zip_code: str) -> Coordinate | None:
        """Best offline position for a record's zip, never hitting the network."""
        normalized = normalize_zip(zip_code)
        if normalized is None:
            return None
        cached = self.cache.get(normalized)
        if cached is NOT_PRESENT:
            return self.approximate(normalized)
        return cached

    def resolve_many(self, zip_codes: Iterable[str]) -> dict[str, Coordinate | None]:
        unique: list[str] = []
        seen: set[str] = set()
        for raw in zip_codes:
            normalized = normalize_zip(raw)
            if normalized is None or normalized in seen:
                continue
            seen.add(normalized)
            unique.append(normalized)

        results: dict[str, Coordinate | None] = {}
        pending: list[str] = []
        for zip_code in unique:
            cached = self.cache.get(zip_code)
            if cached is NOT_PRESENT:
                pending.append(zip_code)
            else:
                results[zip_code] = cached

        LOG.info(
            "batch resolve unique=%d cached=%d to_fetch=%d",
            len(unique),
            len(unique) - len(pending),
            len(pending),
        )

        found = 0
        failed = 0
        for idx, zip_code in enumerate(pending):
            if idx > 0 and self.geocoder is not None and self.batch_delay_seconds > 0:
                self._sleep(self.batch_delay_seconds)
            coordinate = self.resolve(zip_code)
            results[zip_code] = coordinate
            if coordinate is None:
                failed += 1
            else:
                found += 1
            if (idx + 1) % PROGRESS_EVERY == 0:
                LOG.info("progress %d/%d found=%d invalid=%d", idx + 1, len(pending), found, failed)

        if pending:
            LOG.info("fetched %d coordinates, %d unresolved", found, failed)
        return results

    def _from_cache(self, zip_code: str) -> Resolution | None:
        entry = self.cache.entry(zip_code)
        if entry is None:
            return None
        return Resolution(
            zip=zip_code,
            outcome=ResolutionOutcome.CACHE,
            coordinate=entry.coordinate,
            place=entry.place,
            region=entry.region,
        )

    def _fetch(self, zip_code: str) -> Resolution:
        if self.geocoder is None:
            return Resolution(zip=zip_code, outcome=ResolutionOutcome.TRANSIENT)

        try:
            place = self.geocoder.lookup(zip_code)
        except GeocoderError as exc:
            LOG.warning("geocoder error zip=%s error=%s", zip_code, exc)
            return Resolution(zip=zip_code, outcome=ResolutionOutcome.TRANSIENT)

        if place is None:
            self.cache.put(GeoCacheEntry(zip=zip_code, coordinate=None))
            LOG.debug("zip %s confirmed invalid", zip_code)
            return Resolution(zip=zip_code, outcome=ResolutionOutcome.NOT_FOUND)

        self.cache.put(
            GeoCacheEntry(
                zip=zip_code,
                coordinate=place.coordinate,
                place=place.place,
                region=place.region,
            )
        )
        return Resolution(
            zip=zip_code,
            outcome=ResolutionOutcome.REMOTE,
            coordinate=place.coordinate,
            place=place.place,
            region=place.region,
        )

    def _approximate_resolution(self, zip_code: str, failed: Resolution) -> Resolution:
        region = self.regions.lookup(zip_code)
        if region is None:
            return failed
        LOG.warning("using approximate region %s for zip %s", region.label or "?", zip_code)
        return Resolution(
            zip=zip_code,
            outcome=ResolutionOutcome.APPROXIMATE,
            coordinate=region.coordinate,
            region=region.label or None,
        )

    @contextmanager
    def _single_flight(self, zip_code: str) -> Iterator[None]:
        with self._locks_guard:
            flight = self._locks.get(zip_code)
            if flight is None:
                flight = self._locks[zip_code] = _Flight()
            flight.waiters += 1
        try:
            with flight.lock:
                yield
        finally:
            with self._locks_guard:
                flight.waiters -= 1
                if flight.waiters == 0:
                    del self._locks[zip_code]
