from __future__ import annotations

from pathlib import Path

import pytest

from talentgeo.cache import GeoCache, MemoryCacheStore
from talentgeo.geo import Coordinate
from talentgeo.geocoder import GeocoderError, ZipPlace
from talentgeo.records import RecordStore
from talentgeo.resolver import ZipCoordinateResolver

KNOWN_PLACES = {
    "44289": ("Sterling", "OH", 41.01, -81.84),
    "44256": ("Medina", "OH", 41.1398, -81.8559),
    "10001": ("New York", "NY", 40.7484, -73.9967),
    "90210": ("Beverly Hills", "CA", 34.0901, -118.4065),
    "60601": ("Chicago", "IL", 41.8858, -87.6181),
}

requires_rtree = pytest.mark.skipif(
    not RecordStore.rtree_supported(), reason="SQLite build without R*Tree"
)


class FakeGeocoder:
    def __init__(self, places=None, transient=()) -> None:
        self.places = dict(KNOWN_PLACES if places is None else places)
        self.transient = set(transient)
        self.calls: list[str] = []

    def lookup(self, zip_code: str) -> ZipPlace | None:
        self.calls.append(zip_code)
        if zip_code in self.transient:
            raise GeocoderError("timed out")
        row = self.places.get(zip_code)
        if row is None:
            return None
        place, region, lat, lon = row
        return ZipPlace(zip=zip_code, coordinate=Coordinate(lat, lon), place=place, region=region)


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def cache_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def cache(cache_store: MemoryCacheStore) -> GeoCache:
    cache = GeoCache(cache_store)
    cache.init()
    return cache


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def resolver(cache: GeoCache, geocoder: FakeGeocoder, sleeps: list[float]) -> ZipCoordinateResolver:
    return ZipCoordinateResolver(cache=cache, geocoder=geocoder, sleep=sleeps.append)


@pytest.fixture
def store(tmp_path: Path) -> RecordStore:
    return RecordStore(tmp_path / "talent.sqlite3")
