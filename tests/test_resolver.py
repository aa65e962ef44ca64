import threading
import time

from talentgeo.cache import NOT_PRESENT, GeoCache, GeoCacheEntry, MemoryCacheStore
from talentgeo.geo import Coordinate
from talentgeo.resolver import ResolutionOutcome, ZipCoordinateResolver

from conftest import FakeGeocoder


def test_cached_zip_makes_no_remote_call(resolver, cache, geocoder) -> None:
    cache.put(GeoCacheEntry("44289", Coordinate(41.0, -81.0)))
    assert resolver.resolve("44289") == Coordinate(41.0, -81.0)
    assert geocoder.calls == []


def test_cached_negative_makes_no_remote_call(resolver, cache, geocoder) -> None:
    cache.put(GeoCacheEntry("00000", None))
    result = resolver.resolve_detailed("00000", allow_approximate=True)
    assert result.coordinate is None
    assert result.outcome is ResolutionOutcome.CACHE
    assert geocoder.calls == []


def test_short_zip_touches_neither_cache_nor_network(resolver, cache, geocoder) -> None:
    assert resolver.resolve("12") is None
    assert resolver.resolve_detailed("1", allow_approximate=True).outcome is ResolutionOutcome.INVALID
    assert geocoder.calls == []
    assert len(cache) == 0


def test_remote_success_is_cached(resolver, cache, geocoder) -> None:
    result = resolver.resolve_detailed("44289-0001")
    assert result.outcome is ResolutionOutcome.REMOTE
    assert result.place == "Sterling"
    assert cache.entry("44289").region == "OH"

    assert resolver.resolve("44289") == Coordinate(41.01, -81.84)
    assert geocoder.calls == ["44289"]


def test_not_found_is_cached_as_negative(resolver, cache, geocoder) -> None:
    assert resolver.resolve("00000") is None
    assert cache.get("00000") is None
    assert resolver.resolve("00000") is None
    assert geocoder.calls == ["00000"]


def test_transient_failure_is_not_cached(cache, sleeps) -> None:
    geocoder = FakeGeocoder(transient={"44289"})
    resolver = ZipCoordinateResolver(cache=cache, geocoder=geocoder, sleep=sleeps.append)

    result = resolver.resolve_detailed("44289")
    assert result.outcome is ResolutionOutcome.TRANSIENT
    assert cache.get("44289") is NOT_PRESENT

    geocoder.transient.clear()
    assert resolver.resolve("44289") == Coordinate(41.01, -81.84)
    assert geocoder.calls == ["44289", "44289"]


def test_approximate_only_after_transient_failure(cache, sleeps) -> None:
    geocoder = FakeGeocoder(transient={"44289"})
    resolver = ZipCoordinateResolver(cache=cache, geocoder=geocoder, sleep=sleeps.append)

    assert resolver.resolve("44289") is None
    result = resolver.resolve_detailed("44289", allow_approximate=True)
    assert result.outcome is ResolutionOutcome.APPROXIMATE
    assert result.coordinate == Coordinate(41.5, -81.7)
    # The fallback answer is never cached.
    assert cache.get("44289") is NOT_PRESENT


def test_approximate_never_replaces_confirmed_invalid(resolver, cache) -> None:
    # 99999 falls in the AK prefix range but the geocoder says it does not exist.
    result = resolver.resolve_detailed("99999", allow_approximate=True)
    assert result.outcome is ResolutionOutcome.NOT_FOUND
    assert result.coordinate is None


def test_offline_mode_uses_regions(cache) -> None:
    resolver = ZipCoordinateResolver(cache=cache, geocoder=None)
    assert resolver.resolve("44289") is None
    assert resolver.resolve_detailed("44289", allow_approximate=True).coordinate == Coordinate(41.5, -81.7)
    assert resolver.resolve_detailed("00000", allow_approximate=True).coordinate is None


class RecordingGeocoder(FakeGeocoder):
    def __init__(self, events: list[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self.events = events

    def lookup(self, zip_code: str):
        self.events.append(f"fetch {zip_code}")
        return super().lookup(zip_code)


class SlowGeocoder(FakeGeocoder):
    def lookup(self, zip_code: str):
        time.sleep(0.05)
        return super().lookup(zip_code)


def test_batch_skips_cached_and_spaces_remote_calls() -> None:
    zips = ["44289", "44256", "10001", "90210", "60601", "30301", "02108", "73301", "98101", "80202"]
    places = {z: ("Somewhere", "XX", 40.0, -80.0) for z in zips}
    events: list[str] = []
    geocoder = RecordingGeocoder(events, places=places)
    store = MemoryCacheStore()
    cache = GeoCache(store)
    cache.init()
    for z in zips[:3]:
        cache.put(GeoCacheEntry(z, Coordinate(41.0, -81.0)))
    resolver = ZipCoordinateResolver(
        cache=cache,
        geocoder=geocoder,
        batch_delay_seconds=0.1,
        sleep=lambda seconds: events.append(f"sleep {seconds}"),
    )

    results = resolver.resolve_many(zips + ["44289", "10001-1234"])

    assert len(results) == 10
    assert geocoder.calls == zips[3:]
    expected = []
    for idx, z in enumerate(zips[3:]):
        if idx:
            expected.append("sleep 0.1")
        expected.append(f"fetch {z}")
    assert events == expected
    assert all(c is not None for c in results.values())
    # Flushing is the caller's job.
    assert store.writes == 0


def test_concurrent_callers_share_one_fetch(cache) -> None:
    geocoder = SlowGeocoder()
    resolver = ZipCoordinateResolver(cache=cache, geocoder=geocoder)
    results: list[Coordinate | None] = []

    def worker() -> None:
        results.append(resolver.resolve("44289"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert geocoder.calls == ["44289"]
    assert results == [Coordinate(41.01, -81.84)] * 8
    assert resolver._locks == {}


def test_per_zip_locks_are_released(resolver) -> None:
    for zip_code in ("44289", "44256", "00000"):
        resolver.resolve(zip_code)
    assert resolver._locks == {}


def test_single_lookup_does_not_sleep(resolver, sleeps) -> None:
    resolver.resolve("44289")
    resolver.resolve("10001")
    assert sleeps == []


def test_locate_never_calls_remote(resolver, cache, geocoder) -> None:
    cache.put(GeoCacheEntry("10001", Coordinate(40.7484, -73.9967)))
    cache.put(GeoCacheEntry("44000", None))

    assert resolver.locate("10001") == Coordinate(40.7484, -73.9967)
    assert resolver.locate("44256") == Coordinate(41.5, -81.7)
    assert resolver.locate("44000") is None
    assert resolver.locate("00000") is None
    assert geocoder.calls == []
