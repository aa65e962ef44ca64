import pytest

from talentgeo.cache import GeoCacheEntry
from talentgeo.geo import Coordinate, bounding_box
from talentgeo.records import RecordStore, SpatialQueryError

from conftest import requires_rtree

STERLING = Coordinate(41.01, -81.84)


def test_records_round_trip_in_insertion_order(store: RecordStore) -> None:
    store.create_table("profiles", spatial_index=False)
    store.add_record("profiles", "p2", zip_code="44256", coordinate=Coordinate(41.1398, -81.8559), name="Bo")
    store.add_record("profiles", "p1", zip_code="10001")

    records = list(store.iter_records("profiles"))
    assert [r.record_id for r in records] == ["p2", "p1"]
    assert records[0].coordinate == Coordinate(41.1398, -81.8559)
    assert records[1].coordinate is None

    stats = store.stats("profiles")
    assert (stats.total, stats.with_points, stats.spatial_index) == (2, 1, False)


def test_upsert_replaces_record(store: RecordStore) -> None:
    store.create_table("profiles", spatial_index=False)
    store.add_record("profiles", "p1", zip_code="10001")
    store.add_record("profiles", "p1", zip_code="44289", coordinate=STERLING)
    records = list(store.iter_records("profiles"))
    assert len(records) == 1
    assert records[0].zip_code == "44289"


def test_invalid_table_name_is_rejected(store: RecordStore) -> None:
    with pytest.raises(ValueError):
        store.create_table("profiles; DROP TABLE x")
    with pytest.raises(ValueError):
        list(store.iter_records("1profiles"))


def test_sqlite_errors_are_wrapped(store: RecordStore) -> None:
    with pytest.raises(SpatialQueryError):
        store.query_bounding_box("missing", STERLING, bounding_box(STERLING, 10), 10)


def test_bounding_box_query_applies_exact_distance(store: RecordStore) -> None:
    store.create_table("profiles", spatial_index=False)
    store.add_record("profiles", "medina", coordinate=Coordinate(41.1398, -81.8559))
    # Inside the 10-mile rectangle's corner but more than 10 miles away.
    store.add_record("profiles", "corner", coordinate=Coordinate(41.13, -81.65))

    rows = store.query_bounding_box("profiles", STERLING, bounding_box(STERLING, 10), 10)
    assert [r.record_id for r in rows] == ["medina"]
    assert rows[0].distance_miles == pytest.approx(9.0, abs=0.5)


@requires_rtree
def test_spatial_index_tracks_points(store: RecordStore) -> None:
    assert store.create_table("profiles") is True
    assert store.has_spatial_index("profiles")
    store.add_record("profiles", "p1", zip_code="44289", coordinate=STERLING)
    store.add_record("profiles", "p2", zip_code="10001")
    assert store.count_indexed("profiles") == 1

    store.set_coordinate("profiles", "p1", None)
    assert store.count_indexed("profiles") == 0
    store.set_coordinate("profiles", "p2", Coordinate(40.7484, -73.9967))
    assert store.count_indexed("profiles") == 1


def test_attach_coordinates_uses_cached_centroids(store: RecordStore, resolver, cache, geocoder) -> None:
    store.create_table("profiles")
    store.add_record("profiles", "p1", zip_code="44289-1234")
    store.add_record("profiles", "p2", zip_code="00000")
    store.add_record("profiles", "p3", zip_code="10001")
    cache.put(GeoCacheEntry("44289", STERLING))
    cache.put(GeoCacheEntry("00000", None))

    assert store.attach_coordinates("profiles", resolver) == 1
    coords = {r.record_id: r.coordinate for r in store.iter_records("profiles")}
    assert coords == {"p1": STERLING, "p2": None, "p3": None}
    assert geocoder.calls == []


def test_in_memory_store() -> None:
    store = RecordStore(":memory:")
    store.create_table("profiles", spatial_index=False)
    store.add_record("profiles", "p1", coordinate=STERLING)
    assert store.count_with_points("profiles") == 1
    store.close()
