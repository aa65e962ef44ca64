from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_MILES = 3959.0
METERS_PER_MILE = 1609.344
MILES_PER_DEGREE_LAT = 69.0


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True, slots=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, point: Coordinate) -> bool:
        return (
            self.min_lat <= point.latitude <= self.max_lat
            and self.min_lon <= point.longitude <= self.max_lon
        )


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Float rounding can push a past 1.0 for antipodal points.
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def distance_miles(a: Coordinate, b: Coordinate) -> float:
    if a == b:
        return 0.0
    return haversine_miles(a.latitude, a.longitude, b.latitude, b.longitude)


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def _box(center: Coordinate, lat_delta: float, lon_delta: float | None) -> BoundingBox:
    min_lat = max(-90.0, center.latitude - lat_delta)
    max_lat = min(90.0, center.latitude + lat_delta)
    if lon_delta is None:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    min_lon = center.longitude - lon_delta
    max_lon = center.longitude + lon_delta
    if min_lon < -180.0 or max_lon > 180.0:
        # Wraps the antimeridian; a single rectangle cannot express it.
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)
    return BoundingBox(min_lat, max_lat, min_lon, max_lon)


def bounding_box(center: Coordinate, radius_miles: float) -> BoundingBox:
    """Flat-earth rectangle around ``center``: 69 miles per degree of latitude,
    shrunk by cos(latitude) for longitude.

    Cheap and close enough for a pre-filter at continental-US latitudes. It can
    clip the circle slightly at large radii, so it is not a guaranteed cover.
    """
    lat_delta = radius_miles / MILES_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(center.latitude))
    if cos_lat < 1e-9 or center.latitude + lat_delta >= 90.0 or center.latitude - lat_delta <= -90.0:
        return _box(center, lat_delta, None)
    return _box(center, lat_delta, radius_miles / (MILES_PER_DEGREE_LAT * cos_lat))


def covering_box(center: Coordinate, radius_miles: float) -> BoundingBox:
    """Smallest lat/lon rectangle guaranteed to contain the spherical circle."""
    angular = radius_miles / EARTH_RADIUS_MILES
    lat_delta = math.degrees(angular)
    phi = math.radians(center.latitude)
    if angular >= math.pi / 2 - abs(phi):
        # The circle reaches a pole, every longitude is in range.
        return _box(center, lat_delta, None)
    lon_delta = math.degrees(math.asin(math.sin(angular) / math.cos(phi)))
    return _box(center, lat_delta, lon_delta)
