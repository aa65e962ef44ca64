from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from talentgeo.geo import Coordinate

LOG = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.zippopotam.us/us"


class GeocoderError(RuntimeError):
    """Transient lookup failure: timeout, network error, or unusable payload."""


@dataclass(frozen=True, slots=True)
class ZipPlace:
    zip: str
    coordinate: Coordinate
    place: str | None = None
    region: str | None = None


@dataclass(slots=True)
class ZipGeocoder:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 5.0

    def lookup(self, zip_code: str) -> ZipPlace | None:
        """Return the zip centroid, ``None`` when the zip is not assigned.

        Raises ``GeocoderError`` for anything that might succeed on retry.
        """
        url = f"{self.base_url.rstrip('/')}/{zip_code}"
        try:
            response = requests.get(url, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise GeocoderError(f"zip lookup failed for {zip_code}: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise GeocoderError(f"zip lookup failed: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeocoderError("invalid geocoder response") from exc
        if not isinstance(payload, dict):
            raise GeocoderError("invalid geocoder response")

        places = payload.get("places") or []
        if not isinstance(places, list):
            raise GeocoderError("invalid geocoder response")
        if not places:
            LOG.debug("no places found for zip %s", zip_code)
            return None

        place = places[0]
        if not isinstance(place, dict):
            raise GeocoderError("invalid geocoder response")
        try:
            coordinate = Coordinate(float(place["latitude"]), float(place["longitude"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocoderError("invalid geocoder response") from exc

        return ZipPlace(
            zip=zip_code,
            coordinate=coordinate,
            place=place.get("place name"),
            region=place.get("state abbreviation"),
        )
