from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from talentgeo.geo import Coordinate

LOG = logging.getLogger(__name__)


class _Missing(Enum):
    NOT_PRESENT = "not_present"

    def __repr__(self) -> str:
        return "NOT_PRESENT"


NOT_PRESENT = _Missing.NOT_PRESENT


@dataclass(frozen=True, slots=True)
class GeoCacheEntry:
    zip: str
    coordinate: Coordinate | None
    place: str | None = None
    region: str | None = None

    @property
    def is_negative(self) -> bool:
        return self.coordinate is None

    def to_json(self) -> dict[str, Any] | None:
        if self.coordinate is None:
            return None
        payload: dict[str, Any] = {
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
        }
        if self.place is not None:
            payload["place"] = self.place
        if self.region is not None:
            payload["region"] = self.region
        return payload

    @classmethod
    def from_json(cls, zip_code: str, payload: dict[str, Any] | None) -> GeoCacheEntry:
        if payload is None:
            return cls(zip=zip_code, coordinate=None)
        return cls(
            zip=zip_code,
            coordinate=Coordinate(float(payload["latitude"]), float(payload["longitude"])),
            place=payload.get("place"),
            region=payload.get("region"),
        )


class CacheStore(Protocol):
    def read(self) -> dict[str, Any]: ...

    def write(self, data: dict[str, Any]) -> None: ...


class MemoryCacheStore:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.writes = 0

    def read(self) -> dict[str, Any]:
        return json.loads(json.dumps(self.data))

    def write(self, data: dict[str, Any]) -> None:
        self.data = json.loads(json.dumps(data))
        self.writes += 1


class JsonFileCacheStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"cache file {self.path} is not a JSON object")
        return payload

    def write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class GeoCache:
    """In-memory zip -> coordinate map backed by a durable store.

    ``get`` is three-valued: a ``Coordinate``, ``None`` for a zip confirmed
    invalid, or ``NOT_PRESENT`` for a zip never attempted. Nothing is written
    to the store until ``flush``.
    """

    def __init__(self, store: CacheStore) -> None:
        self.store = store
        self._entries: dict[str, GeoCacheEntry] = {}
        self._lock = threading.Lock()
        self._dirty = False

    def __enter__(self) -> GeoCache:
        self.init()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, zip_code: str) -> bool:
        return zip_code in self._entries

    def init(self) -> None:
        self.load()

    def load(self) -> None:
        try:
            raw = self.store.read()
        except (OSError, ValueError) as exc:
            LOG.warning("could not load zip cache, starting fresh: %s", exc)
            raw = {}

        entries: dict[str, GeoCacheEntry] = {}
        for zip_code, payload in raw.items():
            try:
                entries[zip_code] = GeoCacheEntry.from_json(zip_code, payload)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                LOG.warning("skipping malformed cache entry zip=%s error=%s", zip_code, exc)

        with self._lock:
            self._entries = entries
            self._dirty = False
        LOG.info("loaded %d cached zip coordinates", len(entries))

    def get(self, zip_code: str) -> Coordinate | None | _Missing:
        entry = self._entries.get(zip_code)
        if entry is None:
            return NOT_PRESENT
        return entry.coordinate

    def entry(self, zip_code: str) -> GeoCacheEntry | None:
        return self._entries.get(zip_code)

    def contains(self, zip_code: str) -> bool:
        return zip_code in self._entries

    def put(self, entry: GeoCacheEntry) -> None:
        with self._lock:
            self._entries[entry.zip] = entry
            self._dirty = True

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries.values())
        return {e.zip: e.to_json() for e in entries}

    def flush(self) -> None:
        with self._lock:
            entries = list(self._entries.values())
            self._dirty = False
        data = {e.zip: e.to_json() for e in entries}
        try:
            self.store.write(data)
        except Exception:
            with self._lock:
                self._dirty = True
            raise
        LOG.info("saved %d zip coordinates to cache", len(data))

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
            self._dirty = True

    @property
    def dirty(self) -> bool:
        return self._dirty

    def teardown(self) -> None:
        if self._dirty:
            self.flush()
        with self._lock:
            self._entries = {}
