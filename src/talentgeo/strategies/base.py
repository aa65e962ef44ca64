from __future__ import annotations

from abc import ABC, abstractmethod

from talentgeo.geo import Coordinate
from talentgeo.models import RadiusQuery, SearchMatch
from talentgeo.records import RecordStore


class SpatialStrategy(ABC):
    name: str

    @abstractmethod
    def is_available(self, store: RecordStore, target: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def search(self, store: RecordStore, query: RadiusQuery, center: Coordinate) -> list[SearchMatch]:
        raise NotImplementedError
