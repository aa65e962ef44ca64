from talentgeo.models import SearchMatch
from talentgeo.strategies.base import SpatialStrategy
from talentgeo.strategies.bounding_box import BoundingBoxStrategy
from talentgeo.strategies.exhaustive import ExhaustiveStrategy
from talentgeo.strategies.native import NativeIndexStrategy

__all__ = [
    "SearchMatch",
    "SpatialStrategy",
    "NativeIndexStrategy",
    "BoundingBoxStrategy",
    "ExhaustiveStrategy",
]
