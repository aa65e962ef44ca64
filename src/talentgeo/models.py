from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from talentgeo.geo import Coordinate
from talentgeo.records import validate_identifier
from talentgeo.resolver import ResolutionOutcome


class GeocoderConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    base_url: str = "https://api.zippopotam.us/us"
    timeout_seconds: float = Field(default=5.0, gt=0)
    batch_delay_seconds: float = Field(default=0.1, ge=0)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    geocoder: GeocoderConfig = Field(default_factory=GeocoderConfig)
    cache_path: str = "data/zip-coordinates-cache.json"
    regions_path: str | None = None
    records_db: str = "talent.sqlite3"
    default_target: str = "profiles"
    allow_approximate_center: bool = True
    allow_strategy_fallback: bool = False

    @field_validator("default_target")
    @classmethod
    def _check_target(cls, value: str) -> str:
        return validate_identifier(value)


class RadiusQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    center_zip: str
    radius_miles: float = Field(gt=0)
    target: str

    @field_validator("target")
    @classmethod
    def _check_target(cls, value: str) -> str:
        return validate_identifier(value)


class FailureReason(str, Enum):
    UNRESOLVABLE_CENTER = "unresolvable_center"
    SPATIAL_QUERY_FAILED = "spatial_query_failed"
    INVALID_QUERY = "invalid_query"


@dataclass(frozen=True, slots=True)
class SearchMatch:
    record_id: str
    distance_miles: float


@dataclass(slots=True)
class SearchResult:
    query: RadiusQuery
    center: Coordinate
    center_source: ResolutionOutcome
    strategy: str
    matches: list[SearchMatch] = field(default_factory=list)

    @property
    def record_ids(self) -> list[str]:
        return [m.record_id for m in self.matches]

    def __len__(self) -> int:
        return len(self.matches)


@dataclass(slots=True)
class QueryFailure:
    reason: FailureReason
    detail: str = ""
