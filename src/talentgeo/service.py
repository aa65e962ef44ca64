from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from talentgeo.cache import GeoCache, JsonFileCacheStore
from talentgeo.config import load_config
from talentgeo.geocoder import ZipGeocoder
from talentgeo.models import AppConfig
from talentgeo.planner import RadiusQueryPlanner
from talentgeo.records import RecordStore
from talentgeo.regions import RegionTable
from talentgeo.resolver import ZipCoordinateResolver

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class GeoSearchService:
    config: AppConfig
    cache: GeoCache
    resolver: ZipCoordinateResolver
    store: RecordStore
    planner: RadiusQueryPlanner

    def close(self) -> None:
        try:
            self.cache.teardown()
        finally:
            self.store.close()

    def __enter__(self) -> GeoSearchService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_service(config: AppConfig) -> GeoSearchService:
    cache = GeoCache(JsonFileCacheStore(config.cache_path))
    cache.init()

    geocoder = None
    if config.geocoder.enabled:
        geocoder = ZipGeocoder(
            base_url=config.geocoder.base_url,
            timeout_seconds=config.geocoder.timeout_seconds,
        )
    else:
        LOG.info("geocoder disabled, resolving from cache and approximate regions only")

    resolver = ZipCoordinateResolver(
        cache=cache,
        geocoder=geocoder,
        regions=RegionTable.load(config.regions_path),
        batch_delay_seconds=config.geocoder.batch_delay_seconds,
    )
    store = RecordStore(config.records_db)
    planner = RadiusQueryPlanner(
        resolver=resolver,
        store=store,
        allow_approximate_center=config.allow_approximate_center,
        allow_fallback=config.allow_strategy_fallback,
    )
    return GeoSearchService(
        config=config, cache=cache, resolver=resolver, store=store, planner=planner
    )


def build_service_from_path(config_path: str | Path | None) -> GeoSearchService:
    return build_service(load_config(config_path))
