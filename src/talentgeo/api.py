from __future__ import annotations

import logging
import os
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from talentgeo import __version__
from talentgeo.models import FailureReason, QueryFailure
from talentgeo.resolver import ResolutionOutcome
from talentgeo.service import GeoSearchService, build_service_from_path

LOG = logging.getLogger(__name__)

CONFIG_ENV = "TALENTGEO_CONFIG"

_service: GeoSearchService | None = None
_service_lock = threading.Lock()


def get_service() -> GeoSearchService:
    global _service
    # Sync endpoints run in a threadpool; build the service exactly once.
    with _service_lock:
        if _service is None:
            _service = build_service_from_path(os.getenv(CONFIG_ENV))
        return _service


def close_service() -> None:
    global _service
    with _service_lock:
        service, _service = _service, None
    if service is not None:
        service.close()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    close_service()


app = FastAPI(title="Talent Radius Search", lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/app-meta")
def app_meta() -> dict[str, object]:
    return {"version": __version__}


@app.get("/zip/{zip_code}")
def resolve_zip(zip_code: str, service: GeoSearchService = Depends(get_service)) -> JSONResponse:
    resolution = service.resolver.resolve_detailed(zip_code)
    if resolution.outcome is ResolutionOutcome.INVALID:
        raise HTTPException(status_code=400, detail="ZIP code must have at least 3 digits")

    coordinate = resolution.coordinate
    return JSONResponse(
        {
            "zip": resolution.zip,
            "outcome": resolution.outcome.value,
            "found": coordinate is not None,
            "place": resolution.place,
            "region": resolution.region,
            "latitude": coordinate.latitude if coordinate else None,
            "longitude": coordinate.longitude if coordinate else None,
        }
    )


@app.get("/search")
def search(
    zip: str = Query(..., min_length=1),
    radius: float = Query(default=25.0),
    target: str | None = Query(default=None),
    strategy: Literal["native", "bounding_box", "exhaustive"] | None = Query(default=None),
    service: GeoSearchService = Depends(get_service),
) -> JSONResponse:
    outcome = service.planner.find_within_radius(
        zip,
        radius,
        target or service.config.default_target,
        strategy=strategy,
    )

    if isinstance(outcome, QueryFailure):
        if outcome.reason is FailureReason.INVALID_QUERY:
            raise HTTPException(status_code=400, detail=outcome.detail)
        LOG.warning("search unavailable zip=%s reason=%s detail=%s", zip, outcome.reason.value, outcome.detail)
        message = (
            "We couldn't find that ZIP code"
            if outcome.reason is FailureReason.UNRESOLVABLE_CENTER
            else "Search unavailable"
        )
        return JSONResponse(
            {
                "available": False,
                "reason": outcome.reason.value,
                "message": message,
                "count": 0,
                "results": [],
            }
        )

    return JSONResponse(
        {
            "available": True,
            "zip": outcome.query.center_zip,
            "radius_miles": outcome.query.radius_miles,
            "strategy": outcome.strategy,
            "center": {
                "latitude": outcome.center.latitude,
                "longitude": outcome.center.longitude,
                "source": outcome.center_source.value,
            },
            "count": len(outcome.matches),
            "message": None if outcome.matches else "No results",
            "results": [
                {"record_id": m.record_id, "distance_miles": round(m.distance_miles, 2)}
                for m in outcome.matches
            ],
        }
    )
