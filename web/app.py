"""HTTP surface for the lunch location lookup."""

from __future__ import annotations

import logging
import random
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from lunch_finder.config import Settings
from lunch_finder.discovery_overpass import validate_area_name
from lunch_finder.errors import (
    LunchFinderError,
    TransportFailureError,
    UnknownAmenityError,
    UpstreamEmptyOrMalformedError,
    UpstreamRejectedError,
)
from lunch_finder.main import create_client
from lunch_finder.service import LocationsService

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logging.getLogger("httpx").setLevel(logging.INFO)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lunch Finder")

_client: httpx.AsyncClient | None = None
_service: LocationsService | None = None


@app.on_event("startup")
async def _startup() -> None:
    global _client, _service
    settings = Settings.from_env()
    _client = create_client()
    _service = LocationsService(settings, _client)
    logger.info("Lunch Finder ready (Overpass: %s)", settings.overpass_url)


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _client, _service
    if _client is not None:
        await _client.aclose()
    _client = None
    _service = None


def get_service() -> LocationsService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Service is not ready")
    return _service


def _area(area: str) -> str:
    try:
        return validate_area_name(area)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.exception_handler(LunchFinderError)
async def _lunch_finder_error(_request, exc: LunchFinderError) -> JSONResponse:
    if isinstance(exc, TransportFailureError):
        status = 504
    elif isinstance(exc, (UpstreamRejectedError, UpstreamEmptyOrMalformedError, UnknownAmenityError)):
        status = 502
    else:
        status = 500
    logger.error("Lookup failed: %s", exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.get("/health", response_class=PlainTextResponse)
def health() -> str:
    return "Healthy"


@app.get("/locations")
async def locations(
    area: str = Query(..., min_length=1),
    service: LocationsService = Depends(get_service),
) -> list[dict]:
    found = await service.get_locations_in(_area(area))
    return [location.to_dict() for location in found]


@app.get("/locations/random")
async def random_location(
    area: str = Query(..., min_length=1),
    seed: Optional[int] = None,
    service: LocationsService = Depends(get_service),
):
    picked = await service.get_random_location_in(_area(area), random.Random(seed))
    if picked is None:
        raise HTTPException(status_code=404, detail=f"No places open for lunch in {area!r}")
    return picked.to_dict()
