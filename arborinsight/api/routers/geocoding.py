"""
API router for reverse geocoding.
"""
from typing import Annotated

from fastapi import APIRouter, Query, Request

from arborinsight.api.dependencies import GeocodingClientDep
from arborinsight.api.models.responses import AddressResponse, ErrorResponse
from arborinsight.api.rate_limit import GATEWAY_RATE_LIMIT, limiter


router = APIRouter(
    prefix="/geocoding",
    tags=["geocoding"],
)


@router.get(
    "/reverse",
    response_model=AddressResponse,
    summary="Reverse geocode a coordinate",
    description="""
    Resolve a WGS-84 coordinate to a short street address.

    The address is formatted as `street, neighbourhood - city/state`. When the
    provider knows nothing about the point, `Address not found` is returned.
    """,
    responses={
        422: {"model": ErrorResponse, "description": "Coordinate out of range"},
        429: {"description": "Rate limit exceeded"},
        502: {"model": ErrorResponse, "description": "Geocoding provider failure"},
    },
)
@limiter.limit(GATEWAY_RATE_LIMIT)
async def reverse_geocode(
    request: Request,
    lat: Annotated[float, Query(ge=-90, le=90, description="Latitude in degrees")],
    lng: Annotated[float, Query(ge=-180, le=180, description="Longitude in degrees")],
    geocoder: GeocodingClientDep,
) -> AddressResponse:
    address = await geocoder.reverse_geocode(lat, lng)
    return AddressResponse(address=address)
