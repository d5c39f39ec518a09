"""
API router for administrative reference data.
"""
from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Query, status

from arborinsight.api.dependencies import ReferenceStoreDep
from arborinsight.api.models.responses import ErrorResponse
from arborinsight.domain.models import (
    FeederOut,
    MunicipalityOut,
    RegionOut,
    SubstationOut,
)


router = APIRouter(
    prefix="/refs",
    tags=["reference data"],
)

_CREATE_RESPONSES = {422: {"model": ErrorResponse, "description": "Invalid payload or unknown parent"}}


@router.get("/regions", response_model=List[RegionOut], summary="List regions")
def list_regions(store: ReferenceStoreDep) -> List[RegionOut]:
    return store.list_regions()


@router.post(
    "/regions",
    response_model=RegionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a region",
    responses=_CREATE_RESPONSES,
)
def create_region(
    store: ReferenceStoreDep,
    payload: Annotated[dict, Body(examples=[{"name": "EA Sorocaba"}])],
) -> RegionOut:
    return store.create_region(payload)


@router.get(
    "/municipalities",
    response_model=List[MunicipalityOut],
    summary="List municipalities",
    description="Municipalities ordered by name, optionally limited to one region.",
)
def list_municipalities(
    store: ReferenceStoreDep,
    region_id: Annotated[Optional[str], Query(description="Only municipalities of this region")] = None,
) -> List[MunicipalityOut]:
    return store.list_municipalities(region_id)


@router.post(
    "/municipalities",
    response_model=MunicipalityOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a municipality",
    responses=_CREATE_RESPONSES,
)
def create_municipality(
    store: ReferenceStoreDep,
    payload: Annotated[dict, Body(examples=[{"name": "Itu", "stateCode": "SP", "regionId": "..."}])],
) -> MunicipalityOut:
    return store.create_municipality(payload)


@router.get("/substations", response_model=List[SubstationOut], summary="List substations")
def list_substations(store: ReferenceStoreDep) -> List[SubstationOut]:
    return store.list_substations()


@router.post(
    "/substations",
    response_model=SubstationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a substation",
    responses=_CREATE_RESPONSES,
)
def create_substation(
    store: ReferenceStoreDep,
    payload: Annotated[dict, Body(examples=[{"name": "SE Itu"}])],
) -> SubstationOut:
    return store.create_substation(payload)


@router.get(
    "/feeders",
    response_model=List[FeederOut],
    summary="List feeders",
    description="Feeders ordered by code, optionally limited to one substation.",
)
def list_feeders(
    store: ReferenceStoreDep,
    substation_id: Annotated[Optional[str], Query(description="Only feeders of this substation")] = None,
) -> List[FeederOut]:
    return store.list_feeders(substation_id)


@router.post(
    "/feeders",
    response_model=FeederOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a feeder",
    description="Feeder codes are 3 uppercase letters followed by 2 digits and must be unique.",
    responses=_CREATE_RESPONSES,
)
def create_feeder(
    store: ReferenceStoreDep,
    payload: Annotated[dict, Body(examples=[{"code": "ITU01", "substationId": "..."}])],
) -> FeederOut:
    return store.create_feeder(payload)
