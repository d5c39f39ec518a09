"""
API router for dashboard aggregates.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Query

from arborinsight.api.dependencies import InspectionRepositoryDep
from arborinsight.domain.models import DashboardStats


router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
)


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Dashboard statistics",
    description="Inspection totals per priority and per municipality (highest count first).",
)
def dashboard_stats(
    repository: InspectionRepositoryDep,
    region_id: Annotated[Optional[str], Query(description="Only this region")] = None,
    municipality_id: Annotated[Optional[str], Query(description="Only this municipality")] = None,
) -> DashboardStats:
    return repository.dashboard_stats(region_id=region_id, municipality_id=municipality_id)
