"""
Dependency injection for FastAPI.
"""
from typing import Annotated, Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from arborinsight.domain.models import InspectionFilter, TreeFilter, parse_payload
from arborinsight.infrastructure.database import get_db
from arborinsight.infrastructure.geocoding_client import (
    GeocodingClient,
    get_geocoding_client,
)
from arborinsight.infrastructure.photo_storage import PhotoStorage, get_photo_storage
from arborinsight.infrastructure.plantnet_client import (
    PlantNetClient,
    get_plantnet_client,
)
from arborinsight.services.application.inspection_service import InspectionService
from arborinsight.services.domain.inspection_repository import InspectionRepository
from arborinsight.services.domain.reference_store import ReferenceStore


DbSession = Annotated[Session, Depends(get_db)]


def get_reference_store(db: DbSession) -> ReferenceStore:
    """Dependency factory for ReferenceStore."""
    return ReferenceStore(db)


def get_inspection_repository(db: DbSession) -> InspectionRepository:
    """Dependency factory for InspectionRepository."""
    return InspectionRepository(db)


def get_inspection_service(
    repository: Annotated[InspectionRepository, Depends(get_inspection_repository)],
    storage: Annotated[PhotoStorage, Depends(get_photo_storage)],
) -> InspectionService:
    """
    Dependency factory for InspectionService.

    Args:
        repository: Inspection repository (injected)
        storage: Photo storage (injected)

    Returns:
        InspectionService instance
    """
    return InspectionService(
        repository=repository,
        storage=storage,
    )


def get_inspection_filter(
    region_id: Annotated[Optional[str], Query(description="Region id")] = None,
    municipality_id: Annotated[Optional[str], Query(description="Municipality id")] = None,
    feeder_id: Annotated[Optional[str], Query(description="Feeder id")] = None,
    priority: Annotated[Optional[str], Query(description="low, medium or high (alta, media, baixa accepted)")] = None,
    date_from: Annotated[Optional[str], Query(description="Earliest inspection date, ISO-8601")] = None,
    date_to: Annotated[Optional[str], Query(description="Latest inspection date; a bare date covers the whole day")] = None,
    note_number: Annotated[Optional[str], Query(description="Case-insensitive substring of the note number")] = None,
) -> InspectionFilter:
    """
    Dependency factory for the inspection listing and export filters.

    Raises:
        ValidationError: If the priority or a date bound cannot be parsed
    """
    return parse_payload(InspectionFilter, {
        "region_id": region_id,
        "municipality_id": municipality_id,
        "feeder_id": feeder_id,
        "priority": priority or None,
        "date_from": date_from,
        "date_to": date_to,
        "note_number": note_number,
    })


def get_tree_filter(
    region_id: Annotated[Optional[str], Query(description="Region id")] = None,
    municipality_id: Annotated[Optional[str], Query(description="Municipality id")] = None,
    priority: Annotated[Optional[str], Query(description="low, medium or high")] = None,
) -> TreeFilter:
    """Dependency factory for the map tree listing filters."""
    return parse_payload(TreeFilter, {
        "region_id": region_id,
        "municipality_id": municipality_id,
        "priority": priority or None,
    })


# Type aliases for cleaner route signatures
ReferenceStoreDep = Annotated[ReferenceStore, Depends(get_reference_store)]
InspectionRepositoryDep = Annotated[InspectionRepository, Depends(get_inspection_repository)]
InspectionServiceDep = Annotated[InspectionService, Depends(get_inspection_service)]
PhotoStorageDep = Annotated[PhotoStorage, Depends(get_photo_storage)]
PlantNetClientDep = Annotated[PlantNetClient, Depends(get_plantnet_client)]
GeocodingClientDep = Annotated[GeocodingClient, Depends(get_geocoding_client)]
InspectionFilterDep = Annotated[InspectionFilter, Depends(get_inspection_filter)]
TreeFilterDep = Annotated[TreeFilter, Depends(get_tree_filter)]
