"""
API router for export downloads.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from arborinsight.api.dependencies import InspectionFilterDep, InspectionServiceDep
from arborinsight.services.domain.export_generator import ExportDocument


router = APIRouter(
    prefix="/export",
    tags=["exports"],
)

# Spreadsheet tools need it to read the CSV as UTF-8
UTF8_BOM = "\ufeff"

Title = Annotated[Optional[str], Query(description="Document title, also used for the file name")]


def _download(document: ExportDocument, prefix: str = "") -> StreamingResponse:
    return StreamingResponse(
        iter([prefix + document.content]),
        media_type=document.media_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )


@router.get(
    "/csv",
    summary="Export inspections as CSV",
    description="One row per inspection with the same filters as the listing.",
    response_class=StreamingResponse,
)
def export_csv(
    service: InspectionServiceDep,
    filters: InspectionFilterDep,
    title: Title = None,
) -> StreamingResponse:
    return _download(service.export("csv", filters, title), prefix=UTF8_BOM)


@router.get(
    "/pdf",
    summary="Export an inspection report",
    description="Formatted plain-text report (served as text/plain).",
    response_class=StreamingResponse,
)
def export_report(
    service: InspectionServiceDep,
    filters: InspectionFilterDep,
    title: Title = None,
) -> StreamingResponse:
    return _download(service.export("pdf", filters, title))


@router.get(
    "/kml",
    summary="Export trees as KML",
    description="One placemark per tree, pinned red/yellow/green by priority.",
    response_class=StreamingResponse,
)
def export_kml(
    service: InspectionServiceDep,
    filters: InspectionFilterDep,
    title: Title = None,
) -> StreamingResponse:
    return _download(service.export("kml", filters, title))
