"""
API router for inspection endpoints.
"""
from typing import Annotated, Dict, List, Optional, Tuple

from fastapi import APIRouter, Body, Path, Query, Request, Response, UploadFile, status
from starlette.concurrency import run_in_threadpool

from arborinsight.api.dependencies import (
    InspectionFilterDep,
    InspectionRepositoryDep,
    InspectionServiceDep,
)
from arborinsight.api.models.requests import ReplaceCandidatesRequest
from arborinsight.api.models.responses import ErrorResponse
from arborinsight.domain.exceptions import ValidationError
from arborinsight.domain.models import (
    CreateInspectionResult,
    InspectionDetail,
    InspectionSummary,
    Pagination,
    SpeciesCandidateOut,
    TreeDetail,
)


router = APIRouter(
    prefix="/inspections",
    tags=["inspections"],
)

InspectionId = Annotated[str, Path(description="Inspection id")]

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Inspection not found"}}
_INVALID = {422: {"model": ErrorResponse, "description": "Invalid payload"}}
_FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


@router.get(
    "",
    response_model=List[InspectionSummary],
    summary="List inspections",
    description="""
    List inspections, newest first.

    All filters are optional and combined with AND. `date_to` given as a bare
    date (YYYY-MM-DD) includes the whole day. Without `limit` every match is
    returned.
    """,
    responses=_INVALID,
)
def list_inspections(
    repository: InspectionRepositoryDep,
    filters: InspectionFilterDep,
    limit: Annotated[Optional[int], Query(ge=1, description="Page size")] = None,
    offset: Annotated[int, Query(ge=0, description="Rows to skip")] = 0,
) -> List[InspectionSummary]:
    return repository.list_inspections(filters, Pagination(limit=limit, offset=offset))


@router.post(
    "",
    response_model=CreateInspectionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create an inspection",
    description="""
    Create an inspection from a multipart form.

    Scalar fields are sent as form fields (camelCase or snake_case), an
    optional `photo` file is stored as the inspection photo, and `trees` is
    an optional JSON array of tree entries. Invalid tree entries are skipped
    and listed in `skippedTrees`; everything else is kept.
    """,
    responses=_INVALID,
)
async def create_inspection(
    request: Request,
    service: InspectionServiceDep,
) -> CreateInspectionResult:
    """
    Create an inspection from a multipart submission.

    Args:
        request: Incoming request carrying the multipart form
        service: Inspection service (injected dependency)

    Returns:
        CreateInspectionResult with the new id and skipped tree entries
    """
    fields, trees_json, photo = await _read_form(request)
    content = await photo.read() if photo is not None else None
    # Database work is blocking; keep it off the event loop
    return await run_in_threadpool(
        service.create_from_form,
        fields,
        trees_json,
        content,
        photo.filename if photo is not None else None,
        photo.content_type if photo is not None else None,
    )


@router.get(
    "/{inspection_id}",
    response_model=InspectionDetail,
    summary="Get an inspection",
    description="Inspection with its references, candidates and trees (photos in order).",
    responses=_NOT_FOUND,
)
def get_inspection(
    inspection_id: InspectionId,
    repository: InspectionRepositoryDep,
) -> InspectionDetail:
    return repository.get_inspection(inspection_id)


@router.put(
    "/{inspection_id}",
    response_model=InspectionDetail,
    summary="Update an inspection",
    description="""
    Partial update: only the fields present in the body change.

    The body is either a JSON object or the same multipart form used on
    create. A `photo` file in the form replaces the inspection photo.
    """,
    responses={**_NOT_FOUND, **_INVALID},
    openapi_extra={
        "requestBody": {
            "content": {
                "application/json": {
                    "schema": {"type": "object"},
                    "example": {"priority": "high", "notes": "Branches touching the line"},
                },
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "properties": {"photo": {"type": "string", "format": "binary"}},
                        "additionalProperties": {"type": "string"},
                    },
                },
            },
        },
    },
)
async def update_inspection(
    inspection_id: InspectionId,
    request: Request,
    repository: InspectionRepositoryDep,
    service: InspectionServiceDep,
) -> InspectionDetail:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(_FORM_TYPES):
        fields, _, photo = await _read_form(request)
        if photo is None:
            return await run_in_threadpool(service.update_from_form, inspection_id, fields)
        content = await photo.read()
        return await run_in_threadpool(
            service.update_from_form,
            inspection_id,
            fields,
            content,
            photo.filename,
            photo.content_type,
        )

    try:
        payload = await request.json()
    except ValueError as e:
        raise ValidationError.for_field("body", "must be a JSON object or a multipart form") from e
    if not isinstance(payload, dict):
        raise ValidationError.for_field("body", "must be a JSON object")
    return await run_in_threadpool(repository.update_inspection, inspection_id, payload)


@router.delete(
    "/{inspection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an inspection",
    description="Deletes the inspection with its trees, photos and species candidates.",
    responses=_NOT_FOUND,
)
def delete_inspection(
    inspection_id: InspectionId,
    repository: InspectionRepositoryDep,
) -> Response:
    repository.delete_inspection(inspection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{inspection_id}/species-candidates",
    response_model=List[SpeciesCandidateOut],
    summary="Replace species candidates",
    description="Replaces the inspection-level candidates with the given list.",
    responses=_NOT_FOUND,
)
def replace_species_candidates(
    inspection_id: InspectionId,
    body: ReplaceCandidatesRequest,
    repository: InspectionRepositoryDep,
) -> List[SpeciesCandidateOut]:
    return repository.replace_species_candidates(inspection_id, body.candidates)


@router.get(
    "/{inspection_id}/trees",
    response_model=List[TreeDetail],
    summary="List the trees of an inspection",
    responses=_NOT_FOUND,
)
def list_inspection_trees(
    inspection_id: InspectionId,
    repository: InspectionRepositoryDep,
) -> List[TreeDetail]:
    return repository.list_trees_for_inspection(inspection_id)


@router.post(
    "/{inspection_id}/trees",
    response_model=TreeDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Add a tree to an inspection",
    responses={**_NOT_FOUND, **_INVALID},
)
def create_tree(
    inspection_id: InspectionId,
    repository: InspectionRepositoryDep,
    payload: Annotated[dict, Body(examples=[{
        "latitude": -23.2017,
        "longitude": -47.2911,
        "photos": ["/uploads/tree-1.jpg"],
    }])],
) -> TreeDetail:
    return repository.create_tree(inspection_id, payload)


async def _read_form(request: Request) -> Tuple[Dict[str, str], Optional[str], Optional[UploadFile]]:
    """Split a submitted form into scalar fields, the trees JSON and the photo."""
    form = await request.form()
    fields = {}
    trees_json = None
    photo: Optional[UploadFile] = None
    for key, value in form.multi_items():
        if isinstance(value, str):
            if key == "trees":
                trees_json = value
            elif value != "":
                fields[key] = value
        elif key == "photo":
            photo = value
    return fields, trees_json, photo
