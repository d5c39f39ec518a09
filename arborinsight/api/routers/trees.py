"""
API router for tree endpoints.
"""
from typing import Annotated, List

from fastapi import APIRouter, Body, Path, Response, status

from arborinsight.api.dependencies import InspectionRepositoryDep, TreeFilterDep
from arborinsight.api.models.requests import AddPhotosRequest, ReplaceCandidatesRequest
from arborinsight.api.models.responses import ErrorResponse
from arborinsight.domain.models import (
    SpeciesCandidateOut,
    TreeDetail,
    TreePhotoOut,
    TreeWithContext,
)


router = APIRouter(
    prefix="/trees",
    tags=["trees"],
)

TreeId = Annotated[str, Path(description="Tree id")]

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Tree not found"}}


@router.get(
    "",
    response_model=List[TreeWithContext],
    summary="List trees for the map",
    description="Every tree with its owning inspection, filterable by region, municipality and priority.",
)
def list_trees(
    repository: InspectionRepositoryDep,
    filters: TreeFilterDep,
) -> List[TreeWithContext]:
    return repository.list_trees(filters)


@router.get("/{tree_id}", response_model=TreeDetail, summary="Get a tree", responses=_NOT_FOUND)
def get_tree(tree_id: TreeId, repository: InspectionRepositoryDep) -> TreeDetail:
    return repository.get_tree(tree_id)


@router.put(
    "/{tree_id}",
    response_model=TreeDetail,
    summary="Update a tree",
    description="Partial update: only the fields present in the body change.",
    responses=_NOT_FOUND,
)
def update_tree(
    tree_id: TreeId,
    repository: InspectionRepositoryDep,
    payload: Annotated[dict, Body(examples=[{"finalSpecies": "Tipuana tipu", "observation": "Leaning"}])],
) -> TreeDetail:
    return repository.update_tree(tree_id, payload)


@router.delete(
    "/{tree_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a tree",
    description="Deletes the tree with its photos and species candidates.",
    responses=_NOT_FOUND,
)
def delete_tree(tree_id: TreeId, repository: InspectionRepositoryDep) -> Response:
    repository.delete_tree(tree_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{tree_id}/photos",
    response_model=List[TreePhotoOut],
    status_code=status.HTTP_201_CREATED,
    summary="Add photos to a tree",
    responses=_NOT_FOUND,
)
def add_photos(
    tree_id: TreeId,
    body: AddPhotosRequest,
    repository: InspectionRepositoryDep,
) -> List[TreePhotoOut]:
    return repository.add_photos(tree_id, body.urls)


@router.delete(
    "/{tree_id}/photos/{photo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a photo from a tree",
    responses={404: {"model": ErrorResponse, "description": "Photo not found on this tree"}},
)
def remove_photo(
    tree_id: TreeId,
    photo_id: Annotated[str, Path(description="Photo id")],
    repository: InspectionRepositoryDep,
) -> Response:
    repository.remove_photo(tree_id, photo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{tree_id}/species-candidates",
    response_model=List[SpeciesCandidateOut],
    summary="Replace a tree's species candidates",
    responses=_NOT_FOUND,
)
def replace_tree_species_candidates(
    tree_id: TreeId,
    body: ReplaceCandidatesRequest,
    repository: InspectionRepositoryDep,
) -> List[SpeciesCandidateOut]:
    return repository.replace_tree_species_candidates(tree_id, body.candidates)
