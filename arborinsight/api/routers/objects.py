"""
API routers for photo object uploads and for serving stored images.
"""
from typing import Annotated

from fastapi import APIRouter, Header, Path, Request, status
from fastapi.responses import FileResponse

from arborinsight.api.dependencies import PhotoStorageDep
from arborinsight.api.models.requests import TreeImageRequest
from arborinsight.api.models.responses import ErrorResponse, ObjectPathResponse, UploadURLResponse


router = APIRouter(tags=["objects"])

# Served at the site root, next to the API
public_router = APIRouter(tags=["objects"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Object not found"}}


@router.post(
    "/objects/upload",
    response_model=UploadURLResponse,
    summary="Request an upload URL",
    description="Returns a one-shot URL the client PUTs the raw image to.",
)
def request_upload_url(storage: PhotoStorageDep) -> UploadURLResponse:
    return UploadURLResponse(uploadURL=storage.create_upload_url())


@router.put(
    "/objects/uploads/{object_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Upload an image to a one-shot URL",
    responses={422: {"model": ErrorResponse, "description": "Not an image or too large"}},
)
async def upload_object(
    object_id: Annotated[str, Path(description="Object id from the upload URL")],
    request: Request,
    storage: PhotoStorageDep,
    content_type: Annotated[str, Header()] = "",
) -> None:
    content = await request.body()
    storage.store_object(object_id, content, content_type)


@router.put(
    "/tree-images",
    response_model=ObjectPathResponse,
    summary="Finalize an uploaded tree image",
    description="Marks an uploaded object as public and returns the path serving it.",
    responses=_NOT_FOUND,
)
def finalize_tree_image(body: TreeImageRequest, storage: PhotoStorageDep) -> ObjectPathResponse:
    return ObjectPathResponse(object_path=storage.finalize(body.image_url))


@public_router.get(
    "/objects/{object_path:path}",
    response_class=FileResponse,
    summary="Serve a finalized object",
    responses=_NOT_FOUND,
)
def serve_object(object_path: str, storage: PhotoStorageDep) -> FileResponse:
    path, media_type = storage.resolve_object(object_path)
    return FileResponse(path, media_type=media_type)


@public_router.get(
    "/uploads/{name}",
    response_class=FileResponse,
    summary="Serve a multipart upload",
    responses=_NOT_FOUND,
)
def serve_upload(name: str, storage: PhotoStorageDep) -> FileResponse:
    path, media_type = storage.resolve_upload(name)
    return FileResponse(path, media_type=media_type)
