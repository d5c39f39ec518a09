"""
Infrastructure layer: local-disk photo and object storage.

Two upload paths are supported:

- multipart uploads saved directly under ``/uploads/<name>``;
- the object flow, where the client asks for a one-shot upload URL, PUTs the
  raw image there, then finalizes it into a public ``/objects/uploads/<id>``
  path that carries an ACL sidecar.
"""
import json
import logging
import mimetypes
import re
import uuid
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from arborinsight.config import settings
from arborinsight.domain.exceptions import NotFoundError, ValidationError


logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/api/objects/uploads/"
OBJECT_PATH_PREFIX = "/objects/uploads/"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_ACL_SUFFIX = ".acl.json"


class PhotoStorage:
    """Stores tree photos on the local filesystem."""

    def __init__(self, root: Optional[str] = None, max_bytes: Optional[int] = None):
        self.root = Path(root or settings.upload_dir)
        self.max_bytes = max_bytes or settings.max_upload_bytes
        self.uploads_dir = self.root / "uploads"
        self.objects_dir = self.root / "objects" / "uploads"
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.objects_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_image(self, content: bytes, content_type: Optional[str], field: str = "photo") -> None:
        """
        Accept only images no larger than the configured limit.

        Raises:
            ValidationError: If the content is not an image or is too large
        """
        if not content_type or not content_type.startswith("image/"):
            raise ValidationError.for_field(field, "only image files are accepted")
        if len(content) > self.max_bytes:
            raise ValidationError.for_field(
                field, f"file exceeds the {self.max_bytes // (1024 * 1024)} MB limit"
            )
        if not content:
            raise ValidationError.for_field(field, "file is empty")

    # ------------------------------------------------------------------
    # Multipart uploads
    # ------------------------------------------------------------------

    def save_upload(self, content: bytes, filename: Optional[str], content_type: Optional[str]) -> str:
        """
        Save a multipart photo upload.

        Returns:
            Public URL path of the stored file
        """
        self.validate_image(content, content_type)
        extension = Path(filename or "").suffix.lower()
        if not extension or not _SAFE_NAME.match(f"x{extension}"):
            extension = mimetypes.guess_extension(content_type or "") or ""
        name = f"tree-{uuid.uuid4().hex}{extension}"
        (self.uploads_dir / name).write_bytes(content)
        logger.info(f"Stored upload {name} ({len(content)} bytes)")
        return f"/uploads/{name}"

    def delete_upload(self, url: str) -> None:
        """Remove a multipart upload saved by save_upload, if it is still there."""
        name = url[len("/uploads/"):] if url.startswith("/uploads/") else url
        _check_name(name, entity="Upload")
        path = self.uploads_dir / name
        if path.is_file():
            path.unlink()
            logger.info(f"Removed upload {name}")

    # ------------------------------------------------------------------
    # Object flow
    # ------------------------------------------------------------------

    def create_upload_url(self) -> str:
        """One-shot upload target for a new object."""
        return f"{UPLOAD_URL_PREFIX}{uuid.uuid4()}"

    def store_object(self, object_id: str, content: bytes, content_type: Optional[str]) -> None:
        """Write the raw body PUT to an upload URL."""
        _check_name(object_id)
        self.validate_image(content, content_type, field="body")
        (self.objects_dir / object_id).write_bytes(content)
        self._write_metadata(object_id, {"contentType": content_type})
        logger.info(f"Stored object {object_id} ({len(content)} bytes)")

    def normalize_object_path(self, image_url: str) -> str:
        """
        Turn an upload URL (absolute or relative) into its public object path.

        URLs that do not point into this store are returned unchanged.
        """
        path = urlparse(image_url).path or image_url
        for prefix in (UPLOAD_URL_PREFIX, OBJECT_PATH_PREFIX):
            if path.startswith(prefix):
                return f"{OBJECT_PATH_PREFIX}{path[len(prefix):]}"
        return image_url

    def finalize(self, image_url: str, owner: str = "system") -> str:
        """
        Make an uploaded object publicly readable.

        Returns:
            The normalised object path

        Raises:
            NotFoundError: If the object was never uploaded
        """
        object_path = self.normalize_object_path(image_url)
        if not object_path.startswith(OBJECT_PATH_PREFIX):
            return object_path

        object_id = object_path[len(OBJECT_PATH_PREFIX):]
        _check_name(object_id)
        if not (self.objects_dir / object_id).is_file():
            raise NotFoundError("Object", object_id)

        metadata = self._read_metadata(object_id)
        metadata.update({"owner": owner, "visibility": "public"})
        self._write_metadata(object_id, metadata)
        logger.info(f"Finalized object {object_id} for {owner}")
        return object_path

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    def resolve_upload(self, name: str) -> Tuple[Path, str]:
        """Filesystem path and media type of a multipart upload."""
        _check_name(name, entity="Upload")
        path = self.uploads_dir / name
        if not path.is_file():
            raise NotFoundError("Upload", name)
        media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        return path, media_type

    def resolve_object(self, object_path: str) -> Tuple[Path, str]:
        """
        Filesystem path and media type of a finalized object.

        Args:
            object_path: Path below /objects, e.g. "uploads/<id>"
        """
        object_path = object_path.strip("/")
        prefix = "uploads/"
        if not object_path.startswith(prefix):
            raise NotFoundError("Object", object_path)
        object_id = object_path[len(prefix):]
        _check_name(object_id, entity="Object")
        path = self.objects_dir / object_id
        metadata = self._read_metadata(object_id)
        # Only objects made public by finalize are served
        if not path.is_file() or metadata.get("visibility") != "public":
            raise NotFoundError("Object", object_id)
        media_type = metadata.get("contentType") or "application/octet-stream"
        return path, media_type

    def _metadata_path(self, object_id: str) -> Path:
        return self.objects_dir / f"{object_id}{_ACL_SUFFIX}"

    def _read_metadata(self, object_id: str) -> dict:
        path = self._metadata_path(object_id)
        if not path.is_file():
            return {}
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_metadata(self, object_id: str, metadata: dict) -> None:
        self._metadata_path(object_id).write_text(json.dumps(metadata), encoding="utf-8")


def _check_name(name: str, entity: str = "Object") -> None:
    # Refuse anything that could escape the storage directory
    if not _SAFE_NAME.match(name or "") or name.endswith(_ACL_SUFFIX):
        raise NotFoundError(entity, name)


# Singleton instance
_photo_storage: Optional[PhotoStorage] = None


def get_photo_storage() -> PhotoStorage:
    """Get or create the singleton photo storage."""
    global _photo_storage
    if _photo_storage is None:
        _photo_storage = PhotoStorage()
    return _photo_storage
