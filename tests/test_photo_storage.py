"""
Unit tests for local photo and object storage.
"""
import json

import pytest

from arborinsight.domain.exceptions import NotFoundError, ValidationError
from arborinsight.infrastructure.photo_storage import OBJECT_PATH_PREFIX, UPLOAD_URL_PREFIX


JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


# ============================================================
# Validation Tests
# ============================================================

class TestValidateImage:
    """Tests for upload validation."""

    def test_non_image_rejected(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            storage.validate_image(b"%PDF", "application/pdf")

        assert exc_info.value.errors[0]["field"] == "photo"

    def test_missing_content_type_rejected(self, storage):
        with pytest.raises(ValidationError):
            storage.validate_image(JPEG, None)

    def test_too_large_rejected(self, storage):
        with pytest.raises(ValidationError, match="limit"):
            storage.validate_image(b"x" * 1025, "image/jpeg")

    def test_empty_rejected(self, storage):
        with pytest.raises(ValidationError, match="empty"):
            storage.validate_image(b"", "image/png")

    def test_at_limit_accepted(self, storage):
        storage.validate_image(b"x" * 1024, "image/jpeg")


# ============================================================
# Multipart Upload Tests
# ============================================================

class TestSaveUpload:
    """Tests for multipart photo uploads."""

    def test_saved_under_uploads(self, storage):
        url = storage.save_upload(JPEG, "IMG_0001.JPG", "image/jpeg")

        assert url.startswith("/uploads/tree-")
        assert url.endswith(".jpg")
        path, media_type = storage.resolve_upload(url.rsplit("/", 1)[-1])
        assert path.read_bytes() == JPEG
        assert media_type == "image/jpeg"

    def test_extension_from_content_type(self, storage):
        url = storage.save_upload(JPEG, None, "image/png")

        assert url.endswith(".png")

    def test_invalid_upload_not_written(self, storage):
        with pytest.raises(ValidationError):
            storage.save_upload(b"text", "notes.txt", "text/plain")

        assert list(storage.uploads_dir.iterdir()) == []

    def test_delete_upload(self, storage):
        url = storage.save_upload(JPEG, "tree.jpg", "image/jpeg")

        storage.delete_upload(url)

        assert list(storage.uploads_dir.iterdir()) == []

    def test_delete_missing_upload_is_noop(self, storage):
        storage.delete_upload("/uploads/tree-missing.jpg")

    def test_delete_rejects_traversal(self, storage):
        with pytest.raises(NotFoundError):
            storage.delete_upload("/uploads/../secret")


# ============================================================
# Object Flow Tests
# ============================================================

class TestObjectFlow:
    """Tests for upload URLs, raw PUTs and finalization."""

    def test_upload_url_is_unique(self, storage):
        first, second = storage.create_upload_url(), storage.create_upload_url()

        assert first.startswith(UPLOAD_URL_PREFIX)
        assert first != second

    def test_finalize_marks_object_public(self, storage):
        upload_url = storage.create_upload_url()
        object_id = upload_url[len(UPLOAD_URL_PREFIX):]
        storage.store_object(object_id, JPEG, "image/jpeg")

        object_path = storage.finalize(f"http://localhost:8000{upload_url}", owner="inspector")

        assert object_path == f"{OBJECT_PATH_PREFIX}{object_id}"
        metadata = json.loads((storage.objects_dir / f"{object_id}.acl.json").read_text())
        assert metadata == {"contentType": "image/jpeg", "owner": "inspector", "visibility": "public"}

    def test_resolve_finalized_object(self, storage):
        object_id = storage.create_upload_url()[len(UPLOAD_URL_PREFIX):]
        storage.store_object(object_id, JPEG, "image/webp")
        storage.finalize(f"{UPLOAD_URL_PREFIX}{object_id}")

        path, media_type = storage.resolve_object(f"uploads/{object_id}")

        assert path.read_bytes() == JPEG
        assert media_type == "image/webp"

    def test_finalize_missing_object(self, storage):
        with pytest.raises(NotFoundError):
            storage.finalize(f"{UPLOAD_URL_PREFIX}never-uploaded")

    def test_store_rejects_non_image(self, storage):
        with pytest.raises(ValidationError) as exc_info:
            storage.store_object("abc", b"hello", "text/plain")

        assert exc_info.value.errors[0]["field"] == "body"

    @pytest.mark.parametrize("image_url, expected", [
        ("/api/objects/uploads/abc", "/objects/uploads/abc"),
        ("https://host.test/api/objects/uploads/abc", "/objects/uploads/abc"),
        ("/objects/uploads/abc", "/objects/uploads/abc"),
        ("https://example.org/tree.jpg", "https://example.org/tree.jpg"),
    ])
    def test_normalize_object_path(self, storage, image_url, expected):
        assert storage.normalize_object_path(image_url) == expected

    def test_foreign_url_finalizes_unchanged(self, storage):
        assert storage.finalize("https://example.org/tree.jpg") == "https://example.org/tree.jpg"


# ============================================================
# Serving Tests
# ============================================================

class TestResolve:
    """Tests for resolving stored files."""

    @pytest.mark.parametrize("name", ["../secret", "..", ".hidden", "a/b", ""])
    def test_upload_traversal_rejected(self, storage, name):
        with pytest.raises(NotFoundError):
            storage.resolve_upload(name)

    @pytest.mark.parametrize("object_path", ["uploads/../../etc/passwd", "private/abc", "uploads/x.acl.json"])
    def test_object_traversal_rejected(self, storage, object_path):
        with pytest.raises(NotFoundError):
            storage.resolve_object(object_path)

    def test_unfinalized_object_not_served(self, storage):
        object_id = storage.create_upload_url()[len(UPLOAD_URL_PREFIX):]
        storage.store_object(object_id, JPEG, "image/jpeg")

        with pytest.raises(NotFoundError):
            storage.resolve_object(f"uploads/{object_id}")

    def test_unknown_upload(self, storage):
        with pytest.raises(NotFoundError):
            storage.resolve_upload("tree-missing.jpg")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
