"""
Application service: Orchestration layer for inspection operations.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from arborinsight.domain.exceptions import ValidationError
from arborinsight.domain.models import (
    CreateInspectionResult,
    InspectionDetail,
    InspectionFilter,
)
from arborinsight.infrastructure.photo_storage import PhotoStorage
from arborinsight.services.domain import export_generator
from arborinsight.services.domain.export_generator import ExportDocument
from arborinsight.services.domain.inspection_repository import InspectionRepository


logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "csv": export_generator.export_to_csv,
    "pdf": export_generator.export_to_report,
    "kml": export_generator.export_to_kml,
}


class InspectionService:
    """
    Application service for inspection workflows that span several components.

    No business rules live here, only coordination between storage, the
    repository and the export generator.
    """

    def __init__(
        self,
        repository: InspectionRepository,
        storage: PhotoStorage,
    ):
        """
        Initialize the service with dependencies.

        Args:
            repository: Inspection persistence
            storage: Photo storage for multipart uploads
        """
        self.repository = repository
        self.storage = storage

    def create_from_form(
        self,
        fields: Dict[str, Any],
        trees_json: Optional[str] = None,
        photo: Optional[bytes] = None,
        photo_filename: Optional[str] = None,
        photo_content_type: Optional[str] = None,
    ) -> CreateInspectionResult:
        """
        Create an inspection from a multipart form submission.

        Args:
            fields: Scalar form fields
            trees_json: JSON array of tree entries, if any
            photo: Optional inspection photo content

        Returns:
            The new id and any tree entries that were skipped

        Raises:
            ValidationError: If the form, the trees JSON or the photo is invalid
        """
        payload = dict(fields)
        payload["trees"] = parse_trees_json(trees_json)
        if photo is None:
            return self.repository.create_inspection(payload)

        photo_url = self.storage.save_upload(photo, photo_filename, photo_content_type)
        payload["photoUrl"] = photo_url
        try:
            return self.repository.create_inspection(payload)
        except Exception:
            # A rejected inspection keeps no photo
            self.storage.delete_upload(photo_url)
            raise

    def update_from_form(
        self,
        inspection_id: str,
        fields: Dict[str, Any],
        photo: Optional[bytes] = None,
        photo_filename: Optional[str] = None,
        photo_content_type: Optional[str] = None,
    ) -> InspectionDetail:
        """
        Apply a partial update sent as a multipart form.

        Only the fields present in the form change. A photo, when given,
        replaces the inspection photo.

        Raises:
            NotFoundError: If no inspection has this id
            ValidationError: If a field or the photo is invalid
        """
        payload = dict(fields)
        if photo is None:
            return self.repository.update_inspection(inspection_id, payload)

        photo_url = self.storage.save_upload(photo, photo_filename, photo_content_type)
        payload["photoUrl"] = photo_url
        try:
            return self.repository.update_inspection(inspection_id, payload)
        except Exception:
            self.storage.delete_upload(photo_url)
            raise

    def export(
        self,
        fmt: str,
        filters: Optional[InspectionFilter] = None,
        title: Optional[str] = None,
    ) -> ExportDocument:
        """
        Render the filtered inspections in the requested format.

        Args:
            fmt: One of csv, pdf (plain-text report) or kml
            filters: Same filters as the inspection listing
            title: Document title, also used for the file name

        Raises:
            ValidationError: If the format is unknown
        """
        renderer = EXPORT_FORMATS.get(fmt)
        if renderer is None:
            raise ValidationError.for_field("format", f"unsupported export format '{fmt}'")
        inspections = self.repository.list_inspection_details(filters)
        logger.info(f"Exporting {len(inspections)} inspections as {fmt}")
        return renderer(inspections, title or export_generator.DEFAULT_TITLE)


def parse_trees_json(trees_json: Optional[str]) -> List[Any]:
    """
    Decode the ``trees`` form field.

    Entries are returned as-is; each one is validated when it is stored.
    """
    if trees_json is None or not trees_json.strip():
        return []
    try:
        trees = json.loads(trees_json)
    except json.JSONDecodeError as e:
        raise ValidationError.for_field("trees", f"invalid JSON: {e.msg}")
    if not isinstance(trees, list):
        raise ValidationError.for_field("trees", "must be a JSON array")
    return trees
