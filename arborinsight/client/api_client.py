"""
Client layer: async HTTP client for the ArborInsight API.

Used by the authoring workflow for enrichment and submission, and by the
dashboard views to load data. Failures surface as the same domain errors
the server raises: 422 responses become ValidationError with the field
list, everything else stays an UpstreamError carrying the server status.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from arborinsight.domain.exceptions import UpstreamError, ValidationError
from arborinsight.domain.models import (
    CreateInspectionResult,
    DashboardStats,
    IdentificationResult,
    InspectionDetail,
    InspectionSummary,
    MunicipalityOut,
    RegionOut,
    TreeWithContext,
)
from arborinsight.infrastructure.external_api_client import ExternalAPIClient


logger = logging.getLogger(__name__)

# (filename, content, content type)
PhotoFile = Tuple[str, bytes, str]


class ArborInsightClient(ExternalAPIClient):
    """Client for the ArborInsight HTTP API."""

    service_name = "ArborInsight API"

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        max_attempts: Optional[int] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, max_attempts=max_attempts)

    async def _call(self, method: str, endpoint: str, **kwargs) -> Any:
        # Only reads are retried; writes are sent once
        try:
            return await self._make_request(method, endpoint, retry=method == "GET", **kwargs)
        except UpstreamError as e:
            if e.status_code == 422 and isinstance(e.detail, dict):
                raise ValidationError(
                    str(e.detail.get("detail") or e.message),
                    errors=e.detail.get("errors") or [],
                )
            raise

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """Address of a coordinate, as formatted by the server."""
        data = await self._call(
            "GET",
            "/api/geocoding/reverse",
            params={"lat": latitude, "lng": longitude},
        )
        return data["address"]

    async def identify_species(
        self,
        image_url: str,
        organs: Optional[List[str]] = None,
        lang: Optional[str] = None,
    ) -> IdentificationResult:
        body: Dict[str, Any] = {"imageUrl": image_url}
        if organs:
            body["organs"] = organs
        if lang:
            body["lang"] = lang
        data = await self._call("POST", "/api/species/identify", json=body)
        return IdentificationResult.model_validate(data)

    async def upload_photo(self, content: bytes, content_type: str) -> str:
        """
        Upload a photo through the object flow.

        Requests a one-shot upload URL, PUTs the raw bytes to it and
        finalizes the object so it becomes publicly readable.

        Returns:
            Public object path of the photo
        """
        target = await self._call("POST", "/api/objects/upload")
        upload_url = target["uploadURL"]
        await self._call(
            "PUT",
            upload_url,
            content=content,
            headers={"Content-Type": content_type},
        )
        finalized = await self._call("PUT", "/api/tree-images", json={"imageUrl": upload_url})
        logger.debug(f"Uploaded photo to {finalized['objectPath']}")
        return finalized["objectPath"]

    # ------------------------------------------------------------------
    # Inspections
    # ------------------------------------------------------------------

    async def create_inspection(
        self,
        fields: Dict[str, Any],
        trees: Optional[List[Dict[str, Any]]] = None,
        photo: Optional[PhotoFile] = None,
    ) -> CreateInspectionResult:
        """
        Submit a new inspection as a multipart form.

        Args:
            fields: Scalar fields, camelCase keys
            trees: Tree payloads, sent as a JSON-encoded ``trees`` field
            photo: Optional inspection photo

        Returns:
            The new id and the tree entries the server skipped
        """
        data = {key: _form_value(value) for key, value in fields.items() if value is not None}
        data["trees"] = json.dumps(trees or [])
        files = {"photo": photo} if photo is not None else None
        result = await self._call("POST", "/api/inspections", data=data, files=files)
        return CreateInspectionResult.model_validate(result)

    async def list_inspections(self, **filters: Any) -> List[InspectionSummary]:
        params = {key: value for key, value in filters.items() if value is not None}
        data = await self._call("GET", "/api/inspections", params=params)
        return [InspectionSummary.model_validate(item) for item in data]

    async def get_inspection(self, inspection_id: str) -> InspectionDetail:
        data = await self._call("GET", f"/api/inspections/{inspection_id}")
        return InspectionDetail.model_validate(data)

    async def delete_inspection(self, inspection_id: str) -> None:
        await self._call("DELETE", f"/api/inspections/{inspection_id}")

    # ------------------------------------------------------------------
    # Dashboard and map
    # ------------------------------------------------------------------

    async def dashboard_stats(
        self,
        region_id: Optional[str] = None,
        municipality_id: Optional[str] = None,
    ) -> DashboardStats:
        params = {"region_id": region_id, "municipality_id": municipality_id}
        data = await self._call(
            "GET",
            "/api/dashboard/stats",
            params={key: value for key, value in params.items() if value is not None},
        )
        return DashboardStats.model_validate(data)

    async def list_trees(self, **filters: Any) -> List[TreeWithContext]:
        params = {key: value for key, value in filters.items() if value is not None}
        data = await self._call("GET", "/api/trees", params=params)
        return [TreeWithContext.model_validate(item) for item in data]

    async def list_regions(self) -> List[RegionOut]:
        data = await self._call("GET", "/api/refs/regions")
        return [RegionOut.model_validate(item) for item in data]

    async def list_municipalities(self, region_id: Optional[str] = None) -> List[MunicipalityOut]:
        params = {"region_id": region_id} if region_id else None
        data = await self._call("GET", "/api/refs/municipalities", params=params)
        return [MunicipalityOut.model_validate(item) for item in data]


def _form_value(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)
