"""
Unit tests for the ArborInsight API client.

Server traffic is mocked with respx.
"""
import json
from datetime import datetime

import httpx
import pytest
import pytest_asyncio
import respx

from arborinsight.client.api_client import ArborInsightClient
from arborinsight.domain.exceptions import UpstreamError, ValidationError
from arborinsight.domain.models import Priority


BASE_URL = "http://localhost:8000"


@pytest_asyncio.fixture
async def client():
    client = ArborInsightClient(base_url=BASE_URL, max_attempts=1)
    yield client
    await client.close()


class TestEnrichment:
    """Tests for the enrichment calls."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_reverse_geocode(self, client):
        route = respx.get(f"{BASE_URL}/api/geocoding/reverse").mock(
            return_value=httpx.Response(200, json={"address": "Rua Paula Souza, Centro - Itu/São Paulo"})
        )

        address = await client.reverse_geocode(-23.26, -47.29)

        assert address == "Rua Paula Souza, Centro - Itu/São Paulo"
        assert route.calls.last.request.url.params["lng"] == "-47.29"

    @pytest.mark.asyncio
    @respx.mock
    async def test_identify_species(self, client):
        route = respx.post(f"{BASE_URL}/api/species/identify").mock(
            return_value=httpx.Response(200, json={
                "suggestedSpecies": "Tipuana tipu",
                "candidates": [{"name": "Tipuana tipu", "commonName": "Tipuana", "confidence": 88}],
                "averageConfidence": 88,
                "source": "Pl@ntNet",
            })
        )

        result = await client.identify_species("/objects/uploads/abc")

        assert json.loads(route.calls.last.request.content) == {"imageUrl": "/objects/uploads/abc"}
        assert result.suggested_species == "Tipuana tipu"
        assert result.candidates[0].common_name == "Tipuana"

    @pytest.mark.asyncio
    @respx.mock
    async def test_upload_photo_flow(self, client):
        upload_url = "/api/objects/uploads/6f1c2f7e"
        respx.post(f"{BASE_URL}/api/objects/upload").mock(
            return_value=httpx.Response(200, json={"uploadURL": upload_url})
        )
        put = respx.put(f"{BASE_URL}{upload_url}").mock(return_value=httpx.Response(204))
        finalize = respx.put(f"{BASE_URL}/api/tree-images").mock(
            return_value=httpx.Response(200, json={"objectPath": "/objects/uploads/6f1c2f7e"})
        )

        path = await client.upload_photo(b"jpeg-bytes", "image/jpeg")

        assert path == "/objects/uploads/6f1c2f7e"
        assert put.calls.last.request.content == b"jpeg-bytes"
        assert put.calls.last.request.headers["Content-Type"] == "image/jpeg"
        assert json.loads(finalize.calls.last.request.content) == {"imageUrl": upload_url}


class TestInspections:
    """Tests for inspection calls."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_inspection_multipart(self, client):
        route = respx.post(f"{BASE_URL}/api/inspections").mock(
            return_value=httpx.Response(201, json={"id": "insp-1", "skippedTrees": []})
        )

        result = await client.create_inspection(
            {
                "noteNumber": "2024001",
                "inspectionDate": datetime(2024, 3, 15, 10, 30),
                "priority": Priority.HIGH,
                "notes": None,
            },
            trees=[{"latitude": -23.55, "longitude": -47.30}],
            photo=("tree.jpg", b"jpeg-bytes", "image/jpeg"),
        )

        assert result.id == "insp-1"
        request = route.calls.last.request
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        body = request.content
        assert b'name="noteNumber"\r\n\r\n2024001' in body
        assert b'name="inspectionDate"\r\n\r\n2024-03-15T10:30:00' in body
        assert b'name="priority"\r\n\r\nhigh' in body
        assert b'name="notes"' not in body
        assert b'"latitude": -23.55' in body
        assert b'filename="tree.jpg"' in body

    @pytest.mark.asyncio
    @respx.mock
    async def test_validation_error_mapped(self, client):
        respx.post(f"{BASE_URL}/api/inspections").mock(
            return_value=httpx.Response(422, json={
                "error": "Validation failed",
                "detail": "noteNumber: Field required",
                "errors": [{"field": "noteNumber", "message": "Field required"}],
            })
        )

        with pytest.raises(ValidationError) as exc_info:
            await client.create_inspection({"priority": "high"})

        assert exc_info.value.message == "noteNumber: Field required"
        assert exc_info.value.errors == [{"field": "noteNumber", "message": "Field required"}]

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found_stays_upstream_error(self, client):
        respx.get(f"{BASE_URL}/api/inspections/missing").mock(
            return_value=httpx.Response(404, json={"error": "Not found", "detail": "Inspection 'missing' not found"})
        )

        with pytest.raises(UpstreamError) as exc_info:
            await client.get_inspection("missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @respx.mock
    async def test_delete_inspection(self, client):
        route = respx.delete(f"{BASE_URL}/api/inspections/insp-1").mock(return_value=httpx.Response(204))

        assert await client.delete_inspection("insp-1") is None
        assert route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_dashboard_stats_skips_empty_params(self, client):
        route = respx.get(f"{BASE_URL}/api/dashboard/stats").mock(
            return_value=httpx.Response(200, json={
                "totalInspections": 3,
                "highPriority": 1,
                "mediumPriority": 1,
                "lowPriority": 1,
                "byMunicipality": [{"municipality": "Itu", "count": 3}],
            })
        )

        stats = await client.dashboard_stats(region_id="region-1")

        assert dict(route.calls.last.request.url.params) == {"region_id": "region-1"}
        assert stats.total_inspections == 3
        assert stats.by_municipality[0].municipality == "Itu"


# ============================================================
# Retry Tests
# ============================================================

class TestRetries:
    """Only reads are retried."""

    @pytest_asyncio.fixture
    async def retrying_client(self, monkeypatch):
        from arborinsight.config import settings
        monkeypatch.setattr(settings, "retry_min_wait", 0)
        monkeypatch.setattr(settings, "retry_max_wait", 0)
        client = ArborInsightClient(base_url=BASE_URL, max_attempts=3)
        yield client
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_not_resubmitted_on_server_error(self, retrying_client):
        route = respx.post(f"{BASE_URL}/api/inspections").mock(return_value=httpx.Response(503))

        with pytest.raises(UpstreamError) as exc_info:
            await retrying_client.create_inspection(
                {"noteNumber": "2024001"},
                trees=[{"latitude": -23.55, "longitude": -47.30}],
            )

        assert exc_info.value.status_code == 503
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_not_resubmitted_on_transport_error(self, retrying_client):
        route = respx.post(f"{BASE_URL}/api/inspections").mock(
            side_effect=httpx.ConnectError("connection reset")
        )

        with pytest.raises(UpstreamError) as exc_info:
            await retrying_client.create_inspection({"noteNumber": "2024001"})

        assert exc_info.value.status_code == 502
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_is_retried(self, retrying_client):
        route = respx.get(f"{BASE_URL}/api/inspections")
        route.side_effect = [
            httpx.Response(503),
            httpx.Response(200, json=[]),
        ]

        assert await retrying_client.list_inspections() == []
        assert route.call_count == 2

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
