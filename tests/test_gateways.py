"""
Unit tests for the species identification and reverse geocoding gateways.

Provider traffic is mocked with respx.
"""
import httpx
import pytest
import respx

from arborinsight.domain.exceptions import ConfigurationError, UpstreamError
from arborinsight.infrastructure.geocoding_client import (
    ADDRESS_NOT_FOUND,
    GeocodingClient,
    format_address,
)
from arborinsight.infrastructure.plantnet_client import PlantNetClient, parse_identification


PLANTNET_URL = "https://plantnet.test"
NOMINATIM_URL = "https://nominatim.test"


def plantnet_result(name, score, common_names=None, without_author=False):
    species = {"commonNames": common_names or []}
    species["scientificNameWithoutAuthor" if without_author else "scientificName"] = name
    return {"score": score, "species": species}


# ============================================================
# Identification Parsing Tests
# ============================================================

class TestParseIdentification:
    """Tests for mapping Pl@ntNet responses."""

    def test_candidates_keep_provider_order(self):
        result = parse_identification({"results": [
            plantnet_result("Tipuana tipu (Benth.) Kuntze", 0.875, ["Tipuana"]),
            plantnet_result("Ficus benjamina L.", 0.12),
        ]})

        assert result.suggested_species == "Tipuana tipu (Benth.) Kuntze"
        assert [c.confidence for c in result.candidates] == [88, 12]
        assert result.candidates[0].common_name == "Tipuana"
        assert result.candidates[1].common_name is None
        assert result.source == "Pl@ntNet"

    def test_average_covers_top_five_only(self):
        scores = [0.9, 0.8, 0.7, 0.6, 0.5, 0.01, 0.01]
        result = parse_identification({"results": [
            plantnet_result(f"Species {i}", score) for i, score in enumerate(scores)
        ]})

        assert len(result.candidates) == 7
        assert result.average_confidence == 70

    def test_name_fallbacks(self):
        result = parse_identification({"results": [
            plantnet_result("Handroanthus albus", 0.4, without_author=True),
            {"score": 0.1, "species": {}},
        ]})

        assert [c.name for c in result.candidates] == ["Handroanthus albus", "Unknown"]

    def test_no_results(self):
        result = parse_identification({"results": []})

        assert result.suggested_species is None
        assert result.candidates == []
        assert result.average_confidence is None


# ============================================================
# Pl@ntNet Client Tests
# ============================================================

class TestPlantNetClient:
    """Tests for the Pl@ntNet gateway."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_identify_sends_expected_params(self):
        route = respx.get(f"{PLANTNET_URL}/v2/identify/all").mock(
            return_value=httpx.Response(200, json={"results": [plantnet_result("Tipuana tipu", 0.8)]})
        )
        client = PlantNetClient(api_key="secret", base_url=PLANTNET_URL)

        result = await client.identify("https://example.org/tree.jpg", organs=["leaf", "bark"], language="en")

        params = route.calls.last.request.url.params
        assert params["api-key"] == "secret"
        assert params["images"] == "https://example.org/tree.jpg"
        assert params.get_list("organs") == ["leaf", "bark"]
        assert params["lang"] == "en"
        assert params["include-related-images"] == "false"
        assert result.suggested_species == "Tipuana tipu"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_default_organs(self):
        route = respx.get(f"{PLANTNET_URL}/v2/identify/all").mock(
            return_value=httpx.Response(200, json={"results": []})
        )
        client = PlantNetClient(api_key="secret", base_url=PLANTNET_URL)

        await client.identify("https://example.org/tree.jpg")

        organs = route.calls.last.request.url.params.get_list("organs")
        assert organs == ["leaf", "flower", "fruit", "bark", "habit"]
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key_is_configuration_error(self):
        route = respx.get(f"{PLANTNET_URL}/v2/identify/all")
        client = PlantNetClient(api_key="", base_url=PLANTNET_URL)

        with pytest.raises(ConfigurationError):
            await client.identify("https://example.org/tree.jpg")

        assert not route.called
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_error_is_mirrored(self):
        respx.get(f"{PLANTNET_URL}/v2/identify/all").mock(
            return_value=httpx.Response(404, json={"message": "Species not found"})
        )
        client = PlantNetClient(api_key="secret", base_url=PLANTNET_URL)

        with pytest.raises(UpstreamError) as exc_info:
            await client.identify("https://example.org/tree.jpg")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == {"message": "Species not found"}
        await client.close()


# ============================================================
# Geocoding Tests
# ============================================================

class TestFormatAddress:
    """Tests for condensing Nominatim display names."""

    def test_street_neighbourhood_city_state(self):
        address = format_address({
            "display_name": "Rua Floriano Peixoto, Centro, Itu, Região Imediata de Sorocaba, São Paulo, Brasil",
        })

        assert address == "Rua Floriano Peixoto, Centro - Itu/São Paulo"

    def test_missing_display_name(self):
        assert format_address({}) == ADDRESS_NOT_FOUND
        assert format_address(None) == ADDRESS_NOT_FOUND


class TestGeocodingClient:
    """Tests for the Nominatim gateway."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_reverse_geocode(self):
        route = respx.get(f"{NOMINATIM_URL}/reverse").mock(
            return_value=httpx.Response(200, json={
                "display_name": "Rua Paula Souza, Centro, Itu, Sorocaba, São Paulo, Brasil",
            })
        )
        client = GeocodingClient(base_url=NOMINATIM_URL, user_agent="tests/1.0", language="pt-BR")

        address = await client.reverse_geocode(-23.2641, -47.2992)

        request = route.calls.last.request
        assert request.headers["User-Agent"] == "tests/1.0"
        assert request.url.params["format"] == "json"
        assert request.url.params["lat"] == "-23.2641"
        assert request.url.params["lon"] == "-47.2992"
        assert request.url.params["accept-language"] == "pt-BR"
        assert address == "Rua Paula Souza, Centro - Itu/São Paulo"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable(self):
        respx.get(f"{NOMINATIM_URL}/reverse").mock(side_effect=httpx.ConnectError("down"))
        client = GeocodingClient(base_url=NOMINATIM_URL)

        with pytest.raises(UpstreamError) as exc_info:
            await client.reverse_geocode(0, 0)

        assert exc_info.value.status_code == 502
        await client.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
