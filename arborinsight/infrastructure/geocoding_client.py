"""
Infrastructure layer: Nominatim reverse geocoding gateway.
"""
import logging
from typing import Any, Dict, Optional

from arborinsight.config import settings
from arborinsight.infrastructure.api_constants import NominatimEndpoints
from arborinsight.infrastructure.external_api_client import ExternalAPIClient


logger = logging.getLogger(__name__)

ADDRESS_NOT_FOUND = "Address not found"


class GeocodingClient(ExternalAPIClient):
    """Client for Nominatim reverse geocoding."""

    service_name = "Nominatim"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        language: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ):
        # Nominatim's usage policy requires an identifying User-Agent
        super().__init__(
            base_url=base_url or settings.nominatim_base_url,
            timeout=timeout or settings.geocoding_timeout,
            headers={"User-Agent": user_agent or settings.geocoding_user_agent},
            max_attempts=max_attempts,
        )
        self.language = language or settings.geocoding_language

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """
        Resolve coordinates to a short street address.

        Args:
            latitude: Latitude in degrees
            longitude: Longitude in degrees

        Returns:
            Address formatted as "street, neighbourhood - city/state"

        Raises:
            UpstreamError: If the geocoder fails or cannot be reached
        """
        data = await self._make_request(
            "GET",
            NominatimEndpoints.REVERSE,
            params={
                "format": "json",
                "lat": latitude,
                "lon": longitude,
                "accept-language": self.language,
            },
        )
        address = format_address(data)
        logger.debug(f"Reverse geocoded ({latitude}, {longitude}) to {address!r}")
        return address


def format_address(data: Optional[Dict[str, Any]]) -> str:
    """
    Condense a Nominatim ``display_name`` into "street, neighbourhood - city/state".

    The display name is a comma-separated list running from the most to the
    least specific part, with the country last and the state just before it.
    """
    display_name = (data or {}).get("display_name")
    if not display_name:
        return ADDRESS_NOT_FOUND

    parts = display_name.split(", ")

    def part(index: int) -> str:
        try:
            return parts[index]
        except IndexError:
            return ""

    street = part(0)
    neighborhood = part(1)
    city = part(2)
    state = part(-2) if len(parts) >= 2 else ""

    address = street
    if neighborhood:
        address += f", {neighborhood}"
    return f"{address} - {city}/{state}".strip()


# Singleton instance
_geocoding_client: Optional[GeocodingClient] = None


def get_geocoding_client() -> GeocodingClient:
    """Get or create the singleton geocoding client instance."""
    global _geocoding_client
    if _geocoding_client is None:
        _geocoding_client = GeocodingClient()
    return _geocoding_client


async def close_geocoding_client() -> None:
    global _geocoding_client
    if _geocoding_client is not None:
        await _geocoding_client.close()
        _geocoding_client = None
