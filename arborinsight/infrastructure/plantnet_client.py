"""
Infrastructure layer: Pl@ntNet species identification gateway.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from arborinsight.config import settings
from arborinsight.domain.exceptions import ConfigurationError
from arborinsight.domain.models import IdentificationResult, SpeciesCandidateResult
from arborinsight.infrastructure.api_constants import (
    PLANTNET_FIXED_PARAMS,
    SPECIES_SOURCE,
    TOP_CANDIDATES_FOR_AVERAGE,
    PlantNetEndpoints,
)
from arborinsight.infrastructure.external_api_client import ExternalAPIClient
from arborinsight.utils.formatting import round_half_up


logger = logging.getLogger(__name__)


class PlantNetClient(ExternalAPIClient):
    """
    Client for the Pl@ntNet identification API.

    The API key is sent as a query parameter and never leaves the server.
    """

    service_name = "Pl@ntNet"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ):
        super().__init__(
            base_url=base_url or settings.plantnet_base_url,
            timeout=timeout or settings.plantnet_timeout,
            max_attempts=max_attempts,
        )
        self.api_key = settings.plantnet_api_key if api_key is None else api_key

    async def identify(
        self,
        photo_url: str,
        organs: Optional[Sequence[str]] = None,
        language: Optional[str] = None,
    ) -> IdentificationResult:
        """
        Identify the species shown in a photo.

        Args:
            photo_url: Publicly reachable URL of the photo
            organs: Organ hints (leaf, flower, fruit, bark, habit)
            language: Language for common names

        Returns:
            IdentificationResult with candidates ordered by the provider's score

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamError: If the provider fails or cannot be reached
        """
        if not self.api_key:
            raise ConfigurationError("PLANTNET_API_KEY is not configured")

        params: List[tuple[str, str]] = [
            ("api-key", self.api_key),
            ("images", photo_url),
        ]
        for organ in organs or settings.plantnet_default_organs:
            params.append(("organs", organ))
        params.append(("lang", language or settings.plantnet_language))
        params.extend(PLANTNET_FIXED_PARAMS.items())

        logger.info(f"Identifying species for {photo_url}")
        data = await self._make_request("GET", PlantNetEndpoints.identify(), params=params)
        result = parse_identification(data)
        logger.info(
            f"Pl@ntNet suggested {result.suggested_species!r} "
            f"({len(result.candidates)} candidates)"
        )
        return result


def parse_identification(data: Dict[str, Any]) -> IdentificationResult:
    """
    Map a raw Pl@ntNet response onto an IdentificationResult.

    Scores in [0, 1] become integer percentages; the average covers the top
    five candidates only.
    """
    candidates = []
    for entry in (data or {}).get("results") or []:
        species = entry.get("species") or {}
        name = (
            species.get("scientificName")
            or species.get("scientificNameWithoutAuthor")
            or "Unknown"
        )
        common_names = species.get("commonNames") or []
        candidates.append(SpeciesCandidateResult(
            name=name,
            common_name=common_names[0] if common_names else None,
            confidence=round_half_up((entry.get("score") or 0) * 100),
        ))

    top = candidates[:TOP_CANDIDATES_FOR_AVERAGE]
    average = (
        round_half_up(sum(c.confidence for c in top) / len(top)) if top else None
    )

    return IdentificationResult(
        suggested_species=candidates[0].name if candidates else None,
        candidates=candidates,
        average_confidence=average,
        source=SPECIES_SOURCE,
    )


# Singleton instance
_plantnet_client: Optional[PlantNetClient] = None


def get_plantnet_client() -> PlantNetClient:
    """Get or create the singleton Pl@ntNet client instance."""
    global _plantnet_client
    if _plantnet_client is None:
        _plantnet_client = PlantNetClient()
    return _plantnet_client


async def close_plantnet_client() -> None:
    global _plantnet_client
    if _plantnet_client is not None:
        await _plantnet_client.close()
        _plantnet_client = None
