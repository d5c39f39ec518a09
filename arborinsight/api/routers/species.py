"""
API router for species identification.
"""
from fastapi import APIRouter, Request

from arborinsight.api.dependencies import PlantNetClientDep
from arborinsight.api.models.requests import IdentifySpeciesRequest
from arborinsight.api.models.responses import ErrorResponse
from arborinsight.api.rate_limit import GATEWAY_RATE_LIMIT, limiter
from arborinsight.domain.models import IdentificationResult


router = APIRouter(
    prefix="/species",
    tags=["species"],
)


@router.post(
    "/identify",
    response_model=IdentificationResult,
    summary="Identify the species in a photo",
    description="""
    Ask Pl@ntNet which species a tree photo shows.

    Candidates come back in provider order with confidence as a rounded
    percentage. `averageConfidence` is the mean over the first five
    candidates, or null when there are none.
    """,
    responses={
        429: {"description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Identification is not configured"},
        502: {"model": ErrorResponse, "description": "Identification provider failure"},
    },
)
@limiter.limit(GATEWAY_RATE_LIMIT)
async def identify_species(
    request: Request,
    body: IdentifySpeciesRequest,
    plantnet: PlantNetClientDep,
) -> IdentificationResult:
    """
    Identify a species from a publicly reachable image URL.

    Args:
        request: Incoming request, used by the rate limiter
        body: Image URL with optional organ hints and language
        plantnet: Identification gateway (injected dependency)

    Returns:
        IdentificationResult with the ranked candidates
    """
    return await plantnet.identify(body.image_url, organs=body.organs, language=body.lang)
