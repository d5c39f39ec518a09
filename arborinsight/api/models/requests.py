"""
API request models using Pydantic.
"""
from typing import List, Optional

from pydantic import Field

from arborinsight.domain.models import CamelModel, SpeciesCandidateIn


class IdentifySpeciesRequest(CamelModel):
    """Body of the species identification endpoint."""
    image_url: str = Field(
        min_length=1,
        description="Publicly reachable URL of the tree photo",
        examples=["https://example.org/uploads/tree-1.jpg"],
    )
    organs: Optional[List[str]] = Field(
        default=None,
        description="Organ hints; defaults to leaf, flower, fruit, bark, habit",
        examples=[["leaf", "bark"]],
    )
    lang: Optional[str] = Field(
        default=None,
        description="Language for common names",
        examples=["pt"],
    )


class AddPhotosRequest(CamelModel):
    """Photos to append to a tree, in display order."""
    urls: List[str] = Field(
        min_length=1,
        description="Photo URLs",
    )


class ReplaceCandidatesRequest(CamelModel):
    """Full replacement list of species candidates."""
    candidates: List[SpeciesCandidateIn] = Field(
        description="Candidates; an empty list clears them",
    )


class TreeImageRequest(CamelModel):
    """Uploaded object to make publicly readable."""
    image_url: str = Field(
        min_length=1,
        description="Upload URL returned by the object upload endpoint",
    )
    inspection_id: Optional[str] = Field(
        default=None,
        description="Inspection the photo belongs to",
    )
