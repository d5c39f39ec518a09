"""
API response models using Pydantic.
"""
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from arborinsight.domain.models import CamelModel


class AddressResponse(CamelModel):
    """Reverse geocoding result."""
    address: str = Field(
        description="Address formatted as 'street, neighbourhood - city/state'",
        examples=["Rua Floriano Peixoto, Centro - Itu/São Paulo"],
    )


class UploadURLResponse(BaseModel):
    """One-shot upload target for the object flow."""
    uploadURL: str = Field(
        description="URL to PUT the raw image to",
        examples=["/api/objects/uploads/6f1c2f7e-3b0e-4f0a-9d0e-1f2a3b4c5d6e"],
    )


class ObjectPathResponse(CamelModel):
    """Public path of a finalized object."""
    object_path: str = Field(
        description="Path serving the image",
        examples=["/objects/uploads/6f1c2f7e-3b0e-4f0a-9d0e-1f2a3b4c5d6e"],
    )


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every application error response."""
    error: str = Field(description="Error category")
    detail: Any = Field(description="Human-readable detail or provider payload")
    errors: Optional[List[FieldError]] = Field(
        default=None,
        description="Field-level problems, on validation errors only",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Validation failed",
                "detail": "latitude: Input should be less than or equal to 90",
                "errors": [
                    {"field": "latitude", "message": "Input should be less than or equal to 90"}
                ],
            }
        }


class HealthResponse(BaseModel):
    status: str
    service: str
    version: Optional[str] = None
