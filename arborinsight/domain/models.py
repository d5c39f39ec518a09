"""
Domain models for inspections, trees and reference data.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, databases, etc.). JSON keys are
camelCase on the wire; snake_case field names are accepted on input too.
"""
import enum
from datetime import date, datetime, timezone
from typing import Any, ClassVar, List, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from arborinsight.domain.exceptions import ValidationError


FEEDER_CODE_PATTERN = r"^[A-Z]{3}\d{2}$"


class CamelModel(BaseModel):
    """Base model serialising to camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Priority(str, enum.Enum):
    """Closed set of inspection priorities."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            alias = _PRIORITY_ALIASES.get(value.strip().lower())
            if alias is not None:
                return cls(alias)
        return None

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Parse a priority, accepting the Portuguese field values."""
        if isinstance(value, cls):
            return value
        return cls(value)


# Values crews type in the field
_PRIORITY_ALIASES = {
    "low": "low",
    "baixa": "low",
    "medium": "medium",
    "media": "medium",
    "média": "medium",
    "high": "high",
    "alta": "high",
}


def to_naive_utc(value: datetime) -> datetime:
    """Normalise a datetime to naive UTC, the storage convention."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _coerce_datetime(value: Any) -> Any:
    # Date-only strings mean midnight
    if isinstance(value, str) and len(value.strip()) == 10:
        return f"{value.strip()}T00:00:00"
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    return value


def _parse_priority(value: Any) -> Any:
    if value is None:
        return value
    try:
        return Priority.parse(value)
    except ValueError:
        raise ValueError("priority must be one of low, medium, high")


def _parse_date_bound(value: Any) -> Any:
    # A bare YYYY-MM-DD stays a date so an upper bound can cover the whole day
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        return None
    if len(text) == 10:
        return date.fromisoformat(text)
    return to_naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))


def parse_payload(model: type, payload: Any, prefix: str = ""):
    """
    Validate a dict (or an instance) as ``model``.

    Raises:
        ValidationError: With field-level detail when the payload is invalid
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, prefix=prefix)


# ============================================================
# Reference data
# ============================================================

class RegionCreate(CamelModel):
    name: str = Field(min_length=1)


class RegionOut(CamelModel):
    id: str
    name: str


class MunicipalityCreate(CamelModel):
    name: str = Field(min_length=1)
    state_code: str = Field(default="SP", min_length=2, max_length=2)
    region_id: str


class MunicipalityOut(CamelModel):
    id: str
    name: str
    state_code: str
    region_id: str


class SubstationCreate(CamelModel):
    name: str = Field(min_length=1)


class SubstationOut(CamelModel):
    id: str
    name: str


class FeederCreate(CamelModel):
    code: str = Field(
        pattern=FEEDER_CODE_PATTERN,
        description="3 uppercase letters followed by 2 digits, e.g. ITU01",
    )
    substation_id: str


class FeederOut(CamelModel):
    id: str
    code: str
    substation_id: str


# ============================================================
# Species candidates
# ============================================================

class SpeciesCandidateIn(CamelModel):
    name: str = Field(min_length=1)
    confidence: float = Field(ge=0, le=100)


class SpeciesCandidateOut(CamelModel):
    id: str
    name: str
    confidence: float
    inspection_id: Optional[str] = None
    tree_id: Optional[str] = None


# ============================================================
# Trees and photos
# ============================================================

class TreePayload(CamelModel):
    """A tree sub-entry of an inspection submission."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: Optional[str] = None
    observation: Optional[str] = None
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = Field(default=None, ge=0, le=100)
    photos: List[str] = Field(default_factory=list, description="Photo URLs in display order")

    @field_validator("photos", mode="before")
    @classmethod
    def photo_urls(cls, value):
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            return value
        # Accept [{"url": ...}] as sent by the form
        return [item.get("url") if isinstance(item, dict) else item for item in value]


class TreeUpdate(CamelModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = None
    observation: Optional[str] = None
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = Field(default=None, ge=0, le=100)


class TreePhotoOut(CamelModel):
    id: str
    tree_id: str
    url: str
    position: int
    created_at: datetime


class TreeDetail(CamelModel):
    id: str
    inspection_id: str
    latitude: float
    longitude: float
    address: Optional[str] = None
    observation: Optional[str] = None
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = None
    created_at: datetime
    photos: List[TreePhotoOut] = Field(default_factory=list)
    candidates: List[SpeciesCandidateOut] = Field(default_factory=list)


class TreeInspectionContext(CamelModel):
    """Owning-inspection fields shown alongside a tree on the map."""
    id: str
    note_number: str
    priority: Priority
    inspection_date: datetime
    region_id: str
    municipality_id: str


class TreeWithContext(TreeDetail):
    inspection: TreeInspectionContext
    region: Optional[RegionOut] = None
    municipality: Optional[MunicipalityOut] = None
    feeder: Optional[FeederOut] = None


class TreeFilter(CamelModel):
    region_id: Optional[str] = None
    municipality_id: Optional[str] = None
    priority: Optional[Priority] = None

    normalise_priority = field_validator("priority", mode="before")(_parse_priority)


# ============================================================
# Inspections
# ============================================================

class InspectionCreate(CamelModel):
    """Scalar fields of an inspection submission. Trees are validated one by one."""
    note_number: str = Field(min_length=1)
    operative_number: Optional[str] = None
    inspection_date: datetime
    region_id: str = Field(min_length=1)
    municipality_id: str = Field(min_length=1)
    feeder_id: str = Field(min_length=1)
    substation_id: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: Optional[str] = None
    priority: Priority
    notes: Optional[str] = None
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = Field(default=None, ge=0, le=100)
    photo_url: Optional[str] = None
    trees: List[Any] = Field(default_factory=list)

    normalise_priority = field_validator("priority", mode="before")(_parse_priority)

    @field_validator("inspection_date", mode="before")
    @classmethod
    def coerce_inspection_date(cls, value):
        return _coerce_datetime(value)

    @field_validator("inspection_date")
    @classmethod
    def inspection_date_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class InspectionUpdate(CamelModel):
    """Partial update; only fields present in the payload are applied."""
    note_number: Optional[str] = Field(default=None, min_length=1)
    operative_number: Optional[str] = None
    inspection_date: Optional[datetime] = None
    region_id: Optional[str] = None
    municipality_id: Optional[str] = None
    feeder_id: Optional[str] = None
    substation_id: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = None
    priority: Optional[Priority] = None
    notes: Optional[str] = None
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = Field(default=None, ge=0, le=100)
    photo_url: Optional[str] = None

    normalise_priority = field_validator("priority", mode="before")(_parse_priority)

    @field_validator("inspection_date", mode="before")
    @classmethod
    def coerce_inspection_date(cls, value):
        return _coerce_datetime(value)

    @field_validator("inspection_date")
    @classmethod
    def inspection_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value is not None else value

    # Fields that may not be cleared with an explicit null
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = (
        "note_number", "inspection_date", "region_id", "municipality_id",
        "feeder_id", "substation_id", "latitude", "longitude", "priority",
    )

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class InspectionFilter(CamelModel):
    region_id: Optional[str] = None
    municipality_id: Optional[str] = None
    feeder_id: Optional[str] = None
    priority: Optional[Priority] = None
    date_from: Optional[Union[datetime, date]] = None
    date_to: Optional[Union[datetime, date]] = None
    note_number: Optional[str] = None

    normalise_priority = field_validator("priority", mode="before")(_parse_priority)
    parse_date_bounds = field_validator("date_from", "date_to", mode="before")(_parse_date_bound)


class Pagination(CamelModel):
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class InspectionSummary(CamelModel):
    id: str
    note_number: str
    operative_number: Optional[str] = None
    inspection_date: datetime
    region_id: str
    municipality_id: str
    feeder_id: str
    substation_id: str
    latitude: float
    longitude: float
    address: Optional[str] = None
    priority: Priority
    notes: Optional[str] = None
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = None
    photo_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    region: Optional[RegionOut] = None
    municipality: Optional[MunicipalityOut] = None
    feeder: Optional[FeederOut] = None
    substation: Optional[SubstationOut] = None
    candidates: List[SpeciesCandidateOut] = Field(default_factory=list)
    total_trees: int = 0


class InspectionDetail(InspectionSummary):
    trees: List[TreeDetail] = Field(default_factory=list)


class SkippedTree(CamelModel):
    index: int
    reason: str


class CreateInspectionResult(CamelModel):
    id: str
    skipped_trees: List[SkippedTree] = Field(default_factory=list)


# ============================================================
# Gateways and aggregates
# ============================================================

class SpeciesCandidateResult(CamelModel):
    name: str
    common_name: Optional[str] = None
    confidence: int = Field(ge=0, le=100)


class IdentificationResult(CamelModel):
    suggested_species: Optional[str] = None
    candidates: List[SpeciesCandidateResult] = Field(default_factory=list)
    average_confidence: Optional[int] = None
    source: str = "Pl@ntNet"


class MunicipalityCount(CamelModel):
    municipality: str
    count: int


class DashboardStats(CamelModel):
    total_inspections: int
    high_priority: int
    medium_priority: int
    low_priority: int
    by_municipality: List[MunicipalityCount] = Field(default_factory=list)
