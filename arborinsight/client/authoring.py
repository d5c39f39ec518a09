"""
Client layer: inspection authoring workflow.

Assembles one inspection with any number of trees from user input and
enrichment calls. The workflow owns the form: tree editors never touch the
tree list directly, every change goes through ``update(index, patch)``.

Enrichment is best effort. Reverse geocoding and species identification run
once per committed coordinate or added photo; their failures become
notifications and never block editing or submission. Each request carries a
token per (tree, request kind) so a response that was overtaken by a newer
request is dropped instead of overwriting fresher data.
"""
import asyncio
import dataclasses
import itertools
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Hashable,
    List,
    Optional,
    Protocol,
    Tuple,
)

from arborinsight.client.api_client import PhotoFile
from arborinsight.client.notifications import Notifier
from arborinsight.config import settings
from arborinsight.domain.exceptions import ArborInsightError, ValidationError
from arborinsight.domain.models import (
    CreateInspectionResult,
    IdentificationResult,
    InspectionCreate,
    SpeciesCandidateResult,
    TreePayload,
    parse_payload,
)
from arborinsight.utils.geo import is_valid_coordinate, jitter_coordinate


logger = logging.getLogger(__name__)

GEOCODE = "geocode"
IDENTIFY = "identify"


class AuthoringGateway(Protocol):
    """What the workflow needs from the server. ArborInsightClient provides it."""

    async def reverse_geocode(self, latitude: float, longitude: float) -> str: ...

    async def identify_species(self, image_url: str) -> IdentificationResult: ...

    async def upload_photo(self, content: bytes, content_type: str) -> str: ...

    async def create_inspection(
        self,
        fields: Dict[str, Any],
        trees: Optional[List[Dict[str, Any]]] = None,
        photo: Optional[PhotoFile] = None,
    ) -> CreateInspectionResult: ...


class GeolocationError(Exception):
    """Device location could not be read."""

    def __init__(self, message: str = "geolocation failed", denied: bool = True):
        super().__init__(message)
        self.denied = denied


# Returns (latitude, longitude) from the device
Locator = Callable[[], Awaitable[Tuple[float, float]]]


@dataclass
class TreeDraft:
    """One tree being authored. ``key`` stays stable while the list is edited."""
    latitude: float
    longitude: float
    key: str = field(default_factory=lambda: uuid.uuid4().hex)
    address: str = ""
    observation: str = ""
    final_species: Optional[str] = None
    avg_species_confidence: Optional[float] = None
    photos: List[str] = field(default_factory=list)
    candidates: List[SpeciesCandidateResult] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address or None,
            "observation": self.observation or None,
            "finalSpecies": self.final_species or None,
            "avgSpeciesConfidence": self.avg_species_confidence,
            "photos": list(self.photos),
        }


@dataclass
class InspectionForm:
    """Scalar inspection fields plus the ordered tree list."""
    note_number: str = ""
    operative_number: Optional[str] = None
    inspection_date: Optional[datetime] = None
    region_id: Optional[str] = None
    municipality_id: Optional[str] = None
    feeder_id: Optional[str] = None
    substation_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    priority: Optional[str] = None
    notes: Optional[str] = None
    trees: List[TreeDraft] = field(default_factory=list)

    def to_fields(self) -> Dict[str, Any]:
        values = {
            "noteNumber": self.note_number,
            "operativeNumber": self.operative_number,
            "inspectionDate": self.inspection_date,
            "regionId": self.region_id,
            "municipalityId": self.municipality_id,
            "feederId": self.feeder_id,
            "substationId": self.substation_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "priority": self.priority,
            "notes": self.notes,
        }
        return {key: value for key, value in values.items() if value is not None and value != ""}


_PATCHABLE = {f.name for f in dataclasses.fields(TreeDraft)} - {"key"}
_FORM_FIELDS = {f.name for f in dataclasses.fields(InspectionForm)} - {"trees"}


class RequestSequencer:
    """
    Monotonic tokens per (key, kind).

    ``issue`` hands out a fresh token and makes it the current one; a
    response is only applied while its token is still current.
    """

    def __init__(self):
        self._counter = itertools.count(1)
        self._current: Dict[Tuple[Hashable, str], int] = {}

    def issue(self, key: Hashable, kind: str) -> int:
        token = next(self._counter)
        self._current[(key, kind)] = token
        return token

    def is_current(self, key: Hashable, kind: str, token: int) -> bool:
        return self._current.get((key, kind)) == token

    def invalidate(self, key: Hashable) -> None:
        for slot in [slot for slot in self._current if slot[0] == key]:
            del self._current[slot]


class DebouncedWriter:
    """
    Timer-coalesced writes.

    Keeps the latest value per key and applies it once no newer value has
    arrived for ``delay`` seconds. A newer write cancels the pending flush.
    Needs a running event loop unless ``delay`` is zero.
    """

    def __init__(self, apply: Callable[[Hashable, Any], None], delay: float):
        self.apply = apply
        self.delay = delay
        self._pending: Dict[Hashable, Any] = {}
        self._handles: Dict[Hashable, asyncio.TimerHandle] = {}

    def write(self, key: Hashable, value: Any) -> None:
        self._cancel_timer(key)
        if self.delay <= 0:
            self._pending.pop(key, None)
            self.apply(key, value)
            return
        self._pending[key] = value
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.delay, self._flush_key, key)

    def flush(self) -> None:
        """Apply every pending write now."""
        for key in list(self._pending):
            self._flush_key(key)

    def discard(self, key: Hashable) -> None:
        self._cancel_timer(key)
        self._pending.pop(key, None)

    def pending(self, key: Hashable) -> bool:
        return key in self._pending

    def _flush_key(self, key: Hashable) -> None:
        self._cancel_timer(key)
        if key in self._pending:
            self.apply(key, self._pending.pop(key))

    def _cancel_timer(self, key: Hashable) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()


class CoordinateEditSession:
    """
    Map-drag edit of one tree's coordinates.

    Drags only move the staged point. ``apply`` commits it (one reverse
    geocode follows), ``cancel`` drops it and leaves the committed point.
    """

    def __init__(self, workflow: "InspectionAuthoringWorkflow", key: str):
        self.workflow = workflow
        self.key = key
        tree = workflow.tree_by_key(key)
        self.committed = (tree.latitude, tree.longitude)
        self.staged = self.committed
        self.closed = False

    def drag(self, latitude: float, longitude: float) -> Tuple[float, float]:
        self._check_open()
        self.staged = (latitude, longitude)
        return self.staged

    async def apply(self) -> Tuple[float, float]:
        self._check_open()
        self.closed = True
        if self.staged != self.committed:
            await self.workflow.commit_coordinates(self.key, *self.staged)
        return self.staged

    def cancel(self) -> Tuple[float, float]:
        self._check_open()
        self.closed = True
        self.staged = self.committed
        return self.committed

    def _check_open(self) -> None:
        if self.closed:
            raise RuntimeError("coordinate edit session is closed")


class InspectionAuthoringWorkflow:
    """
    Owns one InspectionForm and every change made to it.

    Args:
        gateway: Server access for enrichment and submission
        notifier: Receives user notifications; a default one is created
        form: Form to edit, e.g. pre-filled from a map click
        debounce_ms: Observation debounce window
        rng: Random source for new tree jitter
    """

    def __init__(
        self,
        gateway: AuthoringGateway,
        notifier: Optional[Notifier] = None,
        form: Optional[InspectionForm] = None,
        debounce_ms: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.gateway = gateway
        self.notifier = notifier or Notifier()
        self.form = form or InspectionForm()
        self.sequencer = RequestSequencer()
        if debounce_ms is None:
            debounce_ms = settings.observation_debounce_ms
        self.observations = DebouncedWriter(self._write_observation, debounce_ms / 1000.0)
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Tree collection
    # ------------------------------------------------------------------

    @property
    def trees(self) -> List[TreeDraft]:
        return self.form.trees

    def tree_by_key(self, key: str) -> TreeDraft:
        index = self.index_of(key)
        if index is None:
            raise KeyError(key)
        return self.trees[index]

    def index_of(self, key: str) -> Optional[int]:
        for index, tree in enumerate(self.trees):
            if tree.key == key:
                return index
        return None

    def update(self, index: int, patch: Dict[str, Any]) -> TreeDraft:
        """Apply a patch to the tree at ``index``. The only write path into the list."""
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValueError(f"cannot patch tree fields: {', '.join(sorted(unknown))}")
        tree = dataclasses.replace(self.trees[index], **patch)
        self.trees[index] = tree
        return tree

    def update_form(self, **values: Any) -> InspectionForm:
        unknown = set(values) - _FORM_FIELDS
        if unknown:
            raise ValueError(f"unknown form fields: {', '.join(sorted(unknown))}")
        for name, value in values.items():
            setattr(self.form, name, value)
        return self.form

    def add_tree(self) -> TreeDraft:
        """Append a tree near the regional default, offset so new pins do not stack."""
        latitude, longitude = jitter_coordinate(
            settings.default_latitude,
            settings.default_longitude,
            settings.new_tree_jitter_meters,
            rng=self.rng,
        )
        tree = TreeDraft(latitude=latitude, longitude=longitude)
        self.trees.append(tree)
        return tree

    def remove_tree(self, index: int) -> TreeDraft:
        tree = self.trees.pop(index)
        self.sequencer.invalidate(tree.key)
        self.observations.discard(tree.key)
        return tree

    # ------------------------------------------------------------------
    # Coordinates and address
    # ------------------------------------------------------------------

    async def use_gps(self, index: int, locate: Locator) -> bool:
        """
        Take the tree's coordinates from the device location.

        Returns:
            True when a location was obtained and committed
        """
        key = self.trees[index].key
        try:
            latitude, longitude = await locate()
        except GeolocationError as e:
            self.notifier.error("geolocation_denied" if e.denied else "geolocation_unavailable")
            logger.info(f"Geolocation failed for tree {key}: {e}")
            return False
        self.notifier.info("location_obtained")
        await self.commit_coordinates(key, latitude, longitude)
        return True

    def open_map_session(self, index: int) -> CoordinateEditSession:
        return CoordinateEditSession(self, self.trees[index].key)

    async def set_coordinates(self, index: int, latitude: float, longitude: float) -> None:
        await self.commit_coordinates(self.trees[index].key, latitude, longitude)

    async def commit_coordinates(self, key: str, latitude: float, longitude: float) -> None:
        """Store new coordinates, then fill the address from one reverse geocode."""
        index = self.index_of(key)
        if index is None:
            return
        self.update(index, {"latitude": latitude, "longitude": longitude})
        if not is_valid_coordinate(latitude, longitude):
            # Rejected at submission; nothing to look up
            return

        token = self.sequencer.issue(key, GEOCODE)
        try:
            address = await self.gateway.reverse_geocode(latitude, longitude)
        except ArborInsightError as e:
            if self.sequencer.is_current(key, GEOCODE, token):
                self.notifier.error("geocoding_failed", e)
            return

        if not self.sequencer.is_current(key, GEOCODE, token):
            logger.debug(f"Dropped stale address for tree {key}")
            return
        index = self.index_of(key)
        if index is not None:
            self.update(index, {"address": address})

    # ------------------------------------------------------------------
    # Photos and species
    # ------------------------------------------------------------------

    async def upload_photo(self, index: int, content: bytes, content_type: str) -> Optional[str]:
        """
        Upload a photo and attach it to the tree.

        Returns:
            The stored photo URL, or None when the upload failed
        """
        key = self.trees[index].key
        try:
            url = await self.gateway.upload_photo(content, content_type)
        except ArborInsightError as e:
            self.notifier.error("photo_upload_failed", e)
            return None
        self.notifier.info("photo_uploaded")
        index = self.index_of(key)
        if index is None:
            return url
        await self.add_photo(index, url)
        return url

    async def add_photo(self, index: int, url: str) -> Optional[IdentificationResult]:
        """
        Append a photo and identify the species it shows.

        The top suggestion replaces the tree's species and confidence, even
        when the user had typed a species by hand.
        """
        tree = self.trees[index]
        key = tree.key
        self.update(index, {"photos": tree.photos + [url]})

        token = self.sequencer.issue(key, IDENTIFY)
        try:
            result = await self.gateway.identify_species(url)
        except ArborInsightError as e:
            if self.sequencer.is_current(key, IDENTIFY, token):
                self.notifier.error("identification_failed", e)
            return None

        if not self.sequencer.is_current(key, IDENTIFY, token):
            logger.debug(f"Dropped stale identification for tree {key}")
            return None
        index = self.index_of(key)
        if index is None:
            return None
        self.update(index, {
            "final_species": result.suggested_species,
            "avg_species_confidence": result.average_confidence,
            "candidates": list(result.candidates),
        })
        if result.suggested_species:
            self.notifier.info(
                "species_identified",
                species=result.suggested_species,
                confidence=result.average_confidence or 0,
                source=result.source,
            )
        return result

    def remove_photo(self, index: int, photo_index: int) -> str:
        photos = list(self.trees[index].photos)
        removed = photos.pop(photo_index)
        self.update(index, {"photos": photos})
        return removed

    def select_candidate(self, index: int, candidate_index: int) -> TreeDraft:
        candidate = self.trees[index].candidates[candidate_index]
        tree = self.update(index, {
            "final_species": candidate.name,
            "avg_species_confidence": candidate.confidence,
        })
        self.notifier.info("species_selected", species=candidate.name)
        return tree

    def set_species(self, index: int, name: str) -> TreeDraft:
        return self.update(index, {"final_species": name})

    def set_observation(self, index: int, text: str) -> None:
        """Queue observation text; it lands in the tree after the debounce window."""
        self.observations.write(self.trees[index].key, text)

    def _write_observation(self, key: Hashable, text: Any) -> None:
        index = self.index_of(key)
        if index is not None:
            self.update(index, {"observation": text})

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def build_submission(self) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """
        Flush pending edits and validate the whole form.

        Returns:
            (scalar fields, tree payloads) ready for the API

        Raises:
            ValidationError: Listing every invalid field, trees included
        """
        self.observations.flush()
        fields = self.form.to_fields()
        if self.trees and "latitude" not in fields and "longitude" not in fields:
            # Inspection location defaults to its first tree
            fields["latitude"] = self.trees[0].latitude
            fields["longitude"] = self.trees[0].longitude
        if isinstance(fields.get("inspectionDate"), (date, datetime)):
            fields["inspectionDate"] = fields["inspectionDate"].isoformat()
        trees = [tree.to_payload() for tree in self.trees]

        errors: List[Dict[str, str]] = []
        try:
            parse_payload(InspectionCreate, fields)
        except ValidationError as e:
            errors.extend(e.errors)
        for position, tree in enumerate(trees):
            try:
                parse_payload(TreePayload, tree, prefix=f"trees.{position}")
            except ValidationError as e:
                errors.extend(e.errors)
        if errors:
            summary = "; ".join(f"{error['field']}: {error['message']}" for error in errors)
            raise ValidationError(summary, errors=errors)
        return fields, trees

    async def submit(self, photo: Optional[PhotoFile] = None) -> CreateInspectionResult:
        """
        Validate locally, then create the inspection.

        Nothing is sent when validation fails. Trees the server skipped are
        reported as a warning notification.

        Raises:
            ValidationError: If the form is invalid
            ArborInsightError: If the server rejects the submission
        """
        try:
            fields, trees = self.build_submission()
        except ValidationError as e:
            self.notifier.error("submission_failed", e)
            raise
        try:
            result = await self.gateway.create_inspection(fields, trees, photo)
        except ArborInsightError as e:
            self.notifier.error("submission_failed", e)
            raise
        if result.skipped_trees:
            self.notifier.notify("trees_skipped", level="warning", count=len(result.skipped_trees))
        self.notifier.info("submission_succeeded")
        logger.info(f"Submitted inspection {result.id} with {len(trees)} trees")
        return result
