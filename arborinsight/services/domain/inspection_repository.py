"""
Domain service: persistence of inspections, trees, photos and species candidates.

Cascading deletes run here as explicit sequential deletes inside one
transaction, children first, so they behave the same on every database.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from arborinsight.domain.exceptions import NotFoundError, ValidationError
from arborinsight.domain.models import (
    CreateInspectionResult,
    DashboardStats,
    InspectionCreate,
    InspectionDetail,
    InspectionFilter,
    InspectionSummary,
    InspectionUpdate,
    MunicipalityCount,
    Pagination,
    Priority,
    SkippedTree,
    SpeciesCandidateIn,
    SpeciesCandidateOut,
    TreeDetail,
    TreeFilter,
    TreePayload,
    TreePhotoOut,
    TreeUpdate,
    TreeWithContext,
    parse_payload,
)
from arborinsight.infrastructure import orm
from arborinsight.infrastructure.database import transaction, utcnow
from arborinsight.utils.formatting import end_exclusive, start_of


logger = logging.getLogger(__name__)

UNKNOWN_MUNICIPALITY = "Unknown"

_REFERENCE_OPTIONS = (
    joinedload(orm.Inspection.region),
    joinedload(orm.Inspection.municipality),
    joinedload(orm.Inspection.feeder),
    joinedload(orm.Inspection.substation),
    selectinload(orm.Inspection.candidates),
)

_TREE_OPTIONS = (
    selectinload(orm.Tree.photos),
    selectinload(orm.Tree.candidates),
)

_DETAIL_OPTIONS = _REFERENCE_OPTIONS + (
    selectinload(orm.Inspection.trees).selectinload(orm.Tree.photos),
    selectinload(orm.Inspection.trees).selectinload(orm.Tree.candidates),
)


class InspectionRepository:
    """
    Repository for inspections and their trees.

    Reads return pydantic models, never ORM rows, so callers cannot trigger
    lazy loads after the session is gone.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Inspections: reads
    # ------------------------------------------------------------------

    def list_inspections(
        self,
        filters: Optional[InspectionFilter] = None,
        pagination: Optional[Pagination] = None,
    ) -> List[InspectionSummary]:
        """
        List inspections matching every given filter, newest first.

        Args:
            filters: Optional filters, AND-combined
            pagination: Optional limit/offset; no limit returns every match

        Returns:
            Inspection summaries with resolved references and tree counts
        """
        query = self._filtered(filters).options(
            *_REFERENCE_OPTIONS,
            selectinload(orm.Inspection.trees),
        )
        rows = self._paginate(query, pagination).all()
        return [InspectionSummary.model_validate(row) for row in rows]

    def list_inspection_details(
        self,
        filters: Optional[InspectionFilter] = None,
        pagination: Optional[Pagination] = None,
    ) -> List[InspectionDetail]:
        """Like list_inspections, with trees, photos and candidates embedded."""
        query = self._filtered(filters).options(*_DETAIL_OPTIONS)
        rows = self._paginate(query, pagination).all()
        return [InspectionDetail.model_validate(row) for row in rows]

    def get_inspection(self, inspection_id: str) -> InspectionDetail:
        """
        Fetch one inspection with its references, candidates and trees.

        Raises:
            NotFoundError: If no inspection has this id
        """
        inspection = (
            self.db.query(orm.Inspection)
            .options(*_DETAIL_OPTIONS)
            .filter(orm.Inspection.id == inspection_id)
            .first()
        )
        if inspection is None:
            raise NotFoundError("Inspection", inspection_id)
        return InspectionDetail.model_validate(inspection)

    # ------------------------------------------------------------------
    # Inspections: writes
    # ------------------------------------------------------------------

    def create_inspection(self, payload: Any) -> CreateInspectionResult:
        """
        Create an inspection with its trees.

        Scalar fields and references are validated up front; a violation
        raises ValidationError and nothing is written. Tree entries are then
        inserted one by one: a malformed entry is skipped and reported while
        the rest of the inspection is kept.

        Raises:
            ValidationError: If a scalar field or reference is invalid
            PersistenceError: On database failure
        """
        data: InspectionCreate = parse_payload(InspectionCreate, payload)
        self._check_references(
            data.region_id, data.municipality_id, data.feeder_id, data.substation_id
        )

        now = utcnow()
        inspection = orm.Inspection(
            **data.model_dump(exclude={"trees"}),
            created_at=now,
            updated_at=now,
        )
        skipped: List[SkippedTree] = []

        with transaction(self.db, "creating inspection"):
            self.db.add(inspection)
            self.db.flush()

            position = 0
            for index, entry in enumerate(data.trees):
                try:
                    tree = TreePayload.model_validate(entry)
                except PydanticValidationError as e:
                    reason = ValidationError.from_pydantic(e).message
                    logger.warning(
                        f"Skipping tree {index} of inspection {inspection.id}: {reason}"
                    )
                    skipped.append(SkippedTree(index=index, reason=reason))
                    continue

                try:
                    with self.db.begin_nested():
                        self._insert_tree(inspection.id, tree, position)
                except SQLAlchemyError as e:
                    logger.warning(
                        f"Skipping tree {index} of inspection {inspection.id}: {e}"
                    )
                    skipped.append(SkippedTree(index=index, reason="could not be stored"))
                    continue
                position += 1

        logger.info(
            f"Created inspection {inspection.id} (note {data.note_number}) "
            f"with {position} trees, {len(skipped)} skipped"
        )
        return CreateInspectionResult(id=inspection.id, skipped_trees=skipped)

    def update_inspection(self, inspection_id: str, payload: Any) -> InspectionDetail:
        """
        Apply a partial update; only fields present in the payload change.

        Raises:
            NotFoundError: If no inspection has this id
            ValidationError: If a value or the merged references are invalid
        """
        data: InspectionUpdate = parse_payload(InspectionUpdate, payload)
        changes = data.changes()
        for name in InspectionUpdate.REQUIRED_FIELDS:
            if name in changes and changes[name] is None:
                raise ValidationError.for_field(to_camel(name), "may not be null")

        inspection = self._get_inspection_row(inspection_id)
        self._check_references(
            changes.get("region_id", inspection.region_id),
            changes.get("municipality_id", inspection.municipality_id),
            changes.get("feeder_id", inspection.feeder_id),
            changes.get("substation_id", inspection.substation_id),
        )

        with transaction(self.db, "updating inspection"):
            for name, value in changes.items():
                setattr(inspection, name, value)
            inspection.updated_at = utcnow()

        logger.info(f"Updated inspection {inspection_id}: {sorted(changes)}")
        return self.get_inspection(inspection_id)

    def delete_inspection(self, inspection_id: str) -> None:
        """
        Delete an inspection with its trees, photos and candidates.

        Raises:
            NotFoundError: If no inspection has this id
        """
        self._get_inspection_row(inspection_id)
        tree_ids = [
            tree_id for (tree_id,) in
            self.db.query(orm.Tree.id).filter(orm.Tree.inspection_id == inspection_id)
        ]

        with transaction(self.db, "deleting inspection"):
            if tree_ids:
                self._delete_tree_children(tree_ids)
                self.db.query(orm.Tree).filter(
                    orm.Tree.inspection_id == inspection_id
                ).delete(synchronize_session=False)
            self.db.query(orm.SpeciesCandidate).filter(
                orm.SpeciesCandidate.inspection_id == inspection_id
            ).delete(synchronize_session=False)
            self.db.query(orm.Inspection).filter(
                orm.Inspection.id == inspection_id
            ).delete(synchronize_session=False)

        self.db.expunge_all()
        logger.info(f"Deleted inspection {inspection_id} and {len(tree_ids)} trees")

    def replace_species_candidates(
        self,
        inspection_id: str,
        candidates: Sequence[Any],
    ) -> List[SpeciesCandidateOut]:
        """
        Replace the inspection-level candidates with the given list.

        Replacing twice with the same list leaves the same set.
        """
        self._get_inspection_row(inspection_id)
        validated = _parse_candidates(candidates)

        with transaction(self.db, "replacing species candidates"):
            self.db.query(orm.SpeciesCandidate).filter(
                orm.SpeciesCandidate.inspection_id == inspection_id
            ).delete(synchronize_session=False)
            rows = [
                orm.SpeciesCandidate(
                    inspection_id=inspection_id,
                    name=candidate.name,
                    confidence=candidate.confidence,
                )
                for candidate in validated
            ]
            self.db.add_all(rows)

        return [SpeciesCandidateOut.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Trees
    # ------------------------------------------------------------------

    def list_trees(self, filters: Optional[TreeFilter] = None) -> List[TreeWithContext]:
        """
        All trees with their owning inspection context, for the map.

        Args:
            filters: Optional region, municipality and priority filters
        """
        query = (
            self.db.query(orm.Tree)
            .join(orm.Inspection, orm.Tree.inspection_id == orm.Inspection.id)
            .options(
                *_TREE_OPTIONS,
                joinedload(orm.Tree.inspection).joinedload(orm.Inspection.region),
                joinedload(orm.Tree.inspection).joinedload(orm.Inspection.municipality),
                joinedload(orm.Tree.inspection).joinedload(orm.Inspection.feeder),
            )
        )
        if filters is not None:
            if filters.region_id:
                query = query.filter(orm.Inspection.region_id == filters.region_id)
            if filters.municipality_id:
                query = query.filter(orm.Inspection.municipality_id == filters.municipality_id)
            if filters.priority:
                query = query.filter(orm.Inspection.priority == filters.priority)

        rows = query.order_by(
            desc(orm.Inspection.created_at), orm.Tree.position, orm.Tree.created_at
        ).all()
        return [TreeWithContext.model_validate(row) for row in rows]

    def list_trees_for_inspection(self, inspection_id: str) -> List[TreeDetail]:
        self._get_inspection_row(inspection_id)
        rows = (
            self.db.query(orm.Tree)
            .options(*_TREE_OPTIONS)
            .filter(orm.Tree.inspection_id == inspection_id)
            .order_by(orm.Tree.position, orm.Tree.created_at)
            .all()
        )
        return [TreeDetail.model_validate(row) for row in rows]

    def get_tree(self, tree_id: str) -> TreeDetail:
        """
        Fetch one tree with its ordered photos and candidates.

        Raises:
            NotFoundError: If no tree has this id
        """
        tree = (
            self.db.query(orm.Tree)
            .options(*_TREE_OPTIONS)
            .filter(orm.Tree.id == tree_id)
            .first()
        )
        if tree is None:
            raise NotFoundError("Tree", tree_id)
        return TreeDetail.model_validate(tree)

    def create_tree(self, inspection_id: str, payload: Any) -> TreeDetail:
        """Add a tree (with its photos) to an existing inspection."""
        self._get_inspection_row(inspection_id)
        data: TreePayload = parse_payload(TreePayload, payload)
        position = (
            self.db.query(func.count(orm.Tree.id))
            .filter(orm.Tree.inspection_id == inspection_id)
            .scalar()
        )

        with transaction(self.db, "creating tree"):
            tree = self._insert_tree(inspection_id, data, position)

        logger.info(f"Added tree {tree.id} to inspection {inspection_id}")
        return self.get_tree(tree.id)

    def update_tree(self, tree_id: str, payload: Any) -> TreeDetail:
        data: TreeUpdate = parse_payload(TreeUpdate, payload)
        changes = {name: getattr(data, name) for name in data.model_fields_set}
        for name in ("latitude", "longitude"):
            if name in changes and changes[name] is None:
                raise ValidationError.for_field(name, "may not be null")

        tree = self._get_tree_row(tree_id)
        with transaction(self.db, "updating tree"):
            for name, value in changes.items():
                setattr(tree, name, value)

        return self.get_tree(tree_id)

    def delete_tree(self, tree_id: str) -> None:
        """Delete a tree with its photos and candidates."""
        self._get_tree_row(tree_id)
        with transaction(self.db, "deleting tree"):
            self._delete_tree_children([tree_id])
            self.db.query(orm.Tree).filter(orm.Tree.id == tree_id).delete(
                synchronize_session=False
            )
        self.db.expunge_all()
        logger.info(f"Deleted tree {tree_id}")

    def add_photos(self, tree_id: str, urls: Iterable[str]) -> List[TreePhotoOut]:
        """Append photos to a tree, after any it already has."""
        self._get_tree_row(tree_id)
        urls = [url for url in urls if url]
        if not urls:
            raise ValidationError.for_field("photos", "at least one photo URL is required")

        start = (
            self.db.query(func.coalesce(func.max(orm.TreePhoto.position) + 1, 0))
            .filter(orm.TreePhoto.tree_id == tree_id)
            .scalar()
        )
        with transaction(self.db, "adding photos"):
            rows = [
                orm.TreePhoto(tree_id=tree_id, url=url, position=start + offset)
                for offset, url in enumerate(urls)
            ]
            self.db.add_all(rows)

        return [TreePhotoOut.model_validate(row) for row in rows]

    def remove_photo(self, tree_id: str, photo_id: str) -> None:
        photo = (
            self.db.query(orm.TreePhoto)
            .filter(orm.TreePhoto.id == photo_id, orm.TreePhoto.tree_id == tree_id)
            .first()
        )
        if photo is None:
            raise NotFoundError("Photo", photo_id)
        with transaction(self.db, "removing photo"):
            self.db.delete(photo)

    def replace_tree_species_candidates(
        self,
        tree_id: str,
        candidates: Sequence[Any],
    ) -> List[SpeciesCandidateOut]:
        """Replace a tree's candidates with the given list."""
        self._get_tree_row(tree_id)
        validated = _parse_candidates(candidates)

        with transaction(self.db, "replacing tree species candidates"):
            self.db.query(orm.SpeciesCandidate).filter(
                orm.SpeciesCandidate.tree_id == tree_id
            ).delete(synchronize_session=False)
            rows = [
                orm.SpeciesCandidate(
                    tree_id=tree_id,
                    name=candidate.name,
                    confidence=candidate.confidence,
                )
                for candidate in validated
            ]
            self.db.add_all(rows)

        return [SpeciesCandidateOut.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def dashboard_stats(
        self,
        region_id: Optional[str] = None,
        municipality_id: Optional[str] = None,
    ) -> DashboardStats:
        """
        Inspection totals per priority and per municipality.

        Municipalities are ordered by inspection count, highest first.
        """
        def scoped(query: Query) -> Query:
            if region_id:
                query = query.filter(orm.Inspection.region_id == region_id)
            if municipality_id:
                query = query.filter(orm.Inspection.municipality_id == municipality_id)
            return query

        total = scoped(self.db.query(func.count(orm.Inspection.id))).scalar() or 0

        per_priority = dict(
            scoped(
                self.db.query(orm.Inspection.priority, func.count(orm.Inspection.id))
            ).group_by(orm.Inspection.priority).all()
        )

        count = func.count(orm.Inspection.id).label("count")
        per_municipality = (
            scoped(
                self.db.query(orm.Municipality.name, count)
                .select_from(orm.Inspection)
                .outerjoin(orm.Municipality, orm.Inspection.municipality_id == orm.Municipality.id)
            )
            .group_by(orm.Inspection.municipality_id, orm.Municipality.name)
            .order_by(desc(count), orm.Municipality.name)
            .all()
        )

        return DashboardStats(
            total_inspections=total,
            high_priority=per_priority.get(Priority.HIGH, 0),
            medium_priority=per_priority.get(Priority.MEDIUM, 0),
            low_priority=per_priority.get(Priority.LOW, 0),
            by_municipality=[
                MunicipalityCount(municipality=name or UNKNOWN_MUNICIPALITY, count=n)
                for name, n in per_municipality
            ],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _filtered(self, filters: Optional[InspectionFilter]) -> Query:
        query = self.db.query(orm.Inspection)
        if filters is None:
            return query.order_by(desc(orm.Inspection.created_at))

        if filters.region_id:
            query = query.filter(orm.Inspection.region_id == filters.region_id)
        if filters.municipality_id:
            query = query.filter(orm.Inspection.municipality_id == filters.municipality_id)
        if filters.feeder_id:
            query = query.filter(orm.Inspection.feeder_id == filters.feeder_id)
        if filters.priority:
            query = query.filter(orm.Inspection.priority == filters.priority)
        if filters.date_from:
            query = query.filter(orm.Inspection.inspection_date >= start_of(filters.date_from))
        if filters.date_to:
            if isinstance(filters.date_to, datetime):
                query = query.filter(orm.Inspection.inspection_date <= filters.date_to)
            else:
                # A bare date covers the whole day
                query = query.filter(orm.Inspection.inspection_date < end_exclusive(filters.date_to))
        if filters.note_number and filters.note_number.strip():
            like = f"%{filters.note_number.strip()}%"
            query = query.filter(orm.Inspection.note_number.ilike(like))

        return query.order_by(desc(orm.Inspection.created_at))

    @staticmethod
    def _paginate(query: Query, pagination: Optional[Pagination]) -> Query:
        if pagination is None:
            return query
        if pagination.offset:
            query = query.offset(pagination.offset)
        if pagination.limit is not None:
            query = query.limit(pagination.limit)
        return query

    def _check_references(
        self,
        region_id: str,
        municipality_id: str,
        feeder_id: str,
        substation_id: str,
    ) -> None:
        """
        Every reference must exist, the municipality must belong to the region
        and the feeder to the substation.
        """
        errors = []
        region = self.db.get(orm.Region, region_id)
        municipality = self.db.get(orm.Municipality, municipality_id)
        feeder = self.db.get(orm.Feeder, feeder_id)
        substation = self.db.get(orm.Substation, substation_id)

        for field, value, row in (
            ("regionId", region_id, region),
            ("municipalityId", municipality_id, municipality),
            ("feederId", feeder_id, feeder),
            ("substationId", substation_id, substation),
        ):
            if row is None:
                errors.append({"field": field, "message": f"'{value}' does not exist"})

        if region is not None and municipality is not None and municipality.region_id != region.id:
            errors.append({
                "field": "municipalityId",
                "message": "municipality does not belong to the selected region",
            })
        if substation is not None and feeder is not None and feeder.substation_id != substation.id:
            errors.append({
                "field": "feederId",
                "message": "feeder does not belong to the selected substation",
            })

        if errors:
            raise ValidationError(
                "; ".join(f"{e['field']}: {e['message']}" for e in errors),
                errors=errors,
            )

    def _insert_tree(self, inspection_id: str, data: TreePayload, position: int) -> orm.Tree:
        tree = orm.Tree(
            inspection_id=inspection_id,
            position=position,
            **data.model_dump(exclude={"photos"}),
        )
        self.db.add(tree)
        self.db.flush()
        self.db.add_all(
            orm.TreePhoto(tree_id=tree.id, url=url, position=index)
            for index, url in enumerate(data.photos)
        )
        self.db.flush()
        return tree

    def _delete_tree_children(self, tree_ids: List[str]) -> None:
        self.db.query(orm.TreePhoto).filter(
            orm.TreePhoto.tree_id.in_(tree_ids)
        ).delete(synchronize_session=False)
        self.db.query(orm.SpeciesCandidate).filter(
            orm.SpeciesCandidate.tree_id.in_(tree_ids)
        ).delete(synchronize_session=False)

    def _get_inspection_row(self, inspection_id: str) -> orm.Inspection:
        inspection = self.db.get(orm.Inspection, inspection_id)
        if inspection is None:
            raise NotFoundError("Inspection", inspection_id)
        return inspection

    def _get_tree_row(self, tree_id: str) -> orm.Tree:
        tree = self.db.get(orm.Tree, tree_id)
        if tree is None:
            raise NotFoundError("Tree", tree_id)
        return tree


def _parse_candidates(candidates: Sequence[Any]) -> List[SpeciesCandidateIn]:
    if candidates is None:
        raise ValidationError.for_field("candidates", "a list of candidates is required")
    return [
        parse_payload(SpeciesCandidateIn, candidate, prefix=f"candidates.{index}")
        for index, candidate in enumerate(candidates)
    ]
