"""
Domain service: administrative reference data.

Regions own municipalities; substations own feeders. Lists are small and
read far more often than written.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from arborinsight.domain.exceptions import ValidationError
from arborinsight.domain.models import (
    FeederCreate,
    FeederOut,
    MunicipalityCreate,
    MunicipalityOut,
    RegionCreate,
    RegionOut,
    SubstationCreate,
    SubstationOut,
    parse_payload,
)
from arborinsight.infrastructure import orm
from arborinsight.infrastructure.database import transaction


logger = logging.getLogger(__name__)


class ReferenceStore:
    """Read and create regions, municipalities, substations and feeders."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Regions and municipalities
    # ------------------------------------------------------------------

    def list_regions(self) -> List[RegionOut]:
        rows = self.db.query(orm.Region).order_by(orm.Region.name).all()
        return [RegionOut.model_validate(row) for row in rows]

    def list_municipalities(self, region_id: Optional[str] = None) -> List[MunicipalityOut]:
        query = self.db.query(orm.Municipality)
        if region_id:
            query = query.filter(orm.Municipality.region_id == region_id)
        rows = query.order_by(orm.Municipality.name).all()
        return [MunicipalityOut.model_validate(row) for row in rows]

    def create_region(self, payload) -> RegionOut:
        data = parse_payload(RegionCreate, payload)
        region = orm.Region(name=data.name.strip())
        with transaction(self.db, "creating region"):
            self.db.add(region)
        self.db.refresh(region)
        logger.info(f"Created region {region.name!r} ({region.id})")
        return RegionOut.model_validate(region)

    def create_municipality(self, payload) -> MunicipalityOut:
        data = parse_payload(MunicipalityCreate, payload)
        if self.db.get(orm.Region, data.region_id) is None:
            raise ValidationError.for_field("regionId", f"region '{data.region_id}' does not exist")

        municipality = orm.Municipality(
            name=data.name.strip(),
            state_code=data.state_code.upper(),
            region_id=data.region_id,
        )
        with transaction(self.db, "creating municipality"):
            self.db.add(municipality)
        self.db.refresh(municipality)
        logger.info(f"Created municipality {municipality.name!r} ({municipality.id})")
        return MunicipalityOut.model_validate(municipality)

    # ------------------------------------------------------------------
    # Substations and feeders
    # ------------------------------------------------------------------

    def list_substations(self) -> List[SubstationOut]:
        rows = self.db.query(orm.Substation).order_by(orm.Substation.name).all()
        return [SubstationOut.model_validate(row) for row in rows]

    def list_feeders(self, substation_id: Optional[str] = None) -> List[FeederOut]:
        query = self.db.query(orm.Feeder)
        if substation_id:
            query = query.filter(orm.Feeder.substation_id == substation_id)
        rows = query.order_by(orm.Feeder.code).all()
        return [FeederOut.model_validate(row) for row in rows]

    def create_substation(self, payload) -> SubstationOut:
        data = parse_payload(SubstationCreate, payload)
        substation = orm.Substation(name=data.name.strip())
        with transaction(self.db, "creating substation"):
            self.db.add(substation)
        self.db.refresh(substation)
        logger.info(f"Created substation {substation.name!r} ({substation.id})")
        return SubstationOut.model_validate(substation)

    def create_feeder(self, payload) -> FeederOut:
        data = parse_payload(FeederCreate, payload)
        if self.db.get(orm.Substation, data.substation_id) is None:
            raise ValidationError.for_field(
                "substationId", f"substation '{data.substation_id}' does not exist"
            )
        existing = self.db.query(orm.Feeder).filter(orm.Feeder.code == data.code).first()
        if existing is not None:
            raise ValidationError.for_field("code", f"feeder code '{data.code}' already exists")

        feeder = orm.Feeder(code=data.code, substation_id=data.substation_id)
        with transaction(self.db, "creating feeder"):
            self.db.add(feeder)
        self.db.refresh(feeder)
        logger.info(f"Created feeder {feeder.code} ({feeder.id})")
        return FeederOut.model_validate(feeder)

