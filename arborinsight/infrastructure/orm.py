"""
Database models for inspections, trees and the administrative hierarchy.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arborinsight.domain.models import Priority
from arborinsight.infrastructure.database import Base, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


# ===================== Reference Data =====================
class Region(Base):
    """Service region (EA) grouping municipalities."""
    __tablename__ = "regions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))

    municipalities: Mapped[list["Municipality"]] = relationship(back_populates="region")


class Municipality(Base):
    __tablename__ = "municipalities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))
    state_code: Mapped[str] = mapped_column(String(2), default="SP")
    region_id: Mapped[str] = mapped_column(String(36), ForeignKey("regions.id"), index=True)

    region: Mapped[Region] = relationship(back_populates="municipalities")


class Substation(Base):
    __tablename__ = "substations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))

    feeders: Mapped[list["Feeder"]] = relationship(back_populates="substation")


class Feeder(Base):
    """Distribution feeder (alimentador), coded like ITU01."""
    __tablename__ = "feeders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(5), unique=True, index=True)
    substation_id: Mapped[str] = mapped_column(String(36), ForeignKey("substations.id"), index=True)

    substation: Mapped[Substation] = relationship(back_populates="feeders")


# ===================== Inspections =====================
class Inspection(Base):
    """Inspection note covering one or more trees."""
    __tablename__ = "inspections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    note_number: Mapped[str] = mapped_column(String(50), index=True)
    operative_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    inspection_date: Mapped[datetime] = mapped_column(DateTime, index=True)

    region_id: Mapped[str] = mapped_column(String(36), ForeignKey("regions.id"), index=True)
    municipality_id: Mapped[str] = mapped_column(String(36), ForeignKey("municipalities.id"), index=True)
    feeder_id: Mapped[str] = mapped_column(String(36), ForeignKey("feeders.id"), index=True)
    substation_id: Mapped[str] = mapped_column(String(36), ForeignKey("substations.id"), index=True)

    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    priority: Mapped[Priority] = mapped_column(
        Enum(
            Priority,
            native_enum=False,
            length=10,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        index=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Legacy single-tree fields
    final_species: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    avg_species_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    region: Mapped[Region] = relationship()
    municipality: Mapped[Municipality] = relationship()
    feeder: Mapped[Feeder] = relationship()
    substation: Mapped[Substation] = relationship()

    trees: Mapped[list["Tree"]] = relationship(
        back_populates="inspection",
        order_by=lambda: [Tree.position, Tree.created_at],
    )
    candidates: Mapped[list["SpeciesCandidate"]] = relationship(
        primaryjoin="Inspection.id == SpeciesCandidate.inspection_id",
        order_by=lambda: SpeciesCandidate.confidence.desc(),
        viewonly=True,
    )

    @property
    def total_trees(self) -> int:
        return len(self.trees)


class Tree(Base):
    """A single tree recorded under an inspection."""
    __tablename__ = "trees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    inspection_id: Mapped[str] = mapped_column(String(36), ForeignKey("inspections.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    final_species: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    avg_species_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    inspection: Mapped[Inspection] = relationship(back_populates="trees")
    photos: Mapped[list["TreePhoto"]] = relationship(
        back_populates="tree",
        order_by=lambda: [TreePhoto.position, TreePhoto.created_at],
    )
    candidates: Mapped[list["SpeciesCandidate"]] = relationship(
        primaryjoin="Tree.id == SpeciesCandidate.tree_id",
        order_by=lambda: SpeciesCandidate.confidence.desc(),
        viewonly=True,
    )

    # Owning inspection context, read by the map listing
    @property
    def region(self) -> Region:
        return self.inspection.region

    @property
    def municipality(self) -> Municipality:
        return self.inspection.municipality

    @property
    def feeder(self) -> Feeder:
        return self.inspection.feeder


class TreePhoto(Base):
    __tablename__ = "tree_photos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tree_id: Mapped[str] = mapped_column(String(36), ForeignKey("trees.id"), index=True)
    url: Mapped[str] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    tree: Mapped[Tree] = relationship(back_populates="photos")


class SpeciesCandidate(Base):
    """Species suggestion owned by either an inspection or a tree."""
    __tablename__ = "species_candidates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    inspection_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("inspections.id"), nullable=True, index=True
    )
    tree_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("trees.id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    confidence: Mapped[float] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
