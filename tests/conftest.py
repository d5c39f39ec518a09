"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- In-memory SQLite database with the schema created
- Seeded reference data (regions, municipalities, substations, feeders)
- Sample inspection payloads
- Photo storage in a temporary directory
- FastAPI test client wired to the test database
"""
from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from arborinsight.infrastructure.database import create_db_engine, get_db, init_db
from arborinsight.infrastructure.photo_storage import PhotoStorage, get_photo_storage
from arborinsight.main import app
from arborinsight.services.domain.inspection_repository import InspectionRepository
from arborinsight.services.domain.reference_store import ReferenceStore


# ============================================================
# Database Fixtures
# ============================================================

@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repository(db_session) -> InspectionRepository:
    return InspectionRepository(db_session)


@pytest.fixture
def reference_store(db_session) -> ReferenceStore:
    return ReferenceStore(db_session)


# ============================================================
# Sample Data Fixtures
# ============================================================

@pytest.fixture
def refs(reference_store) -> SimpleNamespace:
    """Two regions with one municipality each, one substation with a feeder."""
    sorocaba = reference_store.create_region({"name": "Sorocaba"})
    campinas = reference_store.create_region({"name": "Campinas"})
    itu = reference_store.create_municipality({"name": "Itu", "regionId": sorocaba.id})
    jundiai = reference_store.create_municipality({"name": "Jundiaí", "regionId": campinas.id})
    substation = reference_store.create_substation({"name": "SE Itu"})
    feeder = reference_store.create_feeder({"code": "ITU01", "substationId": substation.id})
    return SimpleNamespace(
        region=sorocaba,
        other_region=campinas,
        municipality=itu,
        other_municipality=jundiai,
        substation=substation,
        feeder=feeder,
    )


@pytest.fixture
def inspection_payload(refs) -> dict:
    """Inspection with two trees, the first one with a photo."""
    return {
        "noteNumber": "2024001",
        "operativeNumber": "OP-77",
        "inspectionDate": "2024-03-15T10:30:00",
        "regionId": refs.region.id,
        "municipalityId": refs.municipality.id,
        "feederId": refs.feeder.id,
        "substationId": refs.substation.id,
        "latitude": -23.55,
        "longitude": -47.30,
        "address": "Rua Floriano Peixoto, Centro - Itu/São Paulo",
        "priority": "alta",
        "notes": "Branches touching the line",
        "trees": [
            {
                "latitude": -23.5501,
                "longitude": -47.3001,
                "finalSpecies": "Tipuana tipu",
                "avgSpeciesConfidence": 87,
                "observation": "Leaning towards the line",
                "photos": ["/uploads/tree-1.jpg"],
            },
            {"latitude": -23.5502, "longitude": -47.3002},
        ],
    }


@pytest.fixture
def make_inspection(repository, inspection_payload):
    """Create an inspection, overriding any payload field."""
    def _make(**overrides) -> str:
        payload = {**inspection_payload, **overrides}
        return repository.create_inspection(payload).id
    return _make


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 20, 8, 0, 0)


# ============================================================
# Storage Fixtures
# ============================================================

@pytest.fixture
def storage(tmp_path) -> PhotoStorage:
    return PhotoStorage(root=str(tmp_path / "storage"), max_bytes=1024)


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client(session_factory, storage) -> TestClient:
    """Synchronous test client bound to the test database and storage."""
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_photo_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
