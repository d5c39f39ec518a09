"""
Infrastructure layer: database engine and session management.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from arborinsight.config import settings
from arborinsight.domain.exceptions import PersistenceError


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for all timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_db_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections get foreign key enforcement switched on, which
    SQLite leaves off by default.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)

    engine = create_engine(url, echo=settings.database_echo, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db(bind: Engine = engine) -> None:
    """Create all tables that do not exist yet."""
    # Register the mapped classes on Base.metadata
    from arborinsight.infrastructure import orm  # noqa: F401

    Base.metadata.create_all(bind=bind)
    logger.info(f"Database schema ready ({bind.url.render_as_string(hide_password=True)})")


def get_db():
    """Get a database session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, action: str):
    """
    Commit the work done in the block, rolling back on any error.

    SQLAlchemy failures are logged and re-raised as PersistenceError; other
    exceptions (validation, not found) propagate unchanged after rollback.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database error while {action}")
        raise PersistenceError(f"Database error while {action}") from e
    except Exception:
        db.rollback()
        raise
