"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL. All models are auto-imported here
so create_tables() creates every table in one call.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import settings

_engine_kwargs = {"pool_pre_ping": True, "echo": False}
if not settings.DATABASE_URL.startswith("sqlite"):
    # Connection pool sizing only applies to server databases
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    from app.models.fleet_vehicle import FleetVehicle                      # noqa
    from app.models.fleet_responsible import FleetResponsible              # noqa
    from app.models.import_job import ImportJob                            # noqa
    from app.models.company_import_settings import CompanyImportSettings   # noqa
    from app.models.field_source_audit import FieldSourceAudit             # noqa
    from app.models.fleet_change_request import FleetChangeRequest         # noqa

    Base.metadata.create_all(bind=engine)
