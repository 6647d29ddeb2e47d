# tests/conftest.py
"""Shared fixtures: in-memory SQLite session and a TestClient bound to it."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before anything imports app.config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.pop("API_KEY", None)
os.environ.pop("N8N_FLEET_WEBHOOK_URL", None)

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every table on Base)
from app.database import Base, get_db
from app.models.fleet_vehicle import FleetVehicle
from app.models.company_import_settings import CompanyImportSettings
from app.models.fleet_change_request import FleetChangeRequest


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from app.main import app

    def _override():
        yield db

    app.dependency_overrides[get_db] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_vehicle(db):
    def _make(empresa_id="emp-1", **fields):
        fields.setdefault("placa", "ABC1234")
        vehicle = FleetVehicle(empresa_id=empresa_id, created_at=datetime.utcnow(), **fields)
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle
    return _make


@pytest.fixture
def make_settings(db):
    def _make(empresa_id="emp-1", **fields):
        row = CompanyImportSettings(empresa_id=empresa_id, **fields)
        db.add(row)
        db.commit()
        return row
    return _make


@pytest.fixture
def make_request(db):
    def _make(tipo="inclusao_veiculo", status="aberto", empresa_id="emp-1", **fields):
        now = datetime.utcnow()
        request = FleetChangeRequest(
            empresa_id=empresa_id, tipo=tipo, status=status, prioridade="normal",
            payload=fields.pop("payload", {}), anexos=[], created_at=now, updated_at=now, **fields,
        )
        db.add(request)
        db.commit()
        db.refresh(request)
        return request
    return _make
