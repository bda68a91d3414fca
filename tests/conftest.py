"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database and an upload directory
under tmp_path. Admin bearer tokens are minted with the configured secret.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import config
from app.core.roles import AdminRole
from app.core.security import AdminPrincipal
from app.database import Base, get_db
from app.models import MedicalApplication  # noqa: F401 - register tables
from app.services import application_service
from main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def client(session_factory):
    """TestClient bound to the test database. Startup hooks are not run."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============ ADMINS ============

def make_token(role: str, user_id: str = "admin-1", name: str = "Test Admin") -> str:
    return jwt.encode(
        {"userId": user_id, "name": name, "role": role},
        config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
    )


def auth_header(role: str, **kwargs) -> dict:
    return {"Authorization": f"Bearer {make_token(role, **kwargs)}"}


@pytest.fixture
def obc_admin():
    return AdminPrincipal(user_id="obc-1", name="OBC Officer", role=AdminRole.OBC)


@pytest.fixture
def health_admin():
    return AdminPrincipal(user_id="hc-1", name="Dr. Rao", role=AdminRole.HEALTH_CENTRE)


@pytest.fixture
def super_admin():
    return AdminPrincipal(user_id="sa-1", name="Registrar", role=AdminRole.SUPER_ADMIN)


@pytest.fixture
def obc_headers():
    return auth_header("obc", user_id="obc-1", name="OBC Officer")


@pytest.fixture
def health_headers():
    return auth_header("health-centre", user_id="hc-1", name="Dr. Rao")


@pytest.fixture
def super_headers():
    return auth_header("super_admin", user_id="sa-1", name="Registrar")


# ============ DATA ============

@pytest.fixture
def sample_application(db):
    """A pending claim with two bills."""
    return application_service.submit_application(
        db,
        employee_name="Anita Sharma",
        employee_email="anita@example.edu",
        employee_id="EMP042",
        department="Physics",
        patient_name="Anita Sharma",
        relationship_with_employee="self",
        hospital_name="City Hospital",
        treatment_type="opd",
        expenses=[
            {"bill_number": "B-1", "description": "Consultation", "amount_claimed": 1500.0},
            {"bill_number": "B-2", "description": "Medicines", "amount_claimed": 2500.0},
        ],
    )
