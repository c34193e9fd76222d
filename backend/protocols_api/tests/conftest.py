"""
Shared fixtures: in-memory database, API client and authenticated users.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from protocols_api.db import build_engine, drop_schema, get_db, init_schema
from protocols_api.main import app
from protocols_api.models.protocol import ProtocolCreate
from protocols_api.models.user import RegisterRequest, UserRole
from protocols_api.services.auth_service import AuthService, create_access_token
from protocols_api.services.basic_template import basic_templates
from protocols_api.services.protocol_service import ProtocolService


@pytest.fixture(autouse=True)
def reset_basic_template():
    """The registry is process-wide; every test starts without a cached id."""
    basic_templates.reset()
    yield
    basic_templates.reset()


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_schema(engine)
    yield engine
    drop_schema(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def protocol_service(db) -> ProtocolService:
    return ProtocolService(db)


@pytest.fixture
def protocol(protocol_service):
    """An empty draft protocol."""
    return protocol_service.create_protocol(
        ProtocolCreate(
            name="Estudio de hipertensión",
            code="hta-001",
            sponsor="Laboratorio Sur",
            description="Ensayo fase III",
        )
    )


@pytest.fixture
def client(session_factory):
    """API client bound to the in-memory database (lifespan not run)."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_user(db):
    return AuthService(db).register(
        RegisterRequest(email="admin@cedic.com", password="admin123", name="Administrador", role=UserRole.ADMIN)
    )


@pytest.fixture
def medico_user(db):
    return AuthService(db).register(
        RegisterRequest(email="medico@cedic.com", password="medico123", name="Dra. Pérez", role=UserRole.MEDICO)
    )


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {create_access_token(admin_user)}"}


@pytest.fixture
def medico_headers(medico_user):
    return {"Authorization": f"Bearer {create_access_token(medico_user)}"}
