"""Mini-README: shared fixtures for service and API tests.

Every test gets its own SQLite file with the schema created from the ORM
metadata, a small organisation (one admin, two managers, an employee reporting
to the first manager and an unassigned employee) and, for API tests, a
TestClient whose `get_db` dependency points at that database.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.main import app
from app.models import Role, User
from app.security import create_session_token, hash_password

PASSWORD = "password123"


@pytest.fixture()
def engine(tmp_path):
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'workflow.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def people(db):
    hashed = hash_password(PASSWORD)
    admin = User(name="Ada Admin", email="admin@example.com", hashed_password=hashed, role=Role.ADMIN)
    manager = User(name="Mira Manager", email="mira@example.com", hashed_password=hashed, role=Role.MANAGER)
    other_manager = User(name="Bob Manager", email="bob@example.com", hashed_password=hashed, role=Role.MANAGER)
    db.add_all([admin, manager, other_manager])
    db.flush()

    employee = User(
        name="Eve Employee",
        email="eve@example.com",
        hashed_password=hashed,
        role=Role.EMPLOYEE,
        manager_id=manager.id,
    )
    loner = User(name="Lou Unassigned", email="lou@example.com", hashed_password=hashed, role=Role.EMPLOYEE)
    db.add_all([employee, loner])
    db.commit()
    return SimpleNamespace(admin=admin, manager=manager, other_manager=other_manager, employee=employee, loner=loner)


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager so the lifespan (migrations, bootstrap
    # admin) never touches the configured database.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_session_token(user.id)}"}

    return _headers
