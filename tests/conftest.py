"""
Pytest configuration for taskgate tests.

This module provides:
1. A throwaway SQLite database per test
2. The audit recorder pointed at that database
3. User/task factories and bearer-token helpers
"""

import os

# Must be set before anything under taskgate builds its engine.
os.environ.setdefault("DATABASE_URL", "sqlite:///./taskgate-test.db")
os.environ.setdefault("FEATURE_PERMISSION_CACHE", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import taskgate.models  # noqa: F401
from taskgate.core.legacy_roles import LegacyRole
from taskgate.core.security import Identity, create_access_token
from taskgate.db.base import Base
from taskgate.db.session import build_engine, get_db
from taskgate.models.task import Task, TaskStatus
from taskgate.models.user import User
from taskgate.services.audit_dispatcher import audit_dispatcher
from taskgate.services.audit_service import audit_recorder


# -----------------------------------------------------------------------------
# Database
# -----------------------------------------------------------------------------
@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'taskgate.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def audit_trail(session_factory):
    """Route audit writes into the test database for the duration of a test."""
    previous = audit_recorder._session_factory
    audit_recorder.configure(session_factory)
    yield audit_recorder
    audit_dispatcher.flush()
    audit_recorder._session_factory = previous


# -----------------------------------------------------------------------------
# API
# -----------------------------------------------------------------------------
@pytest.fixture
def client(session_factory):
    from taskgate.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# -----------------------------------------------------------------------------
# Factories
# -----------------------------------------------------------------------------
@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(legacy_role=None, tenant_id=1, email=None):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            full_name=f"User {counter['n']}",
            legacy_role=legacy_role,
            tenant_id=tenant_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def employee(make_user):
    return make_user(LegacyRole.employee, tenant_id=1, email="employee@example.com")


@pytest.fixture
def customer(make_user):
    return make_user(LegacyRole.customer, tenant_id=1, email="customer@example.com")


@pytest.fixture
def outsider(make_user):
    """A customer of another tenant."""
    return make_user(LegacyRole.customer, tenant_id=2, email="outsider@example.com")


@pytest.fixture
def make_task(db):
    def _make(tenant_id=1, status=TaskStatus.open, age_days=0, created_by=None, title="Annual report"):
        task = Task(
            tenant_id=tenant_id,
            title=title,
            status=status,
            created_by=created_by,
            created_at=datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=age_days),
        )
        if status is TaskStatus.completed:
            task.completed_at = datetime.now(timezone.utc).replace(tzinfo=None)
            task.completed_by = created_by
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make


def identity_of(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        email=user.email,
        legacy_role=user.legacy_role.value if user.legacy_role else None,
        tenant_id=user.tenant_id,
    )


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(identity_of(user))}"}
