from __future__ import annotations

import os
import uuid
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlmodel import Session, SQLModel, create_engine

from subtrack.db import session as db_session_module
from subtrack.db.session import enable_sqlite_foreign_keys, get_session
from subtrack.main import app
from subtrack.models.organization import Department, Location
from subtrack.models.subscription import BillingFrequency, Subscription, SubscriptionStatus
from subtrack.models.user import HodDepartment, PocDepartmentAccess, User, UserRole
from subtrack.schemas.subscription import SubscriptionCreate
from subtrack.services.access import AccessService, Actor
from subtrack.services.subscription import SubscriptionService
from subtrack.utils.security import create_access_token, get_password_hash

TEST_PASSWORD = "Password@123"


@pytest.fixture()
def db_engine(tmp_path):
    test_database_url = os.getenv("TEST_DATABASE_URL")
    is_postgres = bool(test_database_url and test_database_url.startswith("postgresql"))
    schema_name = None
    admin_engine = None

    if is_postgres:
        schema_name = f"test_{uuid.uuid4().hex}"
        admin_engine = create_engine(test_database_url, future=True)
        with admin_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"')
            )
        engine = create_engine(
            test_database_url,
            connect_args={"options": f"-csearch_path={schema_name},public"},
            future=True,
        )
    else:
        db_path = tmp_path / f"test_{uuid.uuid4().hex}.db"
        engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
        enable_sqlite_foreign_keys(engine)

    SQLModel.metadata.create_all(bind=engine)

    original_engine = db_session_module.engine
    db_session_module.engine = engine

    def override_dependency():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_dependency

    yield engine

    app.dependency_overrides.pop(get_session, None)
    db_session_module.engine = original_engine
    engine.dispose()
    if is_postgres and admin_engine and schema_name:
        with admin_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                text(f'DROP SCHEMA IF EXISTS "{schema_name}" CASCADE')
            )
        admin_engine.dispose()


@pytest.fixture()
def storage_env(monkeypatch, tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir(exist_ok=True)
    monkeypatch.setenv("SUBTRACK_STORAGE", str(storage_dir))
    yield storage_dir


@pytest.fixture()
def client(db_engine, storage_env) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(db_engine) -> Session:
    with Session(db_engine) as session:
        yield session


def make_department(session: Session, name: str | None = None, short_code: str | None = "ENG") -> Department:
    department = Department(name=name or f"Engineering {uuid.uuid4().hex[:6]}", short_code=short_code)
    session.add(department)
    session.commit()
    session.refresh(department)
    return department


def make_location(session: Session, name: str | None = None, is_active: bool = True) -> Location:
    location = Location(name=name or f"Office {uuid.uuid4().hex[:6]}", location_type="OFFICE", is_active=is_active)
    session.add(location)
    session.commit()
    session.refresh(location)
    return location


def make_user(
    session: Session,
    role: UserRole | None,
    departments: tuple[Department, ...] = (),
    email: str | None = None,
) -> User:
    user = User(
        email=email or f"{(role.value if role else 'none').lower()}_{uuid.uuid4().hex[:8]}@example.com",
        full_name=f"{role.value.title() if role else 'Guest'} User",
        password_hash=get_password_hash(TEST_PASSWORD),
        role=role,
    )
    session.add(user)
    session.commit()
    for department in departments:
        if role == UserRole.POC:
            session.add(PocDepartmentAccess(poc_id=user.id, department_id=department.id))
        elif role == UserRole.HOD:
            session.add(HodDepartment(hod_id=user.id, department_id=department.id))
    session.commit()
    session.refresh(user)
    return user


def actor_for(session: Session, user: User) -> Actor:
    return AccessService(session).actor_for(user)


def make_subscription(
    session: Session,
    actor: Actor,
    department: Department,
    *,
    activate_with: Actor | None = None,
    **overrides,
) -> Subscription:
    fields = {
        "tool_name": "Figma",
        "vendor_name": "Figma Inc",
        "department_id": department.id,
        "amount": Decimal("1200.00"),
        "billing_frequency": BillingFrequency.MONTHLY,
        "start_date": date(2026, 1, 1),
    }
    fields.update(overrides)
    service = SubscriptionService(session)
    subscription = service.create_subscription(actor, SubscriptionCreate(**fields))
    if activate_with is not None:
        subscription = service.approve_subscription(activate_with, subscription.id)
        assert subscription.status == SubscriptionStatus.ACTIVE
    return subscription


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.role)
    return {"Authorization": f"Bearer {token}"}
