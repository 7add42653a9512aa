from datetime import timedelta
from uuid import uuid4

from sqlmodel import Session, select

from subtrack.models.audit import AuditLog, AuthLog
from subtrack.models.base import utcnow
from subtrack.models.user import UserRole
from subtrack.services.access import Actor
from subtrack.services.audit import AuditService
from tests.conftest import actor_for, make_user


def test_audit_service_records_events(db_session: Session) -> None:
    admin = actor_for(db_session, make_user(db_session, UserRole.ADMIN))
    service = AuditService(db_session)

    service.record_event("department.create", "department", admin.user_id, admin, {"name": "Finance"})

    stored = db_session.exec(select(AuditLog)).one()
    assert stored.actor_id == admin.user_id
    assert stored.actor_role == "ADMIN"
    assert stored.details["name"] == "Finance"


def test_audit_service_filters(db_session: Session) -> None:
    admin = actor_for(db_session, make_user(db_session, UserRole.ADMIN))
    service = AuditService(db_session)
    service.record_event("subscription.create", "subscription", None, admin)
    service.record_event("subscription.approve", "subscription", None, admin)
    service.record_event("location.create", "location", None, None)

    past = utcnow() - timedelta(days=1)
    items, total = service.list_events(entity_type="subscription", start_at=past, end_at=utcnow() + timedelta(minutes=1))
    assert total == 2
    assert {item.action for item in items} == {"subscription.create", "subscription.approve"}

    items, total = service.list_events(action="location.create")
    assert total == 1
    assert items[0].actor_id is None

    _, total = service.list_events(limit=1)
    assert total == 3


def test_audit_service_records_auth(db_session: Session) -> None:
    user = make_user(db_session, UserRole.FINANCE)
    service = AuditService(db_session)
    service.record_auth(user.id, "login", "127.0.0.1", "pytest", success=True)
    service.record_auth(None, "login", "127.0.0.1", "pytest", success=False, email=" Intruder@Example.com ")

    items, total = service.list_auth(success=False)
    assert total == 1
    assert items[0].user_id is None
    assert items[0].email == "intruder@example.com"
    assert service.list_auth(email="INTRUDER@example.com")[1] == 1
    assert len(db_session.exec(select(AuthLog)).all()) == 2


def test_audit_failure_is_logged_not_raised(db_session: Session, caplog) -> None:
    ghost = Actor(user_id=uuid4(), role=UserRole.ADMIN)

    AuditService(db_session).record_event("user.update", "user", None, ghost)

    assert db_session.exec(select(AuditLog)).all() == []
    assert "Audit write failed for user.update" in caplog.text
