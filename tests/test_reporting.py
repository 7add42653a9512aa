import csv
from datetime import date
from io import StringIO

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from subtrack.core.config import settings
from subtrack.core.errors import BadRequestError, PermissionDeniedError
from subtrack.models.audit import AuditLog
from subtrack.models.user import User, UserRole
from subtrack.services.reporting import ReportingService
from tests.conftest import actor_for, auth_headers, make_department, make_user

API = settings.api_v1_str


def _rows(content: str) -> list[dict[str, str]]:
    return list(csv.DictReader(StringIO(content)))


@pytest.fixture()
def ctx(db_session: Session) -> dict:
    engineering = make_department(db_session, name="Engineering", short_code="ENG")
    operations = make_department(db_session, name="Operations", short_code="OPS")
    admin = make_user(db_session, UserRole.ADMIN, email="admin@example.com")
    hod = make_user(db_session, UserRole.HOD, (engineering,), email="hod@example.com")
    make_user(db_session, UserRole.POC, (engineering, operations))
    make_user(db_session, UserRole.POC, (engineering,))
    idle = make_user(db_session, None, email="idle@example.com")
    idle.is_active = False
    db_session.add(idle)
    db_session.commit()
    return {
        "engineering": engineering,
        "operations": operations,
        "admin": actor_for(db_session, admin),
        "hod": actor_for(db_session, hod),
    }


def test_role_distribution_and_activity(db_session: Session, ctx: dict) -> None:
    analytics = ReportingService(db_session).analytics(ctx["admin"])

    assert analytics.role_distribution == {"ADMIN": 1, "FINANCE": 0, "HOD": 1, "POC": 2}
    assert analytics.user_activity.total_users == 5
    assert analytics.user_activity.active_users == 4
    assert analytics.user_activity.inactive_users == 1
    assert analytics.user_activity.active_percentage == 80
    assert analytics.active_departments == 2


def test_activity_percentage_is_zero_without_users(db_session: Session) -> None:
    stats = ReportingService(db_session).user_activity()
    assert (stats.total_users, stats.active_users, stats.active_percentage) == (0, 0, 0)


def test_user_export_reads_every_batch(db_session: Session, ctx: dict, monkeypatch) -> None:
    monkeypatch.setattr(settings, "export_batch_size", 2)
    filename, content = ReportingService(db_session).export_csv(ctx["admin"], "users", date(2026, 3, 4))

    assert filename == "users-2026-03-04.csv"
    assert content.splitlines()[0] == "ID,Email,Name,Status,Role,Created At"
    rows = _rows(content)
    assert len(rows) == 5
    assert len({row["ID"] for row in rows}) == 5
    idle = next(row for row in rows if row["Email"] == "idle@example.com")
    assert idle["Status"] == "Inactive"
    assert idle["Role"] == "No role"
    admin = next(row for row in rows if row["Email"] == "admin@example.com")
    assert admin["Role"] == "ADMIN"
    stored = db_session.exec(select(User).where(User.email == "admin@example.com")).one()
    assert admin["Created At"] == stored.created_at.isoformat()

    audit = db_session.exec(select(AuditLog).where(AuditLog.action == "export.users")).one()
    assert audit.entity_type == "export"
    assert audit.details == {"count": 5, "type": "users"}


def test_department_export_lists_hods(db_session: Session, ctx: dict) -> None:
    _, content = ReportingService(db_session).export_csv(ctx["admin"], "departments", date(2026, 3, 4))

    rows = {row["Name"]: row for row in _rows(content)}
    assert rows["Engineering"]["HODs"] == "Hod User"
    assert rows["Operations"]["HODs"] == "No HODs"
    assert rows["Engineering"]["Status"] == "Active"
    audit = db_session.exec(select(AuditLog).where(AuditLog.action == "export.departments")).one()
    assert audit.details == {"count": 2, "type": "departments"}


def test_analytics_export_counts_assignments(db_session: Session, ctx: dict) -> None:
    filename, content = ReportingService(db_session).export_csv(ctx["admin"], "analytics", date(2026, 3, 4))

    assert filename == "analytics-2026-03-04.csv"
    assert _rows(content) == [
        {"Department": "Engineering", "Status": "Active", "Total HODs": "1", "Total POCs": "2"},
        {"Department": "Operations", "Status": "Active", "Total HODs": "0", "Total POCs": "1"},
    ]


def test_export_rejects_unknown_type_and_non_admins(db_session: Session, ctx: dict) -> None:
    service = ReportingService(db_session)
    with pytest.raises(BadRequestError, match="Invalid export type"):
        service.export_csv(ctx["admin"], "subscriptions", date(2026, 3, 4))
    with pytest.raises(PermissionDeniedError):
        service.export_csv(ctx["hod"], "users", date(2026, 3, 4))
    with pytest.raises(PermissionDeniedError):
        service.analytics(ctx["hod"])


def test_export_endpoint_returns_csv_attachment(client: TestClient, db_session: Session) -> None:
    admin = make_user(db_session, UserRole.ADMIN)
    finance = make_user(db_session, UserRole.FINANCE)

    response = client.get(f"{API}/admin/export", params={"type": "users"}, headers=auth_headers(admin))
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"] == "text/csv; charset=utf-8"
    assert response.headers["content-disposition"].startswith('attachment; filename="users-')
    assert len(_rows(response.text)) == 2

    invalid = client.get(f"{API}/admin/export", params={"type": "everything"}, headers=auth_headers(admin))
    assert invalid.status_code == status.HTTP_400_BAD_REQUEST
    assert invalid.json() == {"success": False, "error": "Invalid export type", "data": None, "warning": None}

    denied = client.get(f"{API}/admin/export", headers=auth_headers(finance))
    assert denied.status_code == status.HTTP_403_FORBIDDEN

    analytics = client.get(f"{API}/admin/analytics", headers=auth_headers(admin))
    assert analytics.status_code == status.HTTP_200_OK
    assert analytics.json()["user_activity"]["active_percentage"] == 100
    assert analytics.json()["role_distribution"]["FINANCE"] == 1
