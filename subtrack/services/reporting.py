from __future__ import annotations

import csv
from collections.abc import Iterator
from datetime import date, datetime
from io import StringIO
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, select

from subtrack.core.config import settings
from subtrack.core.errors import BadRequestError
from subtrack.core.logging_setup import logger
from subtrack.models.organization import Department
from subtrack.models.user import HodDepartment, PocDepartmentAccess, User, UserRole
from subtrack.schemas.reporting import AdminAnalytics, ExportType, UserActivityStats
from subtrack.services import access
from subtrack.services.access import Actor, require
from subtrack.services.audit import AuditService

USER_COLUMNS = ["ID", "Email", "Name", "Status", "Role", "Created At"]
DEPARTMENT_COLUMNS = ["ID", "Name", "Status", "HODs", "Created At"]
ANALYTICS_COLUMNS = ["Department", "Status", "Total HODs", "Total POCs"]


def _status(is_active: bool) -> str:
    return "Active" if is_active else "Inactive"


def _iso(value: datetime) -> str:
    return value.isoformat()


def to_csv(rows: list[dict[str, Any]], fieldnames: list[str]) -> str:
    output = StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: "" if value is None else value for key, value in row.items()})
    return output.getvalue()


class ReportingService:
    """Admin dashboard figures and CSV exports of users and departments."""

    def __init__(self, session: Session, audit_service: AuditService | None = None) -> None:
        self.session = session
        self.audit = audit_service or AuditService(session)

    # Analytics ------------------------------------------------------------
    def role_distribution(self) -> dict[str, int]:
        counts = {role.value: 0 for role in UserRole}
        rows = self.session.exec(
            select(User.role, func.count()).where(User.role.is_not(None)).group_by(User.role)
        ).all()
        for role, count in rows:
            counts[UserRole(role).value] = int(count)
        return counts

    def user_activity(self) -> UserActivityStats:
        total = int(self.session.exec(select(func.count()).select_from(User)).one() or 0)
        active = int(self.session.exec(select(func.count()).select_from(User).where(User.is_active)).one() or 0)
        return UserActivityStats(
            total_users=total,
            active_users=active,
            inactive_users=total - active,
            active_percentage=round(active / total * 100) if total else 0,
        )

    def active_department_count(self) -> int:
        return int(
            self.session.exec(select(func.count()).select_from(Department).where(Department.is_active)).one() or 0
        )

    def analytics(self, actor: Actor) -> AdminAnalytics:
        require(access.can_administer(actor))
        return AdminAnalytics(
            role_distribution=self.role_distribution(),
            user_activity=self.user_activity(),
            active_departments=self.active_department_count(),
        )

    # Export ---------------------------------------------------------------
    def _batches(self, model, batch_size: int) -> Iterator[list]:
        offset = 0
        while True:
            batch = list(
                self.session.exec(
                    select(model).order_by(model.created_at, model.id).offset(offset).limit(batch_size)
                ).all()
            )
            if not batch:
                return
            yield batch
            if len(batch) < batch_size:
                return
            offset += batch_size

    def _user_rows(self, batch_size: int) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for batch in self._batches(User, batch_size):
            for user in batch:
                rows.append(
                    {
                        "ID": str(user.id),
                        "Email": user.email,
                        "Name": user.full_name or "",
                        "Status": _status(user.is_active),
                        "Role": user.role.value if user.role else "No role",
                        "Created At": _iso(user.created_at),
                    }
                )
        return rows

    def _department_rows(self, batch_size: int) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for batch in self._batches(Department, batch_size):
            hods = self.session.exec(
                select(HodDepartment.department_id, User.full_name, User.email)
                .join(User, User.id == HodDepartment.hod_id)
                .where(HodDepartment.department_id.in_([department.id for department in batch]))
                .order_by(User.full_name)
            ).all()
            names: dict = {}
            for department_id, full_name, email in hods:
                names.setdefault(department_id, []).append(full_name or email)
            for department in batch:
                rows.append(
                    {
                        "ID": str(department.id),
                        "Name": department.name,
                        "Status": _status(department.is_active),
                        "HODs": ", ".join(names.get(department.id, [])) or "No HODs",
                        "Created At": _iso(department.created_at),
                    }
                )
        return rows

    def _analytics_rows(self) -> list[dict[str, Any]]:
        hod_counts = dict(
            self.session.exec(
                select(HodDepartment.department_id, func.count()).group_by(HodDepartment.department_id)
            ).all()
        )
        poc_counts = dict(
            self.session.exec(
                select(PocDepartmentAccess.department_id, func.count()).group_by(PocDepartmentAccess.department_id)
            ).all()
        )
        departments = self.session.exec(select(Department).order_by(Department.name)).all()
        return [
            {
                "Department": department.name,
                "Status": _status(department.is_active),
                "Total HODs": int(hod_counts.get(department.id, 0)),
                "Total POCs": int(poc_counts.get(department.id, 0)),
            }
            for department in departments
        ]

    def export_csv(self, actor: Actor, export_type: str, on: date) -> tuple[str, str]:
        """Render an export as CSV. Returns ``(filename, content)``."""
        require(access.can_administer(actor))
        try:
            kind = ExportType(export_type)
        except ValueError:
            raise BadRequestError("Invalid export type") from None

        batch_size = settings.export_batch_size
        if kind == ExportType.USERS:
            rows, columns = self._user_rows(batch_size), USER_COLUMNS
        elif kind == ExportType.DEPARTMENTS:
            rows, columns = self._department_rows(batch_size), DEPARTMENT_COLUMNS
        else:
            rows, columns = self._analytics_rows(), ANALYTICS_COLUMNS

        if kind != ExportType.ANALYTICS:
            self.audit.record_event(
                f"export.{kind.value}", "export", None, actor, {"count": len(rows), "type": kind.value}
            )
        logger.info("Export %s generated with %d row(s)", kind.value, len(rows))
        return f"{kind.value}-{on.isoformat()}.csv", to_csv(rows, columns)
