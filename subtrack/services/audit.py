from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from subtrack.core.logging_setup import logger
from subtrack.models.audit import AuditLog, AuthLog
from subtrack.services.access import Actor


class AuditService:
    """Audit trail writer and reader.

    Writes are best-effort: they run in their own session after the primary
    transition has committed, and a failure is logged instead of raised.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def record_auth(
        self,
        user_id: UUID | None,
        event_type: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
        email: str | None = None,
    ) -> None:
        log = AuthLog(
            user_id=user_id,
            email=email.strip().lower() if email else None,
            event_type=event_type,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
        )
        self._write(log, event_type)

    def record_event(
        self,
        action: str,
        entity_type: str,
        entity_id: UUID | None = None,
        actor: Actor | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        log = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor.user_id if actor else None,
            actor_role=actor.role_name if actor else None,
            details=details or {},
        )
        self._write(log, action)

    def _write(self, log: AuditLog | AuthLog, label: str) -> None:
        try:
            with Session(self.session.get_bind()) as audit_session:
                audit_session.add(log)
                audit_session.commit()
        except SQLAlchemyError:
            logger.exception("Audit write failed for %s", label)

    def list_events(
        self,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        query = select(AuditLog)
        if action:
            query = query.where(AuditLog.action == action)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        if actor_id:
            query = query.where(AuditLog.actor_id == actor_id)
        if start_at:
            query = query.where(AuditLog.created_at >= start_at)
        if end_at:
            query = query.where(AuditLog.created_at <= end_at)

        total = self.session.exec(
            select(func.count()).select_from(query.subquery())
        ).one()

        items = self.session.exec(
            query.order_by(AuditLog.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return list(items), total

    def list_auth(
        self,
        user_id: UUID | None = None,
        email: str | None = None,
        success: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuthLog], int]:
        query = select(AuthLog)
        if user_id:
            query = query.where(AuthLog.user_id == user_id)
        if email:
            query = query.where(AuthLog.email == email.strip().lower())
        if success is not None:
            query = query.where(AuthLog.success == success)

        total = self.session.exec(
            select(func.count()).select_from(query.subquery())
        ).one()

        items = self.session.exec(
            query.order_by(AuthLog.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return list(items), total

    def get_event(self, log_id: UUID) -> AuditLog | None:
        return self.session.get(AuditLog, log_id)
