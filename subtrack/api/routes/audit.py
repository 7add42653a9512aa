from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlmodel import Session

from subtrack.api.deps import get_db, require_roles
from subtrack.core.errors import NotFoundError
from subtrack.models.user import UserRole
from subtrack.schemas.audit import AuditEventRead, AuthLogRead
from subtrack.schemas.common import Page, Pagination
from subtrack.services.access import Actor
from subtrack.services.audit import AuditService

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/events", response_model=Page[AuditEventRead])
def list_events(
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    actor_id: Optional[UUID] = None,
    start_at: Optional[datetime] = None,
    end_at: Optional[datetime] = None,
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Page[AuditEventRead]:
    items, total = AuditService(session).list_events(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        start_at=start_at,
        end_at=end_at,
        limit=pagination.effective_limit,
        offset=pagination.effective_offset,
    )
    return Page[AuditEventRead](items=[AuditEventRead.model_validate(item) for item in items], total_count=total)


@router.get("/events/{event_id}", response_model=AuditEventRead)
def get_event(
    event_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> AuditEventRead:
    log = AuditService(session).get_event(event_id)
    if not log:
        raise NotFoundError("Audit log not found")
    return AuditEventRead.model_validate(log)


@router.get("/auth", response_model=Page[AuthLogRead])
def list_auth_logs(
    user_id: Optional[UUID] = None,
    email: Optional[str] = None,
    success: Optional[bool] = None,
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Page[AuthLogRead]:
    items, total = AuditService(session).list_auth(
        user_id=user_id,
        email=email,
        success=success,
        limit=pagination.effective_limit,
        offset=pagination.effective_offset,
    )
    return Page[AuthLogRead](items=[AuthLogRead.model_validate(item) for item in items], total_count=total)
