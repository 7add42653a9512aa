from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from subtrack.api.deps import get_current_active_user, get_db
from subtrack.models.user import User
from subtrack.schemas.notification import NotificationList, NotificationMarkAllResponse, NotificationRead
from subtrack.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
def list_notifications(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    only_unread: bool = Query(default=False),
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationList:
    items, unread_count = NotificationService(session).list_notifications(
        recipient_id=current_user.id,
        limit=limit,
        offset=offset,
        only_unread=only_unread,
    )
    return NotificationList(
        items=[NotificationRead.model_validate(item) for item in items],
        unread_count=unread_count,
    )


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_as_read(
    notification_id: UUID,
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationRead:
    updated = NotificationService(session).mark_as_read(
        recipient_id=current_user.id, notification_id=notification_id
    )
    return NotificationRead.model_validate(updated)


@router.post("/read-all", response_model=NotificationMarkAllResponse)
def mark_all_notifications_as_read(
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationMarkAllResponse:
    updated = NotificationService(session).mark_all_as_read(recipient_id=current_user.id)
    return NotificationMarkAllResponse(updated=updated)
