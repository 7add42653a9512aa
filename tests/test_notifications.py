from uuid import uuid4

import pytest
from sqlmodel import Session

from subtrack.core.errors import NotFoundError
from subtrack.models.notification import NotificationType
from subtrack.models.user import UserRole
from subtrack.services.notification import NotificationService
from tests.conftest import make_user


def test_notify_deduplicates_recipients(db_session: Session) -> None:
    poc = make_user(db_session, UserRole.POC)
    service = NotificationService(db_session)

    sent = service.notify(
        [poc.id, poc.id],
        NotificationType.APPROVAL_REQUEST,
        title="New subscription",
        message="ENG/FY26/001 awaits approval",
    )

    assert sent == 1
    items, unread = service.list_notifications(recipient_id=poc.id)
    assert unread == 1
    assert items[0].title == "New subscription"
    assert service.notify([], NotificationType.APPROVAL_REQUEST, title="t", message="m") == 0


def test_mark_as_read(db_session: Session) -> None:
    poc = make_user(db_session, UserRole.POC)
    other = make_user(db_session, UserRole.POC)
    service = NotificationService(db_session)
    for index in range(3):
        service.notify([poc.id], NotificationType.CYCLE_CANCELLED, title=f"n{index}", message="cancelled")

    items, unread = service.list_notifications(recipient_id=poc.id)
    assert unread == 3

    read = service.mark_as_read(recipient_id=poc.id, notification_id=items[0].id)
    assert read.read_at is not None
    with pytest.raises(NotFoundError, match="Notification not found"):
        service.mark_as_read(recipient_id=other.id, notification_id=items[1].id)
    with pytest.raises(NotFoundError):
        service.mark_as_read(recipient_id=poc.id, notification_id=uuid4())

    assert service.mark_all_as_read(recipient_id=poc.id) == 2
    _, unread = service.list_notifications(recipient_id=poc.id)
    assert unread == 0
    unread_items, _ = service.list_notifications(recipient_id=poc.id, only_unread=True)
    assert unread_items == []


def test_notify_failure_is_swallowed_and_logged(db_session: Session, caplog) -> None:
    sent = NotificationService(db_session).notify(
        [uuid4()], NotificationType.APPROVAL_DECISION, title="t", message="m"
    )
    assert sent == 0
    assert "Failed to store APPROVAL_DECISION notification" in caplog.text
