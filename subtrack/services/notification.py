from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from subtrack.core.errors import NotFoundError
from subtrack.core.logging_setup import logger
from subtrack.models.base import utcnow
from subtrack.models.notification import NotificationType, UserNotification
from subtrack.models.payment_cycle import PaymentCycle
from subtrack.models.subscription import Subscription


class NotificationService:
    """In-app notifications for POCs and requesters.

    ``notify`` is best-effort like the audit trail: it uses its own session
    and never fails the operation that triggered it.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def notify(
        self,
        recipient_ids: Iterable[UUID],
        event_type: NotificationType,
        *,
        title: str,
        message: str,
        subscription: Subscription | None = None,
        cycle: PaymentCycle | None = None,
        payload: dict | None = None,
    ) -> int:
        recipients = list(dict.fromkeys(recipient_ids))
        if not recipients:
            return 0
        try:
            with Session(self.session.get_bind()) as notify_session:
                for recipient_id in recipients:
                    notify_session.add(
                        UserNotification(
                            recipient_id=recipient_id,
                            subscription_id=subscription.id if subscription else None,
                            cycle_id=cycle.id if cycle else None,
                            event_type=event_type,
                            title=title,
                            message=message,
                            payload=payload,
                        )
                    )
                notify_session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to store %s notification", event_type.value)
            return 0
        logger.info("Notification %s sent to %d recipient(s)", event_type.value, len(recipients))
        return len(recipients)

    def list_notifications(
        self,
        *,
        recipient_id: UUID,
        limit: int = 20,
        offset: int = 0,
        only_unread: bool = False,
    ) -> tuple[list[UserNotification], int]:
        query = (
            select(UserNotification)
            .where(UserNotification.recipient_id == recipient_id)
            .order_by(UserNotification.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        if only_unread:
            query = query.where(UserNotification.read_at.is_(None))

        items = list(self.session.exec(query).all())

        unread_query = (
            select(func.count())
            .where(UserNotification.recipient_id == recipient_id)
            .where(UserNotification.read_at.is_(None))
        )
        unread_count = self.session.exec(unread_query).one()

        return items, int(unread_count or 0)

    def mark_as_read(self, *, recipient_id: UUID, notification_id: UUID) -> UserNotification:
        notification = self.session.get(UserNotification, notification_id)
        if not notification or notification.recipient_id != recipient_id:
            raise NotFoundError("Notification not found")
        if not notification.read_at:
            notification.read_at = utcnow()
            self.session.add(notification)
            self.session.commit()
            self.session.refresh(notification)
        return notification

    def mark_all_as_read(self, *, recipient_id: UUID) -> int:
        pending = self.session.exec(
            select(UserNotification)
            .where(UserNotification.recipient_id == recipient_id)
            .where(UserNotification.read_at.is_(None))
        ).all()
        if not pending:
            return 0
        now = utcnow()
        for item in pending:
            item.read_at = now
            self.session.add(item)
        self.session.commit()
        return len(pending)
