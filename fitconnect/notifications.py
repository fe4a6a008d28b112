"""Notification service.

Notifications are secondary side effects of likes, comments and connection
events. Delivery goes through :meth:`NotificationService.notify_quietly`, which
never lets a failure reach the primary operation.
"""

from sqlalchemy import func, update
from sqlmodel import Session, col, select

from fitconnect.config import settings
from fitconnect.errors import NotFoundError
from fitconnect.logging import logger
from fitconnect.metrics import side_effect_failures_total, track_operation
from fitconnect.models import NotificationRow, NotificationType, NotificationView
from fitconnect.repository import Repository
from fitconnect.utils import resolve_page


class NotificationService:
    """Creates, lists and marks notifications for a recipient."""

    def __init__(self, session: Session):
        self.session = session
        self.notifications = Repository[NotificationRow](session, NotificationRow)

    def notify(
        self,
        recipient_id: int,
        type: NotificationType,
        message: str,
        actor_id: int | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> NotificationRow:
        """Stage a notification in the current transaction. The caller commits."""
        row = NotificationRow(
            recipient_id=recipient_id,
            actor_id=actor_id,
            type=type,
            entity_type=entity_type,
            entity_id=entity_id,
            message=message,
        )
        return self.notifications.add(row)

    def notify_quietly(
        self,
        recipient_id: int,
        type: NotificationType,
        message: str,
        actor_id: int | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> NotificationRow | None:
        """Create and commit a notification; failures are logged and skipped."""
        try:
            row = self.notify(recipient_id, type, message, actor_id, entity_type, entity_id)
            self.session.commit()
            return row
        except Exception as exc:
            self.session.rollback()
            side_effect_failures_total.labels(kind="notification").inc()
            logger.opt(exception=exc).warning(
                f"⚠️  Could not deliver {type} notification to account {recipient_id}"
            )
            return None

    @track_operation("list_notifications")
    def list_for(
        self,
        recipient_id: int,
        unread_only: bool = False,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> list[NotificationView]:
        """Notifications for a recipient, newest first."""
        limit, offset = resolve_page(
            limit, offset, settings.page_default_limit, settings.page_max_limit
        )
        stmt = select(NotificationRow).where(NotificationRow.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(NotificationRow.is_read == False)  # noqa: E712
        stmt = (
            stmt.order_by(
                col(NotificationRow.created_at).desc(), col(NotificationRow.id).desc()
            )
            .limit(limit)
            .offset(offset)
        )
        return [NotificationView.model_validate(row) for row in self.session.exec(stmt).all()]

    def unread_count(self, recipient_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(NotificationRow)
            .where(
                NotificationRow.recipient_id == recipient_id,
                NotificationRow.is_read == False,  # noqa: E712
            )
        )
        return self.session.exec(stmt).one()

    @track_operation("mark_notification_read")
    def mark_read(self, notification_id: int, recipient_id: int) -> NotificationView:
        """Mark one notification as read.

        Raises:
            NotFoundError: If the notification does not exist or belongs to
                another recipient
        """
        row = self.notifications.get(notification_id)
        if row is None or row.recipient_id != recipient_id:
            raise NotFoundError("Notification not found")
        if not row.is_read:
            row.is_read = True
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
        return NotificationView.model_validate(row)

    @track_operation("mark_all_notifications_read")
    def mark_all_read(self, recipient_id: int) -> int:
        """Mark every unread notification of a recipient as read.

        Returns:
            Number of notifications updated
        """
        result = self.session.connection().execute(
            update(NotificationRow)
            .where(
                col(NotificationRow.recipient_id) == recipient_id,
                NotificationRow.is_read == False,  # noqa: E712
            )
            .values(is_read=True)
        )
        self.session.commit()
        logger.debug(f"Marked {result.rowcount} notifications read for account {recipient_id}")
        return result.rowcount


__all__ = ["NotificationService"]
